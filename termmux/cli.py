"""CLI interface for termmux.

Entry point: termmux [--data PATH] [--url URL] <subcommand> [args...]
"""

import argparse
import asyncio
import logging
import os
import sys
import threading
from pathlib import Path

from . import config
from .client import MuxClient
from .logging_config import get_logger, setup_process_logging
from .surface import StreamSurfaceFactory
from .transport import WebSocketTransport

logger = get_logger(__name__)

SNAPSHOT_TIMEOUT = 10.0  # seconds to wait for the first sessions list


def _build_client(args, shell_cwd: str | None = None) -> tuple[MuxClient, WebSocketTransport]:
    settings = config.get_mux_config()
    client = MuxClient(StreamSurfaceFactory(sys.stdout), shell_cwd=shell_cwd, settings=settings)
    transport = WebSocketTransport(
        args.url or settings["url"],
        client.connection,
        initial_backoff=settings["reconnect_initial"],
        max_backoff=settings["reconnect_max"],
        backoff_multiplier=settings["reconnect_multiplier"],
    )
    return client, transport


def _start_stdin_reader(loop: asyncio.AbstractEventLoop) -> asyncio.Queue:
    """Read stdin lines on a daemon thread; "" marks EOF.

    The thread is a daemon: a readline still blocked at exit must not hold
    up interpreter shutdown.
    """
    lines: asyncio.Queue[str] = asyncio.Queue()

    def reader() -> None:
        try:
            for line in iter(sys.stdin.readline, ""):
                loop.call_soon_threadsafe(lines.put_nowait, line)
            loop.call_soon_threadsafe(lines.put_nowait, "")
        except RuntimeError:
            pass  # loop already closed

    threading.Thread(target=reader, name="termmux-stdin", daemon=True).start()
    return lines


async def _pump_input(namespace_mux, session_id: str, lines: asyncio.Queue, finished: asyncio.Event) -> None:
    """Forward lines as input until EOF, or until the channel exits or closes."""
    done_waiting = asyncio.ensure_future(finished.wait())
    try:
        while not finished.is_set() and session_id in namespace_mux.channels:
            next_line = asyncio.ensure_future(lines.get())
            await asyncio.wait({next_line, done_waiting}, return_when=asyncio.FIRST_COMPLETED)
            if not next_line.done():
                next_line.cancel()
                break
            line = next_line.result()
            if not line:
                break
            namespace_mux.send_input(session_id, line)
    finally:
        done_waiting.cancel()


async def _pump_stdin(namespace_mux, session_id: str) -> None:
    finished = asyncio.Event()

    def on_exit(exited_id: str, exit_code: int | None) -> None:
        if exited_id == session_id:
            finished.set()

    namespace_mux.add_exit_listener(on_exit)
    lines = _start_stdin_reader(asyncio.get_running_loop())
    await _pump_input(namespace_mux, session_id, lines, finished)


async def _run_interactive(args, open_channel) -> int:
    client, transport = _build_client(args, shell_cwd=getattr(args, "cwd", None))
    client.connection.add_listener(
        lambda connected: logger.info("Connection %s", "up" if connected else "down (will retry)")
    )
    mux, session_id = open_channel(client)
    await transport.start()
    try:
        await _pump_stdin(mux, session_id)
    finally:
        client.close()
        await transport.stop()
    if transport.fatal_error:
        print(f"Error: {transport.fatal_error}", file=sys.stderr)
        return 1
    return 0


# --- Subcommands ---


def cmd_attach(args):
    """Attach to a managed session's terminal."""

    def open_channel(client: MuxClient):
        client.open_terminal(args.session_id)
        return client.terminals, args.session_id

    return asyncio.run(_run_interactive(args, open_channel))


def cmd_shell(args):
    """Open a standalone shell."""

    def open_channel(client: MuxClient):
        channel = client.shells.create_shell()
        return client.shells, channel.session_id

    return asyncio.run(_run_interactive(args, open_channel))


def cmd_sessions(args):
    """Print the server's managed sessions."""

    async def run() -> int:
        client, transport = _build_client(args)
        received = asyncio.Event()
        client.add_snapshot_listener(lambda sessions, newly_idle: received.set())
        await transport.start()
        try:
            await asyncio.wait_for(received.wait(), timeout=SNAPSHOT_TIMEOUT)
        except asyncio.TimeoutError:
            print("Error: no session list received from server.", file=sys.stderr)
            return 1
        finally:
            await transport.stop()

        sessions = client.sessions.all() if args.all else client.sessions.visible()
        if not sessions:
            print("No sessions.")
            return 0
        print("=== Sessions ===")
        for session in sessions:
            print(f"\n  {session.name or session.id}")
            print(f"    ID:      {session.id}")
            print(f"    Status:  {session.status.value}")
            if session.cwd:
                print(f"    Cwd:     {session.cwd}")
            if session.current_tool:
                print(f"    Tool:    {session.current_tool}")
        return 0

    return asyncio.run(run())


def main():
    parser = argparse.ArgumentParser(
        prog="termmux",
        description="Multiplexed terminal sessions over one connection",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--data", "-d", help="Data directory (mux_config.json, logs/)")
    parser.add_argument("--url", "-u", help="Server websocket URL (overrides config)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    attach_parser = subparsers.add_parser("attach", help="Attach to a session terminal")
    attach_parser.add_argument("session_id", help="PTY session id (tmux session name)")
    attach_parser.set_defaults(func=cmd_attach)

    shell_parser = subparsers.add_parser("shell", help="Open a standalone shell")
    shell_parser.add_argument("--cwd", help="Working directory for the shell")
    shell_parser.set_defaults(func=cmd_shell)

    sessions_parser = subparsers.add_parser("sessions", help="List managed sessions")
    sessions_parser.add_argument("--all", "-a", action="store_true", help="Include dismissed sessions")
    sessions_parser.set_defaults(func=cmd_sessions)

    args = parser.parse_args()

    data_arg = args.data or os.environ.get("TERMMUX_DATA")
    if data_arg:
        config.init(Path(data_arg))
        config.ensure_dirs()
    setup_process_logging("termmux", level=logging.DEBUG if args.verbose else logging.INFO)

    sys.exit(args.func(args) or 0)


if __name__ == "__main__":
    main()
