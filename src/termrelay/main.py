"""Application entry point — CLI dispatcher and relay bootstrap.

Handles two execution modes:
  1. `termrelay clean` — prune old/dead session records and expired links.
  2. Default / `termrelay serve [--replace]` — configures logging, writes the
     pidfile, starts the HTTP relay (plus the optional cloudflared tunnel),
     and runs until SIGINT/SIGTERM.
"""

import atexit
import logging
import os
import signal
import sys
import time
from pathlib import Path

_USAGE = "usage: termrelay [serve [--replace] | clean]"


def _read_pid(pid_path: Path) -> int | None:
    """Read pidfile and return PID or None."""
    try:
        return int(pid_path.read_text().strip())
    except (FileNotFoundError, ValueError):
        return None


def _is_pid_alive(pid: int) -> bool:
    """Check if a PID is still alive."""
    try:
        os.kill(pid, 0)
        return True
    except OSError:
        return False


def _remove_pid(pid_path: Path) -> None:
    """Remove pidfile if it is still ours."""
    if _read_pid(pid_path) == os.getpid():
        pid_path.unlink(missing_ok=True)


def _kill_existing(pid: int) -> None:
    """SIGTERM a previous relay instance (SIGKILL after 5s)."""
    print(f"Stopping existing termrelay (PID {pid})...")
    os.kill(pid, signal.SIGTERM)
    for _ in range(50):  # 5 seconds, check every 0.1s
        time.sleep(0.1)
        if not _is_pid_alive(pid):
            print("Stopped.")
            return
    print(f"Force killing PID {pid}...")
    os.kill(pid, signal.SIGKILL)
    time.sleep(0.5)


def _claim_pidfile(pid_path: Path, replace: bool) -> bool:
    """Write our PID unless another live relay owns the pidfile."""
    pid = _read_pid(pid_path)
    if pid is not None and pid != os.getpid() and _is_pid_alive(pid):
        if not replace:
            print(f"termrelay is already running (PID {pid}). Use --replace to restart it.")
            return False
        _kill_existing(pid)
    pid_path.parent.mkdir(parents=True, exist_ok=True)
    pid_path.write_text(str(os.getpid()) + "\n")
    atexit.register(_remove_pid, pid_path)
    return True


def _configure_logging() -> None:
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.WARNING,
    )
    logging.getLogger("termrelay").setLevel(logging.DEBUG)


def _load_config():  # type: ignore[no-untyped-def]
    from .settings import load_settings

    try:
        return load_settings()
    except ValueError as e:
        print(f"Error: {e}\n")
        print("Check your settings.toml configuration.")
        sys.exit(1)


def _clean() -> None:
    """Run registry cleanup and print a summary."""
    from .registry import Registry
    from .tmux_dispatch import TmuxDispatcher

    config = _load_config()
    registry = Registry.from_dirs(
        config.instances_dir,
        config.links_dir,
        config.threads_dir,
        link_ttl_hours=config.link_ttl_hours,
        session_max_age_days=config.session_max_age_days,
    )
    dispatcher = TmuxDispatcher(socket_path=config.tmux_socket_path)

    sessions = registry.cleanup_sessions(session_alive=dispatcher.has_session)
    links = registry.cleanup_links()
    print(f"Sessions: {sessions.removed} removed, {sessions.kept} kept")
    print(f"Links:    {links.removed} removed, {links.kept} kept")


async def _serve(config) -> None:  # type: ignore[no-untyped-def]
    import asyncio

    import httpx

    from .activator import FocusHelperActivator, TerminalActivator
    from .attachments import AttachmentFetcher
    from .registry import Registry
    from .relay import RelayRouter
    from .server import RelayServer
    from .tmux_dispatch import TmuxDispatcher
    from .tunnel import TunnelManager

    logger = logging.getLogger(__name__)

    registry = Registry.from_dirs(
        config.instances_dir,
        config.links_dir,
        config.threads_dir,
        link_ttl_hours=config.link_ttl_hours,
        session_max_age_days=config.session_max_age_days,
    )
    activator: TerminalActivator | None = None
    if config.can_focus:
        activator = FocusHelperActivator(config.focus_helper)

    async with httpx.AsyncClient() as client:
        router = RelayRouter(
            config,
            registry,
            client,
            TmuxDispatcher(config.tmux_socket_path, config.settle_delay),
            activator=activator,
            fetcher=AttachmentFetcher(
                client,
                config.bot_token,
                config.downloads_dir,
                max_bytes=config.max_attachment_mb * 1024 * 1024,
            ),
        )
        server = RelayServer(config, router)
        await server.start()

        tunnel: TunnelManager | None = None
        if config.tunnel:
            tunnel = TunnelManager(config.port, url_file=config.tunnel_url_file)
            try:
                url = await tunnel.start()
                logger.info("Slack request URL: %s/slack/actions", url)
            except RuntimeError as e:
                logger.error("Tunnel unavailable: %s", e)

        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)

        await stop_event.wait()
        logger.info("Shutting down relay...")

        if tunnel is not None:
            await tunnel.stop()
        await server.stop()


def main() -> None:
    """Main entry point."""
    args = sys.argv[1:]
    command = args[0] if args and not args[0].startswith("-") else "serve"
    flags = args[1:] if args and args[0] == command else args

    if command == "clean":
        _configure_logging()
        _clean()
        return
    if command != "serve" or any(f != "--replace" for f in flags):
        print(_USAGE)
        sys.exit(2)

    _configure_logging()
    config = _load_config()
    if not _claim_pidfile(config.pid_file, replace="--replace" in flags):
        sys.exit(1)

    import asyncio

    try:
        asyncio.run(_serve(config))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
