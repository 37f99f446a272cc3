"""Command line front end for nodeswitch."""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import date
from typing import Awaitable, Callable, Dict, List, Optional

from nodeswitch.__version__ import __version__
from nodeswitch.backends import BackendKind, BackendProvider, create_backend
from nodeswitch.cache import enqueue_cache_save, load_cache
from nodeswitch.exceptions import NodeSwitchError, NotFoundError
from nodeswitch.http_client import AsyncHttpClient
from nodeswitch.logging_config import get_logger, reset_logging, setup_logging
from nodeswitch.models import InstallPhase, NodeVersion, VersionGroup
from nodeswitch.settings import AppSettings, load_settings
from nodeswitch.updates import check_for_app_update, fetch_release_schedule
from nodeswitch.write_queue import shutdown_writers

logger = get_logger(__name__)


def _out(text: str = "") -> None:
    print(text, flush=True)  # noqa: print


async def resolve_backend(settings: AppSettings, distro: Optional[str]) -> BackendProvider:
    """Detect the configured backend and return a provider bound to it."""
    provider = create_backend(settings.backend_kind, settings)
    if distro:
        detection = await provider.detect_in_wsl(distro)
    else:
        detection = await provider.detect()
    if not detection.found:
        raise NotFoundError(f"{provider.DISPLAY_NAME} is not installed", backend=provider.name)
    return provider.bind(detection)


async def cmd_detect(args: argparse.Namespace, settings: AppSettings) -> int:
    provider = create_backend(settings.backend_kind, settings)
    detection = (
        await provider.detect_in_wsl(args.wsl) if args.wsl else await provider.detect()
    )
    if not detection.found:
        _out(f"{provider.DISPLAY_NAME}: not found")
        return 1
    _out(f"{provider.DISPLAY_NAME}: {detection.path}")
    _out(f"  version:  {detection.version or 'unknown'}")
    _out(f"  in PATH:  {'yes' if detection.in_path else 'no'}")
    if detection.data_dir:
        _out(f"  data dir: {detection.data_dir}")
    return 0


async def cmd_list(args: argparse.Namespace, settings: AppSettings) -> int:
    provider = await resolve_backend(settings, args.wsl)
    installed = await provider.list_installed()
    if not installed:
        _out("No Node versions installed")
        return 0
    for group in VersionGroup.from_versions(installed):
        _out(f"Node {group.major}.x")
        for entry in group.versions:
            marker = " (default)" if entry.is_default else ""
            _out(f"  {entry.version}{marker}")
    return 0


async def cmd_list_remote(args: argparse.Namespace, settings: AppSettings) -> int:
    provider = await resolve_backend(settings, args.wsl)
    if args.lts:
        remote = await provider.list_remote_lts()
    else:
        remote = await provider.list_remote()
        snapshot = load_cache()
        snapshot.backend = provider.name
        snapshot.remote_versions = remote
        enqueue_cache_save(snapshot)

    groups = VersionGroup.from_versions(remote)
    for group in groups[: args.limit] if args.limit else groups:
        latest = group.latest
        label = f" ({latest.lts_codename})" if latest and latest.lts_codename else ""
        _out(f"Node {group.major}.x: {latest.version if latest else '-'}{label}")
    return 0


async def cmd_current(args: argparse.Namespace, settings: AppSettings) -> int:
    provider = await resolve_backend(settings, args.wsl)
    current = await provider.current_version()
    default = await provider.default_version()
    _out(f"current: {current or 'none'}")
    _out(f"default: {default or 'none'}")
    return 0


async def cmd_install(args: argparse.Namespace, settings: AppSettings) -> int:
    provider = await resolve_backend(settings, args.wsl)
    version = NodeVersion.parse(args.version)
    async for progress in provider.install(version):
        if progress.phase is InstallPhase.DOWNLOADING and progress.percent is not None:
            _out(f"[{progress.phase.value}] {progress.percent:.0f}%")
        elif progress.phase is InstallPhase.DONE and progress.installed:
            _out(f"Installed {progress.installed.version}")
        else:
            _out(f"[{progress.phase.value}] {progress.message}")
    return 0


async def cmd_default(args: argparse.Namespace, settings: AppSettings) -> int:
    provider = await resolve_backend(settings, args.wsl)
    version = NodeVersion.parse(args.version)
    await provider.set_active(version)
    _out(f"Default set to {version}")
    return 0


async def cmd_uninstall(args: argparse.Namespace, settings: AppSettings) -> int:
    provider = await resolve_backend(settings, args.wsl)
    version = NodeVersion.parse(args.version)
    await provider.uninstall(version)
    _out(f"Uninstalled {version}")
    return 0


async def cmd_install_backend(args: argparse.Namespace, settings: AppSettings) -> int:
    provider = create_backend(settings.backend_kind, settings)
    async with AsyncHttpClient() as client:
        async for progress in provider.install_backend(client):
            _out(f"[{progress.phase.value}] {progress.message}")
    return 0


async def cmd_check_update(args: argparse.Namespace, settings: AppSettings) -> int:
    async with AsyncHttpClient() as client:
        update = await check_for_app_update(client, __version__)
        if update:
            _out(f"nodeswitch {update.latest_version} is available: {update.release_url}")
        else:
            _out(f"nodeswitch {__version__} is up to date")

        provider = create_backend(settings.backend_kind, settings)
        detection = await provider.detect()
        if detection.found and detection.version:
            backend_update = await provider.check_for_update(client, detection.version)
            if backend_update:
                _out(
                    f"{provider.name} {backend_update.latest_version} is available "
                    f"(installed {backend_update.current_version}): {backend_update.release_url}"
                )
            else:
                _out(f"{provider.name} {detection.version} is up to date")
    return 0


async def cmd_schedule(args: argparse.Namespace, settings: AppSettings) -> int:
    async with AsyncHttpClient() as client:
        schedule = await fetch_release_schedule(client)

    snapshot = load_cache()
    snapshot.release_schedule = schedule
    enqueue_cache_save(snapshot)

    today = date.today()
    for major in sorted(schedule.lines, reverse=True):
        line = schedule.lines[major]
        if line.is_eol(today):
            continue
        status = "LTS" if line.is_lts(today) else "current"
        codename = f" ({line.codename})" if line.codename else ""
        _out(f"Node {major}{codename}: {status}, end of life {line.end.isoformat()}")
    return 0


async def cmd_shell_init(args: argparse.Namespace, settings: AppSettings) -> int:
    provider = create_backend(settings.backend_kind, settings)
    snippet = provider.shell_init_command(args.shell, settings.shell_options)
    if snippet is None:
        _out(f"{provider.name} has no shell integration for {args.shell}")
        return 1
    _out(snippet)
    return 0


COMMANDS: Dict[str, Callable[[argparse.Namespace, AppSettings], Awaitable[int]]] = {
    "detect": cmd_detect,
    "list": cmd_list,
    "list-remote": cmd_list_remote,
    "current": cmd_current,
    "install": cmd_install,
    "default": cmd_default,
    "uninstall": cmd_uninstall,
    "install-backend": cmd_install_backend,
    "check-update": cmd_check_update,
    "schedule": cmd_schedule,
    "shell-init": cmd_shell_init,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nodeswitch", description="Manage Node.js versions through fnm or nvm"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--backend",
        choices=[kind.value for kind in BackendKind],
        help="Backend to use (default: from settings, else fnm)",
    )
    parser.add_argument("--wsl", metavar="DISTRO", help="Run the backend inside a WSL distribution")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("detect", help="Show where the backend is installed")
    sub.add_parser("list", help="List installed Node versions")
    remote = sub.add_parser("list-remote", help="List installable Node versions by major")
    remote.add_argument("--lts", action="store_true", help="Only LTS versions")
    remote.add_argument("--limit", type=int, default=0, help="Show at most N major lines")
    sub.add_parser("current", help="Show the active and default Node versions")
    for name, text in (
        ("install", "Install a Node version"),
        ("default", "Set the default Node version"),
        ("uninstall", "Remove an installed Node version"),
    ):
        command = sub.add_parser(name, help=text)
        command.add_argument("version", help="Version such as 20.11.0, v18.19.1 or lts")
    sub.add_parser("install-backend", help="Install or upgrade the backend tool")
    sub.add_parser("check-update", help="Check for nodeswitch and backend updates")
    sub.add_parser("schedule", help="Show supported Node release lines")
    shell = sub.add_parser("shell-init", help="Print the shell integration snippet")
    shell.add_argument("shell", help="bash, zsh, fish or powershell")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the nodeswitch CLI."""
    args = build_parser().parse_args(argv)

    if args.debug:
        reset_logging()
        setup_logging(log_level="DEBUG", console_level="DEBUG")

    settings = load_settings()
    if args.backend:
        settings.backend = args.backend
    if args.wsl is None:
        args.wsl = settings.wsl_distro

    handler = COMMANDS[args.command]
    try:
        return asyncio.run(handler(args, settings))
    except NodeSwitchError as e:
        logger.info(f"{args.command} failed: {e}")
        print(f"error: {e}", file=sys.stderr)  # noqa: print
        return 1
    finally:
        shutdown_writers()


if __name__ == "__main__":
    sys.exit(main())
