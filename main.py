#!/usr/bin/env python3
"""
main.py – Minecraft Server Add-on Manager CLI
=============================================
Entry point: ``server`` and ``project`` command groups.

    mcaddons server init --game-version 1.20.1 --loader paper
    mcaddons server sign
    mcaddons project add luckperms --no-deps
    mcaddons project remove luckperms --remove-orphans
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.table import Table

from config import DEFAULT_CONFIG_NAME, ManagerConfig, load_config
from eula_manager import EulaManager
from errors import AddonError
from loaders import LATEST, Loader
from plugin_apis import PROVIDERS
from plugin_manager import ProjectManager

logger = logging.getLogger("mcaddons")

console = Console()
err_console = Console(stderr=True)


# ──────────────────────────────────────────────
#  Logging
# ──────────────────────────────────────────────

def setup_logging(server_dir: Path, cfg: ManagerConfig, level: int) -> None:
    log_path = server_dir / cfg.log_file
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(log_path, encoding="utf-8"),
            logging.StreamHandler(sys.stderr),
        ],
        force=True,
    )


# ──────────────────────────────────────────────
#  CLI
# ──────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="mcaddons",
        description="⛏️  Minecraft Server Add-on Manager",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("--dir", default=".", help="Server directory (default: current)")
    p.add_argument("--config", default=None, help=f"Path to config (default: <dir>/{DEFAULT_CONFIG_NAME})")
    p.add_argument("-v", "--verbose", action="store_true", help="Log progress")
    p.add_argument("--debug", action="store_true", help="Log HTTP requests and internals")

    groups = p.add_subparsers(dest="group", required=True)

    # server …
    server = groups.add_parser("server", aliases=["s"], help="Initialize and configure a server")
    server_cmds = server.add_subparsers(dest="command", required=True)

    init = server_cmds.add_parser("init", help="Initialize a server in the directory")
    init.add_argument("-m", "--game-version", required=True, help="Minecraft version, e.g. 1.20.1")
    init.add_argument("-l", "--loader", required=True, choices=Loader.choices())
    init.add_argument("--runtime-version", default=LATEST, help="Loader version (default: latest)")

    server_cmds.add_parser("sign", help="Sign the eula.txt")
    server_cmds.add_parser("status", help="Show the server configuration")

    # project …
    project = groups.add_parser("project", aliases=["p"], help="Work with plugins and mods")
    project_cmds = project.add_subparsers(dest="command", required=True)

    add = project_cmds.add_parser("add", help="Add a plugin or mod, including its dependencies")
    add.add_argument("id", help="Project ID or slug")
    add.add_argument("--version", default=LATEST, help="Version ID to target (default: latest)")
    add.add_argument("-p", "--provider", default=None, choices=list(PROVIDERS))
    add.add_argument("-o", "--optional-deps", action="store_true", help="Also install optional dependencies")
    add.add_argument("-n", "--no-deps", action="store_true", help="Do not install any dependencies")

    remove = project_cmds.add_parser("remove", help="Remove a plugin or mod")
    remove.add_argument("id", help="Project slug")
    remove.add_argument("--keep-jarfile", action="store_true", help="Keep the downloaded jarfile")
    remove.add_argument(
        "--remove-orphans", action="store_true",
        help="Remove dependencies which are not required by anything after removal",
    )

    project_cmds.add_parser("list", help="List installed projects")

    return p


# ──────────────────────────────────────────────
#  Commands
# ──────────────────────────────────────────────

def cmd_server(args: argparse.Namespace, manager: ProjectManager) -> int:
    if args.command == "init":
        lf = manager.init_server(args.game_version, args.loader, args.runtime_version)
        console.print(
            f"[bold green]✓[/] Initialized [cyan]{lf.loader.name}[/] server "
            f"for Minecraft [cyan]{lf.loader.game_version}[/]"
        )
    elif args.command == "sign":
        result = EulaManager(manager.server_dir).sign()
        if not result.success:
            err_console.print(f"[bold red]✗[/] {result.message}: {result.error}")
            return 1
        console.print(f"[bold green]✓[/] {result.message}")
    elif args.command == "status":
        lf = manager.open_lockfile()
        t = Table(title="Server Configuration")
        t.add_column("Setting", style="cyan")
        t.add_column("Value", style="white")
        t.add_row("loader", lf.loader.name or "-")
        t.add_row("game_version", lf.loader.game_version)
        t.add_row("runtime_version", lf.loader.runtime_version)
        t.add_row("initialized", "yes" if lf.is_initialized() else "no")
        t.add_row("eula", "signed" if EulaManager(manager.server_dir).check_eula_status() else "not signed")
        t.add_row("projects", str(len(lf.entries)))
        console.print(t)
    return 0


def cmd_project(args: argparse.Namespace, manager: ProjectManager) -> int:
    if args.command == "add":
        added = asyncio.run(manager.add(
            args.id,
            args.version,
            provider=args.provider,
            include_optional=args.optional_deps,
            skip_dependencies=args.no_deps,
        ))
        if not added:
            console.print(f"{args.id} is already installed")
        for entry in added:
            console.print(f"[bold green]+[/] {entry.slug} [dim]{entry.version_id}[/]")
    elif args.command == "remove":
        removed = manager.remove(
            args.id, keep_file=args.keep_jarfile, remove_orphans=args.remove_orphans,
        )
        for entry in removed:
            console.print(f"[bold red]-[/] {entry.slug}")
    elif args.command == "list":
        t = Table(title="Installed Projects")
        t.add_column("Slug", style="cyan")
        t.add_column("Version", style="white")
        t.add_column("File", style="white")
        t.add_column("Requires", style="dim")
        for entry in manager.list_entries():
            t.add_row(entry.slug, entry.version_id, entry.file_path, ", ".join(entry.requires))
        console.print(t)
    return 0


# ──────────────────────────────────────────────
#  Entry Point
# ──────────────────────────────────────────────

def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    server_dir = Path(args.dir)

    try:
        cfg = load_config(args.config or server_dir / DEFAULT_CONFIG_NAME)
    except AddonError as exc:
        err_console.print(f"[bold red]error:[/] {exc}")
        return 1

    level = logging.DEBUG if args.debug else logging.INFO if args.verbose else logging.WARNING
    setup_logging(server_dir, cfg, level)

    manager = ProjectManager(server_dir, cfg)
    try:
        if args.group in ("server", "s"):
            return cmd_server(args, manager)
        return cmd_project(args, manager)
    except AddonError as exc:
        logger.debug("Command failed", exc_info=True)
        err_console.print(f"[bold red]error:[/] {exc}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
