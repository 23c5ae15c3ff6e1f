#!/usr/bin/env python3
"""CLI to create, import and manage local WordPress Docker instances.

Inputs: subcommand and flags; instances live under --root (default: the
WPSTACK_SITES_DIR setting, else the current directory).
Side effects: creates wp-test-* directories with a generated
docker-compose.yml, drives Docker Compose, and removes instances and
orphaned Docker volumes/networks on request.
"""

from __future__ import annotations

import argparse
import signal
import sys
from pathlib import Path

from config import sites_root
from wpstack import cleanup, menu, preflight, sites
from wpstack.utils import init_logging, log, status_fail
from wpstack.wordpress import installer

EXIT_OK = 0
EXIT_FAIL = 1
EXIT_INTERRUPTED = 130
EXIT_TERMINATED = 143


# ─── Signals ──────────────────────────────────────────────────────────────
def _on_sigterm(signum, frame):
    # Unwind like Ctrl-C so an armed provisioning guard rolls back.
    raise SystemExit(EXIT_TERMINATED)


def install_signal_handlers() -> None:
    signal.signal(signal.SIGTERM, _on_sigterm)


# ─── Parser ───────────────────────────────────────────────────────────────
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wpdev",
        description="Local WordPress development instances on Docker Compose",
    )
    parser.add_argument("--root", type=Path, default=None, help="directory holding wp-test-* instances")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("create", help="create a fresh WordPress instance")
    p.add_argument("-n", "--name", help="site name (default: timestamp)")
    p.add_argument("-p", "--port", help="host port (default: first free in 8080-8200)")
    p.add_argument("-s", "--start-port", help="first port to try, within 8080-8200 (default: 8080)")
    p.add_argument("-c", "--cleanup", action="store_true", help="remove existing instances first")

    p = sub.add_parser("import", help="import a site from a SQL dump and wp-content")
    p.add_argument("-n", "--name", required=True, help="local site name")
    p.add_argument("-d", "--db", required=True, type=Path, help="SQL dump file")
    p.add_argument("-w", "--wp-content", required=True, type=Path, help="wp-content dir, .tar or .tar.gz")
    p.add_argument("-p", "--port", help="host port (default: first free in 8080-8200)")
    p.add_argument("-s", "--start-port", help="first port to try, within 8080-8200 (default: 8080)")
    p.add_argument("-c", "--cleanup", action="store_true", help="remove existing instances first")

    sub.add_parser("list", help="list instances and their status")
    p = sub.add_parser("start", help="start one or all instances")
    p.add_argument("site", nargs="?")
    p = sub.add_parser("stop", help="stop one or all instances")
    p.add_argument("site", nargs="?")
    p = sub.add_parser("remove", help="remove an instance and its data")
    p.add_argument("site")
    p.add_argument("-y", "--yes", action="store_true", help="do not ask for confirmation")
    sub.add_parser("ports", help="show port usage and the next free port")
    p = sub.add_parser("cleanup", help="remove all instances and orphaned Docker objects")
    p.add_argument("-f", "--force", action="store_true", help="do not prompt")

    p = sub.add_parser("status", help="show one instance's containers")
    p.add_argument("site")
    p = sub.add_parser("logs", help="show one instance's container logs")
    p.add_argument("site")
    p.add_argument("service", nargs="?")
    p.add_argument("--tail", type=int, default=None)
    p = sub.add_parser("wp", help="run WP-CLI inside an instance")
    p.add_argument("site")
    p.add_argument("args", nargs=argparse.REMAINDER)

    sub.add_parser("check", help="check OS, Docker and Docker Compose")
    sub.add_parser("menu", help="interactive menu")
    return parser


# ─── Dispatch ─────────────────────────────────────────────────────────────
def run_command(args: argparse.Namespace, root: Path) -> int:
    cmd = args.command
    if cmd == "create":
        ok = installer.create_site(
            args.name, port=args.port, cleanup=args.cleanup, root=root, start_port=args.start_port
        )
    elif cmd == "import":
        ok = installer.import_site(
            args.name,
            args.db,
            args.wp_content,
            port=args.port,
            cleanup=args.cleanup,
            root=root,
            start_port=args.start_port,
        )
    elif cmd == "list":
        ok = sites.list_sites(root)
    elif cmd == "start":
        ok = sites.start_sites(root, args.site)
    elif cmd == "stop":
        ok = sites.stop_sites(root, args.site)
    elif cmd == "remove":
        ok = sites.remove_site(root, args.site, assume_yes=args.yes)
    elif cmd == "ports":
        ok = sites.show_ports(root)
    elif cmd == "cleanup":
        ok = cleanup.cleanup_sites(root, force=args.force)
    elif cmd == "status":
        ok = sites.site_status(root, args.site)
    elif cmd == "logs":
        ok = sites.site_logs(root, args.site, args.service, tail=args.tail)
    elif cmd == "wp":
        return sites.site_wp(root, args.site, args.args)
    elif cmd == "check":
        ok = preflight.check_platform()
    elif cmd == "menu":
        return menu.run_menu(root)
    else:
        status_fail(f"unknown command {cmd}")
        return EXIT_FAIL
    return EXIT_OK if ok else EXIT_FAIL


def main(argv: list[str]) -> int:
    args = build_parser().parse_args(argv)
    rid = init_logging(None)
    root = args.root.expanduser().resolve() if args.root else sites_root()
    log(f"wpdev {args.command} root={root} rid={rid}")
    install_signal_handlers()
    try:
        return run_command(args, root)
    except KeyboardInterrupt:
        status_fail("interrupted")
        return EXIT_INTERRUPTED


def run() -> None:
    raise SystemExit(main(sys.argv[1:]))


if __name__ == "__main__":
    run()
