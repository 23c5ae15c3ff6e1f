"""Operate on existing instances: list, start/stop, remove, ports, per-site tools."""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Sequence

from config import PORT_RANGE_END, PORT_RANGE_START, WP_SERVICE
from wpstack.compose import Compose, ComposeError
from wpstack.instance import Instance, InstanceState, find_instance, iter_instances
from wpstack.ports import NoPortAvailable, declared_ports, find_available_port
from wpstack.utils import ask, echo, log, status_fail, status_pass
from wpstack.wordpress.cli import wp_argv

RUNNING = "Running"
STOPPED = "Stopped"
ERROR = "Error"

ROW = "{:<25} {:<10} {:<6} {:<25}"
PORT_ROW = "{:<6} {:<25} {:<10}"


def site_state(compose: Compose) -> str:
    """Running when every service is up, Error when only some are."""
    running = compose.running_services()
    if not running:
        return STOPPED
    services = compose.services()
    if services and set(services) - set(running):
        return ERROR
    return RUNNING


def _lookup(root: Path, name: str) -> Instance | None:
    instance = find_instance(root, name)
    if instance is None:
        status_fail(f"Site '{name}' not found or invalid")
    return instance


def _port_text(instance: Instance) -> str:
    return str(instance.port) if instance.port else "N/A"


# -------------------------------
# Listing
# -------------------------------
def list_sites(root: Path) -> bool:
    echo("WordPress Development Sites")
    echo("==========================")
    echo("")
    echo(ROW.format("SITE NAME", "STATUS", "PORT", "URL"))
    echo(ROW.format("-" * 25, "-" * 10, "-" * 6, "-" * 25))
    found = False
    for instance in iter_instances(root):
        found = True
        state = site_state(Compose(instance.directory))
        url = instance.url if state == RUNNING else "N/A"
        echo(ROW.format(instance.name, state, _port_text(instance), url))
    if not found:
        echo("No WordPress sites found.")
        echo("Create one with: wpdev create -n mysite")
    echo("")
    return True


def next_port_text(root: Path) -> str:
    try:
        return str(find_available_port(PORT_RANGE_START, PORT_RANGE_END, root=root))
    except NoPortAvailable:
        return "None available"


def show_ports(root: Path) -> bool:
    echo("Port Usage Overview")
    echo("===================")
    echo("")
    echo(PORT_ROW.format("PORT", "SITE NAME", "STATUS"))
    echo(PORT_ROW.format("-" * 6, "-" * 25, "-" * 10))
    claims = declared_ports(root)
    for port in sorted(claims):
        name = claims[port]
        echo(PORT_ROW.format(port, name, site_state(Compose(Path(root) / name))))
    echo("")
    echo(f"Next available port: {next_port_text(root)}")
    return True


# -------------------------------
# Lifecycle
# -------------------------------
def _targets(root: Path, name: str | None) -> list[Instance] | None:
    if name:
        instance = _lookup(root, name)
        return None if instance is None else [instance]
    return list(iter_instances(root))


def start_sites(root: Path, name: str | None = None) -> bool:
    targets = _targets(root, name)
    if targets is None:
        return False
    if not targets:
        echo("No sites found to start")
        return True
    ok = True
    for instance in targets:
        echo(f"Starting {instance.name}...")
        try:
            Compose(instance.directory).up()
        except ComposeError as err:
            status_fail(f"{instance.name}: {err}")
            ok = False
            continue
        status_pass(f"{instance.name} started at {instance.url}")
    return ok


def stop_sites(root: Path, name: str | None = None) -> bool:
    targets = _targets(root, name)
    if targets is None:
        return False
    if not targets:
        echo("No running sites found")
        return True
    ok = True
    for instance in targets:
        echo(f"Stopping {instance.name}...")
        try:
            Compose(instance.directory).down()
        except ComposeError as err:
            status_fail(f"{instance.name}: {err}")
            ok = False
            continue
        status_pass(f"{instance.name} stopped")
    return ok


def remove_site(root: Path, name: str, assume_yes: bool = False) -> bool:
    instance = _lookup(root, name)
    if instance is None:
        return False
    echo(f"WARNING: This will completely remove '{instance.name}' and all its data!")
    if not assume_yes and ask("Are you sure? Type 'yes' to confirm: ") != "yes":
        echo("Removal cancelled")
        return True
    echo(f"Removing {instance.name}...")
    try:
        Compose(instance.directory).down(volumes=True)
    except ComposeError as err:
        logging.warning("compose down -v for %s failed: %s", instance.name, err)
    try:
        shutil.rmtree(instance.directory)
    except OSError as err:
        status_fail(f"could not remove {instance.directory}: {err}")
        return False
    instance.transition(InstanceState.REMOVED)
    status_pass(f"{instance.name} removed completely")
    return True


# -------------------------------
# Per-site helpers
# -------------------------------
def site_status(root: Path, name: str) -> bool:
    instance = _lookup(root, name)
    if instance is None:
        return False
    compose = Compose(instance.directory)
    echo(f"{instance.name}: {site_state(compose)}")
    echo(f"  URL:        {instance.url}")
    echo(f"  phpMyAdmin: http://localhost:{instance.pma_port}")
    echo(compose.ps())
    return True


def site_logs(root: Path, name: str, service: str | None = None, tail: int | None = None) -> bool:
    instance = _lookup(root, name)
    if instance is None:
        return False
    echo(Compose(instance.directory).logs(service, tail=tail))
    return True


def site_wp(root: Path, name: str, args: Sequence[str]) -> int:
    """Pass a WP-CLI command through to the site; returns its exit code."""
    instance = _lookup(root, name)
    if instance is None:
        return 1
    compose = Compose(instance.directory)
    argv = compose.binary + ["exec", "-T", WP_SERVICE, *wp_argv(list(args))]
    log(f"wp passthrough: {' '.join(argv)}")
    try:
        return subprocess.run(argv, cwd=str(instance.directory)).returncode
    except OSError as err:
        status_fail(f"could not run wp in {instance.name}: {err}")
        return 1
