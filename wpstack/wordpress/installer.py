"""Create or import a local WordPress instance and orchestrate setup."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
from datetime import datetime
from importlib import resources
from pathlib import Path

from config import (
    BUNDLED_FILES,
    DATA_PACKAGE,
    DEFAULT_WP_PASS,
    DEFAULT_WP_USER,
    PORT_RANGE_START,
    gate_timings,
    sites_root,
)
from wpstack.cleanup import cleanup_sites
from wpstack.compose import Compose, ComposeError
from wpstack.composefile import build_compose, write_compose
from wpstack.guard import ProvisioningGuard
from wpstack.instance import Instance, admin_port_for
from wpstack.ports import (
    PortError,
    admin_port_conflict,
    find_available_port,
    listening_ports,
    port_claim,
    sibling_claims,
    validate_port,
    validate_start_port,
)
from wpstack.readiness import ReadinessGate, StageTimeout, check_url
from wpstack.utils import echo, instance_name, log, status_fail, status_pass, status_warn
from .content import ContentError, is_archive, stage_wp_content
from .db import import_dump, reset_database
from .site import (
    ensure_theme,
    refresh_permalinks,
    reset_admin_credentials,
    rewrite_urls,
    write_site_info,
)

# Conditions that abort a workflow with a FAIL line; anything else propagates.
WORKFLOW_ERRORS = (
    PortError,
    StageTimeout,
    ComposeError,
    ContentError,
    OSError,
    subprocess.SubprocessError,
)


def default_site_name() -> str:
    return datetime.now().strftime("%Y%m%d-%H%M%S")


# ─── Preflight ──────────────────────────────────────────────────────────
def preflight_import(db_file: Path, wp_content: Path) -> bool:
    if not db_file.is_file():
        status_fail(f"Database file not found: {db_file}")
        return False
    if not os.access(db_file, os.R_OK):
        status_fail(f"Database file is not readable: {db_file}")
        return False
    if not wp_content.exists():
        status_fail(f"wp-content path not found: {wp_content}")
        return False
    if not os.access(wp_content, os.R_OK):
        status_fail(f"wp-content path is not readable: {wp_content}")
        return False
    if not (wp_content.is_dir() or is_archive(wp_content)):
        status_fail(f"wp-content must be a directory or tar/tar.gz file: {wp_content}")
        return False
    log("PASS: Preflight checks passed")
    return True


def choose_port(root: Path, explicit: int | None, start: int = PORT_RANGE_START) -> int:
    """Allocate a port from `start` up, or confirm an explicit one is free. Hold port_claim.

    The paired phpMyAdmin port must be free too, so a clash fails here
    rather than at `compose up`.
    """
    host = listening_ports()
    if explicit is None:
        port = find_available_port(start=start, root=root, bound=host)
        echo(f"Using auto-detected available port: {port}")
    else:
        if explicit in host:
            raise PortError(f"Port {explicit} is already in use")
        owner = sibling_claims(root, explicit)
        if owner is not None:
            raise PortError(f"Port {explicit} is already declared by {owner}")
        port = explicit
        echo(f"Using specified port: {port}")
    conflict = admin_port_conflict(root, port, host)
    if conflict is not None:
        raise PortError(conflict)
    return port


# ─── Steps ──────────────────────────────────────────────────────────────
def _copy_bundled_files(directory: Path) -> None:
    data = resources.files(DATA_PACKAGE) / "data"
    for src_name, dest_name in BUNDLED_FILES.items():
        with resources.as_file(data / src_name) as src:
            shutil.copy2(src, directory / dest_name)


def _materialize(root: Path, guard: ProvisioningGuard, explicit: int | None, start: int) -> None:
    """Allocate, create and persist the instance while holding the port lock."""
    instance = guard.instance
    with port_claim(root):
        port = choose_port(root, explicit, start)
        instance.port = port
        instance.pma_port = admin_port_for(port)
        guard.create_directory()
        _copy_bundled_files(instance.directory)
        write_compose(
            instance.directory,
            build_compose(instance.name, instance.port, instance.pma_port),
        )
    log(f"PASS: {instance.name} claims port {instance.port}")


def _start(compose: Compose, sleep=time.sleep) -> None:
    echo("Starting Docker containers...")
    compose.up()
    ReadinessGate(compose, sleep=sleep).run()


def _import_database(compose: Compose, db_file: Path) -> None:
    echo("Importing database...")
    if not reset_database(compose):
        raise ComposeError("Could not recreate the WordPress database")
    if not import_dump(compose, db_file):
        raise ComposeError(f"Database import failed: {db_file}")
    status_pass("Database imported")


def _post_import(compose: Compose, instance: Instance) -> None:
    # Each step is idempotent and non-fatal; a failure leaves a usable site.
    echo("Detecting live site URL...")
    rewrite_urls(compose, instance.url)
    echo("Refreshing permalinks...")
    if refresh_permalinks(compose):
        status_pass("Permalinks refreshed")
    echo("Resetting admin credentials...")
    reset_admin_credentials(compose)
    echo("Checking active theme...")
    ensure_theme(compose)


def _verify_http(instance: Instance, sleep=time.sleep) -> None:
    timings = gate_timings()
    echo("Testing site accessibility...")
    if check_url(instance.url, timings.http_attempts, timings.http_delay, sleep=sleep):
        status_pass(f"Site is accessible at {instance.url}")
    else:
        status_warn(f"Site may not be fully ready yet at {instance.url}")


def _summary(instance: Instance, compose: Compose, title: str) -> None:
    echo("")
    echo(title)
    echo("=" * len(title))
    echo(f"Instance Name: {instance.name}")
    echo(f"Site URL: {instance.url}")
    echo(f"Admin URL: {instance.url}/wp-admin")
    echo(f"Admin login: {DEFAULT_WP_USER} / {DEFAULT_WP_PASS}")
    echo(f"phpMyAdmin: http://localhost:{instance.pma_port}")
    echo(f"Directory: {instance.directory}")
    echo("")
    echo("Final status check:")
    echo(compose.ps())


def _begin(
    name: str | None,
    port: int | str | None,
    cleanup: bool,
    root: Path | None,
    start_port: int | str | None = None,
):
    """Validate inputs, run optional cleanup; returns (root, name, port, start) or None."""
    root = Path(root) if root is not None else sites_root()
    try:
        name = instance_name(name or default_site_name())
        explicit = validate_port(port) if port not in (None, "") else None
        start = validate_start_port(start_port) if start_port not in (None, "") else PORT_RANGE_START
    except (ValueError, PortError) as err:
        status_fail(str(err))
        return None
    if (root / name).exists():
        status_fail(f"Directory '{name}' already exists")
        return None
    if cleanup:
        echo("Running cleanup of previous WordPress test instances...")
        cleanup_sites(root, force=True)
    return root, name, explicit, start


# ─── Workflows ──────────────────────────────────────────────────────────
def create_site(
    name: str | None = None,
    port: int | str | None = None,
    cleanup: bool = False,
    root: Path | None = None,
    start_port: int | str | None = None,
    sleep=time.sleep,
) -> bool:
    begun = _begin(name, port, cleanup, root, start_port)
    if begun is None:
        return False
    root, name, explicit, start = begun
    instance = Instance(name, root / name)
    compose = Compose(instance.directory)
    echo(f"Creating WordPress test environment: {name}")
    try:
        with ProvisioningGuard(instance, compose) as guard:
            _materialize(root, guard, explicit, start)
            (instance.directory / "wp-content").mkdir()
            _start(compose, sleep=sleep)
            _verify_http(instance, sleep=sleep)
            write_site_info(instance)
            guard.commit()
    except WORKFLOW_ERRORS as err:
        logging.error("create %s failed: %s", name, err)
        status_fail(f"create {name}: {err}")
        return False
    _summary(instance, compose, "WordPress Site Creation Complete!")
    status_pass(f"site {name} created at {instance.url}")
    return True


def import_site(
    name: str,
    db_file: Path,
    wp_content: Path,
    port: int | str | None = None,
    cleanup: bool = False,
    root: Path | None = None,
    start_port: int | str | None = None,
    sleep=time.sleep,
) -> bool:
    db_file = Path(db_file).expanduser().resolve()
    wp_content = Path(wp_content).expanduser().resolve()
    if not preflight_import(db_file, wp_content):
        return False
    begun = _begin(name, port, cleanup, root, start_port)
    if begun is None:
        return False
    root, name, explicit, start = begun
    instance = Instance(name, root / name)
    compose = Compose(instance.directory)
    echo(f"Importing WordPress site: {name}")
    try:
        with ProvisioningGuard(instance, compose) as guard:
            _materialize(root, guard, explicit, start)
            echo("Setting up wp-content...")
            stage_wp_content(wp_content, instance.directory / "wp-content")
            _start(compose, sleep=sleep)
            _import_database(compose, db_file)
            _post_import(compose, instance)
            _verify_http(instance, sleep=sleep)
            write_site_info(instance, source_db=db_file, source_content=wp_content)
            guard.commit()
    except WORKFLOW_ERRORS as err:
        logging.error("import %s failed: %s", name, err)
        status_fail(f"import {name}: {err}")
        return False
    _summary(instance, compose, "WordPress Site Import Complete!")
    status_pass(f"site {name} imported at {instance.url}")
    return True
