"""Tear down every instance under a sites root plus orphaned Docker objects.

Per instance: loosen wp-content permissions from inside the container (the
host user cannot delete files the container created), compose down -v,
delete the directory. Afterwards, volumes and networks named after a
wp-test-* project that no longer has a directory are removed.
"""

from __future__ import annotations

import logging
import re
import shutil
import subprocess
import time
from pathlib import Path

from config import CONTAINER_WEBROOT, DB_SERVICE, WP_SERVICE
from wpstack.compose import Compose, ComposeError
from wpstack.instance import iter_instance_dirs
from wpstack.utils import ask, capture_cmd, echo, log, status_pass, status_warn

ORPHAN_VOLUME_RE = re.compile(r"^wp-test-.*_(wp_data|db_data)$")
ORPHAN_NETWORK_RE = re.compile(r"^wp-test-.*_wordpress_net$")


def _confirm(prompt: str) -> bool:
    return ask(prompt).lower() in ("y", "yes")


def _fix_permissions(compose: Compose, running: bool, sleep=time.sleep) -> None:
    wp_content = compose.directory / "wp-content"
    if not wp_content.is_dir():
        return
    chmod = ["chmod", "-R", "755", f"{CONTAINER_WEBROOT}/wp-content"]
    echo("  Fixing wp-content permissions via Docker...")
    if running:
        compose.exec_ok(WP_SERVICE, chmod, timeout=120)
        return
    # Stopped stack: bring up just enough to run chmod, then stop again.
    try:
        compose.up([WP_SERVICE, DB_SERVICE])
        sleep(5)
        compose.exec_ok(WP_SERVICE, chmod, timeout=120)
        compose.down()
    except (ComposeError, subprocess.SubprocessError, OSError) as err:
        logging.warning("permission fix for %s failed: %s", compose.directory.name, err)


def teardown_instance(path: Path, running: bool | None = None, sleep=time.sleep) -> bool:
    compose = Compose(path)
    if running is None:
        running = compose.is_running()
    _fix_permissions(compose, running, sleep=sleep)
    try:
        compose.down(volumes=True)
    except (ComposeError, subprocess.SubprocessError, OSError) as err:
        status_warn(f"Failed to stop containers in {path.name}: {err}")
    echo(f"Removing directory {path.name}")
    try:
        shutil.rmtree(path)
    except OSError as err:
        logging.error("could not remove %s: %s", path, err)
        return False
    log(f"PASS: removed {path}")
    return True


def _docker_names(kind: str, pattern: re.Pattern) -> list[str]:
    try:
        proc = capture_cmd(["docker", kind, "ls", "--format", "{{.Name}}"], timeout=60)
    except (OSError, subprocess.TimeoutExpired) as err:
        logging.warning("docker %s ls failed: %s", kind, err)
        return []
    if proc.returncode != 0:
        logging.warning("docker %s ls exit=%s: %s", kind, proc.returncode, proc.stderr.strip())
        return []
    return [name for name in proc.stdout.split() if pattern.match(name)]


def _remove_orphans(kind: str, pattern: re.Pattern, force: bool) -> bool:
    names = _docker_names(kind, pattern)
    if not names:
        echo(f"No orphaned {kind}s found")
        return True
    echo(f"Found orphaned WordPress {kind}s:")
    for name in names:
        echo(f"  {name}")
    if not force and not _confirm(f"Remove orphaned {kind}s? (y/n): "):
        echo(f"Skipping orphaned {kind} cleanup")
        return True
    try:
        proc = capture_cmd(["docker", kind, "rm", *names], timeout=120)
    except (OSError, subprocess.TimeoutExpired) as err:
        logging.error("docker %s rm failed: %s", kind, err)
        return False
    if proc.returncode != 0:
        status_warn(f"Some orphaned {kind}s could not be removed: {proc.stderr.strip()}")
        return False
    status_pass(f"Orphaned {kind}s removed")
    return True


def cleanup_sites(root: Path, force: bool = False, sleep=time.sleep) -> bool:
    echo("Checking for WordPress test environments...")
    ok = True
    for path in list(iter_instance_dirs(root)):
        echo(f"Found test environment in {path.name}")
        running = Compose(path).is_running()
        if running and not force:
            if not _confirm(f"Stop containers in {path.name}? (y/n): "):
                echo(f"Skipping {path.name} (containers still running)")
                continue
        if not teardown_instance(path, running=running, sleep=sleep):
            ok = False
    echo("Cleanup of test environments complete")

    echo("Checking for orphaned Docker volumes...")
    ok = _remove_orphans("volume", ORPHAN_VOLUME_RE, force) and ok
    echo("Checking for orphaned Docker networks...")
    ok = _remove_orphans("network", ORPHAN_NETWORK_RE, force) and ok
    if ok:
        status_pass("Cleanup process complete")
    return ok
