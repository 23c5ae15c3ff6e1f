# guard.py
# Invariants:
# - Armed by create_directory() and disarmed by commit().
# - Leaving the block uncommitted for any reason (error, Ctrl-C, SystemExit
#   from SIGTERM) tears the instance down: chown wp-content back to the
#   invoking user, compose down -v, delete the directory.
# - Every rollback step is best-effort; the original exception propagates.

from __future__ import annotations

import logging
import os
import shutil
import subprocess

from config import CONTAINER_WEBROOT, WP_SERVICE
from wpstack.compose import Compose, ComposeError
from wpstack.instance import Instance, InstanceState
from wpstack.utils import echo, log


class ProvisioningGuard:
    """Rolls back a half-provisioned instance unless committed."""

    def __init__(self, instance: Instance, compose: Compose):
        self.instance = instance
        self.compose = compose
        self.armed = False

    def __enter__(self) -> "ProvisioningGuard":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self.armed:
            if exc_type is not None:
                log(f"provisioning aborted by {exc_type.__name__}: {exc}")
            self.rollback()
        return False

    def create_directory(self) -> None:
        """Create the instance directory and arm the guard.

        Raises FileExistsError without arming, so a directory that belongs
        to someone else is never rolled back.
        """
        self.instance.directory.mkdir(parents=True, exist_ok=False)
        self.armed = True
        self.instance.transition(InstanceState.PROVISIONING)

    def commit(self) -> None:
        self.armed = False
        self.instance.transition(InstanceState.READY)

    def _restore_ownership(self) -> None:
        uid_gid = f"{os.getuid()}:{os.getgid()}"
        try:
            self.compose.exec(
                WP_SERVICE,
                ["chown", "-R", uid_gid, f"{CONTAINER_WEBROOT}/wp-content"],
                timeout=120,
            )
        except (OSError, subprocess.SubprocessError) as err:
            logging.warning("rollback: chown wp-content failed: %s", err)

    def _stop_stack(self) -> None:
        try:
            self.compose.down(volumes=True)
        except (ComposeError, OSError, subprocess.SubprocessError) as err:
            logging.warning("rollback: compose down -v failed: %s", err)

    def _remove_directory(self) -> None:
        directory = self.instance.directory
        if not directory.exists():
            return
        try:
            shutil.rmtree(directory)
        except OSError as err:
            logging.error("rollback: could not remove %s: %s", directory, err)

    def rollback(self) -> None:
        self.armed = False
        echo(f"Cleaning up failed instance {self.instance.name}...", err=True)
        if self.instance.compose_file.exists():
            self._restore_ownership()
            self._stop_stack()
        self._remove_directory()
        self.instance.transition(InstanceState.FAILED)
        logging.error("Rolled back instance %s", self.instance.name)
