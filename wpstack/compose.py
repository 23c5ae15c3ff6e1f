# compose.py
# Invariants:
# - All Docker Compose access for an instance goes through Compose; callers
#   never build compose argv themselves.
# - Commands run with cwd=<instance dir> so the project name is the
#   directory name (volumes/networks are "<dir>_<name>").
# - Query helpers (ps/health/status/exec) never raise on a non-zero exit;
#   lifecycle helpers (up/down) raise ComposeError.
# - Diagnostic dumps go to stderr for the operator and to the log file.

from __future__ import annotations

import logging
import shutil
import subprocess
from functools import lru_cache
from pathlib import Path
from typing import IO, Sequence

from config import COMMAND_TIMEOUT, COMPOSE_COMMAND
from wpstack.utils import capture_cmd, echo, log


class ComposeError(Exception):
    pass


@lru_cache(maxsize=1)
def compose_binary() -> tuple[str, ...]:
    """Docker Compose v2 plugin if present, else the standalone v1 binary."""
    if COMPOSE_COMMAND:
        return tuple(COMPOSE_COMMAND.split())
    if shutil.which("docker"):
        try:
            proc = capture_cmd(["docker", "compose", "version"], timeout=30)
            if proc.returncode == 0:
                return ("docker", "compose")
        except (OSError, subprocess.TimeoutExpired) as err:
            log(f"docker compose probe failed: {err}")
    if shutil.which("docker-compose"):
        return ("docker-compose",)
    return ("docker", "compose")


class Compose:
    """Docker Compose CLI bound to one instance directory."""

    def __init__(self, directory: Path, binary: Sequence[str] | None = None):
        self.directory = Path(directory)
        self.binary = list(binary) if binary else list(compose_binary())

    def _run(
        self,
        args: list[str],
        stdin: IO | None = None,
        timeout: float | None = COMMAND_TIMEOUT,
    ) -> subprocess.CompletedProcess:
        return capture_cmd(self.binary + args, cwd=str(self.directory), stdin=stdin, timeout=timeout)

    # -------------------------------
    # Lifecycle
    # -------------------------------
    def up(self, services: Sequence[str] = ()) -> None:
        proc = self._run(["up", "-d", *services])
        if proc.returncode != 0:
            raise ComposeError(f"compose up failed (exit={proc.returncode}): {proc.stderr.strip()}")
        log(f"PASS: compose up {self.directory.name}")

    def down(self, volumes: bool = False) -> None:
        args = ["down", "-v"] if volumes else ["down"]
        proc = self._run(args)
        if proc.returncode != 0:
            raise ComposeError(f"compose down failed (exit={proc.returncode}): {proc.stderr.strip()}")
        log(f"PASS: compose {' '.join(args)} {self.directory.name}")

    # -------------------------------
    # State queries
    # -------------------------------
    def ps(self) -> str:
        proc = self._run(["ps"], timeout=60)
        return (proc.stdout or "") + (proc.stderr or "")

    def services(self) -> list[str]:
        """Services declared in the compose file."""
        proc = self._run(["config", "--services"], timeout=60)
        if proc.returncode != 0:
            return []
        return [line.strip() for line in proc.stdout.splitlines() if line.strip()]

    def running_services(self) -> list[str]:
        proc = self._run(["ps", "--services", "--filter", "status=running"], timeout=60)
        if proc.returncode != 0:
            return []
        return [line.strip() for line in proc.stdout.splitlines() if line.strip()]

    def is_running(self) -> bool:
        return bool(self.running_services())

    def container_id(self, service: str) -> str:
        proc = self._run(["ps", "-q", service], timeout=60)
        if proc.returncode != 0:
            return ""
        lines = [line.strip() for line in proc.stdout.splitlines() if line.strip()]
        return lines[0] if lines else ""

    def _inspect(self, service: str, template: str) -> str:
        cid = self.container_id(service)
        if not cid:
            return "none"
        proc = capture_cmd(["docker", "inspect", f"--format={template}", cid], timeout=60)
        if proc.returncode != 0:
            return "none"
        return proc.stdout.strip() or "none"

    def health(self, service: str) -> str:
        """Healthcheck status ("healthy", "starting", ...) or "none"."""
        return self._inspect(service, "{{if .State.Health}}{{.State.Health.Status}}{{end}}")

    def status(self, service: str) -> str:
        """Container state ("running", "exited", ...) or "none"."""
        return self._inspect(service, "{{.State.Status}}")

    def logs(self, service: str | None = None, tail: int | None = None) -> str:
        args = ["logs", "--no-color"]
        if tail:
            args.append(f"--tail={tail}")
        if service:
            args.append(service)
        proc = self._run(args, timeout=120)
        return (proc.stdout or "") + (proc.stderr or "")

    def exec(
        self,
        service: str,
        command: Sequence[str],
        stdin: IO | None = None,
        timeout: float | None = COMMAND_TIMEOUT,
    ) -> subprocess.CompletedProcess:
        """Run a command inside a running service (no TTY)."""
        return self._run(["exec", "-T", service, *command], stdin=stdin, timeout=timeout)

    def exec_ok(self, service: str, command: Sequence[str], timeout: float | None = COMMAND_TIMEOUT) -> bool:
        try:
            proc = self.exec(service, command, timeout=timeout)
        except subprocess.TimeoutExpired:
            logging.warning("exec %s %s timed out", service, " ".join(command))
            return False
        return proc.returncode == 0

    # -------------------------------
    # Diagnostics
    # -------------------------------
    def dump_status(self) -> None:
        out = self.ps()
        logging.error("Container status for %s:\n%s", self.directory.name, out)
        echo("Container status:", err=True)
        echo(out, err=True)

    def dump_logs(self, service: str | None = None, title: str | None = None) -> None:
        out = self.logs(service)
        label = title or (f"{service} logs" if service else "Container logs")
        logging.error("%s for %s:\n%s", label, self.directory.name, out)
        echo(f"{label}:", err=True)
        echo(out, err=True)
