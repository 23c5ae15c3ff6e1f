"""Host platform checks: OS, WSL, Docker and Compose availability."""

from __future__ import annotations

import platform
import shutil
import subprocess
from pathlib import Path

from wpstack.utils import capture_cmd, echo, log, status_fail, status_pass


def detect_os() -> str:
    system = platform.system().lower()
    if system == "linux":
        return "linux"
    if system == "darwin":
        return "macos"
    if system.startswith(("windows", "cygwin", "msys", "mingw")):
        return "windows"
    return "unknown"


def is_wsl(proc_version: Path = Path("/proc/version")) -> bool:
    try:
        return "microsoft" in proc_version.read_text(encoding="utf-8", errors="replace").lower()
    except OSError:
        return False


def _version(args: list[str]) -> str | None:
    try:
        proc = capture_cmd(args, timeout=30)
    except (OSError, subprocess.TimeoutExpired) as err:
        log(f"{' '.join(args)} failed: {err}")
        return None
    if proc.returncode != 0:
        return None
    return proc.stdout.strip()


def compose_variant() -> tuple[str, str] | None:
    """("docker compose" | "docker-compose", version text) or None."""
    if shutil.which("docker"):
        out = _version(["docker", "compose", "version"])
        if out:
            return "docker compose", out
    if shutil.which("docker-compose"):
        out = _version(["docker-compose", "--version"])
        if out:
            return "docker-compose", out
    return None


def check_platform() -> bool:
    echo("=== Platform Detection ===")
    os_name = detect_os()
    echo(f"OS: {os_name}")
    if os_name in ("linux", "windows") and is_wsl():
        echo("WSL: Running in WSL2 (Docker Desktop WSL2 integration)")

    if not shutil.which("docker"):
        status_fail("Docker: Not installed")
        return False
    echo(f"Docker: Installed ({_version(['docker', '--version']) or 'unknown version'})")
    ok = True
    if _version(["docker", "ps"]) is None:
        status_fail("Docker: Not running or permission denied")
        ok = False
    else:
        status_pass("Docker: Running")

    variant = compose_variant()
    if variant is None:
        status_fail("Docker Compose: Not installed")
        return False
    command, version = variant
    status_pass(f"Docker Compose: {command} ({version})")
    echo("=== Platform check complete ===")
    return ok
