# cli.py
# Invariants (WP-CLI access inside the instance's wordpress container):
# - All WP-CLI access goes through these wrappers; callers never build the
#   "compose exec ... wp" prefix or pass --allow-root/--path themselves.
# - Read-ish commands are coerced to JSON at the source by appending:
#     --format=json --skip-plugins --skip-themes
# - Parsing strips ANSI and PHP/WP noise before looking for JSON.
# - Logs: one PASS/FAIL line per call in the file log; console stays quiet.

from __future__ import annotations

import logging
import re
import subprocess
import time
from typing import Any, Sequence, Tuple

from config import COMMAND_TIMEOUT, WP_SERVICE
from wpstack.utils import log, normalize_argv, parse_json_relaxed, strip_ansi

# ── Noise filters ───────────────────────────────────────────────────────────────
NOISE_PREFIXES = (
    "PHP Warning:", "PHP Notice:", "PHP Deprecated:", "PHP Fatal error:",
    "Warning:", "Notice:", "Deprecated:", "Fatal error:", "PHP:",
)
NOISE_PATTERNS = (
    re.compile(r"^#\d+:"),               # stack frames
    re.compile(r"^'trace'\s*=>"),        # array trace header
)

# Raise PHP memory for imports; hush update checks.
WP_ENV = (
    "WP_CLI_PHP_ARGS=-d memory_limit=512M",
    "WP_CLI_DISABLE_AUTO_CHECK_UPDATE=1",
)


def drop_noise_lines(text: str) -> list[str]:
    out: list[str] = []
    for ln in strip_ansi(text).splitlines():
        ln = ln.strip()
        if not ln:
            continue
        if ln.startswith(NOISE_PREFIXES):
            continue
        if any(p.search(ln) for p in NOISE_PATTERNS):
            continue
        out.append(ln)
    return out


# ── Internal helpers ────────────────────────────────────────────────────────────
def _sanitize_parts(parts: list[str]) -> list[str]:
    # drop any leading "wp" and caller-supplied flags we provide ourselves
    while parts and parts[0] == "wp":
        parts = parts[1:]
    return [p for p in parts if p != "--allow-root" and not p.startswith("--path")]


def _looks_like_read_cmd(parts: list[str]) -> bool:
    if any(p.startswith("--format=") or p.startswith("--field=") for p in parts):
        return False
    verbs = {"list", "get", "search"}
    return bool(verbs.intersection(parts)) or any(p.startswith("--fields=") for p in parts)


def _append_format_json(parts: list[str]) -> list[str]:
    parts = parts + ["--format=json"]
    for flag in ("--skip-plugins", "--skip-themes"):
        if flag not in parts:
            parts.append(flag)
    return parts


def wp_argv(parts: list[str]) -> list[str]:
    return ["env", *WP_ENV, "wp", *parts, "--allow-root"]


def wp_run(compose, command: str | Sequence[str], timeout: float = COMMAND_TIMEOUT) -> Tuple[bool, str, str, int]:
    """Run WP-CLI in the wordpress service; returns (ok, stdout, stderr, code)."""
    parts = normalize_argv(command)
    if not parts:
        return False, "", "Invalid command", 1
    parts = _sanitize_parts(parts)
    shown = "wp " + " ".join(parts)

    t0 = time.monotonic()
    try:
        proc = compose.exec(WP_SERVICE, wp_argv(parts), timeout=timeout)
    except subprocess.TimeoutExpired:
        dt = time.monotonic() - t0
        logging.error("%s timeout after %.1fs", shown, dt)
        return False, "", f"timeout after {dt:.1f}s", 124

    dt = time.monotonic() - t0
    ok = proc.returncode == 0
    if ok:
        log(f"PASS: {shown} ({dt:.1f}s)")
    else:
        clean_err = "\n".join(drop_noise_lines(proc.stderr or ""))
        log(f"FAIL: {shown} exit={proc.returncode}\nSTDERR: {clean_err}")
    return ok, (proc.stdout or ""), (proc.stderr or ""), proc.returncode


# ── Public API ──────────────────────────────────────────────────────────────────
def wp_ok(compose, command: str | Sequence[str], timeout: float = COMMAND_TIMEOUT) -> bool:
    ok, _, _, _ = wp_run(compose, command, timeout=timeout)
    return ok


def wp_cmd(compose, command: str | Sequence[str], timeout: float = COMMAND_TIMEOUT) -> bool:
    """Run a write command; failures are reported as an error in the log."""
    ok, _, err, code = wp_run(compose, command, timeout=timeout)
    if not ok:
        logging.error("wp %s exit=%s: %s", command, code, "\n".join(drop_noise_lines(err))[:500])
    return ok


def wp_value(compose, command: str | Sequence[str], timeout: float = COMMAND_TIMEOUT) -> str:
    """Stripped first clean output line (option get, --field=...); "" on failure."""
    ok, out, _, _ = wp_run(compose, command, timeout=timeout)
    if not ok:
        return ""
    lines = drop_noise_lines(out)
    return lines[0] if lines else ""


def wp_cmd_json(compose, command: str | Sequence[str], timeout: float = COMMAND_TIMEOUT) -> Tuple[bool, Any]:
    parts = _sanitize_parts(normalize_argv(command))
    if parts and _looks_like_read_cmd(parts):
        parts = _append_format_json(parts)
    ok, out, _, _ = wp_run(compose, parts, timeout=timeout)
    cleaned = "\n".join(drop_noise_lines(out))
    data = parse_json_relaxed(cleaned, default=None)
    if data is None:
        logging.debug("wp_cmd_json: no JSON output for %s", " ".join(parts))
        data = []
    elif isinstance(data, str) and data.strip()[:1] in ("[", "{"):
        data = parse_json_relaxed(data, default=data)
    return ok, data

