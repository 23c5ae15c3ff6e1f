"""Utility helpers shared by every wpstack module.

- init_logging: configure quiet console + rotating file logging with run-id.
- status_pass/status_fail/status_warn: concise console status lines.
- capture_cmd: thin wrapper over subprocess.run.
- log: debug-level logger for normal progress lines (file-oriented).
- sanitize_name/instance_name: instance directory naming.
- normalize_argv: parse a command string or sequence into argv parts.
- parse_json_relaxed: JSON parse tolerant of CLI noise.
"""

import json
import logging
import os
import re
import shlex
import subprocess
import sys
import time
import uuid
from logging.handlers import RotatingFileHandler
from typing import Any, Sequence

from config import INSTANCE_PREFIX, LOG_DIR


_RUN_ID = ""
RID_ENV = "WPSTACK_RID"


def _gen_run_id() -> str:
    return uuid.uuid4().hex[:8]


def init_logging(run_id: str | None = None) -> str:
    """Initialize logging with console + rotating file handlers.

    - Console: CRITICAL only; operators read status_* lines instead.
    - File: DEBUG+, rich format, written to log/wpstack-<rid>.log
    Returns the run-id used.
    """
    global _RUN_ID
    if _RUN_ID:
        return _RUN_ID

    rid = run_id or os.environ.get(RID_ENV) or _gen_run_id()
    _RUN_ID = rid

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    log_dir = LOG_DIR
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        logfile = str(log_dir / f"wpstack-{rid}.log")
    except OSError:
        logfile = os.path.abspath(f"wpstack-{rid}.log")

    for h in root.handlers:
        if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler):
            h.setLevel(logging.CRITICAL)

    has_file = any(
        isinstance(h, RotatingFileHandler)
        and getattr(h, "baseFilename", "").endswith(os.path.basename(logfile))
        for h in root.handlers
    )
    if not has_file:
        fh = RotatingFileHandler(logfile, maxBytes=5 * 1024 * 1024, backupCount=3)
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
                datefmt="%Y-%m-%dT%H:%M:%S",
            )
        )
        root.addHandler(fh)

    if not any(isinstance(h, logging.StreamHandler) for h in root.handlers):
        ch = logging.StreamHandler()
        ch.setLevel(logging.CRITICAL)
        ch.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
        root.addHandler(ch)

    logging.debug("Logging initialized. run_id=%s file=%s", rid, logfile)
    os.environ[RID_ENV] = rid
    return rid


def _rid() -> str:
    return _RUN_ID or os.environ.get(RID_ENV, "--------")


def status_pass(msg: str) -> None:
    print(f"PASS: {msg} [{_rid()}]")
    logging.info("PASS: %s", msg)


def status_warn(msg: str) -> None:
    print(f"WARN: {msg} [{_rid()}]")
    logging.warning(msg)


def status_fail(msg: str) -> None:
    print(f"FAIL: {msg} [{_rid()}]", flush=True)
    logging.error(msg)


def log(msg: str) -> None:
    # File-oriented normal progress; stays out of console noise.
    logging.debug(msg)


def echo(msg: str = "", err: bool = False) -> None:
    """Plain console output for tables, prompts and diagnostic dumps."""
    print(msg, file=sys.stderr if err else sys.stdout)


def capture_cmd(
    args: list[str],
    cwd: str | None = None,
    stdin=None,
    timeout: float | None = None,
) -> subprocess.CompletedProcess:
    """Run a command capturing output; never raises on a non-zero exit."""
    t0 = time.monotonic()
    proc = subprocess.run(
        args,
        cwd=cwd,
        stdin=stdin,
        text=True,
        capture_output=True,
        timeout=timeout,
        encoding="utf-8",
        errors="replace",
    )
    logging.debug(
        "cmd %s exit=%s (%.1fs)", " ".join(args), proc.returncode, time.monotonic() - t0
    )
    return proc


def sanitize_name(name: str) -> str:
    cleaned = re.sub(r"[^a-zA-Z0-9]", "-", name or "")
    cleaned = re.sub(r"-+", "-", cleaned)
    return cleaned.strip("-")


def instance_name(name: str) -> str:
    ident = sanitize_name(name)
    if not ident:
        raise ValueError(f"site name {name!r} has no usable characters")
    return f"{INSTANCE_PREFIX}{ident}"


def normalize_argv(command: str | Sequence[str]) -> list[str]:
    """Normalize command into argv parts.
    Accepts str (parsed with shlex) or sequence of strings.
    Returns a list; empty list indicates an error already reported.
    """
    if command is None:
        logging.error("called with None command")
        return []
    if isinstance(command, str):
        text = command.strip()
        if not text:
            logging.error("called with empty command")
            return []
        try:
            return shlex.split(text)
        except ValueError as err:
            logging.error("Could not parse command: %s", err)
            return []
    parts = [str(p) for p in command]
    if not parts:
        logging.error("called with empty argv list")
    return parts


ANSI_RE = re.compile(r"\x1b\[[0-9;]*[A-Za-z]")


def strip_ansi(text: str) -> str:
    return ANSI_RE.sub("", text)


def parse_json_relaxed(text: str | None, default: Any) -> Any:
    """Parse JSON with basic tolerance for noise.

    - Strips BOM and ANSI codes
    - Falls back to the span between the first '[' and last ']',
      then the first '{' and last '}'
    - Returns default on failure
    """
    if text is None:
        return default
    s = strip_ansi(text.lstrip("\ufeff").strip())
    candidates = [s]
    for open_c, close_c in (("[", "]"), ("{", "}")):
        lb = s.find(open_c)
        rb = s.rfind(close_c)
        if lb != -1 and rb > lb:
            candidates.append(s[lb : rb + 1])
    for candidate in candidates:
        try:
            return json.loads(candidate)
        except ValueError:
            continue
    return default


def ask(prompt: str) -> str:
    try:
        return input(prompt).strip()
    except EOFError:
        return ""
