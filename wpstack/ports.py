"""Port allocation for new instances.

A port is available when nothing on the host listens on it and no sibling
instance declares it in its compose file. Allocation is a read-only scan;
callers hold port_claim() from allocation until their own compose file is
written so two concurrent runs cannot pick the same port.
"""

from __future__ import annotations

import fcntl
import logging
import subprocess
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator

from config import (
    COMPOSE_FILE,
    PORT_LOCK_FILE,
    PMA_PORT_OFFSET,
    PORT_LOCK_TIMEOUT,
    PORT_MAX,
    PORT_MIN,
    PORT_RANGE_END,
    PORT_RANGE_START,
)
from wpstack.composefile import read_admin_port, read_primary_port
from wpstack.instance import iter_instance_dirs
from wpstack.utils import capture_cmd, log


class PortError(Exception):
    """Base class for port allocation failures."""


class NoPortAvailable(PortError):
    def __init__(self, start: int, end: int):
        super().__init__(f"No available ports found between {start} and {end}")
        self.start = start
        self.end = end


class InvalidPort(PortError):
    pass


# ss and netstat print the local address as the 4th column: "0.0.0.0:8080",
# "[::]:8080", "*:8080", "127.0.0.1.8080" (BSD netstat uses a dot).
PORT_PROBES = (
    (["ss", "-H", "-tln"], 3),
    (["netstat", "-tln"], 3),
    (["netstat", "-an", "-p", "tcp"], 3),
)


def _port_of(address: str) -> int | None:
    sep = max(address.rfind(":"), address.rfind("."))
    if sep == -1:
        return None
    tail = address[sep + 1 :]
    if not tail.isdigit():
        return None
    return int(tail)


def parse_listening(output: str, column: int) -> set[int]:
    ports: set[int] = set()
    for line in output.splitlines():
        fields = line.split()
        if len(fields) <= column:
            continue
        if "LISTEN" not in line.upper():
            continue
        port = _port_of(fields[column])
        if port is not None:
            ports.add(port)
    return ports


def listening_ports() -> set[int]:
    """TCP ports bound for listening on this host."""
    for args, column in PORT_PROBES:
        try:
            proc = capture_cmd(args, timeout=15)
        except (OSError, subprocess.TimeoutExpired) as err:
            log(f"SKIP: {args[0]} unavailable: {err}")
            continue
        if proc.returncode != 0:
            log(f"SKIP: {' '.join(args)} exit={proc.returncode}")
            continue
        return parse_listening(proc.stdout, column)
    logging.warning("No port inspection tool worked (ss/netstat); assuming no host binds")
    return set()


def declared_ports(root: Path, exclude: str | None = None) -> dict[int, str]:
    """Primary ports declared by sibling instances, mapped to their names."""
    claims: dict[int, str] = {}
    for path in iter_instance_dirs(root):
        if path.name == exclude:
            continue
        port = read_primary_port(path / COMPOSE_FILE)
        if port is not None:
            claims.setdefault(port, path.name)
    return claims


def sibling_claims(root: Path, port: int) -> str | None:
    """Name of the first sibling instance declaring `port`, else None."""
    for path in iter_instance_dirs(root):
        if read_primary_port(path / COMPOSE_FILE) == port:
            return path.name
    return None


def find_available_port(
    start: int = PORT_RANGE_START,
    end: int = PORT_RANGE_END,
    root: Path | None = None,
    bound: Iterable[int] | None = None,
) -> int:
    """Lowest port in [start, end] neither bound on the host nor claimed.

    `bound` replaces the live host scan (tests, or a snapshot taken once by
    the caller). Raises NoPortAvailable when the range is exhausted.
    """
    host = set(bound) if bound is not None else listening_ports()
    root = Path(root) if root is not None else Path.cwd()
    port = start
    while port <= end:
        if port in host:
            log(f"port {port}: bound on host")
            port += 1
            continue
        owner = sibling_claims(root, port)
        if owner is not None:
            log(f"port {port}: claimed by {owner}")
            port += 1
            continue
        log(f"PASS: allocated port {port}")
        return port
    raise NoPortAvailable(start, end)


def validate_port(value: int | str) -> int:
    """Explicit user port: an integer within the unprivileged range."""
    text = str(value).strip()
    if not text.isdigit():
        raise InvalidPort(f"Port must be a number between {PORT_MIN} and {PORT_MAX}: {value!r}")
    port = int(text)
    if port < PORT_MIN or port > PORT_MAX:
        raise InvalidPort(f"Port must be a number between {PORT_MIN} and {PORT_MAX}: {port}")
    return port


def validate_start_port(value: int | str) -> int:
    """Preferred allocation floor: a valid port inside the allocation range."""
    port = validate_port(value)
    if not PORT_RANGE_START <= port <= PORT_RANGE_END:
        raise InvalidPort(
            f"Start port must be between {PORT_RANGE_START} and {PORT_RANGE_END}: {port}"
        )
    return port


def admin_port_conflict(root: Path, port: int, bound: Iterable[int]) -> str | None:
    """Why the phpMyAdmin port paired with `port` is unusable, or None."""
    admin = port + PMA_PORT_OFFSET
    if admin in set(bound):
        return f"phpMyAdmin port {admin} is already in use"
    for path in iter_instance_dirs(root):
        compose_file = path / COMPOSE_FILE
        if admin in (read_primary_port(compose_file), read_admin_port(compose_file)):
            return f"phpMyAdmin port {admin} is already declared by {path.name}"
    return None


@contextmanager
def port_claim(root: Path, timeout: float = PORT_LOCK_TIMEOUT) -> Iterator[Path]:
    """Hold the sites-root port lock for an allocate-then-persist sequence."""
    lock_path = Path(root) / PORT_LOCK_FILE
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    lock_path.touch(exist_ok=True)
    deadline = time.monotonic() + timeout
    with open(lock_path, "r+") as lock_fd:
        while True:
            try:
                fcntl.flock(lock_fd.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except OSError:
                if time.monotonic() >= deadline:
                    raise PortError(
                        f"Could not acquire port lock {lock_path} within {timeout}s; "
                        "another provisioning run may be in progress"
                    )
                time.sleep(0.1)
        log(f"port lock acquired: {lock_path}")
        try:
            yield lock_path
        finally:
            fcntl.flock(lock_fd.fileno(), fcntl.LOCK_UN)
            log(f"port lock released: {lock_path}")
