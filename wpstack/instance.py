"""Instance model and discovery of instances on disk."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from config import COMPOSE_FILE, INSTANCE_PREFIX, PMA_PORT_OFFSET
from wpstack.composefile import read_admin_port, read_primary_port, site_url
from wpstack.utils import log


class InstanceState(enum.Enum):
    NOT_CREATED = "not-created"
    PROVISIONING = "provisioning"
    READY = "ready"
    FAILED = "failed"
    REMOVED = "removed"


@dataclass
class Instance:
    name: str
    directory: Path
    port: int | None = None
    pma_port: int | None = None
    state: InstanceState = InstanceState.NOT_CREATED

    @property
    def compose_file(self) -> Path:
        return self.directory / COMPOSE_FILE

    @property
    def url(self) -> str:
        return site_url(self.port) if self.port else "N/A"

    def transition(self, state: InstanceState) -> None:
        log(f"{self.name}: {self.state.value} -> {state.value}")
        self.state = state


def admin_port_for(port: int) -> int:
    return port + PMA_PORT_OFFSET


def load_instance(directory: Path) -> Instance:
    compose = directory / COMPOSE_FILE
    return Instance(
        name=directory.name,
        directory=directory,
        port=read_primary_port(compose),
        pma_port=read_admin_port(compose),
        state=InstanceState.READY,
    )


def iter_instance_dirs(root: Path) -> Iterator[Path]:
    if not root.is_dir():
        return
    for path in sorted(root.glob(f"{INSTANCE_PREFIX}*")):
        if path.is_dir() and (path / COMPOSE_FILE).is_file():
            yield path


def iter_instances(root: Path) -> Iterator[Instance]:
    for path in iter_instance_dirs(root):
        yield load_instance(path)


def find_instance(root: Path, name: str) -> Instance | None:
    """Look up by directory name, accepting the name with or without prefix."""
    for candidate in (name, f"{INSTANCE_PREFIX}{name}"):
        path = root / candidate
        if path.is_dir() and (path / COMPOSE_FILE).is_file():
            return load_instance(path)
    return None
