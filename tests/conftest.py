import subprocess
from pathlib import Path

import pytest

from wpstack.composefile import build_compose, write_compose


def make_instance(root: Path, name: str, port: int) -> Path:
    """A sibling instance directory declaring `port`."""
    directory = root / f"wp-test-{name}"
    directory.mkdir(parents=True)
    write_compose(directory, build_compose(directory.name, port, port + 100))
    return directory


def wp_parts(command):
    """WP-CLI arguments of an exec'd wp command, without the env prefix."""
    if "wp" not in command:
        return None
    i = command.index("wp")
    return command[i + 1 : -1]


class FakeCompose:
    """Stands in for wpstack.compose.Compose; records every call."""

    def __init__(self, directory=Path("."), running=True, health="healthy", status="running", handler=None):
        self.directory = Path(directory)
        self.binary = ["docker", "compose"]
        self.running = running
        self._health = health
        self._status = status
        self.handler = handler
        self.calls = []
        self.health_checks = []
        self.down_error = None

    def up(self, services=()):
        self.calls.append(("up", tuple(services)))

    def down(self, volumes=False):
        self.calls.append(("down", volumes))
        if self.down_error is not None:
            raise self.down_error

    def is_running(self):
        return self.running

    def running_services(self):
        return ["db", "wordpress", "phpmyadmin"] if self.running else []

    def services(self):
        return ["db", "wordpress", "phpmyadmin"]

    def health(self, service):
        self.health_checks.append(service)
        return self._health

    def status(self, service):
        return self._status

    def ps(self):
        return "NAME   STATUS"

    def logs(self, service=None, tail=None):
        return f"logs of {service or 'all'}"

    def exec(self, service, command, stdin=None, timeout=None):
        command = list(command)
        self.calls.append(("exec", service, command))
        code, out, err = (0, "", "")
        if self.handler is not None:
            code, out, err = self.handler(service, command)
        return subprocess.CompletedProcess(["exec", service, *command], code, out, err)

    def exec_ok(self, service, command, timeout=None):
        return self.exec(service, command, timeout=timeout).returncode == 0

    def dump_status(self):
        self.calls.append(("dump_status",))

    def dump_logs(self, service=None, title=None):
        self.calls.append(("dump_logs", service))

    def names(self):
        return [c[0] for c in self.calls]

    def wp_calls(self):
        return [wp_parts(c[2]) for c in self.calls if c[0] == "exec" and wp_parts(c[2]) is not None]


@pytest.fixture
def fake_compose(tmp_path):
    return FakeCompose(tmp_path)


@pytest.fixture
def no_host_ports(monkeypatch):
    monkeypatch.setattr("wpstack.ports.listening_ports", lambda: set())
