"""Readiness gate run after an instance's containers are started.

Stages are strictly ordered and each one gates the next:

    STARTING -> CONTAINERS_HEALTHY -> DATABASE_REACHABLE
             -> APPLICATION_INSTALLED -> READY

A single failed probe is not an error; it is retried until the stage's own
budget runs out. Only an exhausted stage is reported, with the diagnostics
that stage needs (container status, database logs, application logs), and
raised as StageTimeout. The HTTP check after READY is advisory only.
"""

from __future__ import annotations

import enum
import math
import subprocess
import time
from dataclasses import dataclass
from typing import Callable

import requests

from config import DB_SERVICE, WP_SERVICE, GateTimings, gate_timings
from wpstack.compose import Compose
from wpstack.utils import echo, log, status_pass
from wpstack.wordpress.cli import wp_ok

Probe = Callable[[], bool]
Sleep = Callable[[float], None]


class GateStage(enum.Enum):
    STARTING = "containers started"
    CONTAINERS_HEALTHY = "containers healthy"
    DATABASE_REACHABLE = "database reachable"
    APPLICATION_INSTALLED = "WordPress installed"
    READY = "ready"


class StageTimeout(Exception):
    def __init__(self, stage: GateStage, message: str):
        super().__init__(message)
        self.stage = stage


@dataclass
class Stage:
    stage: GateStage
    probe: Probe
    interval: float
    max_wait: float
    diagnostics: Callable[[], None]
    waiting: str
    failure: str
    single: bool = False


def _probe_ok(probe: Probe) -> bool:
    try:
        return bool(probe())
    except (subprocess.SubprocessError, OSError) as err:
        log(f"probe error (retrying): {err}")
        return False


def max_polls(interval: float, max_wait: float) -> int:
    if interval <= 0:
        return 1
    return max(1, math.ceil(max_wait / interval))


def poll_until(
    probe: Probe,
    interval: float,
    max_wait: float,
    on_wait: Callable[[float, float], None] | None = None,
    sleep: Sleep = time.sleep,
) -> bool:
    """Poll `probe` every `interval` seconds for at most `max_wait` seconds.

    Performs at most ceil(max_wait / interval) polls and at least one.
    Returns True as soon as a poll succeeds, False when the budget is spent.
    """
    polls = max_polls(interval, max_wait)
    waited = 0.0
    for attempt in range(1, polls + 1):
        if _probe_ok(probe):
            return True
        if attempt == polls:
            break
        if on_wait is not None:
            on_wait(waited, max_wait)
        sleep(interval)
        waited += interval
    return False


def check_url(url: str, attempts: int, delay: float, sleep: Sleep = time.sleep) -> bool:
    """True once `url` answers with a non-error status within `attempts` tries."""
    for attempt in range(1, max(1, attempts) + 1):
        try:
            resp = requests.get(url, timeout=5, allow_redirects=False)
            if resp.status_code < 400:
                log(f"PASS: {url} answered {resp.status_code}")
                return True
            log(f"{url} answered {resp.status_code} (attempt {attempt}/{attempts})")
        except requests.RequestException as err:
            log(f"{url} not reachable (attempt {attempt}/{attempts}): {err}")
        if attempt < attempts:
            sleep(delay)
    return False


class ReadinessGate:
    """Blocks until an instance's stack is usable or a stage times out."""

    def __init__(self, compose: Compose, timings: GateTimings | None = None, sleep: Sleep = time.sleep):
        self.compose = compose
        self.timings = timings or gate_timings()
        self.sleep = sleep
        self.state = GateStage.STARTING

    # -------------------------------
    # Probes
    # -------------------------------
    def containers_running(self) -> bool:
        return self.compose.is_running()

    def containers_healthy(self) -> bool:
        if self.compose.health(DB_SERVICE) != "healthy":
            return False
        return self.compose.status(WP_SERVICE) == "running"

    def database_reachable(self) -> bool:
        return wp_ok(self.compose, ["db", "check"], timeout=60)

    def application_installed(self) -> bool:
        return wp_ok(self.compose, ["core", "is-installed"], timeout=60)

    # -------------------------------
    # Diagnostics
    # -------------------------------
    def _dump_start_failure(self) -> None:
        self.compose.dump_status()
        self.compose.dump_logs()

    def _dump_health_failure(self) -> None:
        self.compose.dump_status()
        self.compose.dump_logs(DB_SERVICE, "Database logs")

    def _dump_db_failure(self) -> None:
        self.compose.dump_logs(DB_SERVICE, "Database logs")
        self.compose.dump_logs(WP_SERVICE, "WordPress logs")

    def _dump_install_failure(self) -> None:
        self.compose.dump_logs(WP_SERVICE, "WordPress logs")

    def stages(self) -> list[Stage]:
        t = self.timings
        return [
            Stage(
                GateStage.STARTING,
                self.containers_running,
                t.start_grace,
                t.start_grace,
                self._dump_start_failure,
                "Waiting for containers to start...",
                "Containers failed to start!",
                single=True,
            ),
            Stage(
                GateStage.CONTAINERS_HEALTHY,
                self.containers_healthy,
                t.healthy_interval,
                t.healthy_max_wait,
                self._dump_health_failure,
                "Waiting for containers to be healthy...",
                "Containers failed to become healthy!",
            ),
            Stage(
                GateStage.DATABASE_REACHABLE,
                self.database_reachable,
                t.db_interval,
                t.db_max_wait,
                self._dump_db_failure,
                "Database not ready yet...",
                "Database connection timed out!",
            ),
            Stage(
                GateStage.APPLICATION_INSTALLED,
                self.application_installed,
                t.install_interval,
                t.install_max_wait,
                self._dump_install_failure,
                "WordPress installation in progress...",
                "WordPress installation timed out!",
            ),
        ]

    def run(self) -> None:
        """Walk every stage in order; raises StageTimeout on the first that fails."""
        echo("Monitoring container startup...")
        for stage in self.stages():
            self.state = stage.stage
            log(f"gate stage: {stage.stage.name}")
            if stage.single:
                echo(stage.waiting)
                self.sleep(stage.interval)
                ok = _probe_ok(stage.probe)
            else:
                ok = poll_until(
                    stage.probe,
                    stage.interval,
                    stage.max_wait,
                    on_wait=lambda waited, budget, s=stage: echo(
                        f"  {s.waiting} ({waited:g}/{budget:g} seconds)"
                    ),
                    sleep=self.sleep,
                )
            if not ok:
                echo(f"ERROR: {stage.failure}", err=True)
                stage.diagnostics()
                raise StageTimeout(stage.stage, stage.failure)
            status_pass(stage.stage.value)
        self.state = GateStage.READY
