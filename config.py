"""Shared configuration constants for wpstack.

Centralizes paths, ports, credentials and readiness timings used by modules.
Values marked with an env name can be overridden from the environment.
"""

import os
from dataclasses import dataclass
from pathlib import Path

PROJECT_DIR = Path(__file__).resolve().parent
DATA_PACKAGE = "wpstack"  # bundled container assets live in wpstack/data/
LOG_DIR = Path(os.environ.get("WPSTACK_LOG_DIR") or PROJECT_DIR / "log")

SITES_DIR = os.environ.get("WPSTACK_SITES_DIR", "")  # empty: current directory
INSTANCE_PREFIX = "wp-test-"
COMPOSE_FILE = "docker-compose.yml"
SITE_INFO_FILE = "site-info.txt"
BUNDLED_FILES = {"Dockerfile": "Dockerfile", "wp-installer.sh": "wp-installer.sh"}

# Ports
PORT_RANGE_START = 8080
PORT_RANGE_END = 8200
PORT_MIN = 1024
PORT_MAX = 65535
PMA_PORT_OFFSET = 100
PORT_LOCK_FILE = ".wpstack-ports.lock"
PORT_LOCK_TIMEOUT = float(os.environ.get("WPSTACK_PORT_LOCK_TIMEOUT", "30"))

# Images and service names
DB_IMAGE = "mysql:5.7"
PMA_IMAGE = "phpmyadmin/phpmyadmin"
WP_IMAGE = "wp-wordpress"
DB_SERVICE = "db"
WP_SERVICE = "wordpress"
PMA_SERVICE = "phpmyadmin"
PLATFORM = os.environ.get("WPSTACK_PLATFORM", "linux/amd64")

# Credentials baked into every instance (local development only)
DB_NAME = "wordpress"
DB_USER = "wordpress"
DB_PASS = "wordpress"
DB_ROOT_PASS = "rootpassword"
DEFAULT_WP_USER = "admin"
DEFAULT_WP_PASS = "password"
DEFAULT_WP_EMAIL = "admin@example.com"
SITE_TITLE = "WordPress Dev"
CONTAINER_WEBROOT = "/var/www/html"

# Docker Compose binary; empty means autodetect
COMPOSE_COMMAND = os.environ.get("WPSTACK_COMPOSE", "")
COMMAND_TIMEOUT = int(os.environ.get("WPSTACK_COMMAND_TIMEOUT", "600"))  # seconds


@dataclass(frozen=True)
class GateTimings:
    """Readiness gate budgets, in seconds."""

    start_grace: float = 10
    healthy_interval: float = 5
    healthy_max_wait: float = 120
    db_interval: float = 5
    db_max_wait: float = 60
    install_interval: float = 10
    install_max_wait: float = 120
    http_attempts: int = 12
    http_delay: float = 5


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    return float(raw)


def gate_timings() -> GateTimings:
    base = GateTimings()
    return GateTimings(
        start_grace=_env_float("WPSTACK_START_GRACE", base.start_grace),
        healthy_interval=_env_float("WPSTACK_HEALTHY_INTERVAL", base.healthy_interval),
        healthy_max_wait=_env_float("WPSTACK_HEALTHY_WAIT", base.healthy_max_wait),
        db_interval=_env_float("WPSTACK_DB_INTERVAL", base.db_interval),
        db_max_wait=_env_float("WPSTACK_DB_WAIT", base.db_max_wait),
        install_interval=_env_float("WPSTACK_INSTALL_INTERVAL", base.install_interval),
        install_max_wait=_env_float("WPSTACK_INSTALL_WAIT", base.install_max_wait),
        http_attempts=int(_env_float("WPSTACK_HTTP_ATTEMPTS", base.http_attempts)),
        http_delay=_env_float("WPSTACK_HTTP_DELAY", base.http_delay),
    )


def sites_root() -> Path:
    if SITES_DIR:
        return Path(SITES_DIR).expanduser().resolve()
    return Path.cwd()
