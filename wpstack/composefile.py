"""Generate and read back an instance's docker-compose.yml.

The document is built as plain data and serialized with PyYAML, so no
value is ever spliced into YAML text. Reading back returns the declared
primary port from the structured ports list.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from config import (
    COMPOSE_FILE,
    CONTAINER_WEBROOT,
    DB_IMAGE,
    DB_NAME,
    DB_PASS,
    DB_ROOT_PASS,
    DB_SERVICE,
    DB_USER,
    DEFAULT_WP_EMAIL,
    DEFAULT_WP_PASS,
    DEFAULT_WP_USER,
    PLATFORM,
    PMA_IMAGE,
    PMA_SERVICE,
    SITE_TITLE,
    WP_IMAGE,
    WP_SERVICE,
)
from wpstack.utils import log

NETWORK = "wordpress_net"
CONTAINER_HTTP_PORT = 80

# Apache runs in the background while the bundled installer finishes setup.
WP_STARTUP = (
    "apache2-foreground &\n"
    "APACHE_PID=$$!\n"
    "sleep 5\n"
    "/usr/local/bin/wp-installer.sh\n"
    "wait $$APACHE_PID\n"
)


def site_url(port: int) -> str:
    return f"http://localhost:{port}"


def build_compose(instance_name: str, port: int, pma_port: int) -> dict[str, Any]:
    db = {
        "image": DB_IMAGE,
        "platform": PLATFORM,
        "volumes": ["db_data:/var/lib/mysql"],
        "restart": "always",
        "environment": {
            "MYSQL_ROOT_PASSWORD": DB_ROOT_PASS,
            "MYSQL_DATABASE": DB_NAME,
            "MYSQL_USER": DB_USER,
            "MYSQL_PASSWORD": DB_PASS,
        },
        "networks": [NETWORK],
        "healthcheck": {
            "test": ["CMD", "mysqladmin", "ping", "-h", "localhost"],
            "timeout": "20s",
            "retries": 5,
            "interval": "5s",
        },
    }
    wordpress = {
        "build": {"context": ".", "dockerfile": "Dockerfile"},
        "platform": PLATFORM,
        "image": WP_IMAGE,
        "depends_on": {DB_SERVICE: {"condition": "service_healthy"}},
        "ports": [f"{port}:{CONTAINER_HTTP_PORT}"],
        "restart": "always",
        "volumes": [
            "wp_data:" + CONTAINER_WEBROOT,
            f"./wp-content:{CONTAINER_WEBROOT}/wp-content:delegated",
        ],
        "environment": {
            "WORDPRESS_DB_HOST": DB_SERVICE,
            "WORDPRESS_DB_NAME": DB_NAME,
            "WORDPRESS_DB_USER": DB_USER,
            "WORDPRESS_DB_PASSWORD": DB_PASS,
            "WORDPRESS_SITE_URL": site_url(port),
            "WORDPRESS_SITE_TITLE": f"{SITE_TITLE} ({instance_name})",
            "WORDPRESS_ADMIN_USER": DEFAULT_WP_USER,
            "WORDPRESS_ADMIN_PASSWORD": DEFAULT_WP_PASS,
            "WORDPRESS_ADMIN_EMAIL": DEFAULT_WP_EMAIL,
        },
        "networks": [NETWORK],
        "entrypoint": ["/bin/bash", "-c"],
        "command": [WP_STARTUP],
    }
    phpmyadmin = {
        "image": PMA_IMAGE,
        "depends_on": {DB_SERVICE: {"condition": "service_healthy"}},
        "ports": [f"{pma_port}:{CONTAINER_HTTP_PORT}"],
        "restart": "always",
        "environment": {
            "PMA_HOST": DB_SERVICE,
            "PMA_USER": DB_USER,
            "PMA_PASSWORD": DB_PASS,
        },
        "networks": [NETWORK],
    }
    return {
        "services": {DB_SERVICE: db, WP_SERVICE: wordpress, PMA_SERVICE: phpmyadmin},
        "networks": {NETWORK: {}},
        "volumes": {"db_data": {}, "wp_data": {}},
    }


def write_compose(directory: Path, document: dict[str, Any]) -> Path:
    path = Path(directory) / COMPOSE_FILE
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(document, f, default_flow_style=False, sort_keys=False)
    log(f"PASS: Wrote {path}")
    return path


def load_compose(path: Path) -> dict[str, Any] | None:
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as err:
        logging.warning("Could not read compose file %s: %s", path, err)
        return None
    if not isinstance(data, dict):
        logging.warning("Compose file %s is not a mapping", path)
        return None
    return data


def _host_port(entry: Any, target: int) -> int | None:
    """Host port of one compose ports entry when it targets `target`.

    Handles short syntax ("8080:80", "127.0.0.1:8080:80", "8080:80/tcp")
    and long syntax ({"published": 8080, "target": 80}).
    """
    if isinstance(entry, dict):
        if str(entry.get("target", "")) != str(target):
            return None
        published = entry.get("published")
    else:
        parts = str(entry).split("/", 1)[0].split(":")
        if len(parts) < 2 or parts[-1] != str(target):
            return None
        published = parts[-2]
    try:
        return int(published)
    except (TypeError, ValueError):
        return None


def service_port(document: dict[str, Any], service: str, target: int = CONTAINER_HTTP_PORT) -> int | None:
    services = document.get("services") or {}
    svc = services.get(service)
    if not isinstance(svc, dict):
        return None
    for entry in svc.get("ports") or []:
        port = _host_port(entry, target)
        if port is not None:
            return port
    return None


def read_primary_port(path: Path) -> int | None:
    """Declared host port of the application service, or None."""
    document = load_compose(path)
    if document is None:
        return None
    port = service_port(document, WP_SERVICE)
    if port is not None:
        return port
    # Hand-edited stacks may rename the service; take the first :80 mapping.
    for name in (document.get("services") or {}):
        if name == PMA_SERVICE:
            continue
        port = service_port(document, name)
        if port is not None:
            return port
    return None


def read_admin_port(path: Path) -> int | None:
    document = load_compose(path)
    if document is None:
        return None
    return service_port(document, PMA_SERVICE)
