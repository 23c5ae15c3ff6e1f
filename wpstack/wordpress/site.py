"""Post-provisioning operations on a ready instance.

Each step is idempotent and best-effort: a failure is logged and reported
as False, it never aborts the workflow on its own.
"""

from __future__ import annotations

import logging
import subprocess
import tempfile
from datetime import datetime
from pathlib import Path

from config import (
    CONTAINER_WEBROOT,
    DB_NAME,
    DB_PASS,
    DB_SERVICE,
    DB_USER,
    DEFAULT_WP_EMAIL,
    DEFAULT_WP_PASS,
    DEFAULT_WP_USER,
    SITE_INFO_FILE,
    WP_SERVICE,
)
from wpstack.instance import Instance
from wpstack.utils import log, status_pass, status_warn
from .cli import wp_cmd, wp_cmd_json, wp_value
from .db import rename_admin

DEFAULT_THEME_PREFIX = "twenty"

HTACCESS = """# BEGIN WordPress
<IfModule mod_rewrite.c>
RewriteEngine On
RewriteBase /
RewriteRule ^index\\.php$ - [L]
RewriteCond %{REQUEST_FILENAME} !-f
RewriteCond %{REQUEST_FILENAME} !-d
RewriteRule . /index.php [L]
</IfModule>
# END WordPress
"""


def detect_site_url(compose) -> str:
    return wp_value(compose, "option get siteurl")


def url_variants(live: str, local: str) -> list[str]:
    """URLs of the live site to rewrite to `local`, most specific first."""
    live = live.rstrip("/")
    candidates = [live]
    if live.startswith("https://"):
        candidates.append("http://" + live[len("https://"):])
    if "://www." in live:
        candidates.append(live.replace("://www.", "://", 1))
    else:
        candidates.append(live.replace("://", "://www.", 1))
    out: list[str] = []
    for url in candidates:
        if url and url != local and url not in out:
            out.append(url)
    return out


def rewrite_urls(compose, local_url: str) -> bool:
    live = detect_site_url(compose)
    if not live:
        status_warn("Could not detect live site URL from database")
        return False
    log(f"Live site URL detected: {live}")
    if live.rstrip("/") == local_url:
        return True
    ok = True
    for url in url_variants(live, local_url):
        if not wp_cmd(
            compose,
            ["search-replace", url, local_url, "--all-tables", "--report-changed-only"],
        ):
            ok = False
    if ok:
        status_pass(f"URLs rewritten {live} -> {local_url}")
    return ok


def _ensure_htaccess(compose) -> bool:
    # wp rewrite flush --hard cannot write .htaccess as the container user.
    target = f"{CONTAINER_WEBROOT}/.htaccess"
    with tempfile.TemporaryFile("w+") as f:
        f.write(HTACCESS)
        f.seek(0)
        try:
            proc = compose.exec(WP_SERVICE, ["sh", "-c", f'[ -s "{target}" ] || cat > "{target}"'], stdin=f)
        except subprocess.TimeoutExpired:
            return False
    return proc.returncode == 0


def refresh_permalinks(compose) -> bool:
    structure = "".join(wp_value(compose, "option get permalink_structure").split())
    if structure:
        wp_cmd(compose, ["rewrite", "structure", structure])
    flushed = wp_cmd(compose, "rewrite flush --hard")
    written = _ensure_htaccess(compose)
    if not written:
        logging.warning("Could not write default .htaccess")
    return flushed and written


def reset_admin_credentials(
    compose,
    login: str = DEFAULT_WP_USER,
    password: str = DEFAULT_WP_PASS,
    email: str = DEFAULT_WP_EMAIL,
) -> bool:
    admin_id = wp_value(compose, "user list --field=ID --role=administrator")
    if admin_id.isdigit():
        renamed = rename_admin(compose, int(admin_id), login, email)
        updated = wp_cmd(compose, ["user", "update", login, f"--user_pass={password}"])
        ok = renamed and updated
    else:
        ok = wp_cmd(
            compose,
            ["user", "create", login, email, "--role=administrator", f"--user_pass={password}"],
        )
    if ok:
        status_pass(f"Admin credentials reset ({login}/{password})")
    return ok


def ensure_theme(compose) -> bool:
    """Activate an imported theme when the active one is missing."""
    active = "".join(wp_value(compose, "option get template").split())
    ok, themes = wp_cmd_json(compose, "theme list --fields=name,status")
    installed = [t.get("name", "") for t in themes if isinstance(t, dict)] if ok else []
    if active and active in installed:
        log(f"PASS: Active theme '{active}' is present")
        return True
    fallback = next((t for t in installed if not t.startswith(DEFAULT_THEME_PREFIX)), "")
    if not fallback:
        status_warn(f"Active theme '{active}' not found and no imported theme available")
        return False
    if not wp_cmd(compose, ["theme", "activate", fallback]):
        return False
    status_pass(f"Theme '{fallback}' activated (was '{active}')")
    return True


def write_site_info(
    instance: Instance,
    source_db: Path | None = None,
    source_content: Path | None = None,
) -> Path:
    lines = [
        "WordPress Site Information",
        "=========================",
        f"Instance Name: {instance.name}",
        f"Site URL: {instance.url}",
        f"Admin URL: {instance.url}/wp-admin",
        f"Admin Username: {DEFAULT_WP_USER}",
        f"Admin Password: {DEFAULT_WP_PASS}",
        f"Created: {datetime.now():%Y-%m-%d %H:%M:%S}",
        f"Directory: {instance.directory}",
    ]
    if source_db is not None:
        lines.append(f"Source DB: {Path(source_db).name}")
    if source_content is not None:
        lines.append(f"Source WP-Content: {Path(source_content).name}")
    lines += [
        "",
        "phpMyAdmin Information",
        "======================",
        f"Access URL: http://localhost:{instance.pma_port}",
        f"Server: {DB_SERVICE}",
        f"Username: {DB_USER}",
        f"Password: {DB_PASS}",
        f"Database: {DB_NAME}",
        "",
        "Quick Commands:",
        "--------------",
        f"Start site:     wpdev start {instance.name}",
        f"Stop site:      wpdev stop {instance.name}",
        f"Logs:           wpdev logs {instance.name}",
        f"Status:         wpdev status {instance.name}",
        f"WordPress CLI:  wpdev wp {instance.name} --info",
        f"Remove all:     wpdev remove {instance.name}",
    ]
    path = instance.directory / SITE_INFO_FILE
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    log(f"PASS: Wrote {path}")
    return path
