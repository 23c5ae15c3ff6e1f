"""MySQL helpers run inside an instance's db service."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from config import COMMAND_TIMEOUT, DB_NAME, DB_PASS, DB_SERVICE, DB_USER
from wpstack.utils import log


def _mysql_argv(database: str | None = None) -> list[str]:
    argv = ["mysql", "-u", DB_USER, f"-p{DB_PASS}"]
    if database:
        argv.append(database)
    return argv


def sql_str(value: str) -> str:
    return "'" + str(value).replace("\\", "\\\\").replace("'", "''") + "'"


def run_mysql(compose, sql: str, database: str | None = None) -> bool:
    try:
        proc = compose.exec(DB_SERVICE, _mysql_argv(database) + ["-e", sql], timeout=120)
    except subprocess.TimeoutExpired:
        logging.error("SQL timed out: %s", sql)
        return False
    msg = (
        f"SQL: {sql}\nEXIT: {proc.returncode}\n"
        f"STDOUT: {(proc.stdout or '').strip()}\nSTDERR: {(proc.stderr or '').strip()}"
    )
    if proc.returncode == 0:
        log(f"PASS: {msg}")
        return True
    logging.error(msg)
    return False


def reset_database(compose) -> bool:
    return run_mysql(
        compose,
        f"DROP DATABASE IF EXISTS `{DB_NAME}`; "
        f"CREATE DATABASE `{DB_NAME}` CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci;",
    )


def import_dump(compose, dump: Path) -> bool:
    """Stream a SQL dump file into the instance database."""
    with open(dump, "rb") as f:
        try:
            proc = compose.exec(DB_SERVICE, _mysql_argv(DB_NAME), stdin=f, timeout=COMMAND_TIMEOUT)
        except subprocess.TimeoutExpired:
            logging.error("Import of %s timed out", dump)
            return False
    if proc.returncode != 0:
        logging.error("Import of %s failed exit=%s: %s", dump, proc.returncode, (proc.stderr or "").strip())
        return False
    log(f"PASS: imported {dump}")
    return True


def rename_admin(compose, user_id: int, login: str, email: str) -> bool:
    # wp user update cannot change user_login, so it is set directly.
    return run_mysql(
        compose,
        f"UPDATE wp_users SET user_login={sql_str(login)}, user_email={sql_str(email)} "
        f"WHERE ID={int(user_id)};",
        database=DB_NAME,
    )
