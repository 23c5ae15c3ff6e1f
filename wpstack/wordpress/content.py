"""Stage an imported wp-content tree into an instance directory.

Accepts a wp-content directory, or a .tar / .tar.gz / .tgz archive that
contains a wp-content directory somewhere inside it.
"""

from __future__ import annotations

import shutil
import tarfile
import tempfile
from pathlib import Path

from wpstack.utils import log

ARCHIVE_SUFFIXES = (".tar.gz", ".tgz", ".tar")


class ContentError(Exception):
    pass


def is_archive(path: Path) -> bool:
    return path.name.endswith(ARCHIVE_SUFFIXES)


def _find_wp_content(tree: Path) -> Path | None:
    if tree.name == "wp-content":
        return tree
    found = sorted(p for p in tree.rglob("wp-content") if p.is_dir())
    if not found:
        return None
    # shallowest match wins
    return min(found, key=lambda p: len(p.parts))


def _extract(archive: Path, dest: Path) -> None:
    try:
        with tarfile.open(archive, "r:*") as tar:
            tar.extractall(dest, filter="data")
    except (tarfile.TarError, OSError) as err:
        raise ContentError(f"Could not extract {archive}: {err}") from err


def stage_wp_content(source: Path, dest: Path) -> Path:
    """Copy `source` (dir or archive) to `dest`, replacing anything there."""
    source = Path(source)
    dest = Path(dest)
    if dest.exists():
        shutil.rmtree(dest)
    if source.is_dir():
        log(f"Copying wp-content directory {source}")
        shutil.copytree(source, dest, symlinks=True)
        return dest
    if source.is_file() and is_archive(source):
        log(f"Extracting wp-content from {source}")
        with tempfile.TemporaryDirectory(prefix="wpstack-") as tmp:
            _extract(source, Path(tmp))
            found = _find_wp_content(Path(tmp))
            if found is None:
                raise ContentError(f"Could not find wp-content directory in archive {source}")
            shutil.copytree(found, dest, symlinks=True)
        return dest
    raise ContentError(f"wp-content must be a directory or tar/tar.gz file: {source}")
