import tarfile
from pathlib import Path

import pytest

from wpstack.wordpress.content import ContentError, is_archive, stage_wp_content


def _tree(base):
    (base / "public_html" / "wp-content" / "plugins" / "shop").mkdir(parents=True)
    (base / "public_html" / "wp-content" / "plugins" / "shop" / "shop.php").write_text("<?php")
    (base / "public_html" / "wp-content" / "uploads").mkdir()
    return base / "public_html"


def _archive(tmp_path, name, mode):
    src = _tree(tmp_path / "build")
    archive = tmp_path / name
    with tarfile.open(archive, mode) as tar:
        tar.add(src, arcname="public_html")
    return archive


def test_is_archive():
    assert is_archive(Path("site.tar.gz"))
    assert is_archive(Path("site.tgz"))
    assert is_archive(Path("site.tar"))
    assert not is_archive(Path("site.zip"))


def test_copies_directory(tmp_path):
    src = _tree(tmp_path / "src") / "wp-content"
    dest = tmp_path / "inst" / "wp-content"
    stage_wp_content(src, dest)
    assert (dest / "plugins" / "shop" / "shop.php").read_text() == "<?php"


@pytest.mark.parametrize("name,mode", [("site.tar.gz", "w:gz"), ("site.tar", "w")])
def test_extracts_nested_wp_content(tmp_path, name, mode):
    archive = _archive(tmp_path, name, mode)
    dest = tmp_path / "inst" / "wp-content"
    stage_wp_content(archive, dest)
    assert (dest / "plugins" / "shop" / "shop.php").is_file()
    assert (dest / "uploads").is_dir()


def test_replaces_existing_destination(tmp_path):
    src = _tree(tmp_path / "src") / "wp-content"
    dest = tmp_path / "inst" / "wp-content"
    dest.mkdir(parents=True)
    (dest / "stale.txt").write_text("old")
    stage_wp_content(src, dest)
    assert not (dest / "stale.txt").exists()


def test_archive_without_wp_content(tmp_path):
    (tmp_path / "junk").mkdir()
    (tmp_path / "junk" / "readme.txt").write_text("nothing here")
    archive = tmp_path / "junk.tar.gz"
    with tarfile.open(archive, "w:gz") as tar:
        tar.add(tmp_path / "junk", arcname="junk")
    with pytest.raises(ContentError, match="Could not find wp-content"):
        stage_wp_content(archive, tmp_path / "inst" / "wp-content")


def test_corrupt_archive(tmp_path):
    archive = tmp_path / "broken.tar.gz"
    archive.write_bytes(b"not a tarball")
    with pytest.raises(ContentError):
        stage_wp_content(archive, tmp_path / "inst" / "wp-content")


def test_unsupported_source(tmp_path):
    bogus = tmp_path / "content.zip"
    bogus.write_text("zip")
    with pytest.raises(ContentError, match="directory or tar"):
        stage_wp_content(bogus, tmp_path / "inst" / "wp-content")
