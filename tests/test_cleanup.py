import subprocess

from conftest import FakeCompose, make_instance
from wpstack import cleanup

VOLUMES = "wp-test-alpha_wp_data\nwp-test-alpha_db_data\nother_db_data\nwp-test-beta_cache\n"
NETWORKS = "bridge\nwp-test-alpha_wordpress_net\nhost\n"


class Docker:
    """Fake docker CLI for volume/network listing and removal."""

    def __init__(self):
        self.removed = []

    def __call__(self, args, timeout=None, **kwargs):
        if args[:3] == ["docker", "volume", "ls"]:
            return subprocess.CompletedProcess(args, 0, VOLUMES, "")
        if args[:3] == ["docker", "network", "ls"]:
            return subprocess.CompletedProcess(args, 0, NETWORKS, "")
        if args[2] == "rm":
            self.removed.append((args[1], args[3:]))
            return subprocess.CompletedProcess(args, 0, "", "")
        raise AssertionError(f"unexpected command {args}")


def _setup(monkeypatch, tmp_path, running):
    made = {}

    def factory(directory):
        compose = made.get(directory.name)
        if compose is None:
            compose = FakeCompose(directory, running=directory.name in running)
            made[directory.name] = compose
        return compose

    docker = Docker()
    monkeypatch.setattr(cleanup, "Compose", factory)
    monkeypatch.setattr(cleanup, "capture_cmd", docker)
    return made, docker


def test_orphan_patterns():
    assert cleanup.ORPHAN_VOLUME_RE.match("wp-test-x_db_data")
    assert cleanup.ORPHAN_VOLUME_RE.match("wp-test-x_wp_data")
    assert not cleanup.ORPHAN_VOLUME_RE.match("wp-test-x_cache")
    assert not cleanup.ORPHAN_VOLUME_RE.match("prod_db_data")
    assert cleanup.ORPHAN_NETWORK_RE.match("wp-test-x_wordpress_net")
    assert not cleanup.ORPHAN_NETWORK_RE.match("wp-test-x_default")


def test_force_cleanup_removes_everything(tmp_path, monkeypatch):
    alpha = make_instance(tmp_path, "alpha", 8080)
    beta = make_instance(tmp_path, "beta", 8081)
    (alpha / "wp-content").mkdir()
    made, docker = _setup(monkeypatch, tmp_path, running={"wp-test-alpha"})

    assert cleanup.cleanup_sites(tmp_path, force=True, sleep=lambda s: None) is True
    assert not alpha.exists() and not beta.exists()

    alpha_calls = made["wp-test-alpha"].calls
    chmod = [c for c in alpha_calls if c[0] == "exec"]
    assert chmod and chmod[0][2][:3] == ["chmod", "-R", "755"]
    assert alpha_calls[-1] == ("down", True)
    assert made["wp-test-beta"].calls == [("down", True)]

    assert docker.removed == [
        ("volume", ["wp-test-alpha_wp_data", "wp-test-alpha_db_data"]),
        ("network", ["wp-test-alpha_wordpress_net"]),
    ]


def test_stopped_instance_is_started_to_fix_permissions(tmp_path, monkeypatch):
    beta = make_instance(tmp_path, "beta", 8081)
    (beta / "wp-content").mkdir()
    made, _ = _setup(monkeypatch, tmp_path, running=set())
    cleanup.cleanup_sites(tmp_path, force=True, sleep=lambda s: None)
    assert made["wp-test-beta"].names() == ["up", "exec", "down", "down"]
    assert made["wp-test-beta"].calls[0] == ("up", ("wordpress", "db"))


def test_prompt_declined_keeps_running_instance(tmp_path, monkeypatch):
    alpha = make_instance(tmp_path, "alpha", 8080)
    beta = make_instance(tmp_path, "beta", 8081)
    _, docker = _setup(monkeypatch, tmp_path, running={"wp-test-alpha"})
    monkeypatch.setattr(cleanup, "ask", lambda prompt: "n")

    assert cleanup.cleanup_sites(tmp_path, force=False) is True
    assert alpha.exists()
    assert not beta.exists()
    assert docker.removed == []


def test_no_instances(tmp_path, monkeypatch, capsys):
    _setup(monkeypatch, tmp_path, running=set())
    monkeypatch.setattr(cleanup, "capture_cmd", lambda args, timeout=None: subprocess.CompletedProcess(args, 0, "", ""))
    assert cleanup.cleanup_sites(tmp_path, force=True) is True
    out = capsys.readouterr().out
    assert "No orphaned volumes found" in out
    assert "No orphaned networks found" in out
