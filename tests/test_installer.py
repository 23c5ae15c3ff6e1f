from importlib import resources
from pathlib import Path

import pytest

from conftest import FakeCompose, make_instance
from wpstack.composefile import read_primary_port
from wpstack.readiness import GateStage, StageTimeout
from wpstack.wordpress import installer


class Harness:
    """Replaces the container runtime, gate and HTTP check of the installer."""

    def __init__(self, monkeypatch, bound=(), gate_error=None, http_ok=True, handler=None):
        self.composes = []
        self.gates = 0

        def make_compose(directory):
            compose = FakeCompose(directory, handler=handler)
            self.composes.append(compose)
            return compose

        harness = self

        class FakeGate:
            def __init__(self, compose, timings=None, sleep=None):
                self.compose = compose

            def run(self):
                harness.gates += 1
                if gate_error is not None:
                    raise gate_error

        monkeypatch.setattr(installer, "Compose", make_compose)
        monkeypatch.setattr(installer, "ReadinessGate", FakeGate)
        monkeypatch.setattr(installer, "check_url", lambda *a, **kw: http_ok)
        monkeypatch.setattr("wpstack.ports.listening_ports", lambda: set(bound))
        monkeypatch.setattr(installer, "listening_ports", lambda: set(bound))

    @property
    def compose(self):
        return self.composes[-1]


def test_create_allocates_and_persists(tmp_path, monkeypatch):
    h = Harness(monkeypatch, bound={8080, 8081})
    make_instance(tmp_path, "other", 8082)
    assert installer.create_site("demo", root=tmp_path, sleep=lambda s: None) is True
    directory = tmp_path / "wp-test-demo"
    assert read_primary_port(directory / "docker-compose.yml") == 8083
    assert (directory / "Dockerfile").is_file()
    assert (directory / "wp-installer.sh").is_file()
    assert (directory / "wp-content").is_dir()
    info = (directory / "site-info.txt").read_text()
    assert "Site URL: http://localhost:8083" in info
    assert "Access URL: http://localhost:8183" in info
    assert ("up", ()) in h.compose.calls
    assert h.gates == 1
    assert not any(c[0] == "down" for c in h.compose.calls)


def test_create_allocates_from_preferred_start(tmp_path, monkeypatch):
    Harness(monkeypatch, bound={8100})
    assert installer.create_site("demo", root=tmp_path, start_port="8100") is True
    assert read_primary_port(tmp_path / "wp-test-demo" / "docker-compose.yml") == 8101


def test_invalid_start_port_is_rejected(tmp_path, monkeypatch):
    Harness(monkeypatch)
    assert installer.create_site("demo", root=tmp_path, start_port="abc") is False
    assert list(tmp_path.iterdir()) == []


@pytest.mark.parametrize("start", ["1024", "8201"])
def test_start_port_outside_allocation_range_is_rejected(tmp_path, monkeypatch, capsys, start):
    h = Harness(monkeypatch)
    assert installer.create_site("demo", root=tmp_path, start_port=start) is False
    assert h.composes == []
    assert "Start port must be between 8080 and 8200" in capsys.readouterr().out


def test_admin_port_bound_on_host_fails_before_directory(tmp_path, monkeypatch, capsys):
    h = Harness(monkeypatch, bound={8180})
    assert installer.create_site("demo", root=tmp_path) is False
    assert not (tmp_path / "wp-test-demo").exists()
    assert h.compose.calls == []
    assert "phpMyAdmin port 8180 is already in use" in capsys.readouterr().out


def test_admin_port_declared_by_sibling(tmp_path, monkeypatch, capsys):
    Harness(monkeypatch)
    make_instance(tmp_path, "other", 9100)
    assert installer.create_site("demo", port="9000", root=tmp_path) is False
    assert not (tmp_path / "wp-test-demo").exists()
    assert "phpMyAdmin port 9100 is already declared by wp-test-other" in capsys.readouterr().out


def test_create_sanitizes_name(tmp_path, monkeypatch):
    Harness(monkeypatch)
    assert installer.create_site("My Client!!", root=tmp_path) is True
    assert (tmp_path / "wp-test-My-Client").is_dir()


def test_create_defaults_to_timestamp_name(tmp_path, monkeypatch):
    Harness(monkeypatch)
    monkeypatch.setattr(installer, "default_site_name", lambda: "20260101-120000")
    assert installer.create_site(root=tmp_path) is True
    assert (tmp_path / "wp-test-20260101-120000").is_dir()


def test_privileged_port_fails_before_anything_happens(tmp_path, monkeypatch, capsys):
    h = Harness(monkeypatch)
    assert installer.create_site("demo", port="80", root=tmp_path) is False
    assert h.composes == []
    assert not (tmp_path / "wp-test-demo").exists()
    assert "FAIL: Port must be a number between 1024 and 65535" in capsys.readouterr().out


def test_explicit_port_bound_on_host(tmp_path, monkeypatch):
    h = Harness(monkeypatch, bound={9000})
    assert installer.create_site("demo", port=9000, root=tmp_path) is False
    assert not (tmp_path / "wp-test-demo").exists()
    assert h.compose.calls == []


def test_explicit_port_declared_by_sibling(tmp_path, monkeypatch, capsys):
    Harness(monkeypatch)
    make_instance(tmp_path, "other", 9000)
    assert installer.create_site("demo", port="9000", root=tmp_path) is False
    assert not (tmp_path / "wp-test-demo").exists()
    assert "wp-test-other" in capsys.readouterr().out


def test_explicit_port_used_as_given(tmp_path, monkeypatch):
    Harness(monkeypatch)
    assert installer.create_site("demo", port="9001", root=tmp_path) is True
    assert read_primary_port(tmp_path / "wp-test-demo" / "docker-compose.yml") == 9001


def test_existing_directory_refused(tmp_path, monkeypatch):
    h = Harness(monkeypatch)
    existing = tmp_path / "wp-test-demo"
    existing.mkdir()
    assert installer.create_site("demo", root=tmp_path) is False
    assert existing.is_dir()
    assert h.composes == []


def test_no_port_available(tmp_path, monkeypatch):
    Harness(monkeypatch, bound=range(8080, 8201))
    assert installer.create_site("demo", root=tmp_path) is False
    assert not (tmp_path / "wp-test-demo").exists()


def test_gate_timeout_rolls_back(tmp_path, monkeypatch, capsys):
    h = Harness(monkeypatch, gate_error=StageTimeout(GateStage.DATABASE_REACHABLE, "Database connection timed out!"))
    assert installer.create_site("demo", root=tmp_path) is False
    assert not (tmp_path / "wp-test-demo").exists()
    assert ("down", True) in h.compose.calls
    assert "FAIL: create wp-test-demo: Database connection timed out!" in capsys.readouterr().out


def test_http_check_is_only_a_warning(tmp_path, monkeypatch, capsys):
    Harness(monkeypatch, http_ok=False)
    assert installer.create_site("demo", root=tmp_path) is True
    assert (tmp_path / "wp-test-demo").is_dir()
    assert "WARN: Site may not be fully ready yet" in capsys.readouterr().out


def test_cleanup_flag_runs_forced_cleanup(tmp_path, monkeypatch):
    Harness(monkeypatch)
    seen = []
    monkeypatch.setattr(installer, "cleanup_sites", lambda root, force=False: seen.append((root, force)))
    assert installer.create_site("demo", cleanup=True, root=tmp_path) is True
    assert seen == [(tmp_path, True)]


# -------------------------------
# import
# -------------------------------
@pytest.fixture
def sources(tmp_path):
    src = tmp_path / "src"
    (src / "wp-content" / "themes" / "client").mkdir(parents=True)
    (src / "wp-content" / "themes" / "client" / "style.css").write_text("/* client */")
    dump = src / "site.sql"
    dump.write_text("CREATE TABLE wp_options (option_id int);\n")
    return dump, src / "wp-content"


def test_import_stages_content_and_imports_db(tmp_path, monkeypatch, sources):
    dump, content = sources
    root = tmp_path / "sites"
    h = Harness(monkeypatch)
    assert installer.import_site("client", dump, content, root=root) is True
    directory = root / "wp-test-client"
    assert (directory / "wp-content" / "themes" / "client" / "style.css").is_file()
    db_execs = [c[2] for c in h.compose.calls if c[0] == "exec" and c[1] == "db"]
    assert any("DROP DATABASE IF EXISTS" in " ".join(cmd) for cmd in db_execs)
    assert ["mysql", "-u", "wordpress", "-pwordpress", "wordpress"] in db_execs
    info = (directory / "site-info.txt").read_text()
    assert "Source DB: site.sql" in info
    assert "Source WP-Content: wp-content" in info


def test_import_failed_db_import_rolls_back(tmp_path, monkeypatch, sources):
    dump, content = sources

    def handler(service, command):
        if service == "db" and "-e" not in command:
            return 1, "", "ERROR 1064 (42000): syntax error"
        return 0, "", ""

    root = tmp_path / "sites"
    h = Harness(monkeypatch, handler=handler)
    assert installer.import_site("client", dump, content, root=root) is False
    assert not (root / "wp-test-client").exists()
    assert ("down", True) in h.compose.calls


def test_import_missing_dump(tmp_path, monkeypatch, sources):
    _, content = sources
    h = Harness(monkeypatch)
    assert installer.import_site("client", tmp_path / "missing.sql", content, root=tmp_path) is False
    assert h.composes == []


def test_import_rejects_unsupported_content(tmp_path, monkeypatch, sources):
    dump, _ = sources
    bogus = tmp_path / "content.zip"
    bogus.write_text("zip")
    h = Harness(monkeypatch)
    assert installer.import_site("client", dump, bogus, root=tmp_path) is False
    assert h.composes == []


def test_bundled_files_come_from_the_package(tmp_path):
    data = resources.files("wpstack") / "data"
    assert (data / "Dockerfile").is_file()
    assert (data / "wp-installer.sh").is_file()
    installer._copy_bundled_files(tmp_path)
    assert (tmp_path / "Dockerfile").read_text().startswith("FROM wordpress")
    assert (tmp_path / "wp-installer.sh").read_text().startswith("#!")


def test_bundled_files_are_declared_as_package_data():
    pyproject = Path(__file__).resolve().parent.parent / "pyproject.toml"
    assert 'wpstack = ["data/*"]' in pyproject.read_text()
