import yaml

from wpstack.composefile import (
    build_compose,
    read_admin_port,
    read_primary_port,
    service_port,
    write_compose,
)


def test_build_compose_declares_ports_and_services():
    doc = build_compose("wp-test-demo", 8085, 8185)
    services = doc["services"]
    assert list(services) == ["db", "wordpress", "phpmyadmin"]
    assert services["wordpress"]["ports"] == ["8085:80"]
    assert services["phpmyadmin"]["ports"] == ["8185:80"]
    assert services["wordpress"]["depends_on"] == {"db": {"condition": "service_healthy"}}
    assert services["wordpress"]["environment"]["WORDPRESS_SITE_URL"] == "http://localhost:8085"
    assert "healthcheck" in services["db"]
    assert set(doc["volumes"]) == {"db_data", "wp_data"}


def test_written_file_is_plain_yaml_and_reads_back(tmp_path):
    path = write_compose(tmp_path, build_compose("wp-test-demo", 8090, 8190))
    data = yaml.safe_load(path.read_text())
    assert data["services"]["wordpress"]["ports"] == ["8090:80"]
    assert read_primary_port(path) == 8090
    assert read_admin_port(path) == 8190


def test_dollar_signs_are_escaped_for_compose(tmp_path):
    path = write_compose(tmp_path, build_compose("wp-test-demo", 8090, 8190))
    assert "$$!" in path.read_text()


def test_long_syntax_and_host_ip_ports():
    doc = {
        "services": {
            "wordpress": {"ports": [{"target": 80, "published": 8099}]},
            "phpmyadmin": {"ports": ["127.0.0.1:8199:80/tcp"]},
        }
    }
    assert service_port(doc, "wordpress") == 8099
    assert service_port(doc, "phpmyadmin") == 8199


def test_renamed_app_service_still_found(tmp_path):
    path = tmp_path / "docker-compose.yml"
    path.write_text(
        "services:\n"
        "  phpmyadmin:\n    ports: ['8180:80']\n"
        "  web:\n    ports: ['2222:22', '8080:80']\n"
    )
    assert read_primary_port(path) == 8080


def test_missing_or_broken_file(tmp_path):
    assert read_primary_port(tmp_path / "nope.yml") is None
    broken = tmp_path / "docker-compose.yml"
    broken.write_text("services: [unclosed\n")
    assert read_primary_port(broken) is None
    broken.write_text("- just\n- a list\n")
    assert read_primary_port(broken) is None
