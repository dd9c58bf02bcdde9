import yaml

from conftest import COMPOSE_YAML, FakeSession, failed, ok
from sitemigrate.modules.database import dump_database, find_database_service
from sitemigrate.utils.config import DatabaseOptions

SITE = "/var/opt/example.com"


class TestFindDatabaseService:
    def test_list_environment(self):
        assert find_database_service(yaml.safe_load(COMPOSE_YAML)) == ("wp_example_com", "example_db")

    def test_mapping_environment_and_service_name(self):
        compose = {"services": {"wp_blog": {"environment": {"WORDPRESS_DB_NAME": "blog"}}}}
        assert find_database_service(compose) == ("wp_blog", "blog")

    def test_no_matching_service(self):
        assert find_database_service({"services": {"web": {}, "db": {}}}) is None

    def test_not_a_compose_document(self):
        assert find_database_service(None) is None
        assert find_database_service({"services": ["wp_x"]}) is None


class TestDumpDatabase:
    def test_exports_inside_container(self):
        session = FakeSession("old", lambda host, c: ok(COMPOSE_YAML) if c.startswith("cat ") else None)
        assert dump_database(session, "example.com", SITE)
        assert session.commands == [
            "cat /var/opt/example.com/docker-compose.yml",
            "docker exec -e WORDPRESS_DB_NAME=example_db wp_example_com wp db export "
            "/var/www/html/wp-content/mysql.sql --allow-root",
        ]

    def test_missing_descriptor_is_a_warning(self, caplog):
        session = FakeSession("old", lambda host, c: failed(stderr="No such file"))
        assert dump_database(session, "example.com", SITE) is False
        assert len(session.commands) == 1
        assert any(r.levelname == "WARNING" and "example.com" in r.getMessage() for r in caplog.records)

    def test_export_failure_is_a_warning(self, caplog):
        def handler(host, c):
            if c.startswith("cat "):
                return ok(COMPOSE_YAML)
            return failed(stderr="Error establishing a database connection")

        session = FakeSession("old", handler)
        assert dump_database(session, "example.com", SITE) is False
        assert any(r.levelname == "WARNING" for r in caplog.records)

    def test_invalid_yaml(self):
        session = FakeSession("old", lambda host, c: ok("services: [unclosed"))
        assert dump_database(session, "example.com", SITE) is False

    def test_custom_prefix(self):
        compose = "services:\n  app_x:\n    container_name: appx\n"
        session = FakeSession("old", lambda host, c: ok(compose) if c.startswith("cat ") else None)
        assert dump_database(session, "example.com", SITE, DatabaseOptions(service_prefix="app_"))
        assert session.commands[-1].startswith("docker exec appx ")

    def test_dry_run_runs_nothing(self):
        session = FakeSession("old")
        assert dump_database(session, "example.com", SITE, dry_run=True)
        assert session.commands == []
