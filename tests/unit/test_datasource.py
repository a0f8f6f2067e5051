"""Unit tests for JDBC URL handling and container environments."""

import pytest

from deployer.src.datasource import (
    JdbcUrl,
    app_environment,
    check_datasource,
    database_environment,
    datasource_url,
    default_params,
)
from deployer.src.errors import InvalidJdbcUrlError


class TestJdbcUrl:
    """Test building and parsing MySQL JDBC URLs"""

    def test_render(self):
        """Test rendering keeps parameter order"""
        url = JdbcUrl.build("mysql", "BankDB", params={"allowPublicKeyRetrieval": "true", "useSSL": "false"})

        assert str(url) == "jdbc:mysql://mysql:3306/BankDB?allowPublicKeyRetrieval=true&useSSL=false"

    def test_parse(self):
        """Test every part is recovered"""
        url = JdbcUrl.parse("jdbc:mysql://db.internal:3307/BankDB?useSSL=false&serverTimezone=UTC")

        assert url.host == "db.internal"
        assert url.port == 3307
        assert url.database == "BankDB"
        assert url.params == {"useSSL": "false", "serverTimezone": "UTC"}

    def test_parse_default_port(self):
        """Test the port defaults to 3306"""
        url = JdbcUrl.parse("jdbc:mysql://mysql/BankDB")

        assert url.port == 3306
        assert url.params == {}

    def test_parse_then_render(self):
        """Test a canonical URL survives parsing"""
        text = "jdbc:mysql://mysql:3306/BankDB?allowPublicKeyRetrieval=true&useSSL=false"

        assert str(JdbcUrl.parse(text)) == text

    @pytest.mark.parametrize("text", [
        "mysql://mysql:3306/BankDB",
        "jdbc:postgresql://db:5432/BankDB",
        "jdbc:mysql://mysql:3306/",
        "jdbc:mysql://:3306/BankDB",
        "jdbc:mysql://mysql:99999/BankDB",
    ])
    def test_parse_rejects(self, text):
        """Test malformed URLs raise"""
        with pytest.raises(InvalidJdbcUrlError):
            JdbcUrl.parse(text)

    def test_loopback(self):
        """Test loopback hosts are detected"""
        assert JdbcUrl.parse("jdbc:mysql://localhost:3306/BankDB").is_loopback
        assert JdbcUrl.parse("jdbc:mysql://127.0.0.1/BankDB").is_loopback
        assert not JdbcUrl.parse("jdbc:mysql://mysql/BankDB").is_loopback

    def test_with_params(self):
        """Test parameters merge without mutating the original"""
        url = JdbcUrl.parse("jdbc:mysql://mysql/BankDB?useSSL=true")
        updated = url.with_params(useSSL="false", allowPublicKeyRetrieval="true")

        assert url.params == {"useSSL": "true"}
        assert updated.params == {"useSSL": "false", "allowPublicKeyRetrieval": "true"}


class TestEnvironments:
    """Test the variables passed to each container"""

    def test_default_params(self):
        """Test MySQL 8 defaults"""
        assert default_params() == {"allowPublicKeyRetrieval": "true", "useSSL": "false"}
        assert default_params(allow_public_key_retrieval=False, use_ssl=True) == {"useSSL": "true"}

    def test_datasource_url_uses_container_name(self, config):
        """Test the host is the MySQL container name"""
        url = datasource_url(config)

        assert url.host == config.mysql.container_name
        assert url.database == "BankDB"
        assert url.params["allowPublicKeyRetrieval"] == "true"

    def test_app_environment(self, config):
        """Test Spring datasource variables"""
        env = app_environment(config)

        assert set(env) == {
            "SPRING_DATASOURCE_URL",
            "SPRING_DATASOURCE_USERNAME",
            "SPRING_DATASOURCE_PASSWORD",
        }
        assert env["SPRING_DATASOURCE_URL"].startswith("jdbc:mysql://mysql:3306/BankDB?")
        assert env["SPRING_DATASOURCE_USERNAME"] == "root"
        assert env["SPRING_DATASOURCE_PASSWORD"] == config.mysql.root_password

    def test_app_password_override(self, config):
        """Test an explicit app password wins over the root password"""
        config.app.password = "app-secret"

        assert app_environment(config)["SPRING_DATASOURCE_PASSWORD"] == "app-secret"

    def test_database_environment(self, config):
        """Test MySQL initialization variables"""
        assert database_environment(config) == {
            "MYSQL_DATABASE": "BankDB",
            "MYSQL_ROOT_PASSWORD": config.mysql.root_password,
        }


class TestCheckDatasource:
    """Test datasource validation"""

    def test_stack_url_is_clean(self, config):
        """Test the generated URL has no problems"""
        assert check_datasource(datasource_url(config), config) == []

    def test_localhost_flagged(self, config):
        """Test localhost points at the app container itself"""
        url = JdbcUrl.parse("jdbc:mysql://localhost:3306/BankDB?allowPublicKeyRetrieval=true&useSSL=false")

        problems = check_datasource(url, config)
        assert len(problems) == 1
        assert "localhost" in problems[0]

    def test_wrong_host_and_database(self, config):
        """Test host and schema mismatches are both reported"""
        url = JdbcUrl.parse("jdbc:mysql://mysql-db:3306/bankdb?allowPublicKeyRetrieval=true&useSSL=false")

        problems = check_datasource(url, config)
        assert len(problems) == 2

    def test_public_key_retrieval_required(self, config):
        """Test useSSL=false without public key retrieval is flagged"""
        url = JdbcUrl.parse("jdbc:mysql://mysql:3306/BankDB?useSSL=false")

        problems = check_datasource(url, config)
        assert problems == [
            "caching_sha2_password over a non-TLS connection needs allowPublicKeyRetrieval=true"
        ]
