"""Unit tests for the failure mode catalogue."""

import pytest

from deployer.src.diagnostics import CATALOG, diagnose, get_failure_mode

SAMPLES = {
    "image-not-found": (
        "Unable to find image 'bankapp:latest' locally\n"
        "docker: Error response from daemon: pull access denied for bankapp, "
        "repository does not exist or may require 'docker login'."
    ),
    "missing-pom": (
        "[ERROR] The goal you specified requires a project to execute but there is no POM "
        "in this directory (/app). Please verify you invoked Maven from the correct directory."
    ),
    "unknown-lifecycle-phase": (
        '[ERROR] Unknown lifecycle phase "skipTests". You must specify a valid lifecycle phase'
    ),
    "base-image-tag-not-found": (
        "ERROR: failed to solve: openjdk:17-alpine: docker.io/library/openjdk:17-alpine: not found\n"
        "manifest for openjdk:17-alpine not found: manifest unknown: manifest unknown"
    ),
    "unknown-host": (
        "com.mysql.cj.jdbc.exceptions.CommunicationsException: Communications link failure\n"
        "Caused by: java.net.UnknownHostException: mysql: Name or service not known"
    ),
    "shell-metacharacter": "[1] 4242\nbash: useSSL=false: command not found",
    "dangling-images": (
        "REPOSITORY   TAG       IMAGE ID       CREATED         SIZE\n"
        "bankapp      latest    3f1e2d3c4b5a   2 minutes ago   480MB\n"
        "<none>       <none>    9a8b7c6d5e4f   1 hour ago      480MB"
    ),
    "public-key-retrieval": (
        "java.sql.SQLNonTransientConnectionException: Public Key Retrieval is not allowed"
    ),
    "container-name-conflict": (
        'docker: Error response from daemon: Conflict. The container name "/mysql" is already '
        'in use by container "abc123". You have to remove (or rename) that container.'
    ),
    "port-already-allocated": (
        "Error response from daemon: driver failed programming external connectivity: "
        "Bind for 0.0.0.0:8080 failed: port is already allocated"
    ),
    "access-denied": "java.sql.SQLException: Access denied for user 'root'@'172.18.0.3' (using password: YES)",
    "unknown-database": "java.sql.SQLSyntaxErrorException: Unknown database 'bankdb'",
}


class TestCatalog:
    """Test catalogue integrity"""

    def test_ids_unique(self):
        """Test every failure mode id is unique"""
        ids = [mode.id for mode in CATALOG]
        assert len(ids) == len(set(ids))

    def test_every_mode_has_sample(self):
        """Test the samples cover the whole catalogue"""
        assert {mode.id for mode in CATALOG} == set(SAMPLES)

    def test_lookup(self):
        """Test lookup by id"""
        assert get_failure_mode("public-key-retrieval").title == "MySQL 8 public key retrieval refused"
        with pytest.raises(KeyError):
            get_failure_mode("nope")


class TestDiagnose:
    """Test matching output to failure modes"""

    @pytest.mark.parametrize("failure_id", sorted(SAMPLES))
    def test_sample_matches(self, failure_id):
        """Test each sample is recognised"""
        ids = [d.failure_mode.id for d in diagnose(SAMPLES[failure_id])]

        assert failure_id in ids

    def test_each_mode_reported_once(self):
        """Test a mode matching several lines appears once"""
        text = SAMPLES["unknown-host"] + "\n" + SAMPLES["unknown-host"]

        ids = [d.failure_mode.id for d in diagnose(text)]
        assert ids.count("unknown-host") == 1

    def test_catalogue_order(self):
        """Test results follow catalogue order"""
        text = SAMPLES["public-key-retrieval"] + "\n" + SAMPLES["image-not-found"]

        ids = [d.failure_mode.id for d in diagnose(text)]
        assert ids == ["image-not-found", "public-key-retrieval"]

    def test_excerpt(self):
        """Test the matched excerpt is reported"""
        diagnosis = diagnose(SAMPLES["unknown-database"])[0]

        assert diagnosis.excerpt == "Unknown database 'bankdb'"
        assert "MYSQL_DATABASE" in diagnosis.format()

    def test_nothing_matched(self):
        """Test clean output yields nothing"""
        assert diagnose("Started BankappApplication in 4.2 seconds") == []
        assert diagnose("") == []
