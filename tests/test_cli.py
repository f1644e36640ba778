"""Tests for codebrain CLI

Uses Click's test runner for command testing.
"""
import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from codebrain.cli import cli, get_root

CONVENTION_DATA = json.dumps({"name": "snake_case", "description": "Functions use snake_case names"})


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def project(tmp_path, runner):
    """An initialized project root."""
    result = runner.invoke(cli, ["--root", str(tmp_path), "init"])
    assert result.exit_code == 0, result.output
    return tmp_path


def invoke(runner, project, *args):
    return runner.invoke(cli, ["--root", str(project), *args])


class TestCLIInit:
    """Tests for 'codebrain init' command."""

    def test_init_creates_directory_structure(self, runner, tmp_path):
        """init creates the brain directory and config."""
        result = runner.invoke(cli, ["--root", str(tmp_path), "init"])

        assert result.exit_code == 0
        assert "Brain initialized" in result.output
        assert (tmp_path / ".codebrain" / "meta.json").exists()
        assert (tmp_path / ".codebrain" / "nodes").is_dir()
        content = (tmp_path / ".codebrain" / "config.yaml").read_text()
        assert "commit_threshold:" in content
        assert "prune:" in content

    def test_init_keeps_existing_config(self, runner, tmp_path):
        """init does not overwrite an existing config.yaml."""
        config = tmp_path / ".codebrain" / "config.yaml"
        config.parent.mkdir(parents=True)
        config.write_text("max_nodes: 7\n")

        result = runner.invoke(cli, ["--root", str(tmp_path), "init"])

        assert result.exit_code == 0
        assert config.read_text() == "max_nodes: 7\n"

    def test_init_uses_env_root(self, runner, tmp_path):
        """CODEBRAIN_ROOT selects the project when --root is absent."""
        with patch.dict(os.environ, {"CODEBRAIN_ROOT": str(tmp_path)}):
            result = runner.invoke(cli, ["init"])
            assert get_root() == tmp_path

        assert result.exit_code == 0
        assert (tmp_path / ".codebrain").is_dir()

    def test_disabled_brain(self, runner, tmp_path):
        """A disabled brain refuses to initialize."""
        config = tmp_path / ".codebrain" / "config.yaml"
        config.parent.mkdir(parents=True)
        config.write_text("enabled: false\n")

        result = runner.invoke(cli, ["--root", str(tmp_path), "init"])

        assert result.exit_code == 1
        assert "disabled" in result.output


class TestCLIGlobalOptions:
    """Tests for root-level options."""

    def test_version(self, runner):
        """--version prints the package version."""
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "codebrain" in result.output

    def test_verbose_and_quiet_conflict(self, runner, tmp_path):
        """-v and -q are mutually exclusive."""
        result = runner.invoke(cli, ["--root", str(tmp_path), "-v", "-q", "init"])
        assert result.exit_code != 0
        assert "mutually exclusive" in result.output

    def test_requires_init(self, runner, tmp_path):
        """Commands fail cleanly before init."""
        result = runner.invoke(cli, ["--root", str(tmp_path), "stats"])
        assert result.exit_code == 1
        assert "codebrain init" in result.output


class TestCLILearnQuery:
    """Tests for learn, query and context."""

    def test_learn(self, runner, project):
        """learn stores a node and prints its ID."""
        result = invoke(runner, project, "learn", "convention_detected", "--data", CONVENTION_DATA)

        assert result.exit_code == 0
        assert "Learned" in result.output
        assert "n_con_" in result.output

    def test_learn_nothing(self, runner, project):
        """Events no learner handles are reported, not errors."""
        result = invoke(runner, project, "learn", "keystroke")
        assert result.exit_code == 0
        assert "Nothing learned" in result.output

    def test_learn_invalid_json(self, runner, project):
        """--data must be a JSON object."""
        assert invoke(runner, project, "learn", "x", "--data", "{bad").exit_code == 1
        assert invoke(runner, project, "learn", "x", "--data", "[1]").exit_code == 1

    def test_query(self, runner, project):
        """query lists matching learnings."""
        invoke(runner, project, "learn", "convention_detected", "--data", CONVENTION_DATA)

        result = invoke(runner, project, "query", "snake")

        assert result.exit_code == 0
        assert "Convention: snake_case" in result.output

    def test_query_json(self, runner, project):
        """--json-output emits the QueryResult dict."""
        invoke(runner, project, "learn", "convention_detected", "--data", CONVENTION_DATA)

        result = invoke(runner, project, "query", "--type", "convention", "--json-output")

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["nodes"][0]["content"]["summary"] == "Convention: snake_case"

    def test_context(self, runner, project):
        """context prints the compact block by default."""
        invoke(runner, project, "learn", "convention_detected", "--data", CONVENTION_DATA)

        result = invoke(runner, project, "context", "snake")

        assert result.exit_code == 0
        assert "---BRAIN_CONTEXT---" in result.output
        assert "Convention: snake_case" in result.output

    def test_context_empty(self, runner, project):
        """context reports when nothing is relevant."""
        result = invoke(runner, project, "context", "anything")
        assert result.exit_code == 0
        assert "No relevant learnings found." in result.output

    def test_prune(self, runner, project):
        """prune reports the number of removed nodes."""
        result = invoke(runner, project, "prune", "--threshold", "0.1")
        assert result.exit_code == 0
        assert "Pruned 0 nodes" in result.output


    def test_prune_disabled(self, runner, project):
        """prune removes nothing and says so when pruning is disabled."""
        (project / ".codebrain" / "config.yaml").write_text("prune:\n  enabled: false\n")
        result = invoke(runner, project, "prune", "--threshold", "1.0", "--unused-days", "0")
        assert result.exit_code == 0
        assert "Pruning is disabled in config" in result.output
        assert "Pruned 0 nodes" in result.output


class TestCLIHistory:
    """Tests for commit, history, rollback and stats."""

    def test_learn_commits_on_exit(self, runner, project):
        """Each command commits pending changes when it closes the brain."""
        invoke(runner, project, "learn", "convention_detected", "--data", CONVENTION_DATA)

        result = invoke(runner, project, "history", "--json-output")

        deltas = json.loads(result.output)
        assert len(deltas) == 1
        assert deltas[0]["metadata"]["message"] == "Session end: 1 changes"

    def test_commit_nothing(self, runner, project):
        """commit with no pending changes is a no-op."""
        result = invoke(runner, project, "commit", "empty")
        assert result.exit_code == 0
        assert "Nothing to commit" in result.output

    def test_rollback(self, runner, project):
        """rollback moves head to an earlier delta."""
        invoke(runner, project, "learn", "convention_detected", "--data", CONVENTION_DATA)
        invoke(runner, project, "learn", "code_rejected", "--data", '{"reason": "uses eval"}')
        deltas = json.loads(invoke(runner, project, "history", "--json-output").output)
        oldest = deltas[-1]["hash"]

        result = invoke(runner, project, "rollback", oldest)

        assert result.exit_code == 0
        assert f"Head is now {oldest}" in result.output
        stats = json.loads(invoke(runner, project, "stats", "--json-output").output)
        assert stats["head"] == oldest
        assert stats["delta_count"] == 2

    def test_rollback_unknown(self, runner, project):
        """Unknown hashes exit with an error."""
        result = invoke(runner, project, "rollback", "deadbeef")
        assert result.exit_code == 1
        assert "Unknown delta" in result.output

    def test_history_text(self, runner, project):
        """history prints hash and message per delta."""
        invoke(runner, project, "learn", "convention_detected", "--data", CONVENTION_DATA)
        result = invoke(runner, project, "history")
        assert result.exit_code == 0
        assert "Session end: 1 changes" in result.output
        assert "+1 ~0 -0" in result.output

    def test_read_only_commands_leave_data_alone(self, runner, project):
        """stats never prunes, even nodes that are weak and long unused."""
        invoke(runner, project, "learn", "convention_detected", "--data", CONVENTION_DATA)
        for partition in (project / ".codebrain" / "nodes").glob("*.json"):
            nodes = json.loads(partition.read_text())
            for node in nodes.values():
                node["scores"]["weight"] = 0.01
                node["timestamps"] = {"created": 0, "updated": 0, "last_used": 0}
            partition.write_text(json.dumps(nodes))
        before = json.loads(invoke(runner, project, "stats", "--json-output").output)

        invoke(runner, project, "stats")
        after = json.loads(invoke(runner, project, "stats", "--json-output").output)

        assert before["node_count"] == after["node_count"] == 1
        assert before["delta_count"] == after["delta_count"] == 1
        assert "Convention: snake_case" in invoke(runner, project, "query", "snake").output

    def test_status(self, runner, project):
        """status shows head and a clean tree after a command commits."""
        invoke(runner, project, "learn", "convention_detected", "--data", CONVENTION_DATA)
        head = json.loads(invoke(runner, project, "history", "--json-output").output)[0]["hash"]

        result = invoke(runner, project, "status")
        assert result.exit_code == 0
        assert f"Head: {head}" in result.output
        assert "Nothing to commit" in result.output

        info = json.loads(invoke(runner, project, "status", "--json-output").output)
        assert info["head"] == head
        assert info["clean"] is True

    def test_reset(self, runner, project):
        """reset --yes empties the brain."""
        invoke(runner, project, "learn", "convention_detected", "--data", CONVENTION_DATA)

        result = invoke(runner, project, "reset", "--yes")

        assert result.exit_code == 0
        assert "Brain reset" in result.output
        stats = json.loads(invoke(runner, project, "stats", "--json-output").output)
        assert stats["node_count"] == 0
        assert stats["head"] is None

    def test_reset_declined(self, runner, project):
        """reset asks first and keeps everything when declined."""
        invoke(runner, project, "learn", "convention_detected", "--data", CONVENTION_DATA)

        result = runner.invoke(cli, ["--root", str(project), "reset"], input="n\n")

        assert "Aborted" in result.output
        stats = json.loads(invoke(runner, project, "stats", "--json-output").output)
        assert stats["node_count"] == 1

    def test_stats(self, runner, project):
        """stats prints the counters."""
        result = invoke(runner, project, "stats")
        assert result.exit_code == 0
        assert "Brain Statistics" in result.output
        assert "Nodes:" in result.output


class TestCLITransfer:
    """Tests for export and import."""

    def test_export_import(self, runner, project, tmp_path_factory):
        """A snapshot exported from one project imports into another."""
        invoke(runner, project, "learn", "convention_detected", "--data", CONVENTION_DATA)
        snapshot = project / "snapshot.json"

        result = invoke(runner, project, "export", str(snapshot), "--history")
        assert result.exit_code == 0
        assert "Exported 1 nodes" in result.output

        other = tmp_path_factory.mktemp("other")
        assert invoke(runner, other, "init").exit_code == 0
        result = invoke(runner, other, "import", str(snapshot))

        assert result.exit_code == 0
        assert "Imported 1 nodes, 0 edges" in result.output
        assert "Convention: snake_case" in invoke(runner, other, "query", "snake").output

    def test_import_rejected(self, runner, project):
        """Malformed snapshots exit with an error."""
        bad = project / "bad.json"
        bad.write_text(json.dumps({"schema": 42}))

        result = invoke(runner, project, "import", str(bad))

        assert result.exit_code == 1
        assert "rejected" in result.output

    def test_import_unparseable(self, runner, project):
        """Unparseable files exit with an error."""
        bad = project / "bad.json"
        bad.write_text("{oops")
        result = invoke(runner, project, "import", str(bad))
        assert result.exit_code == 1
