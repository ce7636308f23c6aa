"""
Integration tests for the Mandate CLI.

Tests cover:
- File-based evaluation and extraction (no database)
- Publishing specs and snapshots, submitting decisions
- Listing decisions, timelines and outcomes per boundary
- Binding checks and error reporting
"""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from mandate import __version__
from mandate.cli import app


runner = CliRunner()


@pytest.fixture
def files(temp_dir: Path, spec_yaml: str, snapshot_yaml: str, decision_yaml: str) -> dict[str, Path]:
    """Spec, snapshot and decision written to disk."""
    paths = {
        "spec": temp_dir / "spec.yaml",
        "snapshot": temp_dir / "snapshot.yaml",
        "decision": temp_dir / "decision.yaml",
    }
    paths["spec"].write_text(spec_yaml)
    paths["snapshot"].write_text(snapshot_yaml)
    paths["decision"].write_text(decision_yaml)
    return paths


@pytest.fixture
def published(files: dict[str, Path], db_path: Path) -> dict[str, Path]:
    """A database with the spec and snapshot published."""
    assert runner.invoke(app, ["spec-add", str(files["spec"]), "--db", str(db_path)]).exit_code == 0
    assert runner.invoke(app, ["snapshot-add", str(files["snapshot"]), "--db", str(db_path)]).exit_code == 0
    return files


def boundary(db_path: Path) -> list[str]:
    return ["--org", "acme", "--domain", "finance", "--db", str(db_path)]


# =============================================================================
# Global Options
# =============================================================================


class TestVersion:
    def test_version(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout


# =============================================================================
# File-Based Commands
# =============================================================================


class TestEvaluateCommand:
    """Tests for `mandate evaluate`."""

    def test_signal_from_text_pauses(self, files: dict[str, Path]) -> None:
        result = runner.invoke(app, [
            "evaluate", str(files["decision"]),
            "--spec", str(files["spec"]),
            "--snapshot", str(files["snapshot"]),
            "--text", "amount: 2500",
            "--json",
        ])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["decision_id"] == "dec-100"
        assert data["verdict"] == "PAUSE"
        assert data["matched_policy_ids"] == ["large-expense"]
        assert data["spec"] == "expense@1.0.0"
        assert data["context"] == {"amount": 2500}

    def test_small_amount_allowed(self, files: dict[str, Path]) -> None:
        result = runner.invoke(app, [
            "evaluate", str(files["decision"]),
            "-s", str(files["spec"]),
            "-p", str(files["snapshot"]),
            "-t", "Lunch for $40",
        ])
        assert result.exit_code == 0
        assert "ALLOW" in result.stdout
        assert "No policies matched" in result.stdout

    def test_missing_signal_fails(self, files: dict[str, Path]) -> None:
        result = runner.invoke(app, [
            "evaluate", str(files["decision"]),
            "--spec", str(files["spec"]),
            "--snapshot", str(files["snapshot"]),
            "--json",
        ])
        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["error"] is True
        assert data["error_type"] == "MissingRequiredSignalError"
        assert data["context"]["signal"] == "amount"

    def test_invalid_decision_file(self, files: dict[str, Path], temp_dir: Path) -> None:
        bad = temp_dir / "bad.yaml"
        bad.write_text("decision_id: x\n")
        result = runner.invoke(app, [
            "evaluate", str(bad),
            "--spec", str(files["spec"]),
            "--snapshot", str(files["snapshot"]),
            "--json",
        ])
        assert result.exit_code == 1
        assert json.loads(result.stdout)["error_type"] == "ValidationError"

    def test_nonexistent_file(self, files: dict[str, Path], temp_dir: Path) -> None:
        result = runner.invoke(app, [
            "evaluate", str(temp_dir / "missing.yaml"),
            "--spec", str(files["spec"]),
            "--snapshot", str(files["snapshot"]),
        ])
        assert result.exit_code != 0


class TestExtractCommand:
    """Tests for `mandate extract`."""

    def test_extracts_declared_signals(self, files: dict[str, Path]) -> None:
        result = runner.invoke(app, [
            "extract", "--spec", str(files["spec"]),
            "--text", "amount: 250, priority high",
            "--json",
        ])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["signals"] == {"amount": 250, "priority": "high"}
        assert data["missing"] == []

    def test_reports_missing(self, files: dict[str, Path]) -> None:
        result = runner.invoke(app, [
            "extract", "--spec", str(files["spec"]),
            "--text", "Approve $300",
            "--decision", str(files["decision"]),
            "--json",
        ])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["signals"] == {"amount": 300}
        assert data["missing"] == ["priority"]


# =============================================================================
# Store Commands
# =============================================================================


class TestPublishCommands:
    """Tests for `mandate spec-add` and `mandate snapshot-add`."""

    def test_spec_add(self, files: dict[str, Path], db_path: Path) -> None:
        result = runner.invoke(app, ["spec-add", str(files["spec"]), "--db", str(db_path), "--json"])
        assert result.exit_code == 0
        assert json.loads(result.stdout) == {
            "spec": "expense@1.0.0",
            "status": "active",
            "boundary": "acme/finance",
        }

    def test_spec_add_twice_conflicts(self, files: dict[str, Path], db_path: Path) -> None:
        runner.invoke(app, ["spec-add", str(files["spec"]), "--db", str(db_path)])
        result = runner.invoke(app, ["spec-add", str(files["spec"]), "--db", str(db_path), "--json"])
        assert result.exit_code == 1
        assert json.loads(result.stdout)["error_type"] == "SpecConflictError"

    def test_snapshot_versions_increase(self, files: dict[str, Path], db_path: Path) -> None:
        first = runner.invoke(app, ["snapshot-add", str(files["snapshot"]), "--db", str(db_path), "--json"])
        files["snapshot"].write_text(files["snapshot"].read_text().replace("snap-1", "snap-2"))
        second = runner.invoke(app, ["snapshot-add", str(files["snapshot"]), "--db", str(db_path), "--json"])

        assert json.loads(first.stdout)["version"] == 1
        data = json.loads(second.stdout)
        assert data["snapshot_id"] == "snap-2"
        assert data["version"] == 2
        assert data["policies"] == 1


class TestSubmitCommand:
    """Tests for `mandate submit`."""

    def test_submit_records_verdict(self, published: dict[str, Path], db_path: Path) -> None:
        result = runner.invoke(app, [
            "submit", str(published["decision"]),
            "--text", "amount: 2500",
            "--db", str(db_path),
            "--json",
        ])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["verdict"] == "PAUSE"
        assert data["matched_policy_ids"] == ["large-expense"]
        assert data["spec"] == "expense@1.0.0"
        assert data["snapshot_id"] == "snap-1"
        assert data["verdict_id"]

    def test_submit_without_spec(self, files: dict[str, Path], db_path: Path) -> None:
        result = runner.invoke(app, [
            "submit", str(files["decision"]),
            "--text", "amount: 5",
            "--db", str(db_path),
            "--json",
        ])
        assert result.exit_code == 1
        assert json.loads(result.stdout)["error_type"] == "SpecNotFoundError"

    def test_unattributed_decision_observed(self, published: dict[str, Path], db_path: Path, temp_dir: Path) -> None:
        orphan = temp_dir / "orphan.yaml"
        orphan.write_text(
            published["decision"].read_text().replace("  domain: finance\n", "")
        )
        result = runner.invoke(app, ["submit", str(orphan), "--db", str(db_path)])
        assert result.exit_code == 0
        assert "OBSERVE" in result.stdout
        assert "Not attributed" in result.stdout


class TestQueryCommands:
    """Tests for `mandate decisions`, `timeline` and `outcome`."""

    @pytest.fixture
    def submitted(self, published: dict[str, Path], db_path: Path) -> None:
        result = runner.invoke(app, [
            "submit", str(published["decision"]), "--text", "amount: 2500", "--db", str(db_path),
        ])
        assert result.exit_code == 0

    def test_decisions_json(self, submitted, db_path: Path) -> None:
        result = runner.invoke(app, ["decisions", *boundary(db_path), "--json"])
        assert result.exit_code == 0
        [row] = json.loads(result.stdout)
        assert row["decision_id"] == "dec-100"
        assert row["verdict"] == "PAUSE"

    def test_decisions_filtered_by_verdict(self, submitted, db_path: Path) -> None:
        result = runner.invoke(app, ["decisions", *boundary(db_path), "--verdict", "BLOCK", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.stdout) == []

    def test_decisions_other_domain_empty(self, submitted, db_path: Path) -> None:
        result = runner.invoke(app, [
            "decisions", "--org", "acme", "--domain", "hr", "--db", str(db_path), "--json",
        ])
        assert result.exit_code == 0
        assert json.loads(result.stdout) == []

    def test_decisions_table(self, submitted, db_path: Path) -> None:
        result = runner.invoke(app, ["decisions", *boundary(db_path)])
        assert result.exit_code == 0
        assert "PAUSE" in result.stdout

    def test_timeline(self, submitted, db_path: Path) -> None:
        result = runner.invoke(app, ["timeline", "dec-100", *boundary(db_path), "--json"])
        assert result.exit_code == 0
        entries = json.loads(result.stdout)
        assert [e["summary"] for e in entries] == [
            "Decision received: approve-expense",
            "Verdict issued: PAUSE",
        ]

    def test_outcome(self, submitted, db_path: Path) -> None:
        result = runner.invoke(app, [
            "outcome", "dec-100", *boundary(db_path),
            "--failure", "--details", '{"reason": "card declined"}', "--json",
        ])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["summary"] == "Outcome reported: failure"
        assert data["severity"] == "warning"
        assert data["details"] == {"reason": "card declined"}

    def test_outcome_unknown_decision(self, submitted, db_path: Path) -> None:
        result = runner.invoke(app, ["outcome", "dec-999", *boundary(db_path), "--json"])
        assert result.exit_code == 1
        assert json.loads(result.stdout)["error_type"] == "DecisionNotFoundError"

    def test_outcome_details_must_be_object(self, submitted, db_path: Path) -> None:
        result = runner.invoke(app, ["outcome", "dec-100", *boundary(db_path), "--details", "[1]", "--json"])
        assert result.exit_code == 1
        assert json.loads(result.stdout)["error_type"] == "ValueError"

    @pytest.mark.parametrize("command", [
        ["decisions", "--org", "acme", "--domain", "finance"],
        ["timeline", "dec-1", "--org", "acme", "--domain", "finance"],
        ["check"],
    ])
    def test_no_database(self, command: list[str], temp_dir: Path) -> None:
        result = runner.invoke(app, [*command, "--db", str(temp_dir / "absent.db")])
        assert result.exit_code == 0
        assert "No database found" in result.stdout


class TestCheckCommand:
    """Tests for `mandate check`."""

    def test_sound_bindings(self, published: dict[str, Path], db_path: Path) -> None:
        result = runner.invoke(app, ["check", "--db", str(db_path), "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["valid"] is True
        [snapshot] = data["snapshots"]
        assert snapshot["boundary"] == "acme/finance"
        assert snapshot["issues"] == []

    def test_missing_scope_binding_fails(self, published: dict[str, Path], db_path: Path) -> None:
        published["snapshot"].write_text(
            published["snapshot"].read_text()
            .replace("snap-1", "snap-2")
            .replace("    scope_id: finance-wide\n", "")
        )
        runner.invoke(app, ["snapshot-add", str(published["snapshot"]), "--db", str(db_path)])

        result = runner.invoke(app, ["check", "--db", str(db_path), "--json"])
        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["valid"] is False
        assert data["snapshots"][0]["issues"][0]["reason"] == "missing scope_id"

    def test_lists_attribution_failures(self, published: dict[str, Path], db_path: Path, temp_dir: Path) -> None:
        orphan = temp_dir / "orphan.yaml"
        orphan.write_text(published["decision"].read_text().replace("  domain: finance\n", ""))
        runner.invoke(app, ["submit", str(orphan), "--db", str(db_path)])

        result = runner.invoke(app, ["check", "--db", str(db_path), "--json"])
        assert result.exit_code == 0
        [failure] = json.loads(result.stdout)["attribution_failures"]
        assert failure["decision_id"] == "dec-100"
