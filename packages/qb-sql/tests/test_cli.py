"""CLI tests using click's CliRunner."""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from qb_sql.cli import main
from qb_sql.schemas import BatchKind, ImportStatus, ImportSummary, ObjectReport


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def query_file(tmp_path):
    path = tmp_path / "qryCustomerOrders.sql"
    path.write_text("SELECT Nz(Price,0) FROM Orders WHERE CustomerID = [Forms]![frmCustomers]![txtID];")
    return path


@pytest.fixture
def manifest_file(tmp_path):
    path = tmp_path / "extract.json"
    path.write_text(json.dumps({"queries": [{"name": "qryOrders", "sql": "SELECT OrderID FROM Orders"}]}))
    return path


class TestHelp:

    def test_commands_listed(self, runner):
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        for command in ("convert", "import", "setup"):
            assert command in result.output

    def test_import_help(self, runner):
        result = runner.invoke(main, ["import", "--help"])
        assert result.exit_code == 0
        assert "--max-passes" in result.output


class TestConvert:

    def test_json_output(self, runner, query_file):
        result = runner.invoke(main, ["-q", "convert", str(query_file), "--json"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["name"] == "qrycustomerorders"
        assert data["kind"] == "view"
        assert "CREATE OR REPLACE VIEW" in data["ddl"]
        assert "COALESCE(Price, 0)" in data["ddl"]
        assert data["resolved_references"] == []

    def test_mapping_file_resolves_widgets(self, runner, query_file, tmp_path):
        mapping = tmp_path / "controls.json"
        mapping.write_text(json.dumps({"frmCustomers.txtID": {"table": "customers", "column": "customer_id"}}))

        result = runner.invoke(main, ["-q", "convert", str(query_file), "--mapping", str(mapping), "--json"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["resolved_references"] == [["customers", "customer_id"]]
        assert "shared.runtime_state" in data["ddl"]

    def test_parameter_makes_a_function(self, runner, tmp_path):
        path = tmp_path / "q.sql"
        path.write_text("SELECT order_id FROM orders WHERE order_date >= [Start Date]")

        result = runner.invoke(
            main, ["-q", "convert", str(path), "--name", "qryOrdersSince", "-p", "Start Date:DateTime", "--json"]
        )

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["name"] == "qryorderssince"
        assert data["kind"] == "function"
        assert "p_start_date timestamp" in data["ddl"]

    def test_rich_output(self, runner, query_file):
        result = runner.invoke(main, ["convert", str(query_file)])
        assert result.exit_code == 0, result.output
        assert "qrycustomerorders (view)" in result.output

    def test_missing_file(self, runner, tmp_path):
        result = runner.invoke(main, ["convert", str(tmp_path / "nope.sql")])
        assert result.exit_code != 0

    def test_invalid_mapping_json(self, runner, query_file, tmp_path):
        mapping = tmp_path / "bad.json"
        mapping.write_text("{not json")
        result = runner.invoke(main, ["convert", str(query_file), "--mapping", str(mapping)])
        assert result.exit_code != 0


class TestImport:

    def test_max_passes_must_be_positive(self, runner, manifest_file):
        result = runner.invoke(main, ["import", str(manifest_file), "--max-passes", "0"])
        assert result.exit_code == 2

    def test_successful_run_writes_artifacts(self, runner, manifest_file, tmp_path):
        summary = ImportSummary(
            reports=(ObjectReport("qryOrders", BatchKind.QUERY, ImportStatus.IMPORTED, 1, ddl="CREATE VIEW"),),
            passes=((BatchKind.QUERY, 1),),
        )
        out = tmp_path / "runs"
        with patch("qb_sql.pipeline.ImportPipeline.run", return_value=summary):
            result = runner.invoke(main, ["-q", "import", str(manifest_file), "-o", str(out), "--json"])

        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["imported"] == ["qryOrders"]
        assert len(list(out.glob("run_*/summary.json"))) == 1

    def test_unresolved_objects_fail_the_run(self, runner, manifest_file, tmp_path):
        summary = ImportSummary(
            reports=(ObjectReport(
                "qryOrders", BatchKind.QUERY, ImportStatus.UNRESOLVED, 20,
                error='relation "orders" does not exist', sqlstate="42P01",
            ),),
            passes=((BatchKind.QUERY, 20),),
        )
        with patch("qb_sql.pipeline.ImportPipeline.run", return_value=summary):
            result = runner.invoke(main, ["-q", "import", str(manifest_file), "-o", str(tmp_path / "runs")])

        assert result.exit_code == 1
        assert "unresolved" in result.output

    def test_bad_dsn(self, runner, manifest_file, tmp_path):
        result = runner.invoke(main, ["import", str(manifest_file), "--dsn", "mysql:app", "-o", str(tmp_path)])
        assert result.exit_code == 2
