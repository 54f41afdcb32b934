"""Tests for routeforge CLI commands."""

import sys
from pathlib import Path

import pytest
from click.testing import CliRunner

from routeforge.cli.main import cli
from routeforge.schema import SchemaFunctions


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def in_example_dir(monkeypatch):
    """Run from the example directory without the plugin pre-imported."""
    example_dir = Path(__file__).parent.parent / "example"
    monkeypatch.chdir(example_dir)
    monkeypatch.setattr(sys, "path", list(sys.path))
    monkeypatch.delitem(sys.modules, "blog", raising=False)
    SchemaFunctions.clear()
    return example_dir


class TestRoutes:
    def test_prints_route_table(self, runner, example_plugins):
        result = runner.invoke(cli, ["routes", "--schemas", str(example_plugins)])
        assert result.exit_code == 0, result.output
        assert "GET    /api/posts/new" in result.output
        assert "POST   /api/posts/{id}/params" in result.output
        assert "DELETE /api/posts/{id}/comments/{sub_id}" in result.output
        assert "excluded" not in result.output
        assert "24 route(s) for 4 record type(s)." in result.output

    def test_options_override_api_yaml(self, runner, example_plugins):
        result = runner.invoke(
            cli,
            [
                "routes",
                "--schemas",
                str(example_plugins),
                "--path",
                "/v2",
                "--no-pluralize",
                "--puts",
                "--exclude",
                "Place",
            ],
        )
        assert result.exit_code == 0, result.output
        assert "GET    /v2/post/{id}" in result.output
        assert "PUT    /v2/post/{id}" in result.output
        assert "/v2/place" not in result.output

    def test_plugin_option_imports_module(self, runner, in_example_dir):
        result = runner.invoke(cli, ["routes", "--schemas", "schemas", "--plugin", "blog"])
        assert result.exit_code == 0, result.output
        assert SchemaFunctions.is_registered("ensureLongComment")

    def test_unregistered_function_fails(self, runner, in_example_dir):
        result = runner.invoke(cli, ["routes", "--schemas", "schemas"])
        assert result.exit_code == 1
        assert "Failed to load schemas" in result.output
        assert "not registered" in result.output

    def test_missing_directory(self, runner, tmp_path):
        result = runner.invoke(cli, ["routes", "--schemas", str(tmp_path / "nope")])
        assert result.exit_code == 2


class TestSchemaCheck:
    def test_check_succeeds(self, runner, example_plugins):
        result = runner.invoke(cli, ["schema", "check", "--schemas", str(example_plugins)])
        assert result.exit_code == 0, result.output
        assert "Loaded 4 record type(s):" in result.output
        assert "All schemas are valid" in result.output

    def test_check_reports_details(self, runner, example_plugins):
        result = runner.invoke(cli, ["schema", "check", "--schemas", str(example_plugins)])
        assert "geo: location" in result.output
        assert "sub-documents: comments" in result.output
        assert "methods: params" in result.output
        assert "author -> User.posts[]" in result.output
        assert "posts -> Post.author" in result.output

    def test_check_missing_directory(self, runner, tmp_path):
        result = runner.invoke(cli, ["schema", "check", "--schemas", str(tmp_path / "nope")])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_check_empty_directory(self, runner, tmp_path):
        result = runner.invoke(cli, ["schema", "check", "--schemas", str(tmp_path)])
        assert result.exit_code == 0
        assert "No record types found" in result.output

    def test_check_invalid_schema(self, runner, tmp_path):
        (tmp_path / "bad.yaml").write_text(
            "record: Bad\nfields:\n  - name: x\n    type: color\n"
        )
        result = runner.invoke(cli, ["schema", "check", "--schemas", str(tmp_path)])
        assert result.exit_code == 1
        assert "fields[0]/type" in result.output
        assert "Schema validation failed: 1 error(s)" in result.output

    def test_check_unregistered_function(self, runner, tmp_path):
        (tmp_path / "post.yaml").write_text("record: Post\nmethods: [missingMethod]\n")
        result = runner.invoke(cli, ["schema", "check", "--schemas", str(tmp_path)])
        assert result.exit_code == 1
        assert "Schema loading failed" in result.output
        assert "missingMethod" in result.output
