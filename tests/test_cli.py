"""Tests for the db-importer command line."""

import argparse
import json
import os
import textwrap
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from db_importer.cli import (
    _async_plan,
    _async_run,
    _importer_settings,
    build_parser,
    cmd_import,
    cmd_plan,
    cmd_profiles,
    cmd_update,
    main,
)
from db_importer.config.models import ImporterSettings
from db_importer.errors import ErrorCode, ImportAbortedError
from db_importer.importer import Importer, ImportMode
from db_importer.schema.diff import MigrationPlan, MigrationStep, OperationKind, SchemaOperation


def _write_project(tmp_path: Path) -> Path:
    """db.toml plus a one-table descriptor directory; returns the config path."""
    schema_dir = tmp_path / "schema"
    schema_dir.mkdir()
    (schema_dir / "Widgets.json").write_text(
        json.dumps({"tables": [{"name": "widget", "columns": {"id": {"type": "int", "autoincrement": True}}}]})
    )
    config_path = tmp_path / "db.toml"
    config_path.write_text(
        textwrap.dedent(
            f"""\
            [profiles.lite]
            url = "sqlite+aiosqlite:///lite.db"
            description = "Scratch SQLite"

            [profiles.local]
            url = "postgresql://localhost/app"

            [importer]
            schema_dir = "{schema_dir}"
            """
        )
    )
    return config_path


def _make_mock_adapter() -> AsyncMock:
    adapter = AsyncMock()
    adapter.dialect_name = "sqlite"
    return adapter


def _parse(*argv: str) -> argparse.Namespace:
    return build_parser().parse_args(list(argv))


# ============================================================================
# Parser
# ============================================================================


class TestParser:
    """Test argument parsing and dispatch targets."""

    def test_subcommands_dispatch(self) -> None:
        assert _parse("profiles").func is cmd_profiles
        assert _parse("plan").func is cmd_plan
        assert _parse("import").func is cmd_import
        assert _parse("update").func is cmd_update

    def test_run_options(self) -> None:
        args = _parse(
            "--env-prefix", "APP_", "import", "-p", "local", "--schema-dir", "s",
            "--die-on-error", "--redundant-tables", "--log-file", "out.log", "--skip-data",
        )
        assert args.env_prefix == "APP_"
        assert args.profile == "local"
        assert args.schema_dir == "s"
        assert args.die_on_error is True
        assert args.redundant_tables is True
        assert args.log_file == "out.log"
        assert args.skip_data is True

    def test_defaults(self) -> None:
        args = _parse("update")
        assert args.env_prefix == ""
        assert args.config is None
        assert args.profile is None
        assert args.die_on_error is False

    def test_command_required(self) -> None:
        with pytest.raises(SystemExit):
            _parse()

    def test_skip_data_only_on_import(self) -> None:
        with pytest.raises(SystemExit):
            _parse("update", "--skip-data")


class TestImporterSettings:
    """Test command-line overrides of the [importer] section."""

    def test_flags_override(self) -> None:
        args = _parse("update", "--schema-dir", "other", "--die-on-error", "--log-file", "x.log")
        settings = _importer_settings(args, ImporterSettings())
        assert settings.schema_dir == "other"
        assert settings.die_on_error is True
        assert settings.log_file == "x.log"
        assert settings.redundant_tables is False

    def test_unset_flags_keep_config(self) -> None:
        configured = ImporterSettings(schema_dir="cfg", die_on_error=True)
        settings = _importer_settings(_parse("update"), configured)
        assert settings == configured


# ============================================================================
# profiles
# ============================================================================


class TestProfilesCommand:
    """Test the profiles listing."""

    def test_lists_profiles(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        config_path = _write_project(tmp_path)
        with patch.dict(os.environ, {"DB_PROFILE": "lite"}, clear=False):
            exit_code = cmd_profiles(_parse("--config", str(config_path), "profiles"))

        out = capsys.readouterr().out
        assert exit_code == 0
        assert "lite" in out
        assert "Scratch SQLite" in out
        assert "active profile" in out

    def test_missing_config(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        exit_code = cmd_profiles(_parse("--config", str(tmp_path / "db.toml"), "profiles"))
        assert exit_code == 1
        assert "Database config not found" in capsys.readouterr().out

    def test_invalid_config(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        config_path = tmp_path / "db.toml"
        config_path.write_text("[profiles.broken\n")
        exit_code = cmd_profiles(_parse("--config", str(config_path), "profiles"))
        assert exit_code == 1
        assert "Invalid TOML" in capsys.readouterr().out


# ============================================================================
# import / update
# ============================================================================


class TestRunCommand:
    """Test _async_run() with a mocked adapter."""

    async def test_success(self, tmp_path: Path) -> None:
        config_path = _write_project(tmp_path)
        adapter = _make_mock_adapter()
        args = _parse("--config", str(config_path), "update", "--profile", "lite")

        with patch("db_importer.cli.get_adapter", AsyncMock(return_value=adapter)), \
             patch.object(Importer, "run", AsyncMock()) as mock_run:
            exit_code = await _async_run(args, ImportMode.UPDATE)

        assert exit_code == 0
        mock_run.assert_awaited_once_with(ImportMode.UPDATE, with_data=True)
        adapter.close.assert_awaited_once()

    async def test_skip_data(self, tmp_path: Path) -> None:
        config_path = _write_project(tmp_path)
        args = _parse("--config", str(config_path), "import", "--skip-data")

        with patch("db_importer.cli.get_adapter", AsyncMock(return_value=_make_mock_adapter())), \
             patch.object(Importer, "run", AsyncMock()) as mock_run:
            await _async_run(args, ImportMode.IMPORT)

        mock_run.assert_awaited_once_with(ImportMode.IMPORT, with_data=False)

    async def test_aborted_run(self, tmp_path: Path) -> None:
        config_path = _write_project(tmp_path)
        adapter = _make_mock_adapter()
        args = _parse("--config", str(config_path), "update")
        aborted = ImportAbortedError("Importer error: boom", code=7)

        with patch("db_importer.cli.get_adapter", AsyncMock(return_value=adapter)), \
             patch.object(Importer, "run", AsyncMock(side_effect=aborted)):
            exit_code = await _async_run(args, ImportMode.UPDATE)

        assert exit_code == 1
        adapter.close.assert_awaited_once()

    async def test_log_written_to_file(self, tmp_path: Path) -> None:
        config_path = _write_project(tmp_path)
        log_file = tmp_path / "logs" / "Importer.log"
        args = _parse("--config", str(config_path), "update", "--log-file", str(log_file))

        with patch("db_importer.cli.get_adapter", AsyncMock(return_value=_make_mock_adapter())), \
             patch.object(Importer, "run", AsyncMock()):
            await _async_run(args, ImportMode.UPDATE)

        assert log_file.exists()

    async def test_missing_descriptor_directory(self, tmp_path: Path) -> None:
        config_path = _write_project(tmp_path)
        adapter = _make_mock_adapter()
        args = _parse("--config", str(config_path), "update", "--schema-dir", str(tmp_path / "nope"))

        with patch("db_importer.cli.get_adapter", AsyncMock(return_value=adapter)):
            exit_code = await _async_run(args, ImportMode.UPDATE)

        assert exit_code == 1
        adapter.close.assert_awaited_once()

    async def test_missing_config(self, tmp_path: Path) -> None:
        args = _parse("--config", str(tmp_path / "db.toml"), "update")
        assert await _async_run(args, ImportMode.UPDATE) == 1

    async def test_invalid_config(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        """Malformed db.toml is reported as an error line, not a traceback."""
        config_path = tmp_path / "db.toml"
        config_path.write_text("[profiles.broken\nurl = \n")
        args = _parse("--config", str(config_path), "update")

        assert await _async_run(args, ImportMode.UPDATE) == 1
        assert "Invalid TOML" in capsys.readouterr().out


# ============================================================================
# plan
# ============================================================================


class TestPlanCommand:
    """Test _async_plan() output."""

    async def test_up_to_date(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        config_path = _write_project(tmp_path)
        args = _parse("--config", str(config_path), "plan")

        with patch("db_importer.cli.get_adapter", AsyncMock(return_value=_make_mock_adapter())), \
             patch.object(Importer, "plan_update", AsyncMock(return_value=MigrationPlan())):
            exit_code = await _async_plan(args)

        assert exit_code == 0
        assert "Schema is up to date" in capsys.readouterr().out

    async def test_planned_steps(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        config_path = _write_project(tmp_path)
        args = _parse("--config", str(config_path), "plan")
        plan = MigrationPlan(
            steps=[
                MigrationStep(
                    "add column: widget:note",
                    ErrorCode.UPDATE_TABLE,
                    [SchemaOperation(OperationKind.DROP_COLUMN, table="widget", target="note")],
                ),
                MigrationStep(
                    "add primary key: widget_pk",
                    ErrorCode.UPDATE_PRIMARY_KEY,
                    [SchemaOperation(OperationKind.DROP_PRIMARY_KEY, table="widget", target="widget_pk")],
                ),
            ]
        )

        with patch("db_importer.cli.get_adapter", AsyncMock(return_value=_make_mock_adapter())), \
             patch.object(Importer, "plan_update", AsyncMock(return_value=plan)):
            exit_code = await _async_plan(args)

        out = capsys.readouterr().out
        assert exit_code == 0
        assert "Planned Operations" in out
        assert "2 operations in 2 steps" in out

    async def test_invalid_config(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        config_path = tmp_path / "db.toml"
        config_path.write_text("[profiles.broken\n")

        assert await _async_plan(_parse("--config", str(config_path), "plan")) == 1
        assert "Invalid TOML" in capsys.readouterr().out


# ============================================================================
# main
# ============================================================================


class TestMain:
    """Test main() dispatch."""

    def test_update_dispatch(self) -> None:
        with patch("db_importer.cli._async_run", AsyncMock(return_value=0)) as mock_run:
            assert main(["update", "--profile", "local"]) == 0
        args, mode = mock_run.await_args.args
        assert mode == ImportMode.UPDATE
        assert args.profile == "local"

    def test_import_dispatch(self) -> None:
        with patch("db_importer.cli._async_run", AsyncMock(return_value=1)) as mock_run:
            assert main(["import"]) == 1
        assert mock_run.await_args.args[1] == ImportMode.IMPORT

    def test_plan_dispatch(self) -> None:
        with patch("db_importer.cli._async_plan", AsyncMock(return_value=0)) as mock_plan:
            assert main(["plan"]) == 0
        mock_plan.assert_awaited_once()
