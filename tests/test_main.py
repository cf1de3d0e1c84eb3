"""Tests for the command line wiring (commands that never reach the relay)."""

from __future__ import annotations

import json

import pytest

from filasync.main import build_parser, run


class TestCommandLine:
    def test_parser_requires_command(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_remove_flag(self):
        args = build_parser().parse_args(["remove", "--yes"])
        assert args.command == "remove"
        assert args.yes is True

    @pytest.mark.asyncio
    async def test_status_on_fresh_install(self, config, capsys):
        code = await run(build_parser().parse_args(["status"]), config)

        assert code == 0
        out = capsys.readouterr().out
        assert "status:      none" in out
        assert "records:     0" in out

    @pytest.mark.asyncio
    async def test_import_then_export(self, config, tmp_path, capsys):
        backup = tmp_path / "backup.json"
        backup.write_text(json.dumps({
            "regular": [{"_id": "AB12cd34", "filament": "Glow", "material": "PLA"}],
            "local": [],
        }))

        assert await run(build_parser().parse_args(["import", str(backup)]), config) == 0

        out_file = tmp_path / "out.json"
        assert await run(build_parser().parse_args(["export", str(out_file)]), config) == 0
        exported = json.loads(out_file.read_text())
        assert [d["_id"] for d in exported["regular"]] == ["AB12cd34"]
        assert exported["local"][0]["_id"] == "_local/info"

    @pytest.mark.asyncio
    async def test_import_bad_file(self, config, tmp_path, capsys):
        backup = tmp_path / "backup.json"
        backup.write_text("{not json")

        assert await run(build_parser().parse_args(["import", str(backup)]), config) == 1
        assert "Import failed" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_sync_without_setup(self, config, capsys):
        code = await run(build_parser().parse_args(["sync"]), config)

        assert code == 1
        assert "Sync is not set up." in capsys.readouterr().err
