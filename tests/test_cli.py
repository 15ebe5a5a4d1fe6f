"""Tests for the stitchfloor command line."""

import json
from unittest.mock import patch

import pytest

from stitchfloor.cli import main


@pytest.fixture
def payload_file(tmp_path):
    path = tmp_path / "lot.json"
    path.write_text(json.dumps({
        "lotNumber": "L-77",
        "parsedStyles": [{"articleNumber": "A1", "styleName": "Basic T-Shirt"}],
        "articleSizes": {"A1": {"sizes": "S|M|XL", "ratios": "1|2|x"}},
        "rolls": [{"rollNumber": 1, "colorName": "Grey", "layerCount": 20}],
    }))
    return path


class TestGenerateCommand:

    def test_summary(self, payload_file, capsys):
        assert main(["generate", str(payload_file)]) == 0
        summary = json.loads(capsys.readouterr().out)
        assert summary["lot_number"] == "L-77"
        assert summary["bundles"] == 2
        assert summary["total_pieces"] == 60
        assert summary["pieces_by_size"] == {"S": 20, "M": 40}
        assert summary["skipped"][0]["size"] == "XL"
        assert "items" not in summary

    def test_items_flag(self, payload_file, capsys):
        main(["generate", str(payload_file), "--items"])
        summary = json.loads(capsys.readouterr().out)
        assert len(summary["items"]) == summary["work_items"]
        assert summary["items"][0]["garment_type"] == "tshirt"


class TestOtherCommands:

    def test_templates(self, capsys):
        assert main(["templates"]) == 0
        out = capsys.readouterr().out
        assert "polo:" in out
        assert "collar_attach" in out

    def test_serve_runs_uvicorn_factory(self):
        with patch("uvicorn.run") as run:
            assert main(["serve", "--port", "9001"]) == 0
        run.assert_called_once()
        assert run.call_args.args[0] == "stitchfloor.server:create_app"
        assert run.call_args.kwargs["factory"] is True
        assert run.call_args.kwargs["port"] == 9001

    def test_requires_command(self):
        with pytest.raises(SystemExit):
            main([])
