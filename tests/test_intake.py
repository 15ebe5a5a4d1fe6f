"""
Tests for stitchfloor.intake
============================
"""

import pytest
from pydantic import ValidationError

from stitchfloor.intake import WipIntakeAdapter


def screen_payload(**overrides):
    payload = {
        "lotNumber": " L-042 ",
        "fabricName": "Cotton Pique",
        "fabricType": "knit",
        "fabricWidth": "60",
        "parsedStyles": [
            {"articleNumber": "8085", "styleName": "Polo T-Shirt"},
            {"articleNumber": "9001", "styleName": "Cargo Pants"},
            {"articleNumber": "", "styleName": "Blank row"},
        ],
        "articleSizes": {
            "8085": {"sizes": "S:M:L", "ratios": "1:2:1"},
            "9001": {"sizes": "30,32", "ratios": "1,1"},
        },
        "articleProcedures": {"8085": "polo", "9001": {"template": "pants"}},
        "rolls": [
            {"rollNumber": 1, "colorName": " Navy ", "layerCount": "30",
             "markedWeight": "20.5", "actualWeight": 20.1},
            {"colorName": "White", "layerCount": 12},
        ],
    }
    payload.update(overrides)
    return payload


class TestWipIntakeAdapter:

    def setup_method(self):
        self.adapter = WipIntakeAdapter()

    def test_source_type(self):
        assert self.adapter.source_type == "wip_entry"

    def test_screen_payload(self):
        lot = self.adapter.parse_payload(screen_payload())
        assert lot.lot_number == "L-042"
        assert lot.fabric_width == 60.0

        navy, white = lot.rolls
        assert (navy.roll_number, navy.color, navy.layer_count) == (1, "Navy", 30)
        assert navy.marked_weight == 20.5
        # Missing roll numbers fall back to the row position
        assert white.roll_number == 2

        polo, pants = lot.articles
        assert polo.article_number == "8085"
        assert polo.garment_type == "polo"
        assert polo.ratios == "1:2:1"
        assert pants.garment_type == "pants"
        assert pants.sizes == "30,32"

    def test_snake_case_and_article_list(self):
        lot = self.adapter.parse_payload({
            "lot_number": "L9",
            "rolls": [{"roll_number": 4, "color": "Red", "layer_count": 5}],
            "articles": [{"article_number": "A1", "sizes": ["S"], "ratios": [1]}],
        })
        assert lot.rolls[0].roll_number == 4
        assert lot.articles[0].sizes == ["S"]

    def test_unparseable_width_is_dropped(self):
        lot = self.adapter.parse_payload(screen_payload(fabricWidth="wide"))
        assert lot.fabric_width is None

    def test_missing_lot_number(self):
        with pytest.raises(ValidationError):
            self.adapter.parse_payload(screen_payload(lotNumber=""))

    def test_negative_layers_rejected(self):
        with pytest.raises(ValidationError):
            self.adapter.parse_payload(screen_payload(rolls=[{"colorName": "Red", "layerCount": -3}]))

    def test_generates_from_screen_payload(self, engine):
        report = engine.generate(self.adapter.parse_payload(screen_payload()))
        # Polo: 3 sizes x 2 rolls; pants: 2 sizes x 2 rolls
        assert len(report.bundles) == 10
        assert report.pieces_by_size["M"] == 2 * (30 + 12)
        assert report.skipped == []
