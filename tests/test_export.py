"""Tests for color maps and JSON export."""
import json

import numpy as np
import pytest

from hotspotvec.batch import BatchResult
from hotspotvec.export import build_export, export_items, load_color_map, parse_color_map, write_export
from hotspotvec.types import ColorKey, ExtractionConfig, FrameResult, Region, ValidationError

SQUARE = np.array([[0, 0], [4, 0], [4, 4], [0, 4]], dtype=float)


def make_batch():
    red = Region(color_key=ColorKey((255, 0, 0)), polygons=[SQUARE, SQUARE + 10], pixel_area=32)
    blue = Region(color_key=ColorKey((0, 0, 255)), polygons=[SQUARE], pixel_area=16)
    return BatchResult(
        frames=[
            FrameResult(frame=1, width=40, height=30, regions=[red], series="map"),
            FrameResult(frame=2, width=40, height=30, regions=[blue], series="map"),
        ],
        failures=[FrameResult(frame=3, width=0, height=0, source="/in/map_3.png", error="bad")],
        series="map",
    )


class TestColorMap:
    """Test color map validation."""

    def test_valid_map(self):
        assert parse_color_map({"#ff0000": "M1", "#0000FF": "M2"}) == {"#FF0000": "M1", "#0000FF": "M2"}

    def test_none_is_empty(self):
        assert parse_color_map(None) == {}

    @pytest.mark.parametrize("obj", [
        ["#FF0000"],
        {"red": "M1"},
        {"#FF00": "M1"},
        {"#FF0000": ""},
        {"#FF0000": 5},
        {"#ff0000": "a", "#FF0000": "b"},
    ])
    def test_invalid_maps(self, obj):
        with pytest.raises(ValidationError):
            parse_color_map(obj)

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "colors.json"
        path.write_text(json.dumps({"#00ff00": "Park"}))
        assert load_color_map(path) == {"#00FF00": "Park"}

    def test_load_invalid_json(self, tmp_path):
        path = tmp_path / "colors.json"
        path.write_text("{nope")
        with pytest.raises(ValidationError):
            load_color_map(path)

    def test_load_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_color_map(tmp_path / "missing.json")


class TestExportItems:
    """Test item flattening and ids."""

    def test_one_item_per_polygon(self):
        items = export_items(make_batch().frames)

        assert len(items) == 3
        assert items[0] == {
            "id": "#FF0000;1",
            "frame": 1,
            "color": "#FF0000",
            "points": [[0.0, 0.0], [4.0, 0.0], [4.0, 4.0], [0.0, 4.0]],
            "area": 32,
        }

    def test_mapped_ids(self):
        items = export_items(make_batch().frames, {"#FF0000": "M1"})
        assert [i["id"] for i in items] == ["M1;1", "M1;1", "#0000FF;2"]

    def test_global_ids(self):
        items = export_items(make_batch().frames, {"#FF0000": "M1"}, global_ids=True)
        assert [i["id"] for i in items] == ["M1", "M1", "#0000FF"]


class TestBuildExport:
    """Test the export document."""

    def test_document_structure(self):
        config = ExtractionConfig(epsilon=1.5)

        doc = build_export(make_batch(), {"#FF0000": "M1"}, config=config)

        assert set(doc) == {"meta", "base", "colorMap", "frames", "items"}
        assert doc["base"] == {"w": 40, "h": 30}
        assert doc["frames"] == [1, 2]
        assert doc["colorMap"] == {"#FF0000": "M1"}
        assert doc["meta"]["series"] == "map"
        assert doc["meta"]["config"]["epsilon"] == 1.5
        assert doc["meta"]["failed"] == ["map_3.png"]

    def test_empty_batch(self):
        doc = build_export(BatchResult())
        assert doc["base"] == {"w": 0, "h": 0}
        assert doc["items"] == []

    def test_write_export(self, tmp_path):
        doc = build_export(make_batch())
        path = write_export(tmp_path / "out" / "hotspots.json", doc)

        with open(path) as f:
            assert json.load(f) == doc
