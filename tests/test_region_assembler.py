"""Tests for per-frame region assembly."""
import numpy as np
import pytest

from helpers import make_rgba, paint, to_image
from hotspotvec.geometry import polygon_area
from hotspotvec.region_assembler import PROGRESS_INTERVAL, RegionAssembler, extract_regions
from hotspotvec.types import ExtractionConfig


class TestExactMode:
    """Test extraction keyed by literal seed color."""

    def test_white_square_on_black(self, white_square_image):
        """Test the background pass removes black and one white region remains."""
        config = ExtractionConfig(color_mode="exact", color_tolerance=0, min_area_pixels=1, epsilon=0)

        result = RegionAssembler(config).process(white_square_image)

        assert result.region_count == 1
        region = result.regions[0]
        assert region.color_hex == "#FFFFFF"
        assert region.pixel_area == 16
        assert len(region.polygons) == 1
        # Loop runs through edge midpoints, trimming each corner by 1/8 px
        assert polygon_area(region.polygons[0]) == pytest.approx(15.5)
        assert result.background_pixels == 84

    @pytest.mark.parametrize("mode", ["rdp", "angle"])
    def test_rectangle_round_trip(self, mode):
        """Test a solid square comes back as one midpoint per chamfered corner."""
        arr = make_rgba(12, 12)
        paint(arr, 2, 3, 6, 6, (255, 255, 255))
        config = ExtractionConfig(
            color_mode="exact", color_tolerance=0, min_area_pixels=1,
            simplify_mode=mode, epsilon=1.0,
        )

        regions = extract_regions(to_image(arr), config)

        assert len(regions) == 1
        region = regions[0]
        assert region.pixel_area == 36
        assert len(region.polygons) == 1
        # RDP keeps one point of each 45 degree corner cut, giving a slightly tilted quad
        np.testing.assert_array_equal(
            region.polygons[0], [[2.0, 3.5], [7.5, 3.0], [8.0, 8.5], [2.5, 9.0]]
        )
        assert region.centroid == pytest.approx((5.0, 6.0))

    def test_single_pixel_below_min_area_excluded(self):
        arr = make_rgba(10, 10)
        paint(arr, 5, 5, 1, 1, (255, 0, 0))
        image = to_image(arr)

        dropped = ExtractionConfig(color_mode="exact", min_area_pixels=2)
        kept = ExtractionConfig(color_mode="exact", min_area_pixels=1)

        assert extract_regions(image, dropped) == []
        assert len(extract_regions(image, kept)) == 1

    def test_regions_in_raster_order(self, exact_config):
        arr = make_rgba(20, 20)
        paint(arr, 12, 2, 4, 4, (255, 0, 0))
        paint(arr, 2, 10, 4, 4, (0, 255, 0))
        paint(arr, 2, 2, 4, 4, (0, 0, 255))

        regions = extract_regions(to_image(arr), exact_config)

        assert [r.color_hex for r in regions] == ["#0000FF", "#FF0000", "#00FF00"]

    def test_same_color_disjoint_regions_stay_separate(self, exact_config):
        arr = make_rgba(20, 10)
        paint(arr, 1, 1, 4, 4, (255, 0, 0))
        paint(arr, 10, 1, 4, 4, (255, 0, 0))

        regions = extract_regions(to_image(arr), exact_config)

        assert len(regions) == 2
        assert all(r.pixel_area == 16 for r in regions)

    def test_tolerance_merges_near_colors(self):
        arr = make_rgba(10, 10)
        paint(arr, 2, 2, 3, 4, (255, 255, 255))
        paint(arr, 5, 2, 3, 4, (250, 250, 250))
        config = ExtractionConfig(color_mode="exact", color_tolerance=10, min_area_pixels=1)

        regions = extract_regions(to_image(arr), config)

        assert len(regions) == 1
        assert regions[0].pixel_area == 24
        assert regions[0].color_hex == "#FFFFFF"

    def test_every_pixel_in_at_most_one_region(self, exact_config):
        rng = np.random.default_rng(3)
        palette = np.array([[0, 0, 0], [255, 0, 0], [0, 0, 255]], dtype=np.uint8)
        arr = make_rgba(16, 16)
        arr[..., :3] = palette[rng.integers(0, 3, size=(16, 16))]
        arr[0, 0, :3] = 0

        result = RegionAssembler(exact_config).process(to_image(arr))

        total = sum(r.pixel_area for r in result.regions) + result.background_pixels
        assert total == 16 * 16

    def test_moore_boundary(self, white_square_image):
        config = ExtractionConfig(
            color_mode="exact", min_area_pixels=1, boundary_method="moore", simplify_mode="none"
        )

        regions = extract_regions(white_square_image, config)

        assert len(regions) == 1
        # Pixel-center loop of a 4x4 block spans 3x3
        assert polygon_area(regions[0].polygons[0]) == pytest.approx(9.0)


class TestPerceptualMode:
    """Test extraction keyed by Lab color clusters."""

    def test_similar_shades_form_one_region(self):
        arr = make_rgba(20, 20, color=(255, 255, 255))
        paint(arr, 2, 2, 8, 16, (0, 0, 200))
        paint(arr, 10, 2, 8, 16, (0, 0, 205))
        config = ExtractionConfig(min_area_pixels=1)

        regions = extract_regions(to_image(arr), config)

        assert len(regions) == 1
        assert regions[0].pixel_area == 256
        assert regions[0].color_key.rgb == (0, 0, 200)
        assert regions[0].color_key.cluster_id is not None

    def test_fragments_of_one_cluster_merge(self):
        arr = make_rgba(20, 10, color=(255, 255, 255))
        paint(arr, 2, 2, 5, 5, (200, 0, 0))
        paint(arr, 12, 2, 5, 5, (202, 0, 0))
        config = ExtractionConfig(min_area_pixels=1)

        regions = extract_regions(to_image(arr), config)

        assert len(regions) == 1
        assert regions[0].pixel_area == 50
        assert len(regions[0].polygons) == 2

    def test_small_fragments_not_counted(self):
        arr = make_rgba(30, 10, color=(255, 255, 255))
        paint(arr, 2, 2, 5, 5, (200, 0, 0))
        paint(arr, 20, 2, 1, 1, (200, 0, 0))
        config = ExtractionConfig(min_area_pixels=4)

        regions = extract_regions(to_image(arr), config)

        assert len(regions) == 1
        assert regions[0].pixel_area == 25
        assert len(regions[0].polygons) == 1

    def test_close_bridges_one_pixel_gap(self):
        arr = make_rgba(20, 12, color=(255, 255, 255))
        paint(arr, 2, 2, 6, 8, (0, 128, 0))
        paint(arr, 9, 2, 6, 8, (0, 128, 0))
        paint(arr, 8, 2, 1, 8, (250, 250, 250))

        closed = extract_regions(to_image(arr), ExtractionConfig(min_area_pixels=1))
        open_ = extract_regions(to_image(arr), ExtractionConfig(min_area_pixels=1, close_gaps=False))

        green = [r for r in closed if r.color_hex == "#008000"]
        assert len(green[0].polygons) == 1
        assert len([r for r in open_ if r.color_hex == "#008000"][0].polygons) == 2

    def test_distinct_colors_separate_regions(self):
        arr = make_rgba(20, 10, color=(255, 255, 255))
        paint(arr, 2, 2, 5, 5, (255, 0, 0))
        paint(arr, 12, 2, 5, 5, (0, 0, 255))

        regions = extract_regions(to_image(arr), ExtractionConfig(min_area_pixels=1))

        assert sorted(r.color_hex for r in regions) == ["#0000FF", "#FF0000"]


class TestAssembler:
    """Test frame-level behavior."""

    def test_transparent_pixels_ignored(self):
        arr = make_rgba(10, 10, color=(255, 255, 255))
        paint(arr, 0, 0, 10, 10, (255, 0, 0), alpha=0)
        paint(arr, 3, 3, 4, 4, (0, 0, 255))
        config = ExtractionConfig(color_mode="exact", min_area_pixels=1, background_seed=None)

        result = RegionAssembler(config).process(to_image(arr))

        assert [r.color_hex for r in result.regions] == ["#0000FF"]
        assert result.background_pixels == 84

    def test_background_seed_disabled(self, white_square_image, exact_config):
        exact_config.background_seed = None
        regions = extract_regions(white_square_image, exact_config)
        assert sorted(r.color_hex for r in regions) == ["#000000", "#FFFFFF"]

    def test_repeated_runs_are_identical(self, white_square_image, exact_config):
        assembler = RegionAssembler(exact_config)
        first = assembler.process(white_square_image, frame=1)
        second = assembler.process(white_square_image, frame=2)

        assert first.region_count == second.region_count
        for a, b in zip(first.regions, second.regions):
            np.testing.assert_array_equal(a.polygons[0], b.polygons[0])

    def test_frame_metadata(self, white_square_image):
        result = RegionAssembler().process(white_square_image, frame=7, series="map", source="map_7.png")

        assert (result.frame, result.series, result.source) == (7, "map", "map_7.png")
        assert (result.width, result.height) == (10, 10)
        assert result.ok

    def test_progress_callback(self):
        image = to_image(make_rgba(3, 130))
        calls = []

        RegionAssembler().process(image, progress=lambda row, total: calls.append((row, total)))

        assert calls == [(0, 130), (PROGRESS_INTERVAL, 130), (2 * PROGRESS_INTERVAL, 130), (130, 130)]

    def test_accepts_numpy_array(self):
        arr = np.zeros((10, 10, 3), dtype=np.uint8)
        arr[2:8, 2:8] = (255, 255, 0)
        regions = extract_regions(arr, ExtractionConfig(min_area_pixels=10))
        assert [r.color_hex for r in regions] == ["#FFFF00"]

    def test_snap_step_unifies_noisy_color(self):
        arr = make_rgba(10, 10)
        paint(arr, 2, 2, 3, 6, (102, 100, 100))
        paint(arr, 5, 2, 3, 6, (101, 100, 99))
        config = ExtractionConfig(color_mode="exact", color_tolerance=0, min_area_pixels=1, snap_step=2)

        regions = extract_regions(to_image(arr), config)

        assert len(regions) == 1
        assert regions[0].pixel_area == 36
