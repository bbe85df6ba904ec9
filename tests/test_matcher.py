"""
Unit tests for descriptor extraction and comparison.
"""

import asyncio

import numpy as np
import pytest
from pydantic import ValidationError

from landmarkverify import ImageDescriptor, ImageMatchingEngine, MatchingConfig


def solid_image(color: tuple[int, int, int], width: int = 12, height: int = 10) -> np.ndarray:
    """Create an RGB image filled with one color."""
    img = np.zeros((height, width, 3), dtype=np.uint8)
    img[:] = color
    return img


def luma(color: tuple[int, int, int]) -> float:
    r, g, b = color
    return 0.299 * r + 0.587 * g + 0.114 * b


class TestExtractDescriptor:
    """Test descriptor extraction from RGB rasters."""

    def test_uniform_image_has_no_edges_or_contrast(self):
        """A solid color image has zero edges, zero contrast and one bin per channel."""
        engine = ImageMatchingEngine()
        color = (10, 200, 50)

        descriptor = engine.extract_descriptor(solid_image(color))

        assert descriptor.edge_count == 0
        assert descriptor.contrast == 0.0

        hist = np.array(descriptor.histogram).reshape(3, 256)
        for channel, value in enumerate(color):
            nonzero = np.flatnonzero(hist[channel])
            assert nonzero.tolist() == [value]
            assert hist[channel, value] == 1.0

    @pytest.mark.parametrize(
        ("color", "width", "height"),
        [((10, 200, 90), 640, 480), ((255, 0, 0), 37, 53), ((123, 45, 67), 640, 480)],
    )
    def test_flat_image_contrast_is_exactly_zero(self, color, width, height):
        """Large and odd-sized flat images have no rounding residue in contrast."""
        engine = ImageMatchingEngine()

        descriptor = engine.extract_descriptor(solid_image(color, width=width, height=height))

        assert descriptor.contrast == 0.0
        assert descriptor.brightness == pytest.approx(luma(color))

    def test_histogram_layout_and_normalization(self):
        """Histogram has 768 bins, R then G then B, each channel summing to 1."""
        engine = ImageMatchingEngine()
        img = np.random.default_rng(0).integers(0, 256, (40, 30, 3), dtype=np.uint8)

        descriptor = engine.extract_descriptor(img)

        assert len(descriptor.histogram) == 768
        hist = np.array(descriptor.histogram).reshape(3, 256)
        assert hist.sum(axis=1) == pytest.approx([1.0, 1.0, 1.0])

        red_counts = np.bincount(img[:, :, 0].ravel(), minlength=256) / img[:, :, 0].size
        assert hist[0] == pytest.approx(red_counts)

    def test_average_color_and_brightness(self):
        """Average color and brightness follow channel means and BT.601 luminance."""
        engine = ImageMatchingEngine()
        img = np.zeros((2, 2, 3), dtype=np.uint8)
        img[0, :] = (255, 0, 0)
        img[1, :] = (0, 0, 255)

        descriptor = engine.extract_descriptor(img)

        assert descriptor.average_color == pytest.approx((127.5, 0.0, 127.5))
        expected_brightness = (luma((255, 0, 0)) + luma((0, 0, 255))) / 2
        assert descriptor.brightness == pytest.approx(expected_brightness)
        # Half the pixels at each luminance -> std is half the difference
        expected_contrast = abs(luma((255, 0, 0)) - luma((0, 0, 255))) / 2
        assert descriptor.contrast == pytest.approx(expected_contrast)

    def test_vertical_boundary_edges(self):
        """A black/white vertical boundary counts one edge per interior row."""
        engine = ImageMatchingEngine()
        img = np.zeros((10, 10, 3), dtype=np.uint8)
        img[:, 5:] = 255

        descriptor = engine.extract_descriptor(img)

        # Interior rows 1..8, boundary detected at column 4 (right neighbour is white)
        assert descriptor.edge_count == 8

    def test_edge_threshold_is_strict(self):
        """Luminance steps below the threshold are not edges; larger ones are."""
        engine = ImageMatchingEngine()

        weak = np.full((6, 6, 3), 100, dtype=np.uint8)
        weak[:, 3:] = 129
        strong = np.full((6, 6, 3), 100, dtype=np.uint8)
        strong[:, 3:] = 131

        assert engine.extract_descriptor(weak).edge_count == 0
        assert engine.extract_descriptor(strong).edge_count == 4

    def test_small_images_have_no_interior(self):
        """Images narrower than three pixels have no interior pixels to test."""
        engine = ImageMatchingEngine()
        img = np.zeros((2, 2, 3), dtype=np.uint8)
        img[0, 0] = 255

        assert engine.extract_descriptor(img).edge_count == 0

    def test_zero_size_bitmap_returns_zero_descriptor(self):
        """Zero-area input yields the all-zero descriptor instead of raising."""
        engine = ImageMatchingEngine()

        descriptor = engine.extract_descriptor(np.zeros((0, 5, 3), dtype=np.uint8))

        assert descriptor.is_empty()
        assert descriptor.average_color == (0.0, 0.0, 0.0)
        assert descriptor.brightness == 0.0
        assert descriptor.contrast == 0.0
        assert descriptor == ImageDescriptor.empty()

    def test_malformed_input_returns_zero_descriptor(self):
        """Unsupported raster layouts are logged and degrade to the zero descriptor."""
        engine = ImageMatchingEngine()

        descriptor = engine.extract_descriptor(np.zeros((4, 4, 2), dtype=np.uint8))

        assert descriptor.is_empty()

    def test_rgba_and_grayscale_inputs(self):
        """Alpha is ignored and grayscale is treated as equal RGB channels."""
        engine = ImageMatchingEngine()
        rgb = np.random.default_rng(1).integers(0, 256, (8, 8, 3), dtype=np.uint8)
        rgba = np.dstack([rgb, np.full((8, 8), 17, dtype=np.uint8)])

        assert engine.extract_descriptor(rgba) == engine.extract_descriptor(rgb)

        gray = rgb[:, :, 0]
        gray_descriptor = engine.extract_descriptor(gray)
        expected = engine.extract_descriptor(np.dstack([gray, gray, gray]))
        assert gray_descriptor == expected
        assert gray_descriptor.edge_count == expected.edge_count

    def test_async_extraction_matches_sync(self):
        """The async variant returns the same descriptor."""
        engine = ImageMatchingEngine()
        img = np.random.default_rng(2).integers(0, 256, (16, 16, 3), dtype=np.uint8)

        result = asyncio.run(engine.extract_descriptor_async(img))

        assert result == engine.extract_descriptor(img)
        assert result.edge_count == engine.extract_descriptor(img).edge_count


class TestDescriptorEquality:
    """Test value semantics of ImageDescriptor."""

    def test_equality_uses_histogram_only(self):
        hist = [0.0] * 768
        hist[0] = 1.0
        a = ImageDescriptor(histogram=hist, brightness=10.0, edge_count=3)
        b = ImageDescriptor(histogram=list(hist), brightness=99.0, edge_count=7)

        assert a == b
        assert hash(a) == hash(b)

    def test_descriptor_is_immutable(self):
        descriptor = ImageDescriptor.empty()

        with pytest.raises(ValidationError):
            descriptor.edge_count = 5

    def test_histogram_length_validated(self):
        with pytest.raises(ValueError):
            ImageDescriptor(histogram=[0.0] * 10)


class TestCompareDescriptors:
    """Test descriptor comparison."""

    def test_self_match(self):
        """A descriptor compared with itself is a perfect match."""
        engine = ImageMatchingEngine()
        img = np.random.default_rng(3).integers(0, 256, (32, 32, 3), dtype=np.uint8)
        descriptor = engine.extract_descriptor(img)

        result = engine.compare_descriptors(descriptor, descriptor)

        assert result.similarity_score == pytest.approx(1.0)
        assert result.confidence == 1.0
        assert result.is_match is True

    def test_comparison_is_symmetric(self):
        engine = ImageMatchingEngine()
        rng = np.random.default_rng(4)
        a = engine.extract_descriptor(rng.integers(0, 256, (20, 20, 3), dtype=np.uint8))
        b = engine.extract_descriptor(rng.integers(0, 128, (20, 20, 3), dtype=np.uint8))

        ab = engine.compare_descriptors(a, b)
        ba = engine.compare_descriptors(b, a)

        assert ab.similarity_score == pytest.approx(ba.similarity_score)
        assert ab.confidence == pytest.approx(ba.confidence)

    def test_confidence_is_clamped(self):
        """Boosted confidence never exceeds 1 even for identical inputs."""
        engine = ImageMatchingEngine()
        descriptor = engine.extract_descriptor(solid_image((120, 60, 30)))

        result = engine.compare_descriptors(descriptor, descriptor)

        assert 0.0 <= result.confidence <= 1.0
        assert result.confidence == 1.0

    def test_black_vs_white(self):
        """Black and white images share no color or brightness."""
        engine = ImageMatchingEngine()
        black = engine.extract_descriptor(solid_image((0, 0, 0)))
        white = engine.extract_descriptor(solid_image((255, 255, 255)))

        result = engine.compare_descriptors(black, white)

        assert result.components["color"] == pytest.approx(0.0, abs=1e-9)
        assert result.components["brightness"] == pytest.approx(0.0, abs=1e-9)
        assert result.is_match is False

    def test_red_vs_blue(self):
        """Two 2x2 images of disjoint colors do not match."""
        engine = ImageMatchingEngine()
        red = engine.extract_descriptor(solid_image((255, 0, 0), width=2, height=2))
        blue = engine.extract_descriptor(solid_image((0, 0, 255), width=2, height=2))

        result = engine.compare_descriptors(red, blue)

        brightness = 1 - abs(luma((255, 0, 0)) - luma((0, 0, 255))) / 255
        assert result.components["histogram"] == pytest.approx(0.0, abs=1e-9)
        assert result.components["color"] == pytest.approx(1 - (255 + 0 + 255) / 3 / 255)
        assert result.components["edge"] == 1.0
        assert result.components["brightness"] == pytest.approx(brightness)
        assert result.components["contrast"] == 1.0

        expected = 0.25 * (1 / 3) + 0.15 + 0.10 * brightness + 0.10
        assert result.similarity_score == pytest.approx(expected)
        assert result.confidence == pytest.approx(expected * 1.2)
        assert result.is_match is False

    def test_different_flat_colors_agree_on_contrast(self):
        """Two flat images share zero contrast, so contrast similarity is full."""
        engine = ImageMatchingEngine()
        a = engine.extract_descriptor(solid_image((123, 45, 67), width=640, height=480))
        b = engine.extract_descriptor(solid_image((10, 200, 90), width=640, height=480))

        result = engine.compare_descriptors(a, b)

        assert result.components["contrast"] == 1.0
        assert result.components["edge"] == 1.0

    def test_empty_descriptors(self):
        """Zero histograms give zero histogram similarity without failing."""
        engine = ImageMatchingEngine()
        empty = ImageDescriptor.empty()

        result = engine.compare_descriptors(empty, empty)

        assert result.components["histogram"] == 0.0
        assert result.components["edge"] == 1.0
        assert result.components["contrast"] == 1.0

    def test_comparison_failure_returns_no_match(self):
        """A malformed descriptor degrades to a no-match result."""
        engine = ImageMatchingEngine()
        good = engine.extract_descriptor(solid_image((90, 90, 90)))
        bad = ImageDescriptor.model_construct(
            histogram=[1.0] * 10,
            average_color=(0.0, 0.0, 0.0),
            edge_count=0,
            brightness=0.0,
            contrast=0.0,
        )

        result = engine.compare_descriptors(good, bad)

        assert result.is_match is False
        assert result.confidence == 0.0
        assert result.similarity_score == 0.0
        assert result.processing_time_ms >= 0.0

    def test_edge_similarity_rules(self):
        engine = ImageMatchingEngine()

        assert engine.edge_similarity(0, 0) == 1.0
        assert engine.edge_similarity(50, 100) == pytest.approx(0.5)
        assert engine.edge_similarity(100, 0) == 0.0

    def test_contrast_similarity_rules(self):
        engine = ImageMatchingEngine()

        assert engine.contrast_similarity(0.0, 0.0) == 1.0
        assert engine.contrast_similarity(10.0, 40.0) == pytest.approx(0.25)

    def test_match_against_ranks_references(self):
        """References are returned sorted by confidence."""
        engine = ImageMatchingEngine()
        frame = engine.extract_descriptor(solid_image((200, 30, 30)))
        references = {
            "green": engine.extract_descriptor(solid_image((30, 200, 30))),
            "red": engine.extract_descriptor(solid_image((200, 30, 30))),
            "blue": engine.extract_descriptor(solid_image((30, 30, 200))),
        }

        ranked = engine.match_against(frame, references, top_n=2)

        assert len(ranked) == 2
        assert ranked[0][0] == "red"
        assert ranked[0][1].is_match is True
        assert ranked[0][1].confidence >= ranked[1][1].confidence

    def test_async_comparison_matches_sync(self):
        engine = ImageMatchingEngine()
        a = engine.extract_descriptor(solid_image((10, 20, 30)))
        b = engine.extract_descriptor(solid_image((40, 50, 60)))

        result = asyncio.run(engine.compare_descriptors_async(a, b))

        assert result.similarity_score == pytest.approx(
            engine.compare_descriptors(a, b).similarity_score
        )


class TestMatchingConfig:
    """Test matching configuration validation."""

    def test_default_constants(self):
        config = MatchingConfig()

        assert config.similarity_threshold == 0.7
        assert config.edge_threshold == 30.0
        assert config.confidence_boost == 1.2
        assert config.weights == (0.40, 0.25, 0.15, 0.10, 0.10)

    def test_weights_must_sum_to_one(self):
        with pytest.raises(ValueError):
            ImageMatchingEngine(MatchingConfig(histogram_weight=0.9))

    def test_custom_threshold_changes_decision(self):
        """Raising the threshold above 1 is rejected; lowering it admits weak matches."""
        with pytest.raises(ValueError):
            MatchingConfig(similarity_threshold=1.5).validate()

        engine = ImageMatchingEngine(MatchingConfig(similarity_threshold=0.1))
        red = engine.extract_descriptor(solid_image((255, 0, 0)))
        blue = engine.extract_descriptor(solid_image((0, 0, 255)))
        assert engine.compare_descriptors(red, blue).is_match is True
