"""
Tests for the reference descriptor cache.
"""

import json
import tempfile
from pathlib import Path

from landmarkverify import ImageDescriptor
from landmarkverify.cache import DescriptorCache

MTIMES = {"a.jpg": 1, "b.jpg": 2}


def descriptor(bin_index: int, brightness: float = 50.0) -> ImageDescriptor:
    histogram = [0.0] * 768
    for channel in range(3):
        histogram[channel * 256 + bin_index] = 1.0
    return ImageDescriptor(
        histogram=histogram,
        average_color=(float(bin_index),) * 3,
        edge_count=4,
        brightness=brightness,
        contrast=1.5,
    )


class TestDescriptorCache:
    """Test save, load and validation of the descriptor cache."""

    def test_missing_cache(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            cache = DescriptorCache(Path(tmpdir) / "cache.json")

            assert cache.load() is None
            assert cache.load_descriptors({"a.jpg": 1}, (640, 480), 30.0) is None

    def test_round_trip(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            cache = DescriptorCache(Path(tmpdir) / "cache.json")
            descriptors = {"a.jpg": descriptor(10), "b.jpg": descriptor(200, brightness=180.0)}

            cache.save(descriptors, (640, 480), 30.0, MTIMES)
            loaded = cache.load_descriptors(MTIMES, (640, 480), 30.0)

            assert loaded is not None
            assert loaded == descriptors
            assert loaded["b.jpg"].brightness == 180.0
            assert loaded["a.jpg"].edge_count == 4

    def test_subset_of_cached_paths(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            cache = DescriptorCache(Path(tmpdir) / "cache.json")
            cache.save({"a.jpg": descriptor(10), "b.jpg": descriptor(20)}, (640, 480), 30.0, MTIMES)

            loaded = cache.load_descriptors({"a.jpg": 1}, (640, 480), 30.0)

            assert loaded is not None
            assert set(loaded) == {"a.jpg"}

    def test_thumbnail_size_mismatch(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            cache = DescriptorCache(Path(tmpdir) / "cache.json")
            cache.save({"a.jpg": descriptor(10)}, (640, 480), 30.0, MTIMES)

            assert cache.load_descriptors({"a.jpg": 1}, (320, 240), 30.0) is None

    def test_edge_threshold_mismatch(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            cache = DescriptorCache(Path(tmpdir) / "cache.json")
            cache.save({"a.jpg": descriptor(10)}, (640, 480), 30.0, MTIMES)

            assert cache.load_descriptors({"a.jpg": 1}, (640, 480), 45.0) is None

    def test_modified_reference_is_stale(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            cache = DescriptorCache(Path(tmpdir) / "cache.json")
            cache.save({"a.jpg": descriptor(10)}, (640, 480), 30.0, MTIMES)

            assert cache.load_descriptors({"a.jpg": 99}, (640, 480), 30.0) is None

    def test_missing_reference(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            cache = DescriptorCache(Path(tmpdir) / "cache.json")
            cache.save({"a.jpg": descriptor(10)}, (640, 480), 30.0, MTIMES)

            assert cache.load_descriptors({"a.jpg": 1, "new.jpg": 3}, (640, 480), 30.0) is None

    def test_corrupt_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "cache.json"
            path.write_text("{not json")
            cache = DescriptorCache(path)

            assert cache.load() is None
            assert cache.load_descriptors({"a.jpg": 1}, (640, 480), 30.0) is None

    def test_invalid_descriptor_values(self):
        """Entries that fail model validation force a recompute."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "cache.json"
            bad = descriptor(10).model_dump(mode="json")
            bad["histogram"] = [0.5] * 12
            path.write_text(json.dumps({
                "thumbnail_size": [640, 480],
                "edge_threshold": 30.0,
                "mtimes": {"a.jpg": 1},
                "descriptors": {"a.jpg": bad},
            }))
            cache = DescriptorCache(path)

            assert cache.load_descriptors({"a.jpg": 1}, (640, 480), 30.0) is None

    def test_validate_integrity(self):
        cache = DescriptorCache(Path("unused.json"))

        ok, issues = cache.validate_integrity({
            "thumbnail_size": [640, 480],
            "edge_threshold": 30.0,
            "mtimes": {"a.jpg": 1},
            "descriptors": {"a.jpg": descriptor(1).model_dump(mode="json")},
        })
        assert ok
        assert issues == []

        ok, issues = cache.validate_integrity({"thumbnail_size": [640, 480]})
        assert not ok
        assert "Missing 'descriptors' key" in issues

        ok, issues = cache.validate_integrity({
            "thumbnail_size": 640,
            "descriptors": {"a.jpg": {"histogram": []}, "b.jpg": "oops"},
        })
        assert not ok
        assert "Missing or malformed 'thumbnail_size'" in issues
        assert "Descriptor for b.jpg is not a dict" in issues
        assert "Descriptor for a.jpg missing 'edge_count'" in issues
