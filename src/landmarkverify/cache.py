"""Reference descriptor cache management."""

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .models import ImageDescriptor

logger = logging.getLogger(__name__)


class DescriptorCache:
    """Manages save/load/validation of precomputed reference descriptors.

    A cache is only reused when it was built with the same thumbnail size and
    edge threshold, and every reference file still has the modification time
    recorded when its descriptor was computed.
    """

    def __init__(self, cache_path: Path):
        """Initialize descriptor cache.

        Args:
            cache_path: Path to cache JSON file
        """
        self.cache_path = Path(cache_path)

    def load(self) -> dict[str, Any] | None:
        """Load cache from disk.

        Returns:
            Cache dictionary if it exists and parses, None otherwise
        """
        if not self.cache_path.exists():
            return None

        try:
            with self.cache_path.open() as f:
                cache: dict[str, Any] = json.load(f)
                logger.info(f"Loaded descriptor cache with {len(cache.get('descriptors', {}))} references")
                return cache
        except Exception as e:
            logger.warning(f"Failed to load descriptor cache: {e}")
            return None

    def save(
        self,
        descriptors: dict[str, ImageDescriptor],
        thumbnail_size: tuple[int, int],
        edge_threshold: float,
        mtimes: Mapping[str, int],
    ) -> None:
        """Save descriptors to disk.

        Args:
            descriptors: Reference path to descriptor
            thumbnail_size: (max_width, max_height) used when computing them
            edge_threshold: Edge threshold used when computing them
            mtimes: Reference path to file modification time in nanoseconds
        """
        payload = {
            "thumbnail_size": list(thumbnail_size),
            "edge_threshold": edge_threshold,
            "mtimes": {path: mtimes[path] for path in descriptors},
            "descriptors": {path: d.model_dump(mode="json") for path, d in descriptors.items()},
        }
        try:
            with self.cache_path.open("w") as f:
                json.dump(payload, f)
        except Exception as e:
            logger.error(f"Failed to save descriptor cache: {e}")
            raise

    def load_descriptors(
        self,
        expected: Mapping[str, int],
        thumbnail_size: tuple[int, int],
        edge_threshold: float,
    ) -> dict[str, ImageDescriptor] | None:
        """Load descriptors if the cache is valid for the requested references.

        Args:
            expected: Reference path to current modification time (ns); all
                paths must be cached with the same time
            thumbnail_size: Thumbnail size the cache must have been built with
            edge_threshold: Edge threshold the cache must have been built with

        Returns:
            Descriptors for the expected paths, or None if the cache cannot be used
        """
        cache = self.load()
        if cache is None:
            return None

        is_valid, issues = self.validate_integrity(cache)
        if not is_valid:
            logger.info(f"Descriptor cache invalid ({'; '.join(issues[:3])}), recomputing...")
            return None

        if tuple(cache["thumbnail_size"]) != tuple(thumbnail_size) or cache["edge_threshold"] != edge_threshold:
            logger.info("Cache parameters don't match, recomputing...")
            return None

        cached = cache["descriptors"]
        missing = set(expected) - set(cached)
        if missing:
            logger.info(f"Cache incomplete ({len(missing)} references missing), recomputing...")
            return None

        stale = [path for path, mtime in expected.items() if cache["mtimes"].get(path) != mtime]
        if stale:
            logger.info(f"Cache stale ({len(stale)} references modified), recomputing...")
            return None

        try:
            return {path: ImageDescriptor.model_validate(cached[path]) for path in expected}
        except ValidationError as e:
            logger.warning(f"Error loading cached descriptors: {e}, recomputing...")
            return None

    def validate_integrity(self, cache: dict[str, Any]) -> tuple[bool, list[str]]:
        """Validate cache structure.

        Args:
            cache: Cache dictionary to validate

        Returns:
            Tuple of (is_valid, list of issues found)
        """
        issues = []

        size = cache.get("thumbnail_size")
        if not isinstance(size, list) or len(size) != 2:  # noqa: PLR2004
            issues.append("Missing or malformed 'thumbnail_size'")

        if not isinstance(cache.get("edge_threshold"), (int, float)):
            issues.append("Missing or malformed 'edge_threshold'")

        if not isinstance(cache.get("mtimes"), dict):
            issues.append("Missing or malformed 'mtimes'")

        if "descriptors" not in cache:
            issues.append("Missing 'descriptors' key")
            return False, issues

        descriptors = cache["descriptors"]
        if not isinstance(descriptors, dict):
            issues.append("'descriptors' is not a dict")
            return False, issues

        for path, data in descriptors.items():
            if not isinstance(data, dict):
                issues.append(f"Descriptor for {path} is not a dict")
                continue
            for key in ("histogram", "average_color", "edge_count", "brightness", "contrast"):
                if key not in data:
                    issues.append(f"Descriptor for {path} missing '{key}'")

        return len(issues) == 0, issues
