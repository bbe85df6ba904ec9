"""Image descriptor extraction and similarity matching (histogram, color, edges, luminance)."""

import asyncio
import logging
import time
from collections.abc import Mapping
from typing import Any

import numpy as np
import numpy.typing as npt

from .config import MatchingConfig
from .models import ImageDescriptor, MatchResult

logger = logging.getLogger(__name__)

# Constants for magic values
_COLOR_CHANNELS = 3
_GRAYSCALE_DIMS = 2
_MAX_CHANNEL_VALUE = 255.0

# ITU-R BT.601 luma weights (R, G, B) in thousandths, kept integral so flat
# images give exactly equal luminance values
_LUMA_WEIGHTS_MILLI = np.array([299, 587, 114], dtype=np.int64)
_LUMA_SCALE = 1000.0


def to_rgb_pixels(bitmap: npt.NDArray[Any]) -> npt.NDArray[np.uint8]:
    """Normalize a raster to an (H, W, 3) uint8 RGB array.

    Args:
        bitmap: RGB (H, W, 3), RGBA (H, W, 4) or grayscale (H, W) raster.

    Returns:
        RGB view/copy of the raster; alpha is dropped, gray is replicated.

    Raises:
        ValueError: If the array shape is not a supported raster layout.
    """
    pixels = np.asarray(bitmap)
    if pixels.ndim == _GRAYSCALE_DIMS:
        pixels = np.repeat(pixels[:, :, np.newaxis], _COLOR_CHANNELS, axis=2)
    if pixels.ndim != _COLOR_CHANNELS or pixels.shape[2] < _COLOR_CHANNELS:
        msg = f"Unsupported raster shape: {pixels.shape}"
        raise ValueError(msg)
    pixels = pixels[:, :, :_COLOR_CHANNELS]
    if pixels.dtype != np.uint8:
        pixels = np.clip(pixels, 0, 255).astype(np.uint8)
    return pixels


def luminance_milli(pixels: npt.NDArray[np.uint8]) -> npt.NDArray[np.int64]:
    """Per-pixel luminance scaled by 1000: 299R + 587G + 114B."""
    result: npt.NDArray[np.int64] = pixels.astype(np.int64) @ _LUMA_WEIGHTS_MILLI
    return result


def luminance(pixels: npt.NDArray[np.uint8]) -> npt.NDArray[np.float64]:
    """Per-pixel perceptual luminance Y = 0.299R + 0.587G + 0.114B."""
    return luminance_milli(pixels) / _LUMA_SCALE


class ImageMatchingEngine:
    """Extract image descriptors and compare them into a match decision.

    A descriptor combines five measurements:
    - RGB histograms (256 bins per channel)
    - Average color
    - Edge count from neighbour luminance differences
    - Brightness (mean luminance)
    - Contrast (luminance standard deviation)

    Comparison weights each sub-similarity, boosts the result into a
    confidence and thresholds it into a match. Both operations are pure and
    never raise: failures degrade to an empty descriptor or a no-match result.
    """

    def __init__(self, config: MatchingConfig | None = None):
        """Initialize engine with matching configuration.

        Args:
            config: Thresholds and weights. Defaults to MatchingConfig().
        """
        self.config = config if config is not None else MatchingConfig()
        self.config.validate()

    def extract_descriptor(self, bitmap: npt.NDArray[Any]) -> ImageDescriptor:
        """Compute the descriptor of a decoded raster.

        Args:
            bitmap: RGB(A) or grayscale raster as a numpy array.

        Returns:
            Descriptor of the image, or the zero descriptor for an empty
            raster or any extraction failure.
        """
        start = time.perf_counter()
        try:
            pixels = to_rgb_pixels(bitmap)
            height, width = pixels.shape[:2]
            pixel_count = height * width
            if pixel_count == 0:
                logger.debug("Empty raster, returning zero descriptor")
                return ImageDescriptor.empty()

            bins = self.config.histogram_bins
            channels = pixels.reshape(-1, _COLOR_CHANNELS)

            # Per-channel histograms normalized by pixel count, concatenated R, G, B
            histogram = np.concatenate([
                np.bincount(channels[:, c], minlength=bins)[:bins] / pixel_count
                for c in range(_COLOR_CHANNELS)
            ])

            average = channels.mean(axis=0, dtype=np.float64)

            # Integer sums keep the mean exact, so a flat image has zero deviation
            gray_milli = luminance_milli(pixels)
            mean_milli = int(gray_milli.sum()) / pixel_count
            brightness = mean_milli / _LUMA_SCALE
            deviation = gray_milli - mean_milli
            contrast = float(np.sqrt(np.mean(deviation * deviation))) / _LUMA_SCALE

            edge_count = self.count_edges(gray_milli / _LUMA_SCALE)

            descriptor = ImageDescriptor(
                histogram=histogram.tolist(),
                average_color=(float(average[0]), float(average[1]), float(average[2])),
                edge_count=edge_count,
                brightness=min(_MAX_CHANNEL_VALUE, max(0.0, brightness)),
                contrast=contrast,
            )
        except Exception:
            logger.error("Error extracting descriptor", exc_info=True)
            return ImageDescriptor.empty()

        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.debug(
            f"Descriptor extracted in {elapsed_ms:.1f}ms - edges: {edge_count}, "
            f"brightness: {brightness:.1f}"
        )
        return descriptor

    def count_edges(self, gray: npt.NDArray[np.float64]) -> int:
        """Count interior pixels with a strong step to the right or bottom neighbour.

        The one-pixel border is excluded from the centre positions.

        Args:
            gray: Luminance image (H, W) on a 0-255 scale.

        Returns:
            Number of edge pixels.
        """
        height, width = gray.shape[:2]
        if height < 3 or width < 3:  # noqa: PLR2004
            return 0

        center = gray[1:-1, 1:-1]
        right = gray[1:-1, 2:]
        bottom = gray[2:, 1:-1]

        threshold = self.config.edge_threshold
        edges = (np.abs(center - right) > threshold) | (np.abs(center - bottom) > threshold)
        return int(np.count_nonzero(edges))

    def compare_descriptors(
        self, descriptor1: ImageDescriptor, descriptor2: ImageDescriptor
    ) -> MatchResult:
        """Compare two descriptors.

        Args:
            descriptor1: First descriptor.
            descriptor2: Second descriptor.

        Returns:
            MatchResult with weighted similarity, boosted confidence and
            match decision; a no-match result if comparison fails.
        """
        start = time.perf_counter()
        try:
            components = {
                "histogram": self.histogram_similarity(
                    descriptor1.histogram, descriptor2.histogram
                ),
                "color": self.color_similarity(
                    descriptor1.average_color, descriptor2.average_color
                ),
                "edge": self.edge_similarity(descriptor1.edge_count, descriptor2.edge_count),
                "brightness": self.brightness_similarity(
                    descriptor1.brightness, descriptor2.brightness
                ),
                "contrast": self.contrast_similarity(descriptor1.contrast, descriptor2.contrast),
            }

            similarity = sum(
                weight * score
                for weight, score in zip(self.config.weights, components.values(), strict=True)
            )
            similarity = _clamp_unit(similarity)

            confidence = min(1.0, similarity * self.config.confidence_boost)
            is_match = confidence >= self.config.similarity_threshold
            elapsed_ms = (time.perf_counter() - start) * 1000

            logger.debug(
                f"Match comparison: similarity={similarity:.3f}, confidence={confidence:.3f}, "
                f"is_match={is_match} ({elapsed_ms:.2f}ms)"
            )

            return MatchResult(
                confidence=confidence,
                is_match=is_match,
                similarity_score=similarity,
                processing_time_ms=elapsed_ms,
                components=components,
            )
        except Exception:
            logger.error("Error comparing descriptors", exc_info=True)
            return MatchResult.no_match((time.perf_counter() - start) * 1000)

    def histogram_similarity(self, hist1: Any, hist2: Any) -> float:
        """Cosine similarity between two histogram vectors.

        Returns:
            Similarity in [0, 1]; 0 if either vector has zero norm.
        """
        h1 = np.asarray(hist1, dtype=np.float64)
        h2 = np.asarray(hist2, dtype=np.float64)

        norm1 = np.linalg.norm(h1)
        norm2 = np.linalg.norm(h2)
        if norm1 == 0 or norm2 == 0:
            return 0.0

        return _clamp_unit(float(np.dot(h1, h2) / (norm1 * norm2)))

    def color_similarity(
        self,
        color1: tuple[float, float, float],
        color2: tuple[float, float, float],
    ) -> float:
        """One minus the mean absolute channel difference over 255."""
        avg_diff = sum(abs(a - b) for a, b in zip(color1, color2, strict=True)) / 3.0
        return _clamp_unit(1.0 - avg_diff / _MAX_CHANNEL_VALUE)

    def edge_similarity(self, edges1: int, edges2: int) -> float:
        """Relative edge count agreement; 1 when neither image has edges."""
        max_edges = max(edges1, edges2)
        if max_edges <= 0:
            return 1.0
        return _clamp_unit(1.0 - abs(edges1 - edges2) / max_edges)

    def brightness_similarity(self, brightness1: float, brightness2: float) -> float:
        return _clamp_unit(1.0 - abs(brightness1 - brightness2) / _MAX_CHANNEL_VALUE)

    def contrast_similarity(self, contrast1: float, contrast2: float) -> float:
        """Relative contrast agreement; 1 when both images are flat."""
        max_contrast = max(contrast1, contrast2)
        if max_contrast <= 0:
            return 1.0
        return _clamp_unit(1.0 - abs(contrast1 - contrast2) / max_contrast)

    def match_against(
        self,
        descriptor: ImageDescriptor,
        references: Mapping[str, ImageDescriptor],
        top_n: int = 1,
    ) -> list[tuple[str, MatchResult]]:
        """Compare a descriptor against named reference descriptors.

        Args:
            descriptor: Descriptor of the captured frame.
            references: Mapping of reference name to descriptor.
            top_n: Number of best candidates to return.

        Returns:
            Up to top_n (name, MatchResult) pairs sorted by confidence descending.
        """
        scored = [
            (name, self.compare_descriptors(descriptor, reference))
            for name, reference in references.items()
        ]
        scored.sort(key=lambda item: item[1].confidence, reverse=True)
        return scored[:top_n]

    async def extract_descriptor_async(self, bitmap: npt.NDArray[Any]) -> ImageDescriptor:
        """Run extract_descriptor on a worker thread."""
        return await asyncio.to_thread(self.extract_descriptor, bitmap)

    async def compare_descriptors_async(
        self, descriptor1: ImageDescriptor, descriptor2: ImageDescriptor
    ) -> MatchResult:
        """Run compare_descriptors on a worker thread."""
        return await asyncio.to_thread(self.compare_descriptors, descriptor1, descriptor2)


def _clamp_unit(value: float) -> float:
    return float(min(1.0, max(0.0, value)))
