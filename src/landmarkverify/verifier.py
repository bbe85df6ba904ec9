"""Landmark verification: match captured frames against reference landmark images."""

import asyncio
import json
import logging
from collections import deque
from collections.abc import Callable
from pathlib import Path
from typing import Any

import numpy as np
import numpy.typing as npt
from tqdm import tqdm

from .cache import DescriptorCache
from .capture import ImageCaptureManager
from .config import Config
from .geospatial import GeospatialManager
from .matcher import ImageMatchingEngine
from .models import ImageDescriptor, MatchResult, VerificationResult
from .video import VideoFrameSource

logger = logging.getLogger(__name__)

FrameProvider = Callable[[], npt.NDArray[Any] | None]


class LandmarkVerifier:
    """Main class for verifying that captured frames show a known landmark."""

    def __init__(
        self,
        reference_folder: str | Path,
        output_dir: str | Path,
        config: Config | None = None,
        gate: GeospatialManager | None = None,
    ):
        """
        Initialize the landmark verifier.

        Args:
            reference_folder: Folder containing reference landmark images
            output_dir: Directory for the descriptor cache, results and samples
            config: Verification configuration (defaults to Config())
            gate: Accuracy gate consulted for location readiness
        """
        self.reference_folder = Path(reference_folder)
        self.output_dir = Path(output_dir)
        self.config = config if config is not None else Config()
        self.config.validate()
        self.gate = gate

        self.output_dir.mkdir(parents=True, exist_ok=True)

        self.engine = ImageMatchingEngine(self.config.matching)
        self.capture = ImageCaptureManager(self.config.capture)
        self.cache = DescriptorCache(self.output_dir / self.config.fn_descriptors)
        self.results_path = self.output_dir / self.config.fn_results

        self.reference_descriptors: dict[str, ImageDescriptor] = {}
        self.results: list[VerificationResult] = []
        self.capture_history: deque[VerificationResult] = deque(maxlen=self.config.capture_history)

    @property
    def thumbnail_size(self) -> tuple[int, int]:
        return (self.config.capture.thumbnail_max_width, self.config.capture.thumbnail_max_height)

    def get_image_files(self) -> list[Path]:
        """Get all reference images from the reference folder.

        Returns:
            Sorted list of image file paths.
        """
        extensions = {".jpg", ".jpeg", ".png", ".bmp", ".tiff", ".webp"}
        image_files = [
            p for p in self.reference_folder.iterdir()
            if p.is_file() and p.suffix.lower() in extensions
        ]
        return sorted(image_files)

    def precompute_reference_descriptors(self, force_recompute: bool = False) -> None:
        """Compute and cache descriptors for all reference images.

        Args:
            force_recompute: If True, recompute even if a valid cache exists.

        Raises:
            ValueError: If the reference folder contains no images.
        """
        if not self.reference_folder.is_dir():
            msg = f"Reference folder not found: {self.reference_folder}"
            raise ValueError(msg)

        image_files = self.get_image_files()
        if not image_files:
            msg = f"No images found in {self.reference_folder}"
            raise ValueError(msg)

        needed = {str(p): p.stat().st_mtime_ns for p in image_files}
        if not force_recompute:
            cached = self.cache.load_descriptors(
                needed, self.thumbnail_size, self.config.matching.edge_threshold
            )
            if cached is not None:
                logger.info(f"Cache valid! Loaded descriptors for {len(cached)} references")
                self.reference_descriptors = cached
                return

        logger.info(f"Computing descriptors for {len(image_files)} reference images...")
        self.reference_descriptors = {}

        for img_path in tqdm(image_files, desc="Computing reference descriptors"):
            try:
                bitmap = self.capture.load_bitmap(img_path)
            except ValueError as e:
                logger.warning(f"Skipping reference: {e}")
                continue
            thumbnail = self.capture.create_thumbnail(bitmap)
            self.reference_descriptors[str(img_path)] = self.engine.extract_descriptor(thumbnail)

        logger.info(f"Saving descriptor cache to {self.cache.cache_path}")
        self.cache.save(
            self.reference_descriptors,
            self.thumbnail_size,
            self.config.matching.edge_threshold,
            needed,
        )

    def location_ready(self) -> bool:
        return self.gate.is_ready if self.gate is not None else False

    def _ensure_references(self) -> None:
        if not self.reference_descriptors:
            self.precompute_reference_descriptors()

    def _build_result(
        self,
        descriptor: ImageDescriptor,
        frame_index: int,
        timestamp_s: float,
    ) -> VerificationResult:
        ranked = self.engine.match_against(
            descriptor, self.reference_descriptors, top_n=self.config.top_n
        )
        if ranked:
            best_reference, best = ranked[0]
        else:
            best_reference, best = None, MatchResult.no_match()

        location_ready = self.location_ready()
        verified = best.is_match and (location_ready or not self.config.require_location)

        return VerificationResult(
            frame_index=frame_index,
            timestamp_s=timestamp_s,
            best_reference=best_reference,
            match=best,
            top_matches=[(name, result.confidence) for name, result in ranked],
            location_ready=location_ready,
            verified=verified,
        )

    def verify_bitmap(
        self, bitmap: npt.NDArray[Any], frame_index: int = 0, timestamp_s: float = 0.0
    ) -> VerificationResult:
        """Verify a single RGB frame against the reference landmarks.

        Args:
            bitmap: Captured RGB frame.
            frame_index: Index of the frame in its source.
            timestamp_s: Time of the frame in seconds.

        Returns:
            VerificationResult for the frame.
        """
        self._ensure_references()
        thumbnail = self.capture.create_thumbnail(bitmap)
        descriptor = self.engine.extract_descriptor(thumbnail)
        return self._build_result(descriptor, frame_index, timestamp_s)

    def verify_video(self, video_path: str | Path) -> list[VerificationResult]:
        """Verify frames sampled from a recorded camera video.

        Frames are taken every capture interval. Processing stops at the
        first verified frame when stop_on_match is set.

        Args:
            video_path: Path to the recording.

        Returns:
            Results for every processed frame.

        Raises:
            ValueError: If the video cannot be opened or no references exist.
        """
        self._ensure_references()
        source = VideoFrameSource(Path(video_path), self.config.capture.capture_interval_s)
        info = source.get_info()
        logger.info(f"Video: {video_path} ({info.width}x{info.height} @ {info.fps:.1f}fps)")
        logger.info(f"Capture interval: {self.config.capture.capture_interval_s}s")
        logger.info(f"References: {len(self.reference_descriptors)}")

        samples_dir = self.output_dir / "samples"
        if self.config.save_samples:
            samples_dir.mkdir(exist_ok=True)

        self.results = []
        for frame_index, timestamp, rgb in tqdm(source.iter_frames(), desc="Verifying frames"):
            result = self.verify_bitmap(rgb, frame_index, timestamp)
            self.results.append(result)

            if self.config.save_samples:
                self.capture.save_bitmap(
                    self.capture.create_thumbnail(rgb),
                    samples_dir / f"frame_{frame_index:06d}.jpg",
                )

            if result.verified:
                logger.info(
                    f"Landmark verified at {timestamp:.1f}s: {result.best_reference} "
                    f"(confidence {result.match.confidence:.2f})"
                )
                if self.config.stop_on_match:
                    break

        self.save_results()
        logger.info(f"Results saved to {self.results_path}")
        return self.results

    def save_results(self) -> None:
        """Save verification results to disk as JSON."""
        with self.results_path.open("w") as f:
            json.dump([r.model_dump(mode="json") for r in self.results], f, indent=2)

    async def run_capture_loop(
        self, frame_provider: FrameProvider, max_attempts: int | None = None
    ) -> VerificationResult | None:
        """Capture and verify frames at the capture interval until one is verified.

        Frame capture, thumbnailing, extraction and comparison run on a worker
        thread so the event loop keeps serving other work. Only the most
        recent results are kept in capture_history. There is no timeout; the
        loop is bounded by max_attempts or by the frame provider returning None.

        Args:
            frame_provider: Returns the current RGB frame, or None when the
                camera has stopped.
            max_attempts: Maximum number of captures (None = unbounded).

        Returns:
            First verified result, or None if no frame was verified.
        """
        self._ensure_references()
        interval = self.config.capture.capture_interval_s
        attempt = 0
        loop = asyncio.get_running_loop()
        start = loop.time()

        while max_attempts is None or attempt < max_attempts:
            if attempt > 0:
                await asyncio.sleep(interval)

            bitmap = await asyncio.to_thread(frame_provider)
            if bitmap is None:
                logger.info("Frame provider stopped, ending capture loop")
                return None

            result = await asyncio.to_thread(
                self.verify_bitmap, np.asarray(bitmap), attempt, loop.time() - start
            )
            self.capture_history.append(result)
            logger.debug(
                f"Capture {attempt}: confidence {result.match.confidence:.2f}, "
                f"location ready: {result.location_ready}"
            )
            if result.verified:
                return result
            attempt += 1

        return None
