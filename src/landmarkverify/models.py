"""Pydantic models for type-safe data structures."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from .config import GEO_ACCURACY_METERS, HISTOGRAM_BINS, MIN_POSE_CONFIDENCE

DESCRIPTOR_LENGTH = HISTOGRAM_BINS * 3


class ImageDescriptor(BaseModel):
    """Compact numeric fingerprint of an RGB image.

    Two descriptors are equal when their histograms are equal; the scalar
    fields are derived from the same pixels and do not take part in equality.

    Attributes:
        histogram: 768 normalized frequencies (256 bins for R, then G, then B).
        average_color: Mean (R, G, B) in [0, 255].
        edge_count: Interior pixels whose luminance step to the right or
            bottom neighbour exceeds the edge threshold.
        brightness: Mean BT.601 luminance in [0, 255].
        contrast: Population standard deviation of luminance.
    """
    model_config = ConfigDict(frozen=True)

    histogram: list[float]
    average_color: tuple[float, float, float] = (0.0, 0.0, 0.0)
    edge_count: int = Field(default=0, ge=0)
    brightness: float = Field(default=0.0, ge=0.0, le=255.0)
    contrast: float = Field(default=0.0, ge=0.0)

    @field_validator("histogram")
    @classmethod
    def _check_histogram(cls, value: list[float]) -> list[float]:
        if len(value) != DESCRIPTOR_LENGTH:
            msg = f"histogram must have {DESCRIPTOR_LENGTH} bins, got {len(value)}"
            raise ValueError(msg)
        if any(v < 0.0 or v > 1.0 for v in value):
            msg = "histogram bins must be in [0, 1]"
            raise ValueError(msg)
        return value

    @classmethod
    def empty(cls) -> ImageDescriptor:
        """Zero-valued descriptor used when extraction is impossible."""
        return cls(histogram=[0.0] * DESCRIPTOR_LENGTH)

    def is_empty(self) -> bool:
        return self.edge_count == 0 and not any(self.histogram)

    def __eq__(self, other: object) -> bool:
        if self is other:
            return True
        if not isinstance(other, ImageDescriptor):
            return NotImplemented
        return self.histogram == other.histogram

    def __hash__(self) -> int:
        return hash(tuple(self.histogram))


class MatchResult(BaseModel):
    """Outcome of comparing two descriptors.

    Attributes:
        confidence: Boosted similarity, clamped to [0, 1].
        is_match: True when confidence reaches the match threshold.
        similarity_score: Weighted combination of the five sub-scores.
        processing_time_ms: Wall-clock duration of the comparison.
        components: Individual sub-scores keyed by name.
    """
    confidence: float = Field(ge=0.0, le=1.0)
    is_match: bool
    similarity_score: float = Field(ge=0.0, le=1.0)
    processing_time_ms: float = Field(default=0.0, ge=0.0)
    components: dict[str, float] = Field(default_factory=dict)

    @classmethod
    def no_match(cls, processing_time_ms: float = 0.0) -> MatchResult:
        return cls(
            confidence=0.0,
            is_match=False,
            similarity_score=0.0,
            processing_time_ms=processing_time_ms,
        )


class PoseSnapshot(BaseModel):
    """Raw geospatial pose as reported by the AR/location platform."""
    latitude: float
    longitude: float
    altitude: float = 0.0
    heading: float = 0.0
    horizontal_accuracy: float = Field(ge=0.0)
    orientation_yaw_accuracy: float = 0.0


class GeospatialSample(BaseModel):
    """Geospatial pose reduced to what the accuracy gate needs.

    `is_accurate` is computed from the accuracy and confidence thresholds the
    sample was built with and cannot be set directly.
    """
    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float
    altitude: float = 0.0
    heading: float = 0.0
    horizontal_accuracy_meters: float = Field(ge=0.0)
    pose_confidence: float = 0.0
    accuracy_threshold_meters: float = Field(default=GEO_ACCURACY_METERS, exclude=True, repr=False)
    min_pose_confidence: float = Field(default=MIN_POSE_CONFIDENCE, exclude=True, repr=False)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_accurate(self) -> bool:
        return (
            self.horizontal_accuracy_meters <= self.accuracy_threshold_meters
            and self.pose_confidence >= self.min_pose_confidence
        )

    @classmethod
    def from_pose(
        cls,
        pose: PoseSnapshot,
        accuracy_threshold_meters: float = GEO_ACCURACY_METERS,
        min_pose_confidence: float = MIN_POSE_CONFIDENCE,
    ) -> GeospatialSample:
        """Build a sample from a raw provider snapshot.

        The orientation yaw accuracy stands in for pose confidence.
        """
        return cls(
            latitude=pose.latitude,
            longitude=pose.longitude,
            altitude=pose.altitude,
            heading=pose.heading,
            horizontal_accuracy_meters=pose.horizontal_accuracy,
            pose_confidence=pose.orientation_yaw_accuracy,
            accuracy_threshold_meters=accuracy_threshold_meters,
            min_pose_confidence=min_pose_confidence,
        )


class VideoInfo(BaseModel):
    """Video file metadata.

    Attributes:
        fps: Frames per second.
        width: Frame width in pixels.
        height: Frame height in pixels.
        total_frames: Total number of frames in video.
    """
    fps: float
    width: int
    height: int
    total_frames: int


class VerificationResult(BaseModel):
    """Verification outcome for a single captured frame.

    Attributes:
        frame_index: Index of the frame in its source.
        timestamp_s: Source time of the frame in seconds.
        best_reference: Path of the best matching reference image, or None.
        match: Comparison result against the best reference.
        top_matches: (reference_path, confidence) for the top candidates.
        location_ready: Whether the accuracy gate was ready at capture time.
        verified: Match found and, when required, location ready.
    """
    frame_index: int = Field(ge=0)
    timestamp_s: float = Field(default=0.0, ge=0.0)
    best_reference: str | None = None
    match: MatchResult
    top_matches: list[tuple[str, float]] = Field(default_factory=list)
    location_ready: bool = False
    verified: bool = False
