"""Geospatial accuracy gate: accepts or rejects pose samples by fixed precision thresholds."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol, runtime_checkable

from .config import GeospatialConfig
from .models import GeospatialSample, PoseSnapshot

logger = logging.getLogger(__name__)


class EarthState(str, Enum):
    """Availability of the platform's geospatial (Earth) tracking."""

    UNKNOWN = "unknown"
    DISABLED = "disabled"
    ENABLED = "enabled"
    ERROR_INTERNAL = "error_internal"
    ERROR_NOT_AUTHORIZED = "error_not_authorized"
    ERROR_RESOURCE_EXHAUSTED = "error_resource_exhausted"


_EARTH_STATE_DESCRIPTIONS = {
    EarthState.ENABLED: "Geospatial enabled",
    EarthState.DISABLED: "Geospatial disabled",
    EarthState.ERROR_INTERNAL: "Internal error",
    EarthState.ERROR_NOT_AUTHORIZED: "Not authorized",
    EarthState.ERROR_RESOURCE_EXHAUSTED: "Resource exhausted",
    EarthState.UNKNOWN: "Unknown",
}


class AccuracyTier(str, Enum):
    """Horizontal accuracy classification of the latest sample."""

    HIGH = "high"
    GOOD = "good"
    LOW = "low"
    NO_DATA = "no data"


@runtime_checkable
class PoseProvider(Protocol):
    """Source of geospatial pose snapshots (AR Earth API, GPS listener...)."""

    @property
    def earth_state(self) -> EarthState: ...

    def current_pose(self) -> PoseSnapshot: ...


SampleListener = Callable[[GeospatialSample], None]


@dataclass(frozen=True)
class _GateState:
    sample: GeospatialSample | None = None
    ready: bool = False


class GeospatialManager:
    """Tracks the latest geospatial sample and whether it is accurate enough to act on.

    Every successful ingest fully replaces the previous sample (last write
    wins). The sample and readiness flag are stored together in one immutable
    snapshot so a reader never observes a ready flag paired with a stale sample.
    """

    def __init__(self, config: GeospatialConfig | None = None):
        """Initialize the gate.

        Args:
            config: Accuracy thresholds. Defaults to GeospatialConfig().
        """
        self.config = config if config is not None else GeospatialConfig()
        self.config.validate()

        self._lock = threading.Lock()
        self._state = _GateState()
        self._earth_state = EarthState.UNKNOWN
        self._listeners: list[SampleListener] = []

    @property
    def last_sample(self) -> GeospatialSample | None:
        return self._state.sample

    @property
    def is_ready(self) -> bool:
        return self._state.ready

    @property
    def earth_state(self) -> EarthState:
        return self._earth_state

    def snapshot(self) -> tuple[GeospatialSample | None, bool]:
        """Latest (sample, ready) pair read atomically."""
        state = self._state
        return state.sample, state.ready

    def start_tracking(self, provider: PoseProvider | None) -> EarthState:
        """Record the provider's Earth state at the start of tracking.

        Args:
            provider: Pose provider, or None when the session has none.

        Returns:
            The recorded Earth state.
        """
        if provider is None:
            logger.warning("Cannot start geospatial tracking - no pose provider")
            self._earth_state = EarthState.DISABLED
            return self._earth_state

        logger.debug("Starting geospatial tracking")
        self._earth_state = self._read_earth_state(provider)
        logger.debug(f"Earth state: {self._earth_state.value}")
        return self._earth_state

    def ingest(self, source: PoseProvider | PoseSnapshot | None) -> GeospatialSample | None:
        """Classify a new pose and make it the current sample.

        Args:
            source: A raw pose snapshot, or a provider to read the current
                snapshot from. None means the provider is unavailable.

        Returns:
            The new sample, or None if no pose could be read. In that case
            the gate is marked not ready and the previous sample is kept.
        """
        try:
            pose = self._read_pose(source)
            sample = None if pose is None else GeospatialSample.from_pose(
                pose,
                accuracy_threshold_meters=self.config.accuracy_meters,
                min_pose_confidence=self.config.min_pose_confidence,
            )
        except Exception:
            logger.error("Error updating geospatial pose", exc_info=True)
            sample = None

        if sample is None:
            self._mark_not_ready()
            return None

        with self._lock:
            self._state = _GateState(sample=sample, ready=sample.is_accurate)
            listeners = list(self._listeners)

        logger.debug(
            f"Geospatial pose - Lat: {sample.latitude}, Lng: {sample.longitude}, "
            f"Accuracy: {sample.horizontal_accuracy_meters}m, "
            f"Confidence: {sample.pose_confidence}"
        )

        for listener in listeners:
            try:
                listener(sample)
            except Exception:
                logger.error("Geospatial listener failed", exc_info=True)

        return sample

    def _read_pose(self, source: PoseProvider | PoseSnapshot | None) -> PoseSnapshot | None:
        if source is None:
            logger.warning("Pose provider unavailable")
            return None
        if isinstance(source, PoseSnapshot):
            self._earth_state = EarthState.ENABLED
            return source

        state = self._read_earth_state(source)
        self._earth_state = state
        if state != EarthState.ENABLED:
            if state in (EarthState.UNKNOWN, EarthState.DISABLED):
                logger.warning(f"Earth state: {_EARTH_STATE_DESCRIPTIONS[state]}")
            else:
                logger.error(f"Earth state error: {_EARTH_STATE_DESCRIPTIONS[state]}")
            return None

        return source.current_pose()

    def _read_earth_state(self, provider: PoseProvider) -> EarthState:
        try:
            return EarthState(provider.earth_state)
        except Exception:
            logger.error("Error getting earth state", exc_info=True)
            return EarthState.UNKNOWN

    def _mark_not_ready(self) -> None:
        with self._lock:
            self._state = _GateState(sample=self._state.sample, ready=False)

    def get_current_location(self) -> GeospatialSample | None:
        return self._state.sample

    def is_location_accurate(self) -> bool:
        sample = self._state.sample
        return sample.is_accurate if sample is not None else False

    def get_accuracy_status(self) -> AccuracyTier:
        """Classify the latest sample's horizontal accuracy.

        Returns:
            HIGH (<= 5 m), GOOD (<= 10 m), LOW, or NO_DATA without a sample.
        """
        sample = self._state.sample
        if sample is None:
            return AccuracyTier.NO_DATA
        accuracy = sample.horizontal_accuracy_meters
        if accuracy <= self.config.high_accuracy_meters:
            return AccuracyTier.HIGH
        if accuracy <= self.config.accuracy_meters:
            return AccuracyTier.GOOD
        return AccuracyTier.LOW

    def describe_accuracy(self) -> str:
        """Human-readable accuracy status, e.g. 'High accuracy (4.0m)'."""
        tier = self.get_accuracy_status()
        sample = self._state.sample
        if tier == AccuracyTier.NO_DATA or sample is None:
            return "No location data"
        return f"{tier.value.capitalize()} accuracy ({sample.horizontal_accuracy_meters}m)"

    def subscribe(self, listener: SampleListener) -> Callable[[], None]:
        """Register a callback invoked with every accepted sample.

        Returns:
            Function that removes the callback.
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe
