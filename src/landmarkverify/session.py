"""AR session lifecycle state machine wrapping the geospatial accuracy gate."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Protocol

from .exceptions import InvalidTransitionError, SessionError
from .geospatial import GeospatialManager

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Lifecycle states of an AR session."""

    NOT_INITIALIZED = "NOT_INITIALIZED"
    INITIALIZING = "INITIALIZING"
    INITIALIZED = "INITIALIZED"
    PAUSED = "PAUSED"
    ERROR = "ERROR"


# States from which a fresh initialization is accepted
_INITIALIZABLE = frozenset({SessionState.NOT_INITIALIZED, SessionState.ERROR})
_PAUSABLE = frozenset({SessionState.INITIALIZED, SessionState.PAUSED})


@dataclass
class SessionConfig:
    """Options applied to the backend when a session is configured."""

    geospatial_enabled: bool = False
    plane_finding: str = "horizontal_and_vertical"
    light_estimation: str = "environmental_hdr"
    focus_mode: str = "auto"


class SessionBackend(Protocol):
    """Platform AR session (ARCore or a simulator).

    A backend that also implements PoseProvider feeds the accuracy gate on
    every frame update.
    """

    def is_geospatial_supported(self) -> bool: ...

    def configure(self, config: SessionConfig) -> None: ...

    def resume(self) -> None: ...

    def pause(self) -> None: ...

    def close(self) -> None: ...

    def update(self) -> Any: ...


StateListener = Callable[[SessionState], None]
FrameListener = Callable[[Any], None]


class ArSessionManager:
    """Owns one AR session and exposes its lifecycle as an explicit state machine.

    NOT_INITIALIZED -> INITIALIZING -> INITIALIZED <-> PAUSED, with ERROR
    entered on initialization or resume failure. A pause failure is logged
    and leaves the state unchanged unless pause_failure_enters_error is set.
    """

    def __init__(
        self,
        backend_factory: Callable[[], SessionBackend],
        gate: GeospatialManager | None = None,
        pause_failure_enters_error: bool = False,
    ):
        """Initialize session manager.

        Args:
            backend_factory: Creates a new platform session on initialize().
            gate: Accuracy gate fed from every frame update when geospatial
                mode is enabled.
            pause_failure_enters_error: Enter ERROR when pausing fails instead
                of keeping the current state.
        """
        self.backend_factory = backend_factory
        self.gate = gate
        self.pause_failure_enters_error = pause_failure_enters_error

        self._session: SessionBackend | None = None
        self._geospatial_supported = False
        self._state = SessionState.NOT_INITIALIZED
        self._state_listeners: list[StateListener] = []
        self._frame_listeners: list[FrameListener] = []
        self.last_frame: Any = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session(self) -> SessionBackend | None:
        return self._session

    def _set_state(self, state: SessionState) -> None:
        if state == self._state:
            return
        logger.debug(f"Session state: {self._state.value} -> {state.value}")
        self._state = state
        for listener in list(self._state_listeners):
            try:
                listener(state)
            except Exception:
                logger.error("Session state listener failed", exc_info=True)

    def initialize(self, config: SessionConfig | None = None) -> None:
        """Create, configure and resume a new session.

        Args:
            config: Session options; geospatial_enabled is decided here from
                backend support.

        Raises:
            InvalidTransitionError: If called outside NOT_INITIALIZED/ERROR.
            SessionError: If the backend fails; the state becomes ERROR.
        """
        if self._state not in _INITIALIZABLE:
            raise InvalidTransitionError(self._state.value, "initialize")

        # A session left behind by a failed resume is released before replacing it
        self._release_session()

        self._set_state(SessionState.INITIALIZING)
        logger.debug("Initializing AR session")
        session_config = replace(config) if config is not None else SessionConfig()

        session: SessionBackend | None = None
        try:
            session = self.backend_factory()
            if session.is_geospatial_supported():
                session_config.geospatial_enabled = True
                self._geospatial_supported = True
                logger.info("Geospatial mode enabled")
            else:
                session_config.geospatial_enabled = False
                self._geospatial_supported = False
                logger.warning("Geospatial mode not supported on this device")

            session.configure(session_config)
            session.resume()
        except Exception as e:
            logger.error("Failed to initialize AR session", exc_info=True)
            if session is not None:
                self._close_backend(session)
            self._geospatial_supported = False
            self._set_state(SessionState.ERROR)
            msg = f"Failed to initialize AR session: {e}"
            raise SessionError(msg) from e

        self._session = session
        self._set_state(SessionState.INITIALIZED)
        if self.gate is not None and self._geospatial_supported:
            self.gate.start_tracking(session)  # type: ignore[arg-type]
        logger.debug("AR session initialized successfully")

    def resume(self) -> None:
        """Resume a paused session; failures enter ERROR."""
        if self._session is None:
            logger.warning("Attempted to resume null session")
            return
        try:
            self._session.resume()
        except Exception:
            logger.error("Failed to resume AR session", exc_info=True)
            self._set_state(SessionState.ERROR)
            return
        self._set_state(SessionState.INITIALIZED)
        logger.debug("AR session resumed")

    def pause(self) -> None:
        """Pause the session.

        Only an INITIALIZED or PAUSED session can be paused; other states are
        left unchanged. A failure is logged; the state only changes (to ERROR)
        when pause_failure_enters_error is set.
        """
        if self._session is None or self._state not in _PAUSABLE:
            logger.warning(f"Cannot pause AR session in state {self._state.value}")
            return
        try:
            self._session.pause()
        except Exception:
            logger.error("Failed to pause AR session", exc_info=True)
            if self.pause_failure_enters_error:
                self._set_state(SessionState.ERROR)
            return
        self._set_state(SessionState.PAUSED)
        logger.debug("AR session paused")

    def close(self) -> None:
        """Close and drop the session, returning to NOT_INITIALIZED."""
        try:
            if self._session is not None:
                self._session.close()
        except Exception:
            logger.error("Failed to close AR session", exc_info=True)
            return
        self._session = None
        self._geospatial_supported = False
        self._set_state(SessionState.NOT_INITIALIZED)
        logger.debug("AR session closed")

    def _close_backend(self, session: SessionBackend) -> None:
        try:
            session.close()
        except Exception:
            logger.error("Failed to close AR session", exc_info=True)

    def _release_session(self) -> None:
        if self._session is not None:
            self._close_backend(self._session)
        self._session = None
        self._geospatial_supported = False

    def update_frame(self) -> Any:
        """Advance the session by one frame.

        Returns:
            The backend frame, or None if there is no session or the update failed.
        """
        if self._session is None:
            return None
        try:
            frame = self._session.update()
        except Exception:
            logger.error("Failed to update frame", exc_info=True)
            return None

        self.last_frame = frame
        for listener in list(self._frame_listeners):
            try:
                listener(frame)
            except Exception:
                logger.error("Frame listener failed", exc_info=True)

        if self.gate is not None and self._geospatial_supported:
            self.gate.ingest(self._session)  # type: ignore[arg-type]
        return frame

    def is_initialized(self) -> bool:
        return self._session is not None and self._state == SessionState.INITIALIZED

    def is_geospatial_enabled(self) -> bool:
        return self._geospatial_supported

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a callback invoked on every state change.

        Returns:
            Function that removes the callback.
        """
        return _register(self._state_listeners, listener)

    def subscribe_frames(self, listener: FrameListener) -> Callable[[], None]:
        """Register a callback invoked with every updated frame."""
        return _register(self._frame_listeners, listener)


def _register(listeners: list[Any], listener: Any) -> Callable[[], None]:
    listeners.append(listener)

    def unsubscribe() -> None:
        if listener in listeners:
            listeners.remove(listener)

    return unsubscribe
