"""Exception types raised by landmarkverify."""


class LandmarkVerifyError(Exception):
    """Base class for landmarkverify errors."""


class SessionError(LandmarkVerifyError):
    """AR session backend failed while initializing."""


class InvalidTransitionError(LandmarkVerifyError):
    """Requested session transition is not allowed from the current state."""

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot {requested} session from state {current}")
