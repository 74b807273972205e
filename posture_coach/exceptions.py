"""Error types raised by the posture coach."""


class PostureCoachError(Exception):
    """Base class for all posture coach errors."""


class InitializationError(PostureCoachError):
    """The camera or a model could not be brought up; the loop never starts."""


class CaptureInitializationError(InitializationError):
    """The capture source could not be opened."""


class ModelInitializationError(InitializationError):
    """A pose model or its metadata could not be loaded."""


class InvalidPayloadError(PostureCoachError, ValueError):
    """A client sent a frame, keypoint or prediction payload we cannot read."""
