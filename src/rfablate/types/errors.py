"""Exceptions raised by the core and its collaborators."""


class CommsError(Exception):
    """Base exception for communication errors."""

    pass


class InferenceTimeout(CommsError):
    """No reply from the depth-inference service within the allowed time."""

    pass


class MalformedReply(CommsError):
    """Reply from the depth-inference service could not be parsed."""

    pass


class SideMismatchError(CommsError):
    """Reply from the depth-inference service names a different side."""

    def __init__(self, requested: str, replied: str):
        super().__init__(
            f"Inference reply for side '{replied}' does not match request side "
            + f"'{requested}'"
        )
        self.requested = requested
        self.replied = replied


class ValueUnavailable(ValueError):
    """A value cannot be computed from the samples given."""

    pass
