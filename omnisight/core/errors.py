"""Error taxonomy shared by the scheduling core and its integrators."""


class PerceptionError(Exception):
    """Base class for every error raised by omnisight."""


class ConfigError(PerceptionError, ValueError):
    """Invalid configuration value; raised while resolving a configuration."""


class InferenceError(PerceptionError):
    """A single model invocation failed."""

    def __init__(self, model_id: str, message: str):
        super().__init__(f"{model_id}: {message}")
        self.model_id = model_id


class StateInconsistency(PerceptionError):
    """Skip state asked for reuse while holding nothing to reuse."""


class InputError(PerceptionError):
    """The submitted frame is missing or is not an image array."""


class FrameSuperseded(PerceptionError):
    """The frame was cancelled because a newer frame was submitted."""

    def __init__(self, frame_id: int):
        super().__init__(f"Frame {frame_id} was superseded by a newer frame")
        self.frame_id = frame_id
