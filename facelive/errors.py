"""
Error taxonomy for the live loop.

- DeviceUnavailable: camera denied or missing; surfaced to the user
- InferenceError / ModelNotLoaded: one tick failed; absorbed by the scheduler
- StaleCompletion: a result arrived after the session stopped; discarded
"""


class DeviceUnavailable(RuntimeError):
    """The capture device could not be opened."""


class InferenceError(RuntimeError):
    """The inference backend failed on a frame."""


class ModelNotLoaded(InferenceError):
    """detect() was called before the models were loaded."""


class StaleCompletion(Exception):
    """An inference finished after its scheduler was stopped."""
