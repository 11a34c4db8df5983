"""Errors that abort a whole harness run."""


class FatalRunError(RuntimeError):
    """Unrecoverable error; no further tests are scheduled."""


class DependencyBuildError(FatalRunError):
    """The one-time shared dependency build failed."""


class InvariantViolationError(FatalRunError):
    """A test lifecycle transition broke an internal consistency rule."""
