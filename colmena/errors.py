"""Error types raised throughout the package."""

from __future__ import annotations

from typing import Any


class ColmenaError(Exception):
    """Base class of every error raised by the package."""


class _FixedMessageError(ColmenaError):
    """An error whose message never varies."""

    description = ""

    def __init__(self) -> None:
        super().__init__(self.description)


class IoError(ColmenaError):
    """An operating-system level I/O failure."""

    def __init__(self, error: OSError) -> None:
        self.error = error
        super().__init__(f"I/O Error: {error}")


class BadOutput(ColmenaError):
    """Nix produced output that could not be understood."""

    def __init__(self, output: str) -> None:
        self.output = output
        super().__init__(f"Nix returned invalid response: {output}")


class ChildFailure(ColmenaError):
    """A child process exited with a non-zero code."""

    def __init__(self, exit_code: int) -> None:
        self.exit_code = exit_code
        super().__init__(f"Child process exited with error code: {exit_code}")


class ChildKilled(ColmenaError):
    """A child process was terminated by a signal."""

    def __init__(self, signal: int) -> None:
        self.signal = signal
        super().__init__(f"Child process was killed by signal {signal}")


class Unsupported(_FixedMessageError):
    description = "This operation is not supported"


class InvalidStorePath(_FixedMessageError):
    description = "Invalid Nix store path"


class ValidationError(ColmenaError):
    """Configuration values failed validation."""

    def __init__(self, errors: Any) -> None:
        self.errors = errors
        super().__init__("Validation error")


class AttributeEvaluationError(_FixedMessageError):
    description = "Some attributes failed to evaluate"


class KeyProcessingError(ColmenaError):
    """A deployment key could not be processed."""

    def __init__(self, name: str, error: Any) -> None:
        self.name = name
        self.error = error
        super().__init__(f'Error processing key "{name}": {error}')


class NotADerivation(ColmenaError):
    """A store path was expected to be a derivation but is not."""

    def __init__(self, store_path: Any) -> None:
        self.store_path = store_path
        super().__init__(f"Store path {store_path!r} is not a derivation")


class InvalidProfile(_FixedMessageError):
    description = "Invalid NixOS system profile"


class ActiveProfileUnknown(ColmenaError):
    """The profile active on a host is not known locally."""

    def __init__(self, profile: Any) -> None:
        self.profile = profile
        super().__init__(f"Unknown active profile: {profile!r}")


class ActiveProfileUnexpected(ColmenaError):
    """The profile active on a host is not the expected one."""

    def __init__(self, profile: Any) -> None:
        self.profile = profile
        super().__init__(f"Unexpected active profile: {profile!r}")


class FailedToGetCurrentProfile(_FixedMessageError):
    description = "Could not determine current profile"


class NoFlakesSupport(_FixedMessageError):
    description = "Current Nix version does not support Flakes"


class NoTargetHost(_FixedMessageError):
    description = "Don't know how to connect to the node"


class EmptyNodeName(_FixedMessageError):
    description = "Node name cannot be empty"


class EmptyFilterRule(_FixedMessageError):
    description = "Filter rule cannot be empty"


class DeploymentAlreadyExecuted(_FixedMessageError):
    description = "Deployment already executed"


class UnknownError(ColmenaError):
    """An error with only a free-form message."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Unknown error: {message}")


class ExecError(ColmenaError):
    """A command failed on some hosts."""

    def __init__(self, n_hosts: int) -> None:
        self.n_hosts = n_hosts
        super().__init__(f"Exec failed on {n_hosts} hosts")


def from_exit_status(returncode: int) -> ColmenaError:
    """Builds the error describing a failed child process.

    A negative return code means the child was killed by that signal.
    """
    if returncode >= 0:
        return ChildFailure(returncode)
    return ChildKilled(-returncode)


def unknown(error: BaseException) -> UnknownError:
    """Wraps an arbitrary exception into an UnknownError."""
    return UnknownError(str(error))