import signal

import pytest

from colmena import errors
from colmena.errors import (
    ChildFailure,
    ChildKilled,
    ColmenaError,
    ExecError,
    KeyProcessingError,
    UnknownError,
    from_exit_status,
    unknown,
)


def test_exit_code_becomes_child_failure():
    err = from_exit_status(3)
    assert isinstance(err, ChildFailure)
    assert err.exit_code == 3
    assert str(err) == "Child process exited with error code: 3"


def test_negative_code_becomes_child_killed():
    err = from_exit_status(-signal.SIGKILL)
    assert isinstance(err, ChildKilled)
    assert err.signal == signal.SIGKILL
    assert str(err) == f"Child process was killed by signal {int(signal.SIGKILL)}"


def test_unknown_wraps_message():
    err = unknown(ValueError("oops"))
    assert isinstance(err, UnknownError)
    assert err.message == "oops"
    assert str(err) == "Unknown error: oops"


def test_key_error_message():
    err = KeyProcessingError("db-pass", "missing file")
    assert str(err) == 'Error processing key "db-pass": missing file'
    assert err.name == "db-pass"


def test_exec_error_message():
    err = ExecError(2)
    assert err.n_hosts == 2
    assert str(err) == "Exec failed on 2 hosts"


@pytest.mark.parametrize(
    "cls, message",
    [
        (errors.Unsupported, "This operation is not supported"),
        (errors.InvalidStorePath, "Invalid Nix store path"),
        (errors.AttributeEvaluationError, "Some attributes failed to evaluate"),
        (errors.InvalidProfile, "Invalid NixOS system profile"),
        (errors.FailedToGetCurrentProfile, "Could not determine current profile"),
        (errors.NoFlakesSupport, "Current Nix version does not support Flakes"),
        (errors.NoTargetHost, "Don't know how to connect to the node"),
        (errors.EmptyNodeName, "Node name cannot be empty"),
        (errors.EmptyFilterRule, "Filter rule cannot be empty"),
        (errors.DeploymentAlreadyExecuted, "Deployment already executed"),
    ],
)
def test_fixed_messages(cls, message):
    err = cls()
    assert str(err) == message
    assert isinstance(err, ColmenaError)


def test_io_error_keeps_original():
    original = OSError("disk gone")
    err = errors.IoError(original)
    assert err.error is original
    assert str(err) == "I/O Error: disk gone"


def test_bad_output_message():
    err = errors.BadOutput("garbage")
    assert str(err) == "Nix returned invalid response: garbage"


def test_profile_errors_keep_profile():
    err = errors.ActiveProfileUnknown("/nix/store/abc-system")
    assert err.profile == "/nix/store/abc-system"
    assert str(err) == "Unknown active profile: '/nix/store/abc-system'"