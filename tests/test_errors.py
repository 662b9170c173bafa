import logging

import pytest

from laboratory.errors import (
    DuplicateNameError,
    ErrorKind,
    InvalidStateError,
    IOFailureError,
    LabError,
    LaunchError,
    NotFoundError,
    ParseError,
    VolumeError,
    log_error,
)


@pytest.mark.parametrize(
    "error,kind",
    [
        (NotFoundError("missing"), ErrorKind.NOT_FOUND),
        (DuplicateNameError("demo"), ErrorKind.DUPLICATE_NAME),
        (InvalidStateError("mounted"), ErrorKind.INVALID_STATE),
        (IOFailureError("disk"), ErrorKind.IO_FAILURE),
        (VolumeError("subst"), ErrorKind.VOLUME_FAILURE),
        (LaunchError("spawn"), ErrorKind.LAUNCH_FAILURE),
        (ParseError("toml"), ErrorKind.PARSE_FAILURE),
    ],
)
def test_error_kinds(error, kind):
    assert isinstance(error, LabError)
    assert error.kind is kind


def test_duplicate_name_details():
    error = DuplicateNameError("demo")
    assert str(error) == "Lab demo already exists"
    assert error.details == {"lab": "demo"}


def test_log_error_includes_kind_and_context(caplog):
    logger = logging.getLogger("test.errors")
    with caplog.at_level(logging.ERROR, logger="test.errors"):
        log_error(NotFoundError("Lab x not found", details={"lab": "x"}), {"verb": "mount"}, logger)

    record = caplog.records[-1]
    assert record.data["error_type"] == "NotFoundError"
    assert record.data["kind"] == "not_found"
    assert record.data["details"] == {"lab": "x"}
    assert record.data["context"] == {"verb": "mount"}


def test_log_error_plain_exception(caplog):
    logger = logging.getLogger("test.errors")
    with caplog.at_level(logging.ERROR, logger="test.errors"):
        log_error(ValueError("boom"), logger=logger)

    record = caplog.records[-1]
    assert record.data == {"error_type": "ValueError", "error_message": "boom"}
