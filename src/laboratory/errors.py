"""Error taxonomy for lab and cache operations."""
import logging
from enum import Enum
from typing import Any, Dict, Optional

from laboratory.logging import get_logger, log_with_data


class ErrorKind(Enum):
    NOT_FOUND = "not_found"
    DUPLICATE_NAME = "duplicate_name"
    INVALID_STATE = "invalid_state"
    IO_FAILURE = "io_failure"
    VOLUME_FAILURE = "volume_failure"
    LAUNCH_FAILURE = "launch_failure"
    PARSE_FAILURE = "parse_failure"


def log_error(
    error: Exception,
    context: Optional[Dict[str, Any]] = None,
    logger: Optional[logging.Logger] = None
) -> None:
    """Log an error with context."""
    logger = logger or get_logger("errors")

    error_info = {
        "error_type": error.__class__.__name__,
        "error_message": str(error)
    }
    if context:
        error_info["context"] = context
    if isinstance(error, LabError):
        error_info["kind"] = error.kind.value
        error_info["details"] = error.details

    log_with_data(logger, logging.ERROR, "Lab operation failed", error_info)


class LabError(Exception):
    """Base error class for laboratory."""
    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.IO_FAILURE,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.kind = kind
        self.details = details or {}


class NotFoundError(LabError):
    """Lab, app or host variable does not exist."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, kind=ErrorKind.NOT_FOUND, details=details)


class DuplicateNameError(LabError):
    """A lab with the same name is already registered."""
    def __init__(self, name: str):
        super().__init__(
            f"Lab {name} already exists",
            kind=ErrorKind.DUPLICATE_NAME,
            details={"lab": name}
        )


class InvalidStateError(LabError):
    """Operation not allowed in the lab's current state."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, kind=ErrorKind.INVALID_STATE, details=details)


class IOFailureError(LabError):
    """Archive, record or filesystem operation failed."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, kind=ErrorKind.IO_FAILURE, details=details)


class VolumeError(LabError):
    """Volume bind or unbind was rejected."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, kind=ErrorKind.VOLUME_FAILURE, details=details)


class LaunchError(LabError):
    """Process could not be started or exited abnormally."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, kind=ErrorKind.LAUNCH_FAILURE, details=details)


class ParseError(LabError):
    """Manifest or cache record is malformed."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, kind=ErrorKind.PARSE_FAILURE, details=details)
