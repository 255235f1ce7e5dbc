"""Error taxonomy for the capture core.

Every exception carries an explicit ErrorKind so outer layers (the HTTP
device API, the CLI) can map failures without matching on class names.
Parameter and state-precondition errors are raised before any transport
call is made.
"""

from __future__ import annotations

from enum import Enum
from typing import ClassVar


class ErrorKind(Enum):
    """Kinds of failure reported by the capture core."""

    NOT_CONNECTED = "not_connected"
    DEVICE_NOT_FOUND = "device_not_found"
    INVALID_PARAMETER = "invalid_parameter"
    INVALID_FRAME_REQUEST = "invalid_frame_request"
    OPERATION_IN_PROGRESS = "operation_in_progress"
    IMAGE_NOT_READY = "image_not_ready"
    DEVICE_ERROR = "device_error"


class CameraError(Exception):
    """Base exception for capture-core operations."""

    kind: ClassVar[ErrorKind] = ErrorKind.DEVICE_ERROR


class NotConnectedError(CameraError):
    """Raised when an operation requires a connected session."""

    kind = ErrorKind.NOT_CONNECTED


class DeviceNotFoundError(CameraError):
    """Raised when the connect target is not enumerated by the transport."""

    kind = ErrorKind.DEVICE_NOT_FOUND


class InvalidParameterError(CameraError, ValueError):
    """Raised for a duration or readout-mode index outside declared bounds."""

    kind = ErrorKind.INVALID_PARAMETER


class InvalidFrameRequestError(CameraError, ValueError):
    """Raised when sub-frame geometry falls outside the buffer."""

    kind = ErrorKind.INVALID_FRAME_REQUEST


class OperationInProgressError(CameraError):
    """Raised when a conflicting capture is already running."""

    kind = ErrorKind.OPERATION_IN_PROGRESS


class ImageNotReadyError(CameraError):
    """Raised when a frame is read before any capture completed."""

    kind = ErrorKind.IMAGE_NOT_READY


class DeviceError(CameraError):
    """Raised for a transport-reported hardware fault."""

    kind = ErrorKind.DEVICE_ERROR
