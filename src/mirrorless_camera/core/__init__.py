"""Capture core: data model, windowing, output-mode policy and session.

Example:
    from mirrorless_camera.core import Rect, SessionController

    session = SessionController(transport)
    session.connect("twin-aps-c")
    session.start_exposure(2.5, True, Rect(0, 0, 6024, 4024))
"""

from mirrorless_camera.core.errors import (
    CameraError,
    DeviceError,
    DeviceNotFoundError,
    ErrorKind,
    ImageNotReadyError,
    InvalidFrameRequestError,
    InvalidParameterError,
    NotConnectedError,
    OperationInProgressError,
)
from mirrorless_camera.core.output_mode import (
    FULL_RESOLUTION_MODE,
    PREVIEW_MODE,
    OutputModePolicy,
    OutputResolution,
)
from mirrorless_camera.core.session import SessionController
from mirrorless_camera.core.types import (
    CameraState,
    CaptureRequest,
    FrameBuffer,
    OutputMode,
    Personality,
    Plane2D,
    Plane3D,
    Rect,
    SensorDescriptor,
    SensorTypeReport,
    frame_from_planes,
)
from mirrorless_camera.core.windowing import window

__all__ = [
    # Types
    "CameraState",
    "CaptureRequest",
    "FrameBuffer",
    "OutputMode",
    "Personality",
    "Plane2D",
    "Plane3D",
    "Rect",
    "SensorDescriptor",
    "SensorTypeReport",
    "frame_from_planes",
    # Errors
    "CameraError",
    "DeviceError",
    "DeviceNotFoundError",
    "ErrorKind",
    "ImageNotReadyError",
    "InvalidFrameRequestError",
    "InvalidParameterError",
    "NotConnectedError",
    "OperationInProgressError",
    # Policy / windowing / session
    "FULL_RESOLUTION_MODE",
    "PREVIEW_MODE",
    "OutputModePolicy",
    "OutputResolution",
    "SessionController",
    "window",
]
