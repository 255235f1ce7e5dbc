"""Data model for the capture core.

Pixel arrays are indexed ``[x, y]`` for single-plane (raw Bayer) frames and
``[x, y, channel]`` for multi-plane (colour) frames, i.e. the first axis
runs along the sensor width. This is the ImageArray convention used by
astronomy camera clients, so a crop at ``(x, y)`` is ``pixels[x:, y:]``.

Types:
    Rect: Sub-frame rectangle in full-sensor pixel coordinates
    SensorDescriptor: Per-device geometry and timing limits
    CaptureRequest: One validated start-exposure request
    Plane2D / Plane3D: Immutable frame buffers (FrameBuffer union)

Enums:
    Personality, OutputMode, SensorTypeReport, CameraState
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

import numpy as np

if TYPE_CHECKING:
    from numpy.typing import NDArray

__all__ = [
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
]

#: Maximum ADU the original driver reported for every body.
DEFAULT_MAX_ADU = 20000


class Personality(Enum):
    """Client integration profile, selected once at configuration time."""

    DEFAULT = "default"
    # Client that only understands monochrome/raw frames
    LEGACY_MONOCHROME = "legacy_monochrome"


class OutputMode(Enum):
    """Underlying capture representation requested from the camera."""

    RAW_BAYER = "raw_bayer"
    DEBAYERED_COLOR = "debayered_color"


class SensorTypeReport(Enum):
    """Sensor type reported to the caller (derived, never stored alone)."""

    COLOR = "color"
    BAYER_MOSAIC = "bayer_mosaic"
    MONOCHROME = "monochrome"


class CameraState(Enum):
    """Capture session state."""

    DISCONNECTED = "disconnected"
    IDLE = "idle"
    EXPOSING = "exposing"
    ABORTING = "aborting"


@dataclass(frozen=True, slots=True)
class Rect:
    """Sub-frame rectangle in full-sensor pixel coordinates."""

    x: int
    y: int
    width: int
    height: int

    @classmethod
    def full(cls, width: int, height: int) -> Rect:
        """Return the identity window for a width x height buffer."""
        return cls(0, 0, width, height)

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def fits_within(self, width: int, height: int) -> bool:
        """Check the rectangle is non-empty and inside a width x height area.

        Example:
            >>> Rect(900, 0, 500, 200).fits_within(1000, 800)
            False
        """
        return (
            self.x >= 0
            and self.y >= 0
            and self.width > 0
            and self.height > 0
            and self.right <= width
            and self.bottom <= height
        )


@dataclass(frozen=True, slots=True)
class SensorDescriptor:
    """Immutable geometry and timing limits of one connected device.

    Supplied by the transport at connect time and replaced wholesale on
    reconnect.

    Attributes:
        name: Sensor name string.
        width: Full-resolution width in pixels.
        height: Full-resolution height in pixels.
        pixel_size_x_um: Pixel pitch along X in micrometres.
        pixel_size_y_um: Pixel pitch along Y in micrometres.
        exposure_min_s: Shortest supported exposure in seconds.
        exposure_max_s: Longest supported exposure in seconds.
        exposure_step_s: Exposure resolution in seconds.
        bayer_offset_x: Bayer phase offset along X.
        bayer_offset_y: Bayer phase offset along Y.
        has_liveview: True when the body can stream reduced previews.
        preview_width: Liveview width in pixels, None without liveview.
        preview_height: Liveview height in pixels, None without liveview.
        max_adu: Largest pixel value the camera reports.
    """

    name: str
    width: int
    height: int
    pixel_size_x_um: float
    pixel_size_y_um: float
    exposure_min_s: float
    exposure_max_s: float
    exposure_step_s: float
    bayer_offset_x: int = 0
    bayer_offset_y: int = 0
    has_liveview: bool = False
    preview_width: int | None = None
    preview_height: int | None = None
    max_adu: int = DEFAULT_MAX_ADU

    @property
    def has_preview(self) -> bool:
        """True when liveview is supported and its dimensions are known."""
        return (
            self.has_liveview
            and self.preview_width is not None
            and self.preview_height is not None
        )


@dataclass(frozen=True, slots=True)
class CaptureRequest:
    """A single start-exposure request, discarded after validation."""

    duration_s: float
    is_light: bool
    subframe: Rect


@dataclass(frozen=True, slots=True, kw_only=True, eq=False)
class _FrameMeta:
    """Capture metadata shared by both frame buffer variants.

    Frames compare and hash by identity; compare pixel content with
    numpy (e.g. ``np.array_equal(a.pixels, b.pixels)``).
    """

    duration_s: float
    start_time: datetime
    output_mode: OutputMode
    sensor_type: SensorTypeReport
    is_light: bool = True
    sequence_id: int = 0


def _freeze(pixels: NDArray[Any], ndim: int, kind: str) -> NDArray[Any]:
    array = np.asarray(pixels)
    if array.ndim != ndim:
        raise ValueError(f"{kind} requires a rank-{ndim} array, got rank {array.ndim}")
    if array.flags.writeable:
        array = array.view()
        array.flags.writeable = False
    return array


@dataclass(frozen=True, slots=True, kw_only=True, eq=False)
class Plane2D(_FrameMeta):
    """Single-plane frame (raw Bayer mosaic or monochrome), ``pixels[x, y]``."""

    pixels: NDArray[Any]

    def __post_init__(self) -> None:
        object.__setattr__(self, "pixels", _freeze(self.pixels, 2, "Plane2D"))

    @property
    def width(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def channel_count(self) -> int:
        return 1


@dataclass(frozen=True, slots=True, kw_only=True, eq=False)
class Plane3D(_FrameMeta):
    """Multi-plane colour frame, ``pixels[x, y, channel]``."""

    pixels: NDArray[Any]

    def __post_init__(self) -> None:
        object.__setattr__(self, "pixels", _freeze(self.pixels, 3, "Plane3D"))

    @property
    def width(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def channel_count(self) -> int:
        return int(self.pixels.shape[2])


FrameBuffer = Plane2D | Plane3D


def frame_from_planes(
    planes: NDArray[Any],
    *,
    duration_s: float,
    start_time: datetime,
    output_mode: OutputMode,
    sensor_type: SensorTypeReport,
    is_light: bool = True,
    sequence_id: int = 0,
) -> FrameBuffer:
    """Build the frame variant matching the rank of a raw transport array.

    Args:
        planes: Raw pixel array, ``[x, y]`` or ``[x, y, channel]``.
        duration_s: Actual exposure duration in seconds.
        start_time: Exposure start (UTC).
        output_mode: Mode the capture was triggered with.
        sensor_type: Report resolved for the capture.
        is_light: False for dark frames.
        sequence_id: Capture sequence id that produced the frame.

    Returns:
        Plane2D for rank-2 input, Plane3D for rank-3 input.

    Raises:
        ValueError: For any other rank.
    """
    array = np.asarray(planes)
    meta: dict[str, Any] = {
        "duration_s": duration_s,
        "start_time": start_time,
        "output_mode": output_mode,
        "sensor_type": sensor_type,
        "is_light": is_light,
        "sequence_id": sequence_id,
    }
    if array.ndim == 2:
        return Plane2D(pixels=array, **meta)
    if array.ndim == 3:
        return Plane3D(pixels=array, **meta)
    raise ValueError(f"Frame planes must be rank 2 or 3, got rank {array.ndim}")
