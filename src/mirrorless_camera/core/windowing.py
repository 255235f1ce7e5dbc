"""Frame windowing - crop a full-sensor frame to a sub-rectangle.

A single slicing rule serves both frame variants: the (x, y) slices are
applied to the leading two axes and a trailing Ellipsis carries any
channel axis through untouched, so Plane2D and Plane3D can never drift
apart.

Example:
    from mirrorless_camera.core.windowing import window
    from mirrorless_camera.core.types import Rect

    roi = window(frame, Rect(100, 100, 500, 500))
    assert roi.pixels.shape[:2] == (500, 500)
"""

from __future__ import annotations

import dataclasses
from types import EllipsisType
from typing import TYPE_CHECKING

from mirrorless_camera.core.errors import InvalidFrameRequestError
from mirrorless_camera.core.types import Rect

if TYPE_CHECKING:
    from mirrorless_camera.core.types import FrameBuffer

__all__ = ["is_identity", "window", "window_slices"]


def window_slices(subframe: Rect) -> tuple[slice, slice, EllipsisType]:
    """Return the index tuple that selects a sub-frame from an ``[x, y, ...]`` array.

    Args:
        subframe: Rectangle in full-sensor coordinates.

    Returns:
        ``(x_slice, y_slice, ...)`` usable on rank-2 and rank-3 arrays alike.
    """
    return (
        slice(subframe.x, subframe.right),
        slice(subframe.y, subframe.bottom),
        Ellipsis,
    )


def is_identity(frame: FrameBuffer, subframe: Rect) -> bool:
    """True when subframe covers the whole frame exactly."""
    return subframe == Rect.full(frame.width, frame.height)


def window(frame: FrameBuffer, subframe: Rect) -> FrameBuffer:
    """Crop a frame to a requested sub-rectangle.

    The output keeps the frame variant, channel count and capture metadata
    of the input; only the pixel extent changes. Requests that fall outside
    the buffer are rejected, never clamped.

    Business context: Imaging clients configure a region of interest once
    (StartX/StartY/NumX/NumY) and read many frames through it. Returning a
    shape other than the requested one would silently corrupt stacking and
    plate-solving downstream, so the call fails instead.

    Args:
        frame: Stored Plane2D or Plane3D frame.
        subframe: Requested rectangle; ``x + width`` must not exceed the
            frame width and ``y + height`` must not exceed its height.

    Returns:
        The input frame itself for the full-frame window (no copy, callers
        must not assume exclusive access). Otherwise a new frame holding a
        read-only copy of the cropped pixels, detached from the input.

    Raises:
        InvalidFrameRequestError: If the rectangle is empty, has a negative
            origin or extends past the frame edge.

    Example:
        >>> roi = window(frame_1000x800, Rect(900, 0, 500, 200))
        Traceback (most recent call last):
        ...
        InvalidFrameRequestError: Sub-frame (900, 0, 500, 200) exceeds 1000x800 frame
    """
    if not subframe.fits_within(frame.width, frame.height):
        raise InvalidFrameRequestError(
            f"Sub-frame ({subframe.x}, {subframe.y}, {subframe.width}, "
            f"{subframe.height}) exceeds {frame.width}x{frame.height} frame"
        )

    if is_identity(frame, subframe):
        return frame

    cropped = frame.pixels[window_slices(subframe)].copy()
    return dataclasses.replace(frame, pixels=cropped)
