"""Tests for frame windowing.

Covers the identity window, crops of both frame variants, rejection of
out-of-bounds requests and detachment of crops from the stored frame.
"""

from __future__ import annotations

import numpy as np
import pytest

from mirrorless_camera.core.errors import InvalidFrameRequestError
from mirrorless_camera.core.types import (
    OutputMode,
    Plane2D,
    Plane3D,
    Rect,
    SensorTypeReport,
)
from mirrorless_camera.core.windowing import is_identity, window, window_slices
from tests.helpers import START_TIME, make_planes


def _plane2d(width: int = 1000, height: int = 800) -> Plane2D:
    return Plane2D(
        pixels=make_planes(width, height, OutputMode.RAW_BAYER),
        duration_s=2.0,
        start_time=START_TIME,
        output_mode=OutputMode.RAW_BAYER,
        sensor_type=SensorTypeReport.BAYER_MOSAIC,
        sequence_id=9,
    )


def _plane3d(width: int = 1000, height: int = 800) -> Plane3D:
    return Plane3D(
        pixels=make_planes(width, height, OutputMode.DEBAYERED_COLOR),
        duration_s=2.0,
        start_time=START_TIME,
        output_mode=OutputMode.DEBAYERED_COLOR,
        sensor_type=SensorTypeReport.COLOR,
        is_light=False,
    )


class TestWindowSlices:
    def test_slices_leading_axes(self) -> None:
        """Slices select x then y, with Ellipsis for any channel axis."""
        assert window_slices(Rect(10, 20, 30, 40)) == (
            slice(10, 40),
            slice(20, 60),
            Ellipsis,
        )


class TestIdentityWindow:
    """The full-frame window returns the stored frame itself."""

    def test_plane2d_identity_is_same_object(self) -> None:
        frame = _plane2d()
        assert window(frame, Rect(0, 0, 1000, 800)) is frame

    def test_plane3d_identity_is_same_object(self) -> None:
        frame = _plane3d()
        assert window(frame, Rect.full(1000, 800)) is frame

    def test_is_identity(self) -> None:
        frame = _plane2d()
        assert is_identity(frame, Rect(0, 0, 1000, 800))
        assert not is_identity(frame, Rect(0, 0, 999, 800))


class TestCrop:
    """Crops keep the variant and metadata and copy exactly the region."""

    def test_plane2d_crop_shape_and_content(self) -> None:
        """(100, 100, 500, 500) on 1000x800 yields 500x500 of the right pixels."""
        frame = _plane2d()
        roi = window(frame, Rect(100, 100, 500, 500))

        assert isinstance(roi, Plane2D)
        assert roi.pixels.shape == (500, 500)
        assert roi.pixels[0, 0] == frame.pixels[100, 100]
        assert roi.pixels[499, 499] == frame.pixels[599, 599]
        np.testing.assert_array_equal(roi.pixels, frame.pixels[100:600, 100:600])

    def test_plane3d_crop_keeps_channels(self) -> None:
        frame = _plane3d()
        roi = window(frame, Rect(100, 100, 500, 500))

        assert isinstance(roi, Plane3D)
        assert roi.pixels.shape == (500, 500, 3)
        np.testing.assert_array_equal(roi.pixels[7, 3], frame.pixels[107, 103])

    def test_crop_keeps_metadata(self) -> None:
        frame = _plane2d()
        roi = window(frame, Rect(1, 2, 3, 4))
        assert roi.duration_s == frame.duration_s
        assert roi.start_time == frame.start_time
        assert roi.sensor_type is frame.sensor_type
        assert roi.sequence_id == 9

    def test_crop_is_detached_and_read_only(self) -> None:
        """A crop owns its pixels and is as immutable as the stored frame."""
        frame = _plane2d(20, 20)
        roi = window(frame, Rect(5, 5, 5, 5))
        assert not np.shares_memory(roi.pixels, frame.pixels)
        assert not roi.pixels.flags.writeable

    def test_crop_at_far_edge(self) -> None:
        roi = window(_plane2d(), Rect(500, 600, 500, 200))
        assert roi.pixels.shape == (500, 200)

    def test_single_pixel(self) -> None:
        frame = _plane3d(10, 10)
        roi = window(frame, Rect(9, 9, 1, 1))
        assert roi.pixels.shape == (1, 1, 3)

    def test_repeated_crops_have_equal_content(self) -> None:
        frame = _plane2d(20, 20)
        first = window(frame, Rect(1, 1, 5, 5))
        second = window(frame, Rect(1, 1, 5, 5))
        assert first is not second
        np.testing.assert_array_equal(first.pixels, second.pixels)


# Origins and sizes on a 12x9 buffer: origin corners, far edges, 1-pixel
# rows and columns and interior blocks.
_SWEEP = [
    Rect(x, y, w, h)
    for x, w in [(0, 1), (0, 12), (11, 1), (3, 4), (5, 7), (0, 11), (1, 11)]
    for y, h in [(0, 1), (0, 9), (8, 1), (2, 3), (4, 5), (0, 8), (1, 8)]
]


class TestCropSweep:
    """Every in-bounds sub-frame is exact in size, content and variant."""

    @pytest.mark.parametrize("factory", [_plane2d, _plane3d], ids=["2d", "3d"])
    @pytest.mark.parametrize("rect", _SWEEP, ids=str)
    def test_crop_matches_source_region(self, factory, rect: Rect) -> None:
        frame = factory(12, 9)
        roi = window(frame, rect)

        assert type(roi) is type(frame)
        assert (roi.width, roi.height) == (rect.width, rect.height)
        assert roi.channel_count == frame.channel_count
        np.testing.assert_array_equal(
            roi.pixels,
            frame.pixels[rect.x : rect.x + rect.width, rect.y : rect.y + rect.height],
        )
        assert not roi.pixels.flags.writeable

    @pytest.mark.parametrize("factory", [_plane2d, _plane3d], ids=["2d", "3d"])
    @pytest.mark.parametrize(
        "rect",
        [Rect(12, 0, 1, 1), Rect(0, 9, 1, 1), Rect(11, 0, 2, 1), Rect(0, 8, 1, 2)],
        ids=str,
    )
    def test_one_past_the_edge_rejected(self, factory, rect: Rect) -> None:
        with pytest.raises(InvalidFrameRequestError):
            window(factory(12, 9), rect)


class TestRejection:
    """Out-of-bounds requests fail instead of being clamped."""

    @pytest.mark.parametrize("factory", [_plane2d, _plane3d])
    def test_overflowing_width_rejected(self, factory) -> None:
        """(900, 0, 500, 200) on a 1000x800 buffer is rejected."""
        with pytest.raises(InvalidFrameRequestError, match="exceeds 1000x800"):
            window(factory(), Rect(900, 0, 500, 200))

    @pytest.mark.parametrize(
        "rect",
        [Rect(0, 0, 1000, 801), Rect(-1, 0, 10, 10), Rect(0, 0, 0, 0)],
    )
    def test_invalid_rectangles_rejected(self, rect: Rect) -> None:
        with pytest.raises(InvalidFrameRequestError):
            window(_plane2d(), rect)

    def test_error_is_value_error(self) -> None:
        """Callers catching ValueError also see frame request errors."""
        with pytest.raises(ValueError):
            window(_plane2d(), Rect(900, 0, 500, 200))
