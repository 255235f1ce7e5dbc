"""Tests for the capture-core data model.

Test Categories:
    - Rect geometry and bounds checks
    - SensorDescriptor preview availability
    - Plane2D / Plane3D rank checks and immutability
    - frame_from_planes variant selection
"""

from __future__ import annotations

import dataclasses

import numpy as np
import pytest

from mirrorless_camera.core.types import (
    OutputMode,
    Plane2D,
    Plane3D,
    Rect,
    SensorDescriptor,
    SensorTypeReport,
    frame_from_planes,
)
from tests.helpers import APS_C, SMALL, START_TIME


def _meta() -> dict:
    return {
        "duration_s": 1.5,
        "start_time": START_TIME,
        "output_mode": OutputMode.RAW_BAYER,
        "sensor_type": SensorTypeReport.BAYER_MOSAIC,
    }


class TestRect:
    """Tests for sub-frame rectangle geometry."""

    def test_full_is_origin_anchored(self) -> None:
        """Rect.full covers the whole buffer from (0, 0)."""
        assert Rect.full(6024, 4024) == Rect(0, 0, 6024, 4024)

    def test_right_and_bottom(self) -> None:
        """right/bottom are exclusive edges."""
        rect = Rect(100, 50, 500, 200)
        assert rect.right == 600
        assert rect.bottom == 250

    def test_fits_exactly_at_edge(self) -> None:
        """A rectangle touching the far edges still fits."""
        assert Rect(500, 600, 500, 200).fits_within(1000, 800)

    @pytest.mark.parametrize(
        "rect",
        [
            Rect(900, 0, 500, 200),
            Rect(0, 700, 100, 101),
            Rect(-1, 0, 10, 10),
            Rect(0, -1, 10, 10),
            Rect(0, 0, 0, 10),
            Rect(0, 0, 10, 0),
        ],
    )
    def test_rejects_outside_or_empty(self, rect: Rect) -> None:
        """Overflowing, negative-origin and empty rectangles do not fit."""
        assert not rect.fits_within(1000, 800)

    def test_is_hashable_and_frozen(self) -> None:
        """Rect is a frozen value type."""
        rect = Rect(1, 2, 3, 4)
        assert {rect: "roi"}[Rect(1, 2, 3, 4)] == "roi"
        with pytest.raises(dataclasses.FrozenInstanceError):
            rect.x = 5  # type: ignore[misc]


class TestSensorDescriptor:
    """Tests for descriptor-derived properties."""

    def test_has_preview_with_liveview_dimensions(self) -> None:
        assert APS_C.has_preview

    def test_no_preview_without_liveview(self) -> None:
        assert not SMALL.has_preview

    def test_liveview_flag_without_dimensions_is_no_preview(self) -> None:
        """A body that claims liveview but reports no size offers no preview."""
        descriptor = dataclasses.replace(SMALL, has_liveview=True)
        assert not descriptor.has_preview

    def test_default_max_adu(self) -> None:
        assert SMALL.max_adu == 20000

    def test_defaults_for_bayer_offsets(self) -> None:
        descriptor = SensorDescriptor("x", 10, 10, 1.0, 1.0, 0.0, 1.0, 0.1)
        assert (descriptor.bayer_offset_x, descriptor.bayer_offset_y) == (0, 0)


class TestPlanes:
    """Tests for immutable frame buffers."""

    def test_plane2d_geometry(self) -> None:
        """Plane2D width/height follow the [x, y] axis order."""
        frame = Plane2D(pixels=np.zeros((30, 20), dtype=np.uint16), **_meta())
        assert (frame.width, frame.height, frame.channel_count) == (30, 20, 1)

    def test_plane3d_geometry(self) -> None:
        """Plane3D exposes its channel count from the last axis."""
        frame = Plane3D(pixels=np.zeros((30, 20, 3), dtype=np.uint16), **_meta())
        assert (frame.width, frame.height, frame.channel_count) == (30, 20, 3)

    def test_plane2d_rejects_rank_3(self) -> None:
        with pytest.raises(ValueError, match="rank-2"):
            Plane2D(pixels=np.zeros((3, 3, 3)), **_meta())

    def test_plane3d_rejects_rank_2(self) -> None:
        with pytest.raises(ValueError, match="rank-3"):
            Plane3D(pixels=np.zeros((3, 3)), **_meta())

    def test_pixels_are_read_only(self) -> None:
        """Stored pixels cannot be written through the frame."""
        frame = Plane2D(pixels=np.zeros((4, 4), dtype=np.uint16), **_meta())
        with pytest.raises(ValueError):
            frame.pixels[0, 0] = 1

    def test_source_array_stays_writable(self) -> None:
        """Freezing makes a read-only view and leaves the caller's array alone."""
        source = np.zeros((4, 4), dtype=np.uint16)
        Plane2D(pixels=source, **_meta())
        source[0, 0] = 7
        assert source.flags.writeable

    def test_frame_is_frozen(self) -> None:
        frame = Plane2D(pixels=np.zeros((4, 4)), **_meta())
        with pytest.raises(dataclasses.FrozenInstanceError):
            frame.duration_s = 2.0  # type: ignore[misc]

    def test_metadata_defaults(self) -> None:
        frame = Plane2D(pixels=np.zeros((4, 4)), **_meta())
        assert frame.is_light is True
        assert frame.sequence_id == 0


class TestFrameIdentity:
    """Frames compare and hash by identity; pixel content compares with numpy."""

    @pytest.mark.parametrize(
        ("cls", "shape"), [(Plane2D, (6, 4)), (Plane3D, (6, 4, 3))]
    )
    def test_distinct_frames_compare_without_error(self, cls, shape) -> None:
        first = cls(pixels=np.ones(shape), **_meta())
        second = cls(pixels=np.ones(shape), **_meta())

        assert first == first
        assert first != second
        np.testing.assert_array_equal(first.pixels, second.pixels)

    def test_frames_are_hashable(self) -> None:
        frame = Plane3D(pixels=np.zeros((2, 2, 3)), **_meta())
        assert hash(frame) == hash(frame)
        assert {frame: "stored"}[frame] == "stored"

    def test_equal_metadata_does_not_make_frames_equal(self) -> None:
        dark = Plane2D(pixels=np.zeros((2, 2)), **_meta())
        bright = Plane2D(pixels=np.full((2, 2), 900), **_meta())
        assert dark != bright


class TestFrameFromPlanes:
    """Tests for building the frame variant from transport planes."""

    def test_rank_2_builds_plane2d(self) -> None:
        frame = frame_from_planes(np.zeros((8, 6)), **_meta(), sequence_id=4)
        assert isinstance(frame, Plane2D)
        assert frame.sequence_id == 4

    def test_rank_3_builds_plane3d(self) -> None:
        frame = frame_from_planes(np.zeros((8, 6, 3)), **_meta(), is_light=False)
        assert isinstance(frame, Plane3D)
        assert frame.is_light is False

    @pytest.mark.parametrize("shape", [(8,), (2, 2, 2, 2)])
    def test_other_ranks_rejected(self, shape: tuple[int, ...]) -> None:
        with pytest.raises(ValueError, match="rank 2 or 3"):
            frame_from_planes(np.zeros(shape), **_meta())
