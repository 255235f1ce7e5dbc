"""Tests for the output-mode and personality policy."""

from __future__ import annotations

import pytest

from mirrorless_camera.core.errors import InvalidParameterError
from mirrorless_camera.core.output_mode import (
    FULL_RESOLUTION_MODE,
    PREVIEW_MODE,
    OutputModePolicy,
    OutputResolution,
)
from mirrorless_camera.core.types import OutputMode, Personality, SensorTypeReport
from tests.helpers import APS_C, SMALL

LEGACY = OutputModePolicy(Personality.LEGACY_MONOCHROME)


class TestResolve:
    """Readout mode plus personality to capture mode and reported type."""

    def test_default_personality_reports_color(self) -> None:
        assert OutputModePolicy().resolve(0, APS_C) == OutputResolution(
            OutputMode.DEBAYERED_COLOR, SensorTypeReport.COLOR, False
        )

    def test_default_personality_raw_output_reports_bayer(self) -> None:
        policy = OutputModePolicy(preferred_output=OutputMode.RAW_BAYER)
        resolution = policy.resolve(FULL_RESOLUTION_MODE, APS_C)
        assert resolution.output_mode is OutputMode.RAW_BAYER
        assert resolution.sensor_type is SensorTypeReport.BAYER_MOSAIC

    def test_preview_mode_flags_preview(self) -> None:
        assert OutputModePolicy().resolve(PREVIEW_MODE, APS_C).preview

    @pytest.mark.parametrize("index", [FULL_RESOLUTION_MODE, PREVIEW_MODE])
    def test_legacy_reports_monochrome_for_every_mode(self, index: int) -> None:
        """The legacy personality always captures raw and reports MONOCHROME."""
        resolution = LEGACY.resolve(index, APS_C)
        assert resolution.output_mode is OutputMode.RAW_BAYER
        assert resolution.sensor_type is SensorTypeReport.MONOCHROME

    def test_legacy_ignores_preferred_colour_output(self) -> None:
        policy = OutputModePolicy(
            Personality.LEGACY_MONOCHROME, OutputMode.DEBAYERED_COLOR
        )
        assert policy.resolve(0, SMALL).output_mode is OutputMode.RAW_BAYER

    @pytest.mark.parametrize(
        ("descriptor", "index"), [(APS_C, 2), (APS_C, -1), (SMALL, 1)]
    )
    def test_unknown_index_rejected(self, descriptor, index: int) -> None:
        """Preview is only offered when the body streams liveview."""
        with pytest.raises(InvalidParameterError, match="out of range"):
            OutputModePolicy().resolve(index, descriptor)


class TestReadoutModes:
    def test_names_with_liveview(self) -> None:
        assert OutputModePolicy().readout_mode_names(APS_C) == [
            "Full Resolution (6024 x 4024)",
            "LiveView (1024 x 680)",
        ]

    def test_names_without_liveview(self) -> None:
        assert OutputModePolicy().readout_mode_names(SMALL) == [
            "Full Resolution (1000 x 800)"
        ]

    def test_legacy_marks_liveview_as_mono(self) -> None:
        assert LEGACY.readout_mode_names(APS_C) == [
            "Full Resolution (6024 x 4024)",
            "LiveView (1024 x 680) [Mono]",
        ]

    def test_mode_count(self) -> None:
        assert OutputModePolicy().mode_count(APS_C) == 2
        assert OutputModePolicy().mode_count(SMALL) == 1

    def test_mode_dimensions(self) -> None:
        policy = OutputModePolicy()
        assert policy.mode_dimensions(FULL_RESOLUTION_MODE, APS_C) == (6024, 4024)
        assert policy.mode_dimensions(PREVIEW_MODE, APS_C) == (1024, 680)


class TestFastReadout:
    def test_available_with_liveview(self) -> None:
        assert OutputModePolicy().can_fast_readout(APS_C)

    def test_unavailable_without_liveview(self) -> None:
        assert not OutputModePolicy().can_fast_readout(SMALL)

    def test_unavailable_for_legacy_personality(self) -> None:
        assert not LEGACY.can_fast_readout(APS_C)
