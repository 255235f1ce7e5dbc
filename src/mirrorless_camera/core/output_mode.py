"""Output-mode and personality translation.

Maps a readout-mode index plus the configured client personality to the
capture mode requested from the camera and the sensor type reported back
to the client. Pure and stateless apart from its two constructor settings.

Readout modes:
    0: Full resolution capture.
    1: Reduced-resolution liveview preview (only when the body streams it).

Example:
    policy = OutputModePolicy(Personality.LEGACY_MONOCHROME)
    resolution = policy.resolve(0, descriptor)
    # resolution.output_mode is RAW_BAYER, sensor_type is MONOCHROME
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple

from mirrorless_camera.core.errors import InvalidParameterError
from mirrorless_camera.core.types import (
    OutputMode,
    Personality,
    SensorDescriptor,
    SensorTypeReport,
)

__all__ = [
    "FULL_RESOLUTION_MODE",
    "PREVIEW_MODE",
    "OutputModePolicy",
    "OutputResolution",
]

FULL_RESOLUTION_MODE = 0
PREVIEW_MODE = 1

# Appended to readout mode names for clients that only read mono data
_MONO_SUFFIX = " [Mono]"

_REPORT_BY_OUTPUT: dict[OutputMode, SensorTypeReport] = {
    OutputMode.DEBAYERED_COLOR: SensorTypeReport.COLOR,
    OutputMode.RAW_BAYER: SensorTypeReport.BAYER_MOSAIC,
}


class OutputResolution(NamedTuple):
    """Result of resolving one readout mode."""

    output_mode: OutputMode
    sensor_type: SensorTypeReport
    preview: bool


@dataclass(frozen=True, slots=True)
class OutputModePolicy:
    """Translate readout-mode requests for a client personality.

    Attributes:
        personality: Client integration profile, fixed for the session.
        preferred_output: Capture representation used when the personality
            does not force one (configured output format).
    """

    personality: Personality = Personality.DEFAULT
    preferred_output: OutputMode = OutputMode.DEBAYERED_COLOR

    @property
    def is_legacy(self) -> bool:
        return self.personality is Personality.LEGACY_MONOCHROME

    def mode_count(self, descriptor: SensorDescriptor) -> int:
        """Number of readout modes the connected body offers (1 or 2)."""
        return 2 if descriptor.has_preview else 1

    def validate_index(self, index: int, descriptor: SensorDescriptor) -> None:
        """Check a readout-mode index against the descriptor.

        Raises:
            InvalidParameterError: If index is not 0, or 1 with liveview.
        """
        if not 0 <= index < self.mode_count(descriptor):
            raise InvalidParameterError(
                f"Readout mode {index} out of range "
                f"(0..{self.mode_count(descriptor) - 1})"
            )

    def resolve(self, index: int, descriptor: SensorDescriptor) -> OutputResolution:
        """Resolve a readout-mode index to capture mode and reported type.

        The legacy monochrome personality coerces colour output to the raw
        mosaic and reports MONOCHROME for every readout mode.

        Business context: Capture software differs in what it can ingest.
        Most accept debayered colour; one long-lived integration only reads
        single-plane frames and treats them as mono. The personality selects
        between these once, at configuration time.

        Args:
            index: Readout-mode index (0 full resolution, 1 preview).
            descriptor: Connected device descriptor.

        Returns:
            OutputResolution(output_mode, sensor_type, preview).

        Raises:
            InvalidParameterError: For an index the device does not offer.

        Example:
            >>> OutputModePolicy().resolve(0, descriptor)
            OutputResolution(output_mode=<OutputMode.DEBAYERED_COLOR: ...>,
                             sensor_type=<SensorTypeReport.COLOR: ...>,
                             preview=False)
        """
        self.validate_index(index, descriptor)
        preview = index == PREVIEW_MODE

        if self.is_legacy:
            return OutputResolution(
                OutputMode.RAW_BAYER, SensorTypeReport.MONOCHROME, preview
            )

        output = self.preferred_output
        return OutputResolution(output, _REPORT_BY_OUTPUT[output], preview)

    def mode_dimensions(
        self, index: int, descriptor: SensorDescriptor
    ) -> tuple[int, int]:
        """Return (width, height) of the frames a readout mode produces.

        Raises:
            InvalidParameterError: For an index the device does not offer.
        """
        self.validate_index(index, descriptor)
        if index == PREVIEW_MODE:
            # has_preview guarantees both are set
            assert descriptor.preview_width is not None
            assert descriptor.preview_height is not None
            return descriptor.preview_width, descriptor.preview_height
        return descriptor.width, descriptor.height

    def readout_mode_names(self, descriptor: SensorDescriptor) -> list[str]:
        """Ordered readout-mode names shown to clients.

        Example:
            >>> OutputModePolicy().readout_mode_names(aps_c)
            ['Full Resolution (6024 x 4024)', 'LiveView (1024 x 680)']
        """
        names = [f"Full Resolution ({descriptor.width} x {descriptor.height})"]
        if descriptor.has_preview:
            suffix = _MONO_SUFFIX if self.is_legacy else ""
            names.append(
                f"LiveView ({descriptor.preview_width} x "
                f"{descriptor.preview_height})" + suffix
            )
        return names

    def can_fast_readout(self, descriptor: SensorDescriptor) -> bool:
        """True when the preview mode can serve as fast readout."""
        return not self.is_legacy and descriptor.has_preview
