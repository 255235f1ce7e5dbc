"""Transport protocol between the capture core and a camera connection.

The transport owns device enumeration and the USB/MTP link. The session
controller talks to it through these protocols only.

Protocols:
    Transport: Device discovery, connection and capture triggering
    CaptureListener: Asynchronous completion delivery (SessionController)

Delivery contract:
    - Each triggered capture reports at most one completion or failure.
    - Delivery never happens inside trigger_capture() on the caller's
      thread; it arrives on a transport-owned thread afterwards.
    - After cancel_capture(seq) returns, nothing further is delivered for
      seq unless it was already in flight, and the listener discards those.
    - Sequence ids increase strictly for the life of the transport.
    - Pixel arrays handed to the listener are never written again by the
      transport.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Any, NamedTuple, Protocol, runtime_checkable

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from mirrorless_camera.core.types import OutputMode, SensorDescriptor

__all__ = ["CaptureListener", "DeviceEntry", "Transport"]


class DeviceEntry(NamedTuple):
    """One enumerated device."""

    device_id: str
    display_name: str


@runtime_checkable
class CaptureListener(Protocol):  # pragma: no cover
    """Receiver of asynchronous capture results.

    Implemented by SessionController. Called from a transport thread.
    """

    def on_capture_complete(
        self,
        sequence_id: int,
        planes: NDArray[Any],
        duration_s: float,
        start_time: datetime,
    ) -> None:
        """Deliver the raw planes of a finished capture.

        Args:
            sequence_id: Id returned by trigger_capture().
            planes: ``[x, y]`` mosaic or ``[x, y, channel]`` colour array.
            duration_s: Actual exposure duration in seconds.
            start_time: Exposure start (UTC).
        """
        ...

    def on_capture_failed(self, sequence_id: int, message: str) -> None:
        """Report a hardware fault that ended a capture without a frame."""
        ...


@runtime_checkable
class Transport(Protocol):  # pragma: no cover
    """Protocol for camera transports (hardware abstraction layer).

    Implemented by DigitalTwinTransport; a USB/MTP transport for real
    bodies implements the same methods.

    Business context: The capture core must run identically against a real
    camera on a telescope and a simulated one in CI. Everything hardware
    specific lives behind this protocol.
    """

    def enumerate_devices(self) -> Sequence[DeviceEntry]:
        """List attached devices.

        Example:
            >>> [d.device_id for d in transport.enumerate_devices()]
            ['twin-aps-c', 'twin-test']
        """
        ...

    def connect(self, device_id: str) -> SensorDescriptor:
        """Open a device and return its descriptor.

        Raises:
            DeviceNotFoundError: If device_id is not attached.
        """
        ...

    def disconnect(self) -> None:
        """Close the open device, cancelling anything in flight."""
        ...

    def set_listener(self, listener: CaptureListener) -> None:
        """Register the receiver of completions and failures."""
        ...

    def trigger_capture(
        self,
        duration_s: float,
        output_mode: OutputMode,
        *,
        preview: bool = False,
        is_light: bool = True,
    ) -> int:
        """Start a capture and return its sequence id without waiting.

        Args:
            duration_s: Exposure time in seconds.
            output_mode: RAW_BAYER for a ``[x, y]`` mosaic, DEBAYERED_COLOR
                for an in-camera converted ``[x, y, 3]`` image.
            preview: Capture the reduced-resolution liveview frame.
            is_light: False keeps the shutter closed (dark frame).

        Returns:
            Strictly increasing capture sequence id.

        Raises:
            Exception: Any transport failure; the session maps it to
                DeviceError.
        """
        ...

    def cancel_capture(self, sequence_id: int) -> None:
        """Cancel a capture. Unknown or finished ids are ignored."""
        ...
