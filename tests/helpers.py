"""Test helpers for mirrorless-camera.

Provides a scriptable fake transport, sample sensor descriptors and plane
builders shared by the session, web and CLI tests.

Example:
    from tests.helpers import FakeTransport, deliver

    session = SessionController(FakeTransport())
    session.connect("small")
    session.start_exposure(1.0)
    deliver(session, transport)
"""

from __future__ import annotations

import itertools
from datetime import UTC, datetime
from typing import Any

import numpy as np

from mirrorless_camera.core.session import SessionController
from mirrorless_camera.core.types import OutputMode, SensorDescriptor
from mirrorless_camera.drivers.transport import CaptureListener, DeviceEntry

#: Full-resolution APS-C body with liveview.
APS_C = SensorDescriptor(
    name="APS-C 24MP",
    width=6024,
    height=4024,
    pixel_size_x_um=3.92,
    pixel_size_y_um=3.92,
    exposure_min_s=0.001,
    exposure_max_s=30.0,
    exposure_step_s=0.001,
    has_liveview=True,
    preview_width=1024,
    preview_height=680,
)

#: Small body without liveview.
SMALL = SensorDescriptor(
    name="Small",
    width=1000,
    height=800,
    pixel_size_x_um=5.0,
    pixel_size_y_um=5.0,
    exposure_min_s=0.0,
    exposure_max_s=3600.0,
    exposure_step_s=0.001,
)

START_TIME = datetime(2026, 3, 14, 21, 30, 5, tzinfo=UTC)


class FakeTransport:
    """Scriptable Transport that records calls and never delivers on its own.

    Tests deliver results by calling the listener directly, which makes
    every interleaving of trigger, abort and completion reproducible.
    """

    def __init__(self, devices: dict[str, SensorDescriptor] | None = None) -> None:
        self.devices = devices or {"aps-c": APS_C, "small": SMALL}
        self.listener: CaptureListener | None = None
        self.connected: str | None = None
        self.triggers: list[dict[str, Any]] = []
        self.cancelled: list[int] = []
        self.disconnects = 0
        self.trigger_error: Exception | None = None
        self.cancel_error: Exception | None = None
        self.connect_error: Exception | None = None
        self.sequence = itertools.count(1)

    def enumerate_devices(self) -> list[DeviceEntry]:
        return [DeviceEntry(k, f"Camera {k}") for k in self.devices]

    def connect(self, device_id: str) -> SensorDescriptor:
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = device_id
        return self.devices[device_id]

    def disconnect(self) -> None:
        self.disconnects += 1
        self.connected = None

    def set_listener(self, listener: CaptureListener) -> None:
        self.listener = listener

    def trigger_capture(
        self,
        duration_s: float,
        output_mode: OutputMode,
        *,
        preview: bool = False,
        is_light: bool = True,
    ) -> int:
        if self.trigger_error is not None:
            raise self.trigger_error
        sequence_id = next(self.sequence)
        self.triggers.append(
            {
                "sequence_id": sequence_id,
                "duration_s": duration_s,
                "output_mode": output_mode,
                "preview": preview,
                "is_light": is_light,
            }
        )
        return sequence_id

    def cancel_capture(self, sequence_id: int) -> None:
        self.cancelled.append(sequence_id)
        if self.cancel_error is not None:
            raise self.cancel_error

    @property
    def last_trigger(self) -> dict[str, Any]:
        return self.triggers[-1]


def make_planes(
    width: int, height: int, output_mode: OutputMode, *, fill: int | None = None
) -> np.ndarray:
    """Build ``[x, y]`` or ``[x, y, 3]`` planes for a capture.

    Without fill the value encodes the position (x * 10000 + y) so crops
    can be checked pixel for pixel. With fill the array is a read-only
    broadcast, cheap even at full APS-C size.
    """
    shape: tuple[int, ...] = (width, height)
    if output_mode is OutputMode.DEBAYERED_COLOR:
        shape = (width, height, 3)
    if fill is not None:
        return np.broadcast_to(np.uint16(fill), shape)
    xs = np.arange(width, dtype=np.int64)[:, np.newaxis]
    ys = np.arange(height, dtype=np.int64)[np.newaxis, :]
    coded = xs * 10000 + ys
    if output_mode is OutputMode.DEBAYERED_COLOR:
        coded = np.stack([coded, coded + 1, coded + 2], axis=-1)
    return coded


def deliver(
    session: SessionController,
    transport: FakeTransport,
    *,
    sequence_id: int | None = None,
    width: int | None = None,
    height: int | None = None,
    fill: int | None = None,
) -> None:
    """Complete the last triggered capture with planes of the right shape."""
    trigger = transport.last_trigger
    descriptor = session.get_sensor_descriptor()
    if trigger["preview"]:
        default_w, default_h = descriptor.preview_width, descriptor.preview_height
    else:
        default_w, default_h = descriptor.width, descriptor.height
    planes = make_planes(
        width or default_w, height or default_h, trigger["output_mode"], fill=fill
    )
    session.on_capture_complete(
        sequence_id or trigger["sequence_id"],
        planes,
        trigger["duration_s"],
        START_TIME,
    )

