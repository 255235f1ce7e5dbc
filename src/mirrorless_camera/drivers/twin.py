"""Digital Twin Transport - Simulated Mirrorless Camera for Testing.

Provides simulated camera captures for development and testing without a
physical body on the USB bus. Follows the Transport protocol for drop-in
replacement of a real USB/MTP transport.

Simulation:
    Synthetic RGGB mosaic with sky gradient, stars, bias and read noise.
    DEBAYERED_COLOR output is converted in the "body" with OpenCV, the way
    a real camera hands back an RGB image.
    Dark frames (is_light=False) contain bias and read noise only.
    Exposures run on a background thread for duration * time_scale seconds.

Classes:
    TwinDeviceSpec: One simulated body (id, display name, descriptor)
    DigitalTwinTransport: Transport implementation

Constants:
    DEFAULT_DEVICES: APS-C mirrorless body with liveview, small test sensor

Example:
    from mirrorless_camera.drivers.twin import DigitalTwinTransport

    # Fast, automatic completion
    transport = DigitalTwinTransport(time_scale=0.01)

    # Deterministic tests: completion only when asked
    transport = DigitalTwinTransport(auto_complete=False)
    seq = session.start_exposure(1.0)
    transport.complete(seq)
"""

from __future__ import annotations

import itertools
import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, final

import cv2
import numpy as np

from mirrorless_camera.core.errors import DeviceNotFoundError, NotConnectedError
from mirrorless_camera.core.types import OutputMode, SensorDescriptor
from mirrorless_camera.drivers.transport import CaptureListener, DeviceEntry
from mirrorless_camera.observability import get_logger

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = get_logger(__name__)

__all__ = [
    "DEFAULT_DEVICES",
    "DigitalTwinTransport",
    "TwinDeviceSpec",
]


@dataclass(frozen=True)
class TwinDeviceSpec:
    """A simulated camera body."""

    device_id: str
    display_name: str
    descriptor: SensorDescriptor


# =============================================================================
# Constants
# =============================================================================

# Sensor response model (ADU)
_BIAS_ADU = 512.0
_READ_NOISE_ADU = 8.0
_SKY_RATE_ADU_PER_S = 400.0
_STAR_PEAK_ADU_PER_S = 6000.0
_STAR_COUNT = 40
_STAR_RADIUS = 3

# Relative CFA channel response for the RGGB quad: R, G, G, B
_CFA_RESPONSE = ((0.8, 1.0), (1.0, 0.7))

# Default simulated bodies.
# twin-aps-c: 24MP APS-C mirrorless, 3.92um pixels, liveview 1024x680
# twin-test: small sensor without liveview for fast tests
DEFAULT_DEVICES: Mapping[str, TwinDeviceSpec] = MappingProxyType(
    {
        "twin-aps-c": TwinDeviceSpec(
            device_id="twin-aps-c",
            display_name="Simulated APS-C Mirrorless (24MP)",
            descriptor=SensorDescriptor(
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
            ),
        ),
        "twin-test": TwinDeviceSpec(
            device_id="twin-test",
            display_name="Simulated Test Sensor",
            descriptor=SensorDescriptor(
                name="Test 0.8MP",
                width=1000,
                height=800,
                pixel_size_x_um=5.0,
                pixel_size_y_um=5.0,
                exposure_min_s=0.0,
                exposure_max_s=3600.0,
                exposure_step_s=0.001,
            ),
        ),
    }
)


@dataclass
class _PendingCapture:
    sequence_id: int
    descriptor: SensorDescriptor
    duration_s: float
    output_mode: OutputMode
    preview: bool
    is_light: bool
    start_time: datetime
    fault: str | None = None
    cancelled: threading.Event = field(default_factory=threading.Event)


@final
class DigitalTwinTransport:
    """Digital twin transport for development without hardware.

    Simulates enumeration, connection and asynchronous capture of one or
    more mirrorless bodies. Captures are delivered from a background thread
    (auto_complete=True) or held until complete()/fail() is called.

    Example:
        transport = DigitalTwinTransport(time_scale=0.0)
        session = SessionController(transport)
        session.connect("twin-test")
    """

    def __init__(
        self,
        devices: Mapping[str, TwinDeviceSpec] | None = None,
        *,
        time_scale: float = 1.0,
        auto_complete: bool = True,
        seed: int | None = None,
    ) -> None:
        """Initialize the digital twin transport.

        Args:
            devices: Simulated bodies keyed by device id. Defaults to
                DEFAULT_DEVICES.
            time_scale: Wall-clock seconds per simulated exposure second.
                0.0 completes as soon as the capture thread runs.
            auto_complete: Deliver captures from a background thread. When
                False, captures wait for complete() or fail().
            seed: Seed for the synthetic image generator.

        Business context: CI runs the full capture state machine against
        the twin at high speed. Manual completion makes races between
        abort and completion reproducible in tests.
        """
        self._devices: dict[str, TwinDeviceSpec] = dict(devices or DEFAULT_DEVICES)
        self._time_scale = time_scale
        self._auto_complete = auto_complete
        self._rng = np.random.default_rng(seed)

        self._lock = threading.Lock()
        self._listener: CaptureListener | None = None
        self._device: TwinDeviceSpec | None = None
        self._sequence = itertools.count(1)
        self._pending: dict[int, _PendingCapture] = {}
        self._next_fault: str | None = None

        logger.info(
            "Digital twin transport initialized",
            num_devices=len(self._devices),
            time_scale=time_scale,
            auto_complete=auto_complete,
        )

    def __repr__(self) -> str:
        return (
            f"DigitalTwinTransport(devices={list(self._devices)}, "
            f"connected={self._device.device_id if self._device else None})"
        )

    @property
    def pending_captures(self) -> list[int]:
        """Sequence ids triggered but not yet delivered or cancelled."""
        with self._lock:
            return sorted(self._pending)

    @property
    def connected_device(self) -> str | None:
        return self._device.device_id if self._device else None

    # -------------------------------------------------------------------------
    # Transport protocol
    # -------------------------------------------------------------------------

    def enumerate_devices(self) -> Sequence[DeviceEntry]:
        logger.debug("Listing simulated devices", count=len(self._devices))
        return [
            DeviceEntry(spec.device_id, spec.display_name)
            for spec in self._devices.values()
        ]

    def connect(self, device_id: str) -> SensorDescriptor:
        """Open a simulated body.

        Raises:
            DeviceNotFoundError: If device_id is not configured.
        """
        spec = self._devices.get(device_id)
        if spec is None:
            logger.error("Device not found", device_id=device_id)
            raise DeviceNotFoundError(f"Device {device_id!r} not found")
        with self._lock:
            self._device = spec
        logger.info("Opening simulated device", device_id=device_id)
        return spec.descriptor

    def disconnect(self) -> None:
        """Close the simulated body and cancel everything in flight."""
        with self._lock:
            pending = list(self._pending.values())
            self._pending.clear()
            self._device = None
            self._next_fault = None
        for capture in pending:
            capture.cancelled.set()
        logger.info("Simulated device closed", cancelled=len(pending))

    def set_listener(self, listener: CaptureListener) -> None:
        self._listener = listener

    def trigger_capture(
        self,
        duration_s: float,
        output_mode: OutputMode,
        *,
        preview: bool = False,
        is_light: bool = True,
    ) -> int:
        """Start a simulated exposure and return its sequence id.

        Raises:
            NotConnectedError: If no device is open.
            ValueError: For preview on a body without liveview.
        """
        with self._lock:
            if self._device is None:
                raise NotConnectedError("No simulated device is open")
            if preview and not self._device.descriptor.has_preview:
                raise ValueError(f"{self._device.device_id} has no liveview")
            capture = _PendingCapture(
                sequence_id=next(self._sequence),
                descriptor=self._device.descriptor,
                duration_s=duration_s,
                output_mode=output_mode,
                preview=preview,
                is_light=is_light,
                start_time=datetime.now(UTC),
                fault=self._next_fault,
            )
            self._next_fault = None
            self._pending[capture.sequence_id] = capture

        logger.debug(
            "Simulated capture triggered",
            sequence_id=capture.sequence_id,
            duration_s=duration_s,
            output_mode=output_mode.value,
            preview=preview,
        )
        if self._auto_complete:
            threading.Thread(
                target=self._run_capture,
                args=(capture,),
                name=f"twin-capture-{capture.sequence_id}",
                daemon=True,
            ).start()
        return capture.sequence_id

    def cancel_capture(self, sequence_id: int) -> None:
        with self._lock:
            capture = self._pending.pop(sequence_id, None)
        if capture is not None:
            capture.cancelled.set()
            logger.debug("Simulated capture cancelled", sequence_id=sequence_id)

    # -------------------------------------------------------------------------
    # Test controls
    # -------------------------------------------------------------------------

    def inject_fault(self, message: str = "Simulated USB fault") -> None:
        """Make the next triggered capture fail with message."""
        with self._lock:
            self._next_fault = message

    def complete(self, sequence_id: int) -> None:
        """Deliver a held capture now (auto_complete=False).

        Raises:
            ValueError: If sequence_id is not pending.
        """
        self._deliver(self._take(sequence_id))

    def fail(self, sequence_id: int, message: str = "Simulated USB fault") -> None:
        """Fail a held capture now (auto_complete=False).

        Raises:
            ValueError: If sequence_id is not pending.
        """
        capture = self._take(sequence_id)
        capture.fault = message
        self._deliver(capture)

    def _take(self, sequence_id: int) -> _PendingCapture:
        with self._lock:
            capture = self._pending.pop(sequence_id, None)
        if capture is None:
            raise ValueError(f"Capture {sequence_id} is not pending")
        return capture

    # -------------------------------------------------------------------------
    # Capture simulation
    # -------------------------------------------------------------------------

    def _run_capture(self, capture: _PendingCapture) -> None:
        if capture.cancelled.wait(capture.duration_s * self._time_scale):
            return
        with self._lock:
            if self._pending.pop(capture.sequence_id, None) is None:
                return
        self._deliver(capture)

    def _deliver(self, capture: _PendingCapture) -> None:
        listener = self._listener
        if listener is None:
            logger.warning(
                "No listener for simulated capture", sequence_id=capture.sequence_id
            )
            return
        if capture.fault is not None:
            logger.debug(
                "Simulated capture failed",
                sequence_id=capture.sequence_id,
                error=capture.fault,
            )
            listener.on_capture_failed(capture.sequence_id, capture.fault)
            return

        planes = self._render(capture)
        listener.on_capture_complete(
            capture.sequence_id, planes, capture.duration_s, capture.start_time
        )

    def _render(self, capture: _PendingCapture) -> NDArray[Any]:
        """Generate the planes a capture returns, indexed ``[x, y(, c)]``."""
        descriptor = capture.descriptor
        if capture.preview:
            assert descriptor.preview_width is not None
            assert descriptor.preview_height is not None
            width, height = descriptor.preview_width, descriptor.preview_height
        else:
            width, height = descriptor.width, descriptor.height

        mosaic = self._synthetic_mosaic(
            width, height, capture.duration_s, capture.is_light, descriptor.max_adu
        )
        if capture.output_mode is OutputMode.DEBAYERED_COLOR:
            # OpenCV names Bayer codes from the second row, so RGGB is BayerBG
            rgb = cv2.cvtColor(mosaic, cv2.COLOR_BayerBG2RGB)
            return rgb.transpose(1, 0, 2)
        return mosaic.T

    def _synthetic_mosaic(
        self,
        width: int,
        height: int,
        duration_s: float,
        is_light: bool,
        max_adu: int,
    ) -> NDArray[np.uint16]:
        """Render a row-major RGGB mosaic of shape (height, width).

        Light frames accumulate a sky gradient and a scattering of stars
        proportional to the exposure time; every frame carries bias and
        Gaussian read noise.
        """
        signal = np.zeros((height, width), dtype=np.float32)

        if is_light:
            gradient = (
                np.linspace(0.8, 1.2, width, dtype=np.float32)[np.newaxis, :]
                * np.linspace(0.9, 1.1, height, dtype=np.float32)[:, np.newaxis]
            )
            signal += gradient * (_SKY_RATE_ADU_PER_S * duration_s)
            stars = np.zeros((height, width), dtype=np.float32)
            xs = self._rng.integers(0, width, _STAR_COUNT)
            ys = self._rng.integers(0, height, _STAR_COUNT)
            for x, y in zip(xs, ys, strict=True):
                cv2.circle(stars, (int(x), int(y)), _STAR_RADIUS, 1.0, -1)
            signal += cv2.GaussianBlur(stars, (0, 0), 1.5) * (
                _STAR_PEAK_ADU_PER_S * duration_s
            )
            for (row, col), response in np.ndenumerate(np.array(_CFA_RESPONSE)):
                signal[row::2, col::2] *= response

        signal += _BIAS_ADU
        signal += self._rng.standard_normal((height, width), dtype=np.float32) * (
            _READ_NOISE_ADU
        )
        np.clip(signal, 0, max_adu, out=signal)
        return signal.astype(np.uint16)
