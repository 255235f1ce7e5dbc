"""Capture session controller.

Owns the capture state machine for one physical camera and composes the
output-mode policy and frame windowing into what callers receive.

States:
    DISCONNECTED -> IDLE          connect()
    IDLE -> EXPOSING              start_exposure()
    EXPOSING -> IDLE              accepted completion or transport fault
    EXPOSING -> ABORTING -> IDLE  abort_exposure() / stop_exposure()
    any -> DISCONNECTED           disconnect()

Concurrency:
    Every transition is a compare-and-transition under one lock. Completion
    callbacks from the transport thread, abort requests from a UI thread and
    the capture loop may all race; the capture sequence id decides which
    completion is still wanted. Transport calls that can block on the device
    (cancel, disconnect) are made outside the lock and the state is checked
    again afterwards.

Example:
    from mirrorless_camera.core import Rect, SessionController
    from mirrorless_camera.drivers import DigitalTwinTransport

    session = SessionController(DigitalTwinTransport())
    descriptor = session.connect("twin-aps-c")
    session.start_exposure(2.5, True, Rect.full(descriptor.width, descriptor.height))
    while not session.is_image_ready():
        time.sleep(0.1)
    frame = session.get_last_frame()
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from mirrorless_camera.core.errors import (
    CameraError,
    DeviceError,
    DeviceNotFoundError,
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
from mirrorless_camera.core.types import (
    CameraState,
    CaptureRequest,
    OutputMode,
    Personality,
    Rect,
    SensorDescriptor,
    SensorTypeReport,
    frame_from_planes,
)
from mirrorless_camera.core.windowing import window
from mirrorless_camera.observability import ExposureOutcome, LogContext, get_logger

if TYPE_CHECKING:
    from datetime import datetime

    from numpy.typing import NDArray

    from mirrorless_camera.core.types import FrameBuffer
    from mirrorless_camera.drivers.transport import Transport
    from mirrorless_camera.observability import ExposureStats

logger = get_logger(__name__)

__all__ = ["SessionController"]

#: Timestamp format of last_exposure_start_time().
START_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S"

_EXPECTED_RANK: dict[OutputMode, int] = {
    OutputMode.RAW_BAYER: 2,
    OutputMode.DEBAYERED_COLOR: 3,
}


@dataclass(frozen=True, slots=True)
class _OutstandingCapture:
    """The one capture the session is currently waiting for."""

    sequence_id: int
    request: CaptureRequest
    resolution: OutputResolution


class SessionController:
    """Stateful orchestrator for one connected camera.

    One instance per physical camera per process. The controller registers
    itself as the transport's capture listener on construction.

    Attributes:
        personality: Client integration profile (read-only).
        readout_mode: Active readout-mode index.
        is_connected: True unless DISCONNECTED.
    """

    def __init__(
        self,
        transport: Transport,
        personality: Personality = Personality.DEFAULT,
        *,
        preferred_output: OutputMode = OutputMode.DEBAYERED_COLOR,
        use_liveview: bool = True,
        stats: ExposureStats | None = None,
    ) -> None:
        """Create a disconnected session bound to a transport.

        Does not touch the device; call connect() to open it.

        Args:
            transport: Device transport delivering captures asynchronously.
            personality: Client integration profile, fixed for the session.
            preferred_output: Capture representation for personalities that
                do not force one.
            use_liveview: Allow fast readout to select the liveview preview.
            stats: Optional collector for exposure outcomes.

        Example:
            >>> session = SessionController(transport, Personality.DEFAULT)
            >>> session.get_state()
            <CameraState.DISCONNECTED: 'disconnected'>
        """
        self._transport = transport
        self._policy = OutputModePolicy(personality, preferred_output)
        self._use_liveview = use_liveview
        self._stats = stats

        self._lock = threading.Lock()
        self._state = CameraState.DISCONNECTED
        self._device_id: str | None = None
        self._descriptor: SensorDescriptor | None = None
        self._readout_mode = FULL_RESOLUTION_MODE
        self._outstanding: _OutstandingCapture | None = None
        self._last_sequence_id = 0
        self._frame: FrameBuffer | None = None
        self._frame_subframe: Rect | None = None
        self._image_ready = False
        self._pending_fault: DeviceError | None = None

        transport.set_listener(self)

    def __repr__(self) -> str:
        return (
            f"SessionController(state={self._state.value}, "
            f"device={self._device_id!r}, "
            f"personality={self._policy.personality.value})"
        )

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def personality(self) -> Personality:
        return self._policy.personality

    @property
    def policy(self) -> OutputModePolicy:
        return self._policy

    @property
    def stats(self) -> ExposureStats | None:
        return self._stats

    @property
    def is_connected(self) -> bool:
        return self._state is not CameraState.DISCONNECTED

    @property
    def device_id(self) -> str | None:
        return self._device_id

    @property
    def readout_mode(self) -> int:
        return self._readout_mode

    @property
    def fast_readout(self) -> bool:
        """True while the liveview preview readout mode is active."""
        return self._readout_mode == PREVIEW_MODE

    # -------------------------------------------------------------------------
    # State helpers (caller holds self._lock)
    # -------------------------------------------------------------------------

    def _compare_and_set(
        self, expected: tuple[CameraState, ...], new: CameraState
    ) -> bool:
        if self._state not in expected:
            return False
        old, self._state = self._state, new
        logger.info(
            "Camera state changed",
            from_state=old.value,
            to_state=new.value,
        )
        return True

    def _transition(self, expected: tuple[CameraState, ...], new: CameraState) -> None:
        """Compare-and-transition, raising when the state moved underneath."""
        if self._compare_and_set(expected, new):
            return
        if self._state is CameraState.DISCONNECTED:
            raise NotConnectedError("Camera is not connected")
        raise OperationInProgressError(
            f"Cannot move to {new.value} from {self._state.value}"
        )

    def _require_descriptor(self) -> SensorDescriptor:
        if self._state is CameraState.DISCONNECTED or self._descriptor is None:
            raise NotConnectedError("Camera is not connected")
        return self._descriptor

    def _log_context(self, sequence_id: int | None = None) -> LogContext:
        """Device id, plus the capture id when known, for every record inside."""
        if sequence_id is None:
            return LogContext(device_id=self._device_id)
        return LogContext(device_id=self._device_id, sequence_id=sequence_id)

    def _raise_pending_fault(self) -> None:
        fault, self._pending_fault = self._pending_fault, None
        if fault is not None:
            raise fault

    def _record(self, outcome: ExposureOutcome, **kwargs: Any) -> None:
        if self._stats is not None:
            self._stats.record(outcome, **kwargs)

    def _abandon_outstanding(self, message: str, error_type: str) -> None:
        """Drop the outstanding capture after a fault and go back to IDLE."""
        self._outstanding = None
        self._pending_fault = DeviceError(message)
        logger.error(
            "Capture failed",
            error=message,
            error_type=error_type,
        )
        self._compare_and_set((CameraState.EXPOSING,), CameraState.IDLE)
        self._record(ExposureOutcome.FAILED, error_type=error_type)

    # -------------------------------------------------------------------------
    # Connection
    # -------------------------------------------------------------------------

    def connect(self, device_id: str = "") -> SensorDescriptor:
        """Open a device and move DISCONNECTED -> IDLE.

        The device is matched by id or display name against the transport's
        enumeration. An empty device_id selects the first enumerated device.
        Connecting again to the device already open is a no-op.

        Business context: A capture application opens the camera once per
        night and keeps it; reconnect attempts from a second client must not
        silently steal the session from the first.

        Args:
            device_id: Transport device id or display name.

        Returns:
            SensorDescriptor of the connected device.

        Raises:
            DeviceNotFoundError: If no enumerated device matches.
            OperationInProgressError: If a different device is connected.
            DeviceError: If the transport fails to open the device.

        Example:
            >>> descriptor = session.connect("twin-aps-c")
            >>> descriptor.width, descriptor.height
            (6024, 4024)
        """
        with self._lock:
            if self._state is not CameraState.DISCONNECTED:
                if device_id in ("", self._device_id) and self._descriptor:
                    logger.debug("Already connected", device_id=self._device_id)
                    return self._descriptor
                raise OperationInProgressError(
                    f"Session already connected to {self._device_id!r}"
                )

            entries = list(self._transport.enumerate_devices())
            match = next(
                (
                    e
                    for e in entries
                    if not device_id or device_id in (e.device_id, e.display_name)
                ),
                None,
            )
            if match is None:
                logger.error(
                    "Device not found",
                    device_id=device_id,
                    available=[e.device_id for e in entries],
                )
                raise DeviceNotFoundError(f"Device {device_id!r} not found")

            with LogContext(device_id=match.device_id):
                logger.info("Connecting to camera")
                try:
                    descriptor = self._transport.connect(match.device_id)
                except CameraError:
                    raise
                except Exception as e:
                    logger.error("Camera connection failed", error=str(e))
                    raise DeviceError(
                        f"Failed to connect to {match.device_id!r}: {e}"
                    ) from e

                self._device_id = match.device_id
                self._descriptor = descriptor
                self._readout_mode = FULL_RESOLUTION_MODE
                self._outstanding = None
                self._frame = None
                self._frame_subframe = None
                self._image_ready = False
                self._pending_fault = None
                self._transition((CameraState.DISCONNECTED,), CameraState.IDLE)
                logger.info(
                    "Camera connected",
                    name=descriptor.name,
                    resolution=f"{descriptor.width}x{descriptor.height}",
                    liveview=descriptor.has_preview,
                )
                return descriptor

    def disconnect(self) -> None:
        """Close the device from any state. Safe to call when disconnected.

        An outstanding capture is cancelled first and its result discarded.
        The stored frame, descriptor and any pending fault are cleared.
        Transport errors during cleanup are logged, and the session is
        DISCONNECTED regardless.
        """
        with self._lock:
            if self._state is CameraState.DISCONNECTED:
                return
            context = self._log_context()
            capture = self._outstanding
            self._outstanding = None
            with context:
                self._compare_and_set(tuple(CameraState), CameraState.DISCONNECTED)
            self._device_id = None
            self._descriptor = None
            self._frame = None
            self._frame_subframe = None
            self._image_ready = False
            self._pending_fault = None
            self._readout_mode = FULL_RESOLUTION_MODE

        with context:
            if capture is not None:
                self._record(ExposureOutcome.ABORTED)
                try:
                    self._transport.cancel_capture(capture.sequence_id)
                except Exception as e:
                    logger.warning(
                        "Error cancelling capture during disconnect",
                        sequence_id=capture.sequence_id,
                        error=str(e),
                    )
            try:
                self._transport.disconnect()
            except Exception as e:
                logger.warning("Error during camera disconnect", error=str(e))
            logger.info("Camera disconnected")

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_state(self) -> CameraState:
        """Return the current state.

        Raises:
            DeviceError: Once, after a transport fault abandoned a capture.
        """
        with self._lock:
            self._raise_pending_fault()
            return self._state

    def get_sensor_descriptor(self) -> SensorDescriptor:
        """Return the connected device's descriptor.

        Raises:
            NotConnectedError: When disconnected.
        """
        with self._lock:
            return self._require_descriptor()

    def get_readout_modes(self) -> list[str]:
        """Ordered readout-mode names for the connected device.

        Raises:
            NotConnectedError: When disconnected.
        """
        with self._lock:
            return self._policy.readout_mode_names(self._require_descriptor())

    def get_sensor_type(self) -> SensorTypeReport:
        """Sensor type reported for the active readout mode.

        Raises:
            NotConnectedError: When disconnected.
        """
        with self._lock:
            descriptor = self._require_descriptor()
            return self._policy.resolve(self._readout_mode, descriptor).sensor_type

    def can_fast_readout(self) -> bool:
        """True when fast readout can switch to the liveview preview.

        Raises:
            NotConnectedError: When disconnected.
        """
        with self._lock:
            descriptor = self._require_descriptor()
            return self._use_liveview and self._policy.can_fast_readout(descriptor)

    def is_image_ready(self) -> bool:
        """True when the most recently started exposure produced the stored frame.

        A new exposure clears the flag; an aborted or failed one leaves it
        false. Returns False when disconnected.

        Raises:
            DeviceError: Once, after a transport fault abandoned a capture.
        """
        with self._lock:
            self._raise_pending_fault()
            return self._image_ready and self._frame is not None

    def get_last_frame(self, subframe: Rect | None = None) -> FrameBuffer:
        """Return the stored frame cropped to a sub-frame.

        Non-blocking: the lock is held only to read the frame reference.
        Stored frames are immutable and replaced by swapping the reference,
        so a reader never sees one mid-replacement.

        Args:
            subframe: Requested rectangle. Defaults to the sub-frame given
                to the exposure that produced the frame.

        Returns:
            FrameBuffer of exactly the requested size. The full-frame
            window returns the stored frame itself.

        Raises:
            NotConnectedError: When disconnected.
            ImageNotReadyError: Before any capture completed.
            InvalidFrameRequestError: If subframe exceeds the frame.
            DeviceError: Once, after a transport fault abandoned a capture.

        Example:
            >>> roi = session.get_last_frame(Rect(100, 100, 500, 500))
            >>> roi.width, roi.height
            (500, 500)
        """
        with self._lock:
            self._raise_pending_fault()
            self._require_descriptor()
            frame = self._frame
            default = self._frame_subframe
        if frame is None:
            raise ImageNotReadyError("No image has been captured")
        return window(frame, subframe or default or Rect.full(frame.width, frame.height))

    def last_exposure_duration(self) -> float:
        """Actual duration of the exposure that produced the stored frame.

        Raises:
            NotConnectedError: When disconnected.
            ImageNotReadyError: Before any capture completed.
        """
        return self._stored_frame().duration_s

    def last_exposure_start_time(self) -> str:
        """Start time of the stored frame as ``YYYY-MM-DDTHH:MM:SS`` (UTC).

        Raises:
            NotConnectedError: When disconnected.
            ImageNotReadyError: Before any capture completed.
        """
        return self._stored_frame().start_time.strftime(START_TIME_FORMAT)

    def _stored_frame(self) -> FrameBuffer:
        with self._lock:
            self._require_descriptor()
            if self._frame is None:
                raise ImageNotReadyError("No image has been captured")
            return self._frame

    # -------------------------------------------------------------------------
    # Readout configuration
    # -------------------------------------------------------------------------

    def set_readout_mode(self, index: int) -> None:
        """Select the readout mode for subsequent exposures.

        Raises:
            NotConnectedError: When disconnected.
            OperationInProgressError: While a capture is outstanding.
            InvalidParameterError: For an index the device does not offer.
        """
        with self._lock:
            descriptor = self._require_descriptor()
            if self._state is not CameraState.IDLE:
                raise OperationInProgressError(
                    "Cannot change readout mode while a capture is running"
                )
            self._policy.validate_index(index, descriptor)
            if index != self._readout_mode:
                with self._log_context():
                    logger.info(
                        "Readout mode changed",
                        readout_mode=index,
                        name=self._policy.readout_mode_names(descriptor)[index],
                    )
            self._readout_mode = index

    def set_fast_readout(self, enabled: bool) -> None:
        """Switch between full resolution and the liveview preview.

        Fast readout is only honoured when liveview use is enabled in the
        configuration and the personality and device allow it; otherwise
        the full-resolution mode is selected.

        Raises:
            NotConnectedError: When disconnected.
            OperationInProgressError: While a capture is outstanding.
        """
        enabled = enabled and self.can_fast_readout()
        self.set_readout_mode(PREVIEW_MODE if enabled else FULL_RESOLUTION_MODE)

    # -------------------------------------------------------------------------
    # Exposure control
    # -------------------------------------------------------------------------

    def start_exposure(
        self,
        duration_s: float,
        is_light: bool = True,
        subframe: Rect | None = None,
    ) -> int:
        """Validate a request, trigger the capture and move IDLE -> EXPOSING.

        Returns as soon as the transport accepted the trigger; the frame
        arrives later through on_capture_complete(). All validation happens
        before the transport is called, so a rejected request has no side
        effects. A fault from an earlier capture that was never read is
        cleared once the new trigger is accepted.

        Business context: Imaging loops run exposures back to back while a
        separate UI thread may abort. Rejecting a second start instead of
        queueing it keeps a single physical shutter under one owner.

        Args:
            duration_s: Exposure time in seconds, within the device bounds.
            is_light: False for dark frames (shutter closed).
            subframe: Region in readout-mode coordinates. Defaults to the
                full frame of the active readout mode.

        Returns:
            Capture sequence id assigned by the transport.

        Raises:
            NotConnectedError: When disconnected.
            OperationInProgressError: While EXPOSING or ABORTING. The
                running capture is not disturbed.
            InvalidParameterError: If duration is negative or outside the
                descriptor's [min, max] bounds.
            InvalidFrameRequestError: If subframe exceeds the readout size.
            DeviceError: If the transport rejects the trigger. The state
                stays IDLE.

        Example:
            >>> session.start_exposure(2.5, True, Rect(0, 0, 6024, 4024))
            1
        """
        with self._lock:
            descriptor = self._require_descriptor()
            if self._state is not CameraState.IDLE:
                raise OperationInProgressError(
                    f"Exposure already in progress (state={self._state.value})"
                )

            if duration_s < 0:
                raise InvalidParameterError(
                    f"Exposure duration must be >= 0, got {duration_s}"
                )
            if not descriptor.exposure_min_s <= duration_s <= descriptor.exposure_max_s:
                raise InvalidParameterError(
                    f"Exposure duration {duration_s}s outside "
                    f"[{descriptor.exposure_min_s}, {descriptor.exposure_max_s}]"
                )

            width, height = self._policy.mode_dimensions(self._readout_mode, descriptor)
            subframe = subframe or Rect.full(width, height)
            if not subframe.fits_within(width, height):
                raise InvalidFrameRequestError(
                    f"Sub-frame ({subframe.x}, {subframe.y}, {subframe.width}, "
                    f"{subframe.height}) exceeds {width}x{height} readout"
                )

            request = CaptureRequest(duration_s, is_light, subframe)
            resolution = self._policy.resolve(self._readout_mode, descriptor)

            with self._log_context():
                try:
                    sequence_id = self._transport.trigger_capture(
                        duration_s,
                        resolution.output_mode,
                        preview=resolution.preview,
                        is_light=is_light,
                    )
                except Exception as e:
                    logger.error(
                        "Capture trigger failed", duration_s=duration_s, error=str(e)
                    )
                    self._record(ExposureOutcome.FAILED, error_type="trigger")
                    raise DeviceError(f"Capture trigger failed: {e}") from e

            with self._log_context(sequence_id):
                if sequence_id <= self._last_sequence_id:
                    logger.error(
                        "Transport reused a capture sequence id",
                        last_sequence_id=self._last_sequence_id,
                    )
                    self._record(ExposureOutcome.FAILED, error_type="sequence")
                    raise DeviceError(
                        f"Transport reused capture sequence id {sequence_id} "
                        f"(last {self._last_sequence_id})"
                    )

                if self._pending_fault is not None:
                    logger.warning(
                        "Clearing unreported fault from previous capture",
                        error=str(self._pending_fault),
                    )
                    self._pending_fault = None

                self._last_sequence_id = sequence_id
                self._outstanding = _OutstandingCapture(
                    sequence_id, request, resolution
                )
                self._image_ready = False
                self._transition((CameraState.IDLE,), CameraState.EXPOSING)
                logger.info(
                    "Exposure started",
                    duration_s=duration_s,
                    is_light=is_light,
                    output_mode=resolution.output_mode,
                    preview=resolution.preview,
                    subframe=(subframe.x, subframe.y, subframe.width, subframe.height),
                )
            return sequence_id

    def abort_exposure(self) -> None:
        """Cancel the running exposure without producing a frame.

        EXPOSING -> ABORTING, transport cancel outside the lock, then
        ABORTING -> IDLE. A completion for the cancelled id that still
        arrives is discarded. No-op from IDLE or while another caller is
        already aborting.

        Raises:
            NotConnectedError: When disconnected.
        """
        with self._lock:
            self._require_descriptor()
            capture = self._outstanding
            if capture is None or self._state is not CameraState.EXPOSING:
                logger.debug("Abort ignored", state=self._state.value)
                return
            context = self._log_context(capture.sequence_id)
            with context:
                self._compare_and_set((CameraState.EXPOSING,), CameraState.ABORTING)
            self._outstanding = None

        with context:
            logger.info("Aborting exposure")
            try:
                self._transport.cancel_capture(capture.sequence_id)
            except Exception as e:
                logger.error("Capture cancel failed", error=str(e))
                with self._lock:
                    if self._state is CameraState.ABORTING:
                        self._pending_fault = DeviceError(
                            f"Capture cancel failed: {e}"
                        )
            finally:
                with self._lock:
                    self._compare_and_set((CameraState.ABORTING,), CameraState.IDLE)
            self._record(ExposureOutcome.ABORTED)

    def stop_exposure(self) -> None:
        """Stop the running exposure. Same semantics as abort_exposure()."""
        self.abort_exposure()

    # -------------------------------------------------------------------------
    # Transport callbacks
    # -------------------------------------------------------------------------

    def on_capture_complete(
        self,
        sequence_id: int,
        planes: NDArray[Any],
        duration_s: float,
        start_time: datetime,
    ) -> None:
        """Accept a finished capture from the transport.

        Stored only if sequence_id is the outstanding capture and the state
        is still EXPOSING; anything else is a stale result and discarded.
        A plane whose rank does not match the requested output mode is a
        device fault.

        Args:
            sequence_id: Id returned by the matching trigger_capture().
            planes: Raw pixels, ``[x, y]`` or ``[x, y, channel]``. Ownership
                passes to the session: the stored frame is a read-only view
                of this array, so a transport that reuses its buffers must
                pass a copy.
            duration_s: Actual exposure duration in seconds.
            start_time: Exposure start (UTC).
        """
        with self._lock, self._log_context(sequence_id):
            capture = self._outstanding
            if (
                capture is None
                or capture.sequence_id != sequence_id
                or self._state is not CameraState.EXPOSING
            ):
                logger.warning(
                    "Discarding stale capture completion",
                    outstanding=capture.sequence_id if capture else None,
                    state=self._state.value,
                )
                self._record(ExposureOutcome.STALE)
                return

            output_mode = capture.resolution.output_mode
            try:
                frame = frame_from_planes(
                    planes,
                    duration_s=duration_s,
                    start_time=start_time,
                    output_mode=output_mode,
                    sensor_type=capture.resolution.sensor_type,
                    is_light=capture.request.is_light,
                    sequence_id=sequence_id,
                )
            except ValueError as e:
                self._abandon_outstanding(str(e), "bad_frame")
                return
            if frame.pixels.ndim != _EXPECTED_RANK[output_mode]:
                self._abandon_outstanding(
                    f"Expected rank-{_EXPECTED_RANK[output_mode]} planes for "
                    f"{output_mode.value}, got rank {frame.pixels.ndim}",
                    "bad_frame",
                )
                return

            self._frame = frame
            self._frame_subframe = capture.request.subframe
            self._image_ready = True
            self._outstanding = None
            self._transition((CameraState.EXPOSING,), CameraState.IDLE)
            self._record(ExposureOutcome.COMPLETED, duration_s=duration_s)
            logger.info(
                "Exposure complete",
                duration_s=duration_s,
                shape=frame.pixels.shape,
                sensor_type=frame.sensor_type,
            )

    def on_capture_failed(self, sequence_id: int, message: str) -> None:
        """Record a transport fault for a capture.

        For the outstanding capture the session goes back to IDLE with no
        frame, and the DeviceError surfaces on the next get_state(),
        is_image_ready() or get_last_frame() call. Faults for other ids are
        stale and discarded.
        """
        with self._lock, self._log_context(sequence_id):
            capture = self._outstanding
            if (
                capture is None
                or capture.sequence_id != sequence_id
                or self._state is not CameraState.EXPOSING
            ):
                logger.warning(
                    "Discarding stale capture failure",
                    error=message,
                )
                self._record(ExposureOutcome.STALE)
                return
            self._abandon_outstanding(message, "transport")
