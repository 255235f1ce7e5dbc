"""Camera device adapter for the Alpaca-style HTTP API.

Astronomy capture clients drive a camera through a property interface:
they set StartX/StartY/NumX/NumY, call StartExposure, poll ImageReady and
read ImageArray. AlpacaCamera keeps those interface-level properties and
translates each call onto the SessionController.

Error numbers follow the Alpaca convention:
    0x400 not implemented, 0x401 invalid value, 0x407 not connected,
    0x40B invalid operation, 0x500 driver error.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

from mirrorless_camera import __version__
from mirrorless_camera.core.errors import (
    ErrorKind,
    InvalidParameterError,
    NotConnectedError,
)
from mirrorless_camera.core.types import CameraState, Rect, SensorTypeReport
from mirrorless_camera.observability import get_logger

if TYPE_CHECKING:
    from mirrorless_camera.core.session import SessionController
    from mirrorless_camera.core.types import SensorDescriptor

logger = get_logger(__name__)

__all__ = [
    "ALPACA_ERROR_NUMBERS",
    "NOT_IMPLEMENTED",
    "AlpacaCamera",
    "PropertyNotImplementedError",
]

DRIVER_NAME = "Mirrorless Camera"
DRIVER_VERSION = __version__
INTERFACE_VERSION = 3

NOT_IMPLEMENTED = 0x400
INVALID_VALUE = 0x401
NOT_CONNECTED = 0x407
INVALID_OPERATION = 0x40B
DRIVER_ERROR = 0x500

ALPACA_ERROR_NUMBERS: Mapping[ErrorKind, int] = {
    ErrorKind.NOT_CONNECTED: NOT_CONNECTED,
    ErrorKind.DEVICE_NOT_FOUND: INVALID_VALUE,
    ErrorKind.INVALID_PARAMETER: INVALID_VALUE,
    ErrorKind.INVALID_FRAME_REQUEST: INVALID_VALUE,
    ErrorKind.OPERATION_IN_PROGRESS: INVALID_OPERATION,
    ErrorKind.IMAGE_NOT_READY: INVALID_OPERATION,
    ErrorKind.DEVICE_ERROR: DRIVER_ERROR,
}

# Interface CameraStates values
_CAMERA_STATE_CODES: Mapping[CameraState, int] = {
    CameraState.IDLE: 0,
    CameraState.EXPOSING: 2,
    CameraState.ABORTING: 2,
}

# Interface SensorType values
_SENSOR_TYPE_CODES: Mapping[SensorTypeReport, int] = {
    SensorTypeReport.MONOCHROME: 0,
    SensorTypeReport.COLOR: 1,
    SensorTypeReport.BAYER_MOSAIC: 2,
}

# Interface members outside the scope of this driver (cooling, gain,
# offset, guiding, subexposure)
UNSUPPORTED_PROPERTIES = frozenset(
    {
        "ccdtemperature",
        "cooleron",
        "coolerpower",
        "electronsperadu",
        "fullwellcapacity",
        "gain",
        "gainmax",
        "gainmin",
        "gains",
        "heatsinktemperature",
        "ispulseguiding",
        "offset",
        "offsetmax",
        "offsetmin",
        "offsets",
        "percentcompleted",
        "pulseguide",
        "setccdtemperature",
        "subexposureduration",
    }
)

#: ImageArray element type code for 32-bit integers.
IMAGE_ELEMENT_INT32 = 2


_SUBFRAME_ATTRS: Mapping[str, str] = {
    "startx": "_start_x",
    "starty": "_start_y",
    "numx": "_num_x",
    "numy": "_num_y",
}


class PropertyNotImplementedError(Exception):
    """Raised for interface members this driver does not implement."""


def parse_bool(value: str) -> bool:
    """Parse an Alpaca boolean parameter ("True"/"False", any case).

    Raises:
        InvalidParameterError: For anything else.
    """
    lowered = value.strip().lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    raise InvalidParameterError(f"Invalid boolean value {value!r}")


def parse_number(value: str, kind: Callable[[str], Any] = float) -> Any:
    try:
        return kind(value.strip())
    except ValueError as e:
        raise InvalidParameterError(f"Invalid numeric value {value!r}") from e


class AlpacaCamera:
    """Camera interface adapter over one SessionController.

    Holds the sub-frame properties that the interface keeps between calls
    and exposes every supported member through get()/put() by lower-case
    member name.

    Example:
        camera = AlpacaCamera(session, device_id="twin-aps-c")
        camera.put("connected", {"connected": "True"})
        camera.put("startexposure", {"duration": "2.5", "light": "True"})
    """

    def __init__(self, session: SessionController, device_id: str = "") -> None:
        self.session = session
        self.device_id = device_id
        self._lock = threading.Lock()
        self._start_x = 0
        self._start_y = 0
        # 0 means the full width/height of the active readout mode
        self._num_x = 0
        self._num_y = 0
        self._getters: dict[str, Callable[[], Any]] = {
            "connected": lambda: self.session.is_connected,
            "description": lambda: f"{DRIVER_NAME} ({self._sensor_name_or_none()})",
            "driverinfo": lambda: f"{DRIVER_NAME} capture driver",
            "driverversion": lambda: DRIVER_VERSION,
            "interfaceversion": lambda: INTERFACE_VERSION,
            "name": lambda: DRIVER_NAME,
            "supportedactions": lambda: [],
            "camerastate": self._camera_state,
            "cameraxsize": lambda: self._descriptor().width,
            "cameraysize": lambda: self._descriptor().height,
            "pixelsizex": lambda: self._descriptor().pixel_size_x_um,
            "pixelsizey": lambda: self._descriptor().pixel_size_y_um,
            "maxadu": lambda: self._descriptor().max_adu,
            "sensorname": lambda: self._descriptor().name,
            "sensortype": lambda: _SENSOR_TYPE_CODES[self.session.get_sensor_type()],
            "bayeroffsetx": lambda: self._descriptor().bayer_offset_x,
            "bayeroffsety": lambda: self._descriptor().bayer_offset_y,
            "exposuremin": lambda: self._descriptor().exposure_min_s,
            "exposuremax": lambda: self._descriptor().exposure_max_s,
            "exposureresolution": lambda: self._descriptor().exposure_step_s,
            "readoutmode": self._readout_mode,
            "readoutmodes": self.session.get_readout_modes,
            "fastreadout": self._fast_readout,
            "canfastreadout": self.session.can_fast_readout,
            "imageready": self.session.is_image_ready,
            "imagearray": self.image_array,
            "lastexposureduration": self.session.last_exposure_duration,
            "lastexposurestarttime": self.session.last_exposure_start_time,
            "startx": lambda: self._connected_value(self._start_x),
            "starty": lambda: self._connected_value(self._start_y),
            "numx": self._get_num_x,
            "numy": self._get_num_y,
            "binx": lambda: self._connected_value(1),
            "biny": lambda: self._connected_value(1),
            "maxbinx": lambda: self._connected_value(1),
            "maxbiny": lambda: self._connected_value(1),
            "canabortexposure": lambda: True,
            "canstopexposure": lambda: True,
            "hasshutter": lambda: True,
            "canasymmetricbin": lambda: False,
            "canpulseguide": lambda: False,
            "cansetccdtemperature": lambda: False,
            "cangetcoolerpower": lambda: False,
        }
        self._setters: dict[str, Callable[[Mapping[str, str]], None]] = {
            "connected": self._put_connected,
            "startexposure": self._put_start_exposure,
            "abortexposure": lambda _params: self.session.abort_exposure(),
            "stopexposure": lambda _params: self.session.stop_exposure(),
            "readoutmode": self._put_readout_mode,
            "fastreadout": self._put_fast_readout,
            "startx": self._put_int("startx"),
            "starty": self._put_int("starty"),
            "numx": self._put_int("numx"),
            "numy": self._put_int("numy"),
            "binx": self._put_bin("binx"),
            "biny": self._put_bin("biny"),
        }

    def current_subframe(self) -> Rect:
        """StartX/StartY/NumX/NumY as a Rect in readout-mode coordinates."""
        self._require_connected()
        with self._lock:
            start_x, start_y = self._start_x, self._start_y
        return Rect(start_x, start_y, self._get_num_x(), self._get_num_y())

    def can_get(self, name: str) -> bool:
        return name in self._getters or name in UNSUPPORTED_PROPERTIES

    def can_put(self, name: str) -> bool:
        return name in self._setters or name in UNSUPPORTED_PROPERTIES

    def get(self, name: str) -> Any:
        """Read an interface member by lower-case name.

        Raises:
            PropertyNotImplementedError: For members outside scope.
            KeyError: For unknown members.
            CameraError: Whatever the session raises.
        """
        if name in UNSUPPORTED_PROPERTIES:
            raise PropertyNotImplementedError(f"{name} is not implemented")
        return self._getters[name]()

    def put(self, name: str, params: Mapping[str, str]) -> None:
        """Write an interface member or invoke a method by lower-case name.

        Args:
            name: Member name.
            params: Request parameters with lower-case keys.

        Raises:
            PropertyNotImplementedError: For members outside scope.
            KeyError: For unknown or read-only members.
            CameraError: Whatever the session raises.
        """
        if name in UNSUPPORTED_PROPERTIES:
            raise PropertyNotImplementedError(f"{name} is not implemented")
        self._setters[name](params)

    # -------------------------------------------------------------------------
    # Getters
    # -------------------------------------------------------------------------

    def _descriptor(self) -> SensorDescriptor:
        return self.session.get_sensor_descriptor()

    def _sensor_name_or_none(self) -> str | None:
        return self._descriptor().name if self.session.is_connected else None

    def _connected_value(self, value: Any) -> Any:
        self._require_connected()
        return value

    def _require_connected(self) -> None:
        if not self.session.is_connected:
            raise NotConnectedError("Camera is not connected")

    def _camera_state(self) -> int:
        state = self.session.get_state()
        if state is CameraState.DISCONNECTED:
            raise NotConnectedError("Camera is not connected")
        return _CAMERA_STATE_CODES[state]

    def _readout_mode(self) -> int:
        self._require_connected()
        return self.session.readout_mode

    def _fast_readout(self) -> bool:
        self._require_connected()
        return self.session.fast_readout

    def _mode_dimensions(self) -> tuple[int, int]:
        return self.session.policy.mode_dimensions(
            self.session.readout_mode, self.session.get_sensor_descriptor()
        )

    def _get_num_x(self) -> int:
        width, _ = self._mode_dimensions()
        with self._lock:
            return min(self._num_x or width, width)

    def _get_num_y(self) -> int:
        _, height = self._mode_dimensions()
        with self._lock:
            return min(self._num_y or height, height)

    def image_array(self) -> dict[str, Any]:
        """Return the last frame cropped to the current sub-frame.

        Returns:
            ``{"Type": 2, "Rank": 2|3, "Value": [[...]]}`` with the value
            nested ``[x][y]`` or ``[x][y][channel]``.
        """
        frame = self.session.get_last_frame(self.current_subframe())
        return {
            "Type": IMAGE_ELEMENT_INT32,
            "Rank": frame.pixels.ndim,
            "Value": frame.pixels.tolist(),
        }

    # -------------------------------------------------------------------------
    # Setters
    # -------------------------------------------------------------------------

    @staticmethod
    def _param(params: Mapping[str, str], key: str) -> str:
        try:
            return params[key]
        except KeyError:
            raise InvalidParameterError(f"Missing parameter {key!r}") from None

    def _put_connected(self, params: Mapping[str, str]) -> None:
        if parse_bool(self._param(params, "connected")):
            descriptor = self.session.connect(self.device_id)
            with self._lock:
                self._start_x = self._start_y = 0
                self._num_x, self._num_y = descriptor.width, descriptor.height
        else:
            self.session.disconnect()

    def _put_start_exposure(self, params: Mapping[str, str]) -> None:
        duration = parse_number(self._param(params, "duration"))
        light = parse_bool(self._param(params, "light"))
        self.session.start_exposure(duration, light, self.current_subframe())

    def _put_readout_mode(self, params: Mapping[str, str]) -> None:
        self.session.set_readout_mode(
            parse_number(self._param(params, "readoutmode"), int)
        )

    def _put_fast_readout(self, params: Mapping[str, str]) -> None:
        self.session.set_fast_readout(parse_bool(self._param(params, "fastreadout")))

    def _put_int(self, key: str) -> Callable[[Mapping[str, str]], None]:
        def setter(params: Mapping[str, str]) -> None:
            value = parse_number(self._param(params, key), int)
            self._require_connected()
            minimum = 1 if key.startswith("num") else 0
            if value < minimum:
                raise InvalidParameterError(
                    f"{key} must be >= {minimum}, got {value}"
                )
            with self._lock:
                setattr(self, _SUBFRAME_ATTRS[key], value)
            logger.debug("Sub-frame property set", name=key, value=value)

        return setter

    def _put_bin(self, key: str) -> Callable[[Mapping[str, str]], None]:
        def setter(params: Mapping[str, str]) -> None:
            value = parse_number(self._param(params, key), int)
            self._require_connected()
            if value != 1:
                raise InvalidParameterError(f"Only {key}=1 is supported")

        return setter

