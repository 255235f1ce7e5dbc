"""Camera transports for the capture core.

The core never talks to USB directly; it drives a Transport. The digital
twin simulates mirrorless bodies for development without hardware.

Use drivers.config to build the session:
    from mirrorless_camera.drivers import config
    config.configure(config.DriverConfig(twin_time_scale=0.1))
    session = config.get_session()
"""

from mirrorless_camera.drivers import config
from mirrorless_camera.drivers.config import (
    DriverConfig,
    DriverFactory,
    configure,
    get_factory,
    get_session,
)
from mirrorless_camera.drivers.transport import (
    CaptureListener,
    DeviceEntry,
    Transport,
)
from mirrorless_camera.drivers.twin import (
    DEFAULT_DEVICES,
    DigitalTwinTransport,
    TwinDeviceSpec,
)

__all__ = [
    "config",
    # Configuration
    "DriverConfig",
    "DriverFactory",
    "configure",
    "get_factory",
    "get_session",
    # Transport protocol
    "CaptureListener",
    "DeviceEntry",
    "Transport",
    # Digital twin
    "DEFAULT_DEVICES",
    "DigitalTwinTransport",
    "TwinDeviceSpec",
]
