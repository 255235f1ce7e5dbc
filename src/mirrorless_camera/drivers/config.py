"""Driver configuration and factory.

Builds the transport and the process-wide capture session from one
configuration object. The digital twin is the only bundled transport; a
USB/MTP transport for real bodies plugs in through the same factory.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING

from mirrorless_camera.core.session import SessionController
from mirrorless_camera.core.types import OutputMode, Personality
from mirrorless_camera.drivers.twin import DigitalTwinTransport, TwinDeviceSpec
from mirrorless_camera.observability import get_logger

if TYPE_CHECKING:
    from mirrorless_camera.drivers.transport import Transport
    from mirrorless_camera.observability import ExposureStats

logger = get_logger(__name__)

__all__ = [
    "DriverConfig",
    "DriverFactory",
    "configure",
    "get_factory",
    "get_session",
]


@dataclass(frozen=True)
class DriverConfig:
    """Configuration for the transport and capture session.

    Attributes:
        device_id: Device to open on connect. Empty selects the first
            enumerated device.
        personality: Client integration profile for the session.
        output_format: Capture representation for personalities that do
            not force one (DEBAYERED_COLOR or RAW_BAYER).
        use_liveview: Allow fast readout to use the liveview preview.
        twin_time_scale: Wall-clock seconds per simulated exposure second.
        twin_auto_complete: Deliver twin captures from a background thread.
        twin_devices: Simulated bodies, None for the twin defaults.
        twin_seed: Seed for the twin's synthetic images.
    """

    device_id: str = ""
    personality: Personality = Personality.DEFAULT
    output_format: OutputMode = OutputMode.DEBAYERED_COLOR
    use_liveview: bool = True

    # Digital twin settings
    twin_time_scale: float = 1.0
    twin_auto_complete: bool = True
    twin_devices: Mapping[str, TwinDeviceSpec] | None = None
    twin_seed: int | None = None


class DriverFactory:
    """Factory for creating transports and sessions from configuration.

    Thread Safety:
        Not thread-safe. Configure once at startup before serving requests.
    """

    def __init__(self, config: DriverConfig | None = None):
        """Initialize the factory.

        Args:
            config: Driver configuration. None uses DriverConfig() defaults
                (digital twin, default personality, colour output).

        Example:
            >>> factory = DriverFactory(DriverConfig(twin_time_scale=0.0))
            >>> session = factory.create_session()
        """
        self.config = config or DriverConfig()

    def create_transport(self) -> Transport:
        """Create the camera transport for this configuration.

        Returns:
            DigitalTwinTransport configured with the twin_* settings.
        """
        return DigitalTwinTransport(
            self.config.twin_devices,
            time_scale=self.config.twin_time_scale,
            auto_complete=self.config.twin_auto_complete,
            seed=self.config.twin_seed,
        )

    def create_session(
        self,
        transport: Transport | None = None,
        stats: ExposureStats | None = None,
    ) -> SessionController:
        """Create a disconnected session bound to a (new) transport.

        Args:
            transport: Transport to use. None creates one via
                create_transport().
            stats: Optional exposure statistics collector.

        Returns:
            SessionController with the configured personality, output
            format and liveview setting.
        """
        return SessionController(
            transport or self.create_transport(),
            self.config.personality,
            preferred_output=self.config.output_format,
            use_liveview=self.config.use_liveview,
            stats=stats,
        )


# =============================================================================
# Global Singletons
# =============================================================================
# Thread Safety: configure once at startup before spawning threads.

_factory: DriverFactory | None = None
_session: SessionController | None = None


def get_factory() -> DriverFactory:
    """Get the global driver factory, creating it with defaults on first use."""
    global _factory
    if _factory is None:
        _factory = DriverFactory()
    return _factory


def get_session(stats: ExposureStats | None = None) -> SessionController:
    """Get the process-wide capture session.

    There is never more than one session per process: it represents the
    one physical camera. Created on first access from the current factory.

    Args:
        stats: Statistics collector for the session. Only used when this
            call creates the session.

    Returns:
        The shared SessionController (not connected until connect()).
    """
    global _session
    if _session is None:
        _session = get_factory().create_session(stats=stats)
    return _session


def configure(config: DriverConfig) -> None:
    """Replace the global factory and drop the current session.

    A connected session is disconnected first so the device is released
    before a session with the new configuration is created on the next
    get_session() call.

    Args:
        config: New driver configuration.

    Example:
        >>> configure(DriverConfig(personality=Personality.LEGACY_MONOCHROME))
        >>> get_session().personality
        <Personality.LEGACY_MONOCHROME: 'legacy_monochrome'>
    """
    global _factory, _session

    if _session is not None:
        _session.disconnect()
        _session = None

    _factory = DriverFactory(config)
    logger.info(
        "Driver factory configured",
        device_id=config.device_id or "<first>",
        personality=config.personality.value,
        output_format=config.output_format.value,
    )

