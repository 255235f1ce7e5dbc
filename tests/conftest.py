"""Pytest configuration and fixtures for mirrorless-camera tests.

Provides a scriptable fake transport for session tests, digital twin
transports with manual completion, and isolation of the process-wide
driver configuration and logging state between tests.
"""

from __future__ import annotations

import io
import logging
from collections.abc import Iterator

import pytest

from mirrorless_camera.core.session import SessionController
from mirrorless_camera.drivers import config
from mirrorless_camera.drivers.twin import DigitalTwinTransport
from mirrorless_camera.observability import (
    ExposureStats,
    configure_logging,
    reset_logging,
)
from tests.helpers import FakeTransport


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_driver_config() -> Iterator[None]:
    """Drop the process-wide factory and session around every test.

    Business context: drivers.config keeps module-level singletons for the
    one physical camera. Tests that touch get_session() must not leak a
    connected session into the next test.
    """
    yield
    if config._session is not None:
        config._session.disconnect()
    config._session = None
    config._factory = None


@pytest.fixture
def log_stream() -> Iterator[io.StringIO]:
    """Capture package log output as text at DEBUG level.

    Yields:
        StringIO receiving every record of the mirrorless_camera loggers.
    """
    stream = io.StringIO()
    configure_logging(level=logging.DEBUG, stream=stream, force=True)
    yield stream
    reset_logging()


@pytest.fixture
def transport() -> FakeTransport:
    """Fake transport with an APS-C body ("aps-c") and a small one ("small")."""
    return FakeTransport()


@pytest.fixture
def stats() -> ExposureStats:
    return ExposureStats()


@pytest.fixture
def session(transport: FakeTransport, stats: ExposureStats) -> SessionController:
    """Disconnected default-personality session over the fake transport."""
    return SessionController(transport, stats=stats)


@pytest.fixture
def connected(session: SessionController) -> SessionController:
    """Session connected to the APS-C body."""
    session.connect("aps-c")
    return session


@pytest.fixture
def twin() -> Iterator[DigitalTwinTransport]:
    """Digital twin that holds captures until complete() or fail()."""
    transport = DigitalTwinTransport(auto_complete=False, seed=1234)
    yield transport
    transport.disconnect()


@pytest.fixture
def fast_twin() -> Iterator[DigitalTwinTransport]:
    """Digital twin delivering captures from its thread without delay."""
    transport = DigitalTwinTransport(time_scale=0.0, seed=1234)
    yield transport
    transport.disconnect()
