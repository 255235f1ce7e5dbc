"""FastAPI application exposing the camera over an Alpaca-style REST API.

Routes:
    GET  /management/apiversions             Supported API versions
    GET  /management/v1/description          Server description
    GET  /management/v1/configureddevices    The one camera device
    GET  /api/v1/camera/0/{member}           Read a camera property
    PUT  /api/v1/camera/0/{member}           Set a property / invoke a method
    GET  /api/stats                          Exposure statistics summary

Every device response carries ClientTransactionID, ServerTransactionID,
ErrorNumber and ErrorMessage; GET responses add Value. Driver errors are
reported through ErrorNumber with HTTP 200, as Alpaca clients expect.
"""

from __future__ import annotations

import itertools
from collections.abc import AsyncGenerator, Callable, Mapping
from contextlib import asynccontextmanager
from typing import Any
from urllib.parse import parse_qs

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.concurrency import run_in_threadpool

from mirrorless_camera.core.errors import CameraError
from mirrorless_camera.observability import get_logger
from mirrorless_camera.web.device import (
    ALPACA_ERROR_NUMBERS,
    DRIVER_ERROR,
    DRIVER_NAME,
    DRIVER_VERSION,
    NOT_IMPLEMENTED,
    AlpacaCamera,
    PropertyNotImplementedError,
)

logger = get_logger(__name__)

API_PREFIX = "/api/v1/camera/0"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 11111  # Alpaca default port
UNIQUE_ID = "4c1e0a53-mirrorless-camera-0"

_server_transactions = itertools.count(1)


def _lower_keys(items: Mapping[str, Any]) -> dict[str, str]:
    return {str(k).lower(): str(v) for k, v in items.items()}


def _client_transaction_id(params: Mapping[str, str]) -> int:
    try:
        return max(int(params.get("clienttransactionid", "0")), 0)
    except ValueError:
        return 0


def alpaca_response(
    client_transaction_id: int,
    value: Any = None,
    *,
    include_value: bool = True,
    error_number: int = 0,
    error_message: str = "",
) -> JSONResponse:
    """Build one Alpaca response envelope.

    Example:
        >>> alpaca_response(3, 6024).body
        b'{"ClientTransactionID":3,"ServerTransactionID":17,...,"Value":6024}'
    """
    body: dict[str, Any] = {
        "ClientTransactionID": client_transaction_id,
        "ServerTransactionID": next(_server_transactions),
        "ErrorNumber": error_number,
        "ErrorMessage": error_message,
    }
    if include_value and error_number == 0:
        body["Value"] = value
    return JSONResponse(body)


def _invoke(member: str, call: Callable[[], Any]) -> tuple[Any, int, str]:
    """Run a device call, mapping failures to (value, error number, message)."""
    try:
        return call(), 0, ""
    except PropertyNotImplementedError as e:
        return None, NOT_IMPLEMENTED, str(e)
    except CameraError as e:
        logger.warning(
            "Camera request failed",
            member=member,
            error_kind=e.kind.value,
            error=str(e),
        )
        return None, ALPACA_ERROR_NUMBERS[e.kind], str(e)
    except Exception as e:
        logger.error("Unexpected driver error", member=member, error=str(e))
        return None, DRIVER_ERROR, f"{type(e).__name__}: {e}"


def create_app(camera: AlpacaCamera | None = None) -> FastAPI:
    """Create and configure the camera API application.

    Factory function so tests get fresh app instances bound to their own
    session.

    Args:
        camera: Device adapter to serve. None builds one around the
            process-wide session from drivers.config, with an exposure
            statistics collector.

    Returns:
        Configured FastAPI application ready for uvicorn.run(). Its
        lifespan disconnects the camera on shutdown.

    Example:
        >>> app = create_app()
        >>> uvicorn.run(app, host="127.0.0.1", port=11111)
    """
    if camera is None:
        from mirrorless_camera.drivers.config import get_factory, get_session
        from mirrorless_camera.observability import ExposureStats

        camera = AlpacaCamera(
            get_session(stats=ExposureStats()),
            device_id=get_factory().config.device_id,
        )
    device = camera

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Starting camera API", personality=device.session.personality.value)
        yield
        logger.info("Shutting down camera API")
        device.session.disconnect()

    app = FastAPI(
        title=DRIVER_NAME,
        description="Alpaca-style device API for a USB mirrorless camera",
        version=DRIVER_VERSION,
        lifespan=lifespan,
    )
    app.state.camera = device

    @app.get("/management/apiversions")
    def api_versions(request: Request) -> JSONResponse:
        params = _lower_keys(request.query_params)
        return alpaca_response(_client_transaction_id(params), [1])

    @app.get("/management/v1/description")
    def description(request: Request) -> JSONResponse:
        params = _lower_keys(request.query_params)
        return alpaca_response(
            _client_transaction_id(params),
            {
                "ServerName": DRIVER_NAME,
                "Manufacturer": "mirrorless-camera",
                "ManufacturerVersion": DRIVER_VERSION,
                "Location": "",
            },
        )

    @app.get("/management/v1/configureddevices")
    def configured_devices(request: Request) -> JSONResponse:
        params = _lower_keys(request.query_params)
        return alpaca_response(
            _client_transaction_id(params),
            [
                {
                    "DeviceName": DRIVER_NAME,
                    "DeviceType": "Camera",
                    "DeviceNumber": 0,
                    "UniqueID": UNIQUE_ID,
                }
            ],
        )

    @app.get("/api/stats")
    def api_stats() -> JSONResponse:
        """Exposure statistics for the session, 404 when not collected."""
        stats = device.session.stats
        if stats is None:
            return JSONResponse({"error": "Statistics not enabled"}, status_code=404)
        return JSONResponse(stats.get_summary().to_dict())

    @app.get(API_PREFIX + "/{member}")
    def get_member(member: str, request: Request) -> Response:
        """Read one camera property.

        Runs in the threadpool; image downloads of full frames are large.
        """
        name = member.lower()
        if not device.can_get(name):
            return PlainTextResponse(f"Unknown property {member!r}", status_code=400)
        params = _lower_keys(request.query_params)
        value, number, message = _invoke(name, lambda: device.get(name))
        return alpaca_response(
            _client_transaction_id(params),
            value,
            error_number=number,
            error_message=message,
        )

    @app.put(API_PREFIX + "/{member}")
    async def put_member(member: str, request: Request) -> Response:
        """Set a camera property or invoke a camera method.

        Parameters are read from the form-encoded body, falling back to the
        query string.
        """
        name = member.lower()
        if not device.can_put(name):
            return PlainTextResponse(f"Unknown method {member!r}", status_code=400)

        params = _lower_keys(request.query_params)
        body = (await request.body()).decode("utf-8", errors="replace")
        params.update(
            _lower_keys({k: v[-1] for k, v in parse_qs(body).items() if v})
        )

        _, number, message = await run_in_threadpool(
            _invoke, name, lambda: device.put(name, params)
        )
        return alpaca_response(
            _client_transaction_id(params),
            include_value=False,
            error_number=number,
            error_message=message,
        )

    return app


def main(host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> None:
    """Run the camera API server (blocks until stopped).

    Example:
        >>> # python -m mirrorless_camera.web.app
        >>> main()
    """
    app = create_app()
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
