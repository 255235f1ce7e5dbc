"""Tests for the error taxonomy."""

from __future__ import annotations

import pytest

from mirrorless_camera.core.errors import (
    CameraError,
    DeviceError,
    DeviceNotFoundError,
    ErrorKind,
    ImageNotReadyError,
    InvalidFrameRequestError,
    InvalidParameterError,
    NotConnectedError,
    OperationInProgressError,
)


@pytest.mark.parametrize(
    ("error_type", "kind"),
    [
        (NotConnectedError, ErrorKind.NOT_CONNECTED),
        (DeviceNotFoundError, ErrorKind.DEVICE_NOT_FOUND),
        (InvalidParameterError, ErrorKind.INVALID_PARAMETER),
        (InvalidFrameRequestError, ErrorKind.INVALID_FRAME_REQUEST),
        (OperationInProgressError, ErrorKind.OPERATION_IN_PROGRESS),
        (ImageNotReadyError, ErrorKind.IMAGE_NOT_READY),
        (DeviceError, ErrorKind.DEVICE_ERROR),
    ],
)
def test_every_error_carries_its_kind(error_type: type[CameraError], kind) -> None:
    """Each class maps to exactly one kind, readable from instances."""
    error = error_type("boom")
    assert isinstance(error, CameraError)
    assert error.kind is kind
    assert str(error) == "boom"


def test_kinds_are_unique_per_class() -> None:
    kinds = [
        cls.kind
        for cls in (
            NotConnectedError,
            DeviceNotFoundError,
            InvalidParameterError,
            InvalidFrameRequestError,
            OperationInProgressError,
            ImageNotReadyError,
            DeviceError,
        )
    ]
    assert sorted(k.value for k in kinds) == sorted(k.value for k in ErrorKind)


def test_parameter_errors_are_value_errors() -> None:
    assert issubclass(InvalidParameterError, ValueError)
    assert issubclass(InvalidFrameRequestError, ValueError)
    assert not issubclass(DeviceError, ValueError)
