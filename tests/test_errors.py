from __future__ import annotations

import pytest

from marketplace_client.errors import (
    ErrorDescriptor,
    Messages,
    describe_api_error,
    describe_missing_capability,
)


@pytest.mark.parametrize(
    "descriptor, expected",
    [
        (ErrorDescriptor(status=403, message="ignored"), Messages.PERMISSION_DENIED),
        (ErrorDescriptor(status=404), Messages.NOT_FOUND),
        (ErrorDescriptor(status=400, message="X"), "X"),
        (ErrorDescriptor(status=400, detail="Bad phone"), "Bad phone"),
        (ErrorDescriptor(status=400), Messages.INVALID_REQUEST),
        (ErrorDescriptor(status=401, message="ignored"), Messages.LOGIN_REQUIRED),
        (ErrorDescriptor(status=500, detail="trace"), Messages.SERVER_ERROR),
        (ErrorDescriptor(status=0, error="refused"), Messages.NETWORK_ERROR),
        (ErrorDescriptor(), Messages.NETWORK_ERROR),
        (ErrorDescriptor(status=409, message="Already exists"), "Already exists"),
        (ErrorDescriptor(status=422, detail="Code expired"), "Code expired"),
        (ErrorDescriptor(status=429, error="rate_limited"), "rate_limited"),
        (ErrorDescriptor(status=502), Messages.GENERIC_ERROR),
    ],
)
def test_describe_api_error(descriptor, expected):
    assert describe_api_error(descriptor) == expected


def test_descriptor_from_payload_reads_known_fields():
    descriptor = ErrorDescriptor.from_payload(
        {"message": " Nope ", "detail": "Longer", "error": "", "extra": 1},
        status=400,
    )

    assert descriptor == ErrorDescriptor(status=400, message="Nope", detail="Longer", error=None)


def test_descriptor_ignores_structured_detail():
    descriptor = ErrorDescriptor.from_payload({"detail": [{"loc": ["body", "phone"]}]}, status=422)

    assert descriptor.detail is None
    assert describe_api_error(descriptor) == Messages.GENERIC_ERROR


def test_descriptor_from_missing_payload():
    assert ErrorDescriptor.from_payload(None) == ErrorDescriptor()


@pytest.mark.parametrize(
    "capability, readable",
    [
        ("can_manage_stores", "manage stores"),
        ("can_create_rfq_items", "create rfq_items"),
        ("publish", "publish"),
    ],
)
def test_describe_missing_capability(capability, readable):
    assert describe_missing_capability(capability) == (
        f'You need the "{readable}" capability to perform this action.'
    )
