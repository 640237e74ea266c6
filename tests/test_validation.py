import pytest

from idp_gateway.errors import StructuralValidationError, UnsupportedChannelError
from idp_gateway.validation import RequestValidator


@pytest.fixture()
def validator():
    return RequestValidator(["email", "PHONE"])


def test_known_channels_any_case(validator):
    validator.validate_notification_channels(["EMAIL", "phone", "Email"])


def test_unknown_channel_is_named(validator):
    with pytest.raises(UnsupportedChannelError) as info:
        validator.validate_notification_channels(["EMAIL", "SMS", "FAX"])

    assert info.value.message == "unsupported OTP channel(s): FAX, SMS"
    assert info.value.error == "invalid_otp_channel"


def test_empty_channels_rejected(validator):
    with pytest.raises(UnsupportedChannelError):
        validator.validate_notification_channels([])


def test_structure_without_errors_passes(validator):
    validator.validate_structure([])


def test_structure_errors_are_summarised(validator):
    errors = [
        {"loc": ("body", "request", "individualId"), "msg": "Field required"},
        {"loc": ("body", "requestTime"), "msg": "Field required"},
    ]

    with pytest.raises(StructuralValidationError) as info:
        validator.validate_structure(errors)

    assert info.value.message == "request.individualId: Field required; requestTime: Field required"
    assert info.value.error == "invalid_input"
