import pytest

from tourwatch.phone import is_e164, normalize_phone


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("(555) 123-4567", "+15551234567"),
        ("1 555 123 4567", "+15551234567"),
        ("+44 20 7946 0958", "+442079460958"),
        ("442079460958", "+442079460958"),
        ("  +1-555-123-4567 ", "+15551234567"),
    ],
)
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw) == expected
    assert is_e164(expected)


def test_empty_input():
    assert normalize_phone("") == ""
    assert normalize_phone(None) == ""


@pytest.mark.parametrize("value", ["", "+", "+0123456", "15551234567", "+1234567890123456", None])
def test_rejects_invalid(value):
    assert not is_e164(value)
