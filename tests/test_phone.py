"""Tests for mobile-number normalisation."""

import pytest

from otp_auth.errors import InvalidIdentifier
from otp_auth.services.phone import normalize_mobile


@pytest.mark.parametrize(
    "raw",
    ["+201234567890", "01234567890", " 0123 456 7890 ", "+20 123 456 7890", "00201234567890"],
)
def test_equivalent_forms_share_one_canonical_mobile(raw):
    assert normalize_mobile(raw) == "+201234567890"


def test_international_number_keeps_its_country():
    assert normalize_mobile("+15417543010", default_region="EG") == "+15417543010"


def test_default_region_applies_to_national_numbers():
    assert normalize_mobile("(541) 754-3010", default_region="US") == "+15417543010"


@pytest.mark.parametrize("raw", ["", "12", "not-a-number", "+20123"])
def test_invalid_numbers_rejected(raw):
    with pytest.raises(InvalidIdentifier):
        normalize_mobile(raw)
