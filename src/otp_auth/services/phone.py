"""Mobile-number normalisation to canonical E.164 form."""

from __future__ import annotations

import phonenumbers

from otp_auth.errors import InvalidIdentifier


def normalize_mobile(raw: str, default_region: str = "EG") -> str:
    """Return *raw* as an E.164 string (``+201001234567``).

    Numbers without a leading ``+`` are parsed relative to *default_region*.
    Raises ``InvalidIdentifier`` when the input is not a valid number.
    """
    try:
        parsed = phonenumbers.parse((raw or "").strip(), default_region)
    except phonenumbers.NumberParseException as exc:
        raise InvalidIdentifier() from exc

    if not phonenumbers.is_valid_number(parsed):
        raise InvalidIdentifier()
    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)
