"""Carrier recognition from tracking number shape.

Used when an order's carrier name did not resolve to a provider code.
Rules are checked in order against the upper-cased number; the first
match wins.
"""

import re

from src.services.carrier_codes import UNKNOWN_CARRIER_CODE, CarrierCode

# (prefix, minimum length, carrier)
_PREFIX_RULES: list[tuple[str, int, CarrierCode]] = [
    ("YT", 12, CarrierCode.YUANTONG),
    ("JD", 10, CarrierCode.JINGDONG),
    ("KY", 12, CarrierCode.KUAYUE),
    ("ST", 12, CarrierCode.SHENTONG),
    ("ZT", 12, CarrierCode.ZHONGTONG),
]

# Bare SF waybills are 12 or 15 digits
_SF_NUMERIC = re.compile(r"^(\d{12}|\d{15})$")
_SF_PREFIXED = re.compile(r"^SF[0-9A-Z]+$")


def recognize_carrier(tracking_number: object) -> str:
    """Guess the provider carrier code from a tracking number.

    Args:
        tracking_number: Carrier tracking number.

    Returns:
        Provider carrier code, or "" if no rule matches.
    """
    if not isinstance(tracking_number, str):
        return UNKNOWN_CARRIER_CODE
    normalized = tracking_number.strip().upper()
    if not normalized:
        return UNKNOWN_CARRIER_CODE

    for prefix, min_length, carrier in _PREFIX_RULES:
        if normalized.startswith(prefix) and len(normalized) >= min_length:
            return carrier.value
    if _SF_NUMERIC.match(normalized) or _SF_PREFIXED.match(normalized):
        return CarrierCode.SHUNFENG.value
    return UNKNOWN_CARRIER_CODE
