"""Tests for carrier recognition from tracking number shape."""

import pytest

from src.services.tracking_recognition import recognize_carrier


@pytest.mark.parametrize(
    ("number", "expected"),
    [
        ("YT1234567890123", "yuantong"),
        ("JD0012345678", "jingdong"),
        ("KY4000012345678", "kuayuesuyun"),
        ("ST1234567890", "shentong"),
        ("ZT1234567890", "zhongtong"),
        ("SF1234567890", "shunfeng"),
        ("sf1234567890", "shunfeng"),
        ("123456789012", "shunfeng"),
        ("123456789012345", "shunfeng"),
    ],
)
def test_recognized_numbers(number: str, expected: str) -> None:
    """Prefix and length rules pick the carrier."""
    assert recognize_carrier(number) == expected


@pytest.mark.parametrize(
    "number",
    ["", "   ", "YT123", "1234567890123", "ABC-123", None, 123456789012],
)
def test_unrecognized_numbers(number: object) -> None:
    """Anything else yields the empty code."""
    assert recognize_carrier(number) == ""
