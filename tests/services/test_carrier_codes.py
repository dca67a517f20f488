"""Tests for the canonical carrier code resolver."""

import pytest

from src.services.carrier_codes import (
    CARRIER_ALIASES,
    UNKNOWN_CARRIER_CODE,
    CarrierCode,
    carrier_display_name,
    resolve_carrier_code,
)


class TestResolveCarrierCode:
    """Tests for resolve_carrier_code()."""

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("顺丰速运", "shunfeng"),
            ("圆通速递", "yuantong"),
            ("京东物流", "jingdong"),
            ("跨越速运", "kuayuesuyun"),
            ("中通快递", "zhongtong"),
            ("韵达快递", "yunda"),
            ("申通快递", "shentong"),
            ("极兔速递", "jtexpress"),
            ("邮政", "youzhengguonei"),
            ("EMS", "ems"),
        ],
    )
    def test_known_display_names(self, name: str, expected: str) -> None:
        """Every canonical display name resolves to its fixed code."""
        assert resolve_carrier_code(name) == expected

    def test_short_names_resolve(self) -> None:
        """Short forms seen in spreadsheets resolve too."""
        assert resolve_carrier_code("顺丰") == "shunfeng"
        assert resolve_carrier_code("中通") == "zhongtong"

    def test_unknown_name_returns_sentinel(self) -> None:
        """Names missing from the table resolve to the empty code."""
        assert resolve_carrier_code("不存在的公司") == UNKNOWN_CARRIER_CODE
        assert UNKNOWN_CARRIER_CODE == ""

    def test_whitespace_and_case_are_ignored(self) -> None:
        """Surrounding whitespace and Latin case do not matter."""
        assert resolve_carrier_code("  顺丰速运 ") == "shunfeng"
        assert resolve_carrier_code("ems") == "ems"
        assert resolve_carrier_code("SF Express") == "shunfeng"

    @pytest.mark.parametrize("value", [None, "", "   ", 42, 3.5, ["顺丰速运"]])
    def test_never_raises_on_odd_input(self, value: object) -> None:
        """Blank and non-string input resolves to the sentinel."""
        assert resolve_carrier_code(value) == UNKNOWN_CARRIER_CODE

    def test_idempotent(self) -> None:
        """Repeated calls give the same answer."""
        first = resolve_carrier_code("圆通速递")
        assert all(resolve_carrier_code("圆通速递") == first for _ in range(5))

    def test_every_alias_maps_to_a_code(self) -> None:
        """All aliases point at CarrierCode members."""
        for alias, carrier in CARRIER_ALIASES.items():
            assert resolve_carrier_code(alias) == carrier.value


class TestCarrierDisplayName:
    """Tests for carrier_display_name()."""

    def test_known_code(self) -> None:
        assert carrier_display_name(CarrierCode.SHUNFENG.value) == "顺丰速运"

    def test_unknown_code_passes_through(self) -> None:
        assert carrier_display_name("dhl") == "dhl"
