"""Canonical carrier code definitions.

Single source of truth for mapping carrier display names (as typed into
import spreadsheets) to the tracking provider's carrier codes. All other
modules import from here instead of maintaining their own copies.
"""

from enum import Enum


class CarrierCode(str, Enum):
    """Tracking provider carrier codes.

    These codes correspond to the provider's ``kdgs`` identifiers.
    """

    SHUNFENG = "shunfeng"
    YUANTONG = "yuantong"
    JINGDONG = "jingdong"
    KUAYUE = "kuayuesuyun"
    ZHONGTONG = "zhongtong"
    YUNDA = "yunda"
    SHENTONG = "shentong"
    JTEXPRESS = "jtexpress"
    YOUZHENG = "youzhengguonei"
    EMS = "ems"


# Sentinel for names that are not in the table. Callers send the query
# without carrier disambiguation.
UNKNOWN_CARRIER_CODE = ""


# ---------------------------------------------------------------------------
# Display names: code value -> canonical carrier name
# ---------------------------------------------------------------------------

CARRIER_DISPLAY_NAMES: dict[str, str] = {
    CarrierCode.SHUNFENG.value: "顺丰速运",
    CarrierCode.YUANTONG.value: "圆通速递",
    CarrierCode.JINGDONG.value: "京东物流",
    CarrierCode.KUAYUE.value: "跨越速运",
    CarrierCode.ZHONGTONG.value: "中通快递",
    CarrierCode.YUNDA.value: "韵达快递",
    CarrierCode.SHENTONG.value: "申通快递",
    CarrierCode.JTEXPRESS.value: "极兔速递",
    CarrierCode.YOUZHENG.value: "邮政",
    CarrierCode.EMS.value: "EMS",
}


# ---------------------------------------------------------------------------
# Alias mapping: maps names seen in spreadsheets to CarrierCode members.
# Latin keys are lowercase; lookups lowercase the input.
# ---------------------------------------------------------------------------

CARRIER_ALIASES: dict[str, CarrierCode] = {
    # SF Express
    "顺丰速运": CarrierCode.SHUNFENG,
    "顺丰": CarrierCode.SHUNFENG,
    "顺丰快递": CarrierCode.SHUNFENG,
    "sf express": CarrierCode.SHUNFENG,
    # YTO
    "圆通速递": CarrierCode.YUANTONG,
    "圆通快递": CarrierCode.YUANTONG,
    "圆通": CarrierCode.YUANTONG,
    # JD Logistics
    "京东物流": CarrierCode.JINGDONG,
    "京东快递": CarrierCode.JINGDONG,
    "京东": CarrierCode.JINGDONG,
    # Kuayue
    "跨越速运": CarrierCode.KUAYUE,
    "跨越": CarrierCode.KUAYUE,
    # ZTO
    "中通快递": CarrierCode.ZHONGTONG,
    "中通速递": CarrierCode.ZHONGTONG,
    "中通": CarrierCode.ZHONGTONG,
    "zto": CarrierCode.ZHONGTONG,
    # Yunda
    "韵达快递": CarrierCode.YUNDA,
    "韵达": CarrierCode.YUNDA,
    # STO
    "申通快递": CarrierCode.SHENTONG,
    "申通": CarrierCode.SHENTONG,
    # J&T
    "极兔速递": CarrierCode.JTEXPRESS,
    "极兔快递": CarrierCode.JTEXPRESS,
    "极兔": CarrierCode.JTEXPRESS,
    # China Post
    "邮政": CarrierCode.YOUZHENG,
    "邮政快递包裹": CarrierCode.YOUZHENG,
    "邮政快递": CarrierCode.YOUZHENG,
    # EMS
    "ems": CarrierCode.EMS,
    "ems特快": CarrierCode.EMS,
}

# Reverse mapping: code value -> CarrierCode enum member
CODE_TO_CARRIER: dict[str, CarrierCode] = {code.value: code for code in CarrierCode}

# Auto-derived string-value alias map
CARRIER_NAME_TO_CODE: dict[str, str] = {k: v.value for k, v in CARRIER_ALIASES.items()}


def resolve_carrier_code(carrier_name: object) -> str:
    """Resolve a carrier display name to the provider's carrier code.

    Total function: never raises. Unknown names, blanks and non-string
    input resolve to UNKNOWN_CARRIER_CODE.

    Args:
        carrier_name: Carrier display name as it appears in the import file.

    Returns:
        Provider carrier code (e.g. "shunfeng"), or "" if unresolved.
    """
    if not isinstance(carrier_name, str):
        return UNKNOWN_CARRIER_CODE

    stripped = carrier_name.strip()
    if not stripped:
        return UNKNOWN_CARRIER_CODE

    return CARRIER_NAME_TO_CODE.get(stripped.lower(), UNKNOWN_CARRIER_CODE)


def carrier_display_name(code: str) -> str:
    """Return the canonical display name for a carrier code.

    Args:
        code: Provider carrier code.

    Returns:
        Display name, or the code itself if it is not a known carrier.
    """
    return CARRIER_DISPLAY_NAMES.get(code, code)
