"""Tracking query-and-sync operation.

For one order: resolve the carrier (falling back to tracking-number
recognition), query the provider, map the provider's status text to an
OrderStatus and write the result onto the stored order. On failure the
error is recorded on the order and re-raised, so the caller can count
the order as failed.
"""

import asyncio
import json
import logging
from dataclasses import asdict
from typing import Any

from src.db.models import OrderStatus, WarningStatus, utc_now_iso
from src.errors import format_message
from src.services.errors import TrackingServiceError
from src.services.order_records import SyncRequest
from src.services.order_store import OrderStore
from src.services.tracking_client import TrackingClient, TrackingRecord, build_query_number
from src.services.tracking_recognition import recognize_carrier

logger = logging.getLogger(__name__)

# Provider placeholder for detail text it did not return
_TRUNCATED_DETAILS = "//太长省略//"

# Checked in order; first keyword hit wins
_STATUS_KEYWORDS: list[tuple[tuple[str, ...], OrderStatus]] = [
    (("签收", "已代收"), OrderStatus.delivered),
    (("退回",), OrderStatus.returned),
    (("运输", "派件", "派送", "揽收", "发出", "到达"), OrderStatus.in_transit),
    (("无物流", "待查询"), OrderStatus.pending),
]

_ABNORMAL_KEYWORD = "异常"


def map_logistics_status(status_text: str) -> OrderStatus:
    """Map the provider's status text to an OrderStatus.

    Unrecognized text maps to in_transit: the provider only reports
    numbers it has seen moving.
    """
    for keywords, status in _STATUS_KEYWORDS:
        if any(k in status_text for k in keywords):
            return status
    logger.warning("Unknown logistics status: %s", status_text)
    return OrderStatus.in_transit


def map_warning_status(status_text: str) -> WarningStatus:
    if _ABNORMAL_KEYWORD in status_text:
        return WarningStatus.transit_abnormal
    return WarningStatus.none


def parse_tracking_details(details: str | None) -> list[dict[str, Any]]:
    """Parse the provider's detail text into tracking nodes.

    The provider returns either a JSON array or ``time|description``
    lines. Lines without a separator are ignored.
    """
    if not details or details == _TRUNCATED_DETAILS:
        return []

    try:
        parsed = json.loads(details)
    except ValueError:
        nodes = []
        for line in details.splitlines():
            parts = line.split("|")
            if len(parts) >= 2:
                nodes.append(
                    {
                        "time": parts[0].strip(),
                        "description": "|".join(parts[1:]).strip(),
                    }
                )
        return nodes

    return parsed if isinstance(parsed, list) else []


def _pick_record(records: list[TrackingRecord], tracking_number: str) -> TrackingRecord:
    for record in records:
        if record.tracking_number.upper() == tracking_number.upper():
            return record
    return records[0]


class TrackingSyncService:
    """Runs the query-and-sync operation for single orders.

    Attributes:
        _client: Tracking provider client.
        _store: Order store results are written to.
        _query_timeout: Seconds the provider query may take (None: unbounded).
            Writing the result is not bounded, so a stored result always
            matches the outcome reported to the caller.
    """

    def __init__(
        self,
        client: TrackingClient,
        store: OrderStore,
        query_timeout: float | None = None,
    ) -> None:
        self._client = client
        self._store = store
        self._query_timeout = query_timeout

    async def sync(self, request: SyncRequest) -> TrackingRecord:
        """Query the provider for one order and persist the result.

        Args:
            request: Sync request built by the reconciler.

        Returns:
            The provider's tracking record for the order.

        Raises:
            TrackingServiceError: Provider or recognition failure, or E-3004
                when the query exceeds query_timeout (recorded on the order
                before raising).
        """
        try:
            record, carrier_code = await self._query(request)
        except Exception as e:
            message = e.message if isinstance(e, TrackingServiceError) else str(e)
            try:
                await asyncio.to_thread(
                    self._store.record_sync_failure, request.order_number, message
                )
            except Exception as record_error:
                logger.warning(
                    "Could not record sync failure for order %s: %s",
                    request.order_number, record_error,
                )
            raise

        status = map_logistics_status(record.status_text)
        warning_status = map_warning_status(record.status_text)
        await asyncio.to_thread(
            self._store.apply_sync_result,
            request.order_number,
            status,
            warning_status,
            {
                "carrier_code": carrier_code,
                "tracking_info": asdict(record),
                "tracking_nodes": parse_tracking_details(record.raw_details),
                "last_tracking_update": utc_now_iso(),
                "logistics_query_failed": False,
                "logistics_query_error": "",
            },
        )
        logger.info(
            "Synced order %s: %s (%s)",
            request.order_number, status.value, record.status_text,
        )
        return record

    async def __call__(self, request: SyncRequest) -> TrackingRecord:
        return await self.sync(request)

    async def _query(self, request: SyncRequest) -> tuple[TrackingRecord, str]:
        carrier_code = request.carrier_code or recognize_carrier(request.tracking_number)
        if not carrier_code:
            raise TrackingServiceError(code="E-3003", message=format_message("E-3003"))

        query_number = build_query_number(
            carrier_code, request.tracking_number, request.phone
        )
        try:
            records = await asyncio.wait_for(
                self._client.query(carrier_code, query_number),
                timeout=self._query_timeout,
            )
        except (asyncio.TimeoutError, TimeoutError) as e:
            raise TrackingServiceError(
                code="E-3004",
                message=format_message("E-3004", details=f"{self._query_timeout}秒"),
                retryable=True,
            ) from e
        return _pick_record(records, request.tracking_number), carrier_code
