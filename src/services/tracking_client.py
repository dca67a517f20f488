"""Async HTTP client for the logistics tracking provider.

The provider works in two steps: ``create/`` registers a query task for
one or more tracking numbers and returns a task name; ``select/`` returns
the task's progress (``jindu``, 0-100) and, once finished, the tracking
records. Both endpoints take form-encoded POSTs and answer
``{"code": 1, "msg": ...}`` on success.

Transport failures are mapped to TrackingServiceError codes. Retryable
failures (timeouts, connection errors, 429/5xx) are retried with
exponential backoff up to ``max_retries`` times; the default is no retry.

Example:
    async with TrackingClient(appid="346462", outerid="...") as client:
        records = await client.query("shunfeng", "SF1234567890||5678")
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from src.errors import format_message
from src.services.carrier_codes import CarrierCode
from src.services.errors import TrackingServiceError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://yun.zhuzhufanli.com/mini/"
DEFAULT_APPID = "346462"
DEFAULT_OUTERID = "5DAD3AA8098741C0"

# Payment mode expected by the provider for account-funded queries
_PAYMENT_MODE = "jinbi"

TASK_COMPLETE = 100


@dataclass
class TrackingRecord:
    """One tracking number's result from a finished query task."""

    tracking_number: str
    carrier: str = ""
    status_text: str = ""
    event_count: int = 0
    shipped_at: str | None = None
    latest_at: str | None = None
    latest_event: str | None = None
    raw_details: str | None = None
    queried_at: str | None = None
    order_ref: str | None = None
    source: str | None = None

    @classmethod
    def from_provider(cls, data: dict[str, Any]) -> "TrackingRecord":
        """Build from a provider list item (pinyin field names)."""
        try:
            event_count = int(data.get("tiaoshu") or 0)
        except (TypeError, ValueError):
            event_count = 0
        return cls(
            tracking_number=str(data.get("kddh") or ""),
            carrier=str(data.get("kdgs") or ""),
            status_text=str(data.get("wuliuzhuangtai") or ""),
            event_count=event_count,
            shipped_at=data.get("fachushijian"),
            latest_at=data.get("zuixinshijian"),
            latest_event=data.get("zuihouwuliu"),
            raw_details=data.get("xiangxiwuliu"),
            queried_at=data.get("chaxunshijian"),
            order_ref=data.get("dingdanhao"),
            source=data.get("wwlyuan"),
        )


@dataclass
class TaskStatus:
    """Progress snapshot of a provider query task."""

    progress: int
    total_pages: int = 0
    records: list[TrackingRecord] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return self.progress >= TASK_COMPLETE


def build_query_number(
    carrier_code: str,
    tracking_number: str,
    phone: str | None = None,
) -> str:
    """Build the ``kddhs`` value for one tracking number.

    SF Express requires the last four digits of the recipient phone,
    appended as ``<number>||<digits>``. Other carriers take the bare number.
    """
    if carrier_code == CarrierCode.SHUNFENG.value and phone:
        digits = "".join(ch for ch in phone if ch.isdigit())
        if len(digits) >= 4:
            return f"{tracking_number}||{digits[-4:]}"
    return tracking_number


def _parse_progress(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


class TrackingClient:
    """Async client for the tracking provider's create/select API.

    Attributes:
        _base_url: Provider base URL (endpoints are relative to it).
        _appid: Provider application id.
        _outerid: Provider account id.
        _max_retries: Retry attempts for retryable failures.
        _base_delay: Base backoff delay in seconds (doubles each retry).
        _poll_interval: Seconds to wait before each select call.
        _poll_attempts: Select calls made before giving up on a task.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        appid: str = DEFAULT_APPID,
        outerid: str = DEFAULT_OUTERID,
        timeout: float = 30.0,
        max_retries: int = 0,
        base_delay: float = 1.0,
        poll_interval: float = 2.0,
        poll_attempts: int = 1,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Provider base URL.
            appid: Provider application id.
            outerid: Provider account id.
            timeout: Per-request timeout in seconds.
            max_retries: Max retry attempts for transient errors.
            base_delay: Base delay in seconds (doubles each retry).
            poll_interval: Delay before each select call, in seconds.
            poll_attempts: Number of select calls before reporting the task
                as unfinished.
            transport: Optional httpx transport (tests use MockTransport).
        """
        self._base_url = base_url if base_url.endswith("/") else f"{base_url}/"
        self._appid = str(appid)
        self._outerid = str(outerid)
        self._timeout = timeout
        self._max_retries = max(0, max_retries)
        self._base_delay = base_delay
        self._poll_interval = poll_interval
        self._poll_attempts = max(1, poll_attempts)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._retry_attempts_total = 0

    @property
    def retry_attempts_total(self) -> int:
        """Total number of retry sleeps performed by this client."""
        return self._retry_attempts_total

    async def __aenter__(self) -> "TrackingClient":
        self._get_client()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def create_task(self, carrier_code: str, query_numbers: list[str]) -> str:
        """Register a query task.

        Args:
            carrier_code: Provider carrier code (``kdgs``).
            query_numbers: ``kddhs`` values, see build_query_number().

        Returns:
            Task name used to poll the result.

        Raises:
            TrackingServiceError: On transport or provider failure.
        """
        msg = await self._post(
            "create/",
            {
                "appid": self._appid,
                "outerid": self._outerid,
                "zffs": _PAYMENT_MODE,
                "kdgs": carrier_code,
                "kddhs": "\n".join(query_numbers),
                "isBackTaskName": "yes",
            },
        )
        taskname = str(msg or "").strip()
        if not taskname:
            raise TrackingServiceError(
                code="E-3005",
                message=format_message("E-3005", details="未返回查询任务名"),
            )
        logger.debug("Created tracking task %s for %d numbers", taskname, len(query_numbers))
        return taskname

    async def fetch_task(self, taskname: str, page: int = 1) -> TaskStatus:
        """Read the progress and results of a query task."""
        msg = await self._post(
            "select/",
            {
                "appid": self._appid,
                "outerid": self._outerid,
                "pageno": page,
                "taskname": taskname,
            },
        )
        if not isinstance(msg, dict):
            raise TrackingServiceError(
                code="E-3005",
                message=format_message("E-3005", details="查询结果格式无效"),
            )
        items = msg.get("list") or []
        return TaskStatus(
            progress=_parse_progress(msg.get("jindu")),
            total_pages=_parse_progress(msg.get("totalpage")),
            records=[
                TrackingRecord.from_provider(item)
                for item in items
                if isinstance(item, dict)
            ],
        )

    async def query(self, carrier_code: str, query_number: str) -> list[TrackingRecord]:
        """Create a task for one number and poll until it finishes.

        Raises:
            TrackingServiceError: E-3006 if the task is still running after
                the last poll, E-3007 if it finished without records.
        """
        taskname = await self.create_task(carrier_code, [query_number])

        status: TaskStatus | None = None
        for attempt in range(self._poll_attempts):
            await asyncio.sleep(self._poll_interval)
            status = await self.fetch_task(taskname)
            if status.is_complete:
                break
            logger.debug(
                "Tracking task %s at %d%% (poll %d/%d)",
                taskname, status.progress, attempt + 1, self._poll_attempts,
            )

        if status is None or not status.is_complete:
            raise TrackingServiceError(
                code="E-3006",
                message=format_message("E-3006"),
                retryable=True,
                details={"taskname": taskname},
            )
        if not status.records:
            raise TrackingServiceError(
                code="E-3007",
                message=format_message("E-3007"),
                details={"taskname": taskname},
            )
        return status.records

    async def _post(self, endpoint: str, data: dict[str, Any]) -> Any:
        """POST a form to the provider with retry on transient failures.

        Returns:
            The ``msg`` field of a successful response.
        """
        attempt = 0
        while True:
            try:
                return await self._post_once(endpoint, data)
            except TrackingServiceError as e:
                if attempt < self._max_retries and e.retryable:
                    delay = self._base_delay * (2 ** attempt)
                    logger.warning(
                        "Tracking provider '%s' returned retryable error "
                        "(attempt %d/%d), retrying in %.1fs: %s",
                        endpoint, attempt + 1, self._max_retries + 1, delay, e.message,
                    )
                    self._retry_attempts_total += 1
                    await asyncio.sleep(delay)
                    attempt += 1
                    continue
                raise

    async def _post_once(self, endpoint: str, data: dict[str, Any]) -> Any:
        client = self._get_client()
        try:
            response = await client.post(endpoint, data=data)
        except httpx.TimeoutException as e:
            raise TrackingServiceError(
                code="E-3004",
                message=format_message("E-3004", details=endpoint),
                retryable=True,
            ) from e
        except httpx.TransportError as e:
            raise TrackingServiceError(
                code="E-3001",
                message=format_message("E-3001", details=str(e) or type(e).__name__),
                retryable=True,
            ) from e

        if response.status_code == 429:
            raise TrackingServiceError(
                code="E-3002",
                message=format_message("E-3002", details=f"HTTP {response.status_code}"),
                retryable=True,
            )
        if response.status_code >= 500:
            raise TrackingServiceError(
                code="E-3001",
                message=format_message("E-3001", details=f"HTTP {response.status_code}"),
                retryable=True,
            )
        if response.status_code >= 400:
            raise TrackingServiceError(
                code="E-3005",
                message=format_message("E-3005", details=f"HTTP {response.status_code}"),
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise TrackingServiceError(
                code="E-3005",
                message=format_message("E-3005", details="响应不是有效的JSON"),
            ) from e

        if not isinstance(payload, dict) or str(payload.get("code")) != "1":
            reason = payload.get("msg") if isinstance(payload, dict) else payload
            raise TrackingServiceError(
                code="E-3005",
                message=format_message("E-3005", details=str(reason)),
                details={"endpoint": endpoint, "response": payload},
            )
        return payload.get("msg")
