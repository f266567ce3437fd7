"""HTTP client for the OIOI v4 partner API (CPO side)."""

import json
import logging
import time
import uuid
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any, Optional

import aiohttp
from aiohttp import ClientSession, ClientTimeout

from ..exceptions import MalformedMessage
from ..hooks import NO_HOOKS, CustomizationHooks
from ..logging_utils import log_error, log_oioi_message
from ..models.domain import ConnectorStatus, Session, Station
from ..plugins.base import PluginContext, PluginManager
from .operations import CONNECTOR_POST_STATUS, RFID_VERIFY, SESSION_POST, STATION_POST, Operation
from .results import Result

logger = logging.getLogger(__name__)

DEFAULT_PORT = 443
DEFAULT_URL_PREFIX = "/api/v4/request"
DEFAULT_REQUEST_TIMEOUT = 60.0
DEFAULT_USER_AGENT = "oioisync"


def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> Optional[float]:
    """
    Parse a ``Retry-After`` header into seconds.

    Accepts delta-seconds and HTTP dates. Dates in the past yield 0; anything
    unparseable yields None.
    """
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    now = now or datetime.now(UTC)
    return max(0.0, (when - now).total_seconds())


class CPOClient:
    """
    Sends station, connector status and session data to the partner.

    Every operation returns a Result. Transport failures, timeouts and
    responses that cannot be decoded are turned into Results with a local
    error code; only caller errors (missing API key, missing partner
    identifier, invalid payload) raise.

    The client can share an ``aiohttp.ClientSession`` owned by the caller or
    create its own, which is closed by ``close()``:

        async with CPOClient("api.example.com", api_key) as client:
            result = await client.rfid_verify("CAFEBABE")
    """

    def __init__(
        self,
        hostname: str,
        api_key: str,
        *,
        port: int = DEFAULT_PORT,
        url_prefix: str = DEFAULT_URL_PREFIX,
        scheme: str = "https",
        default_partner_id: Optional[str] = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        session: Optional[ClientSession] = None,
        hooks: Optional[CustomizationHooks] = None,
        plugins: Optional[PluginManager] = None,
        user_agent: str = DEFAULT_USER_AGENT,
    ):
        if not hostname:
            raise ValueError("The given hostname must not be null or empty!")
        if not api_key:
            raise ValueError("The given API key must not be null or empty!")

        self.hostname = hostname
        self.api_key = api_key
        self.port = port
        self.url_prefix = "/" + url_prefix.strip("/") if url_prefix else ""
        self.scheme = scheme
        self.default_partner_id = default_partner_id
        self.request_timeout = request_timeout
        self.hooks = hooks or NO_HOOKS
        self.plugins = plugins if plugins is not None else PluginManager()
        self.user_agent = user_agent

        self._session = session
        self._owns_session = session is None
        self._attached = False

    @property
    def url(self) -> str:
        return f"{self.scheme}://{self.hostname}:{self.port}{self.url_prefix}"

    def __repr__(self) -> str:
        return f"<CPOClient {self.url}>"

    async def __aenter__(self) -> "CPOClient":
        await self.open()
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def open(self):
        """Attach the plugins to this client and create the HTTP session if needed."""
        if not self._attached:
            await self.plugins.attach(self)
            self._attached = True
        self._get_session()

    async def close(self):
        if self._attached:
            await self.plugins.detach(self)
            self._attached = False
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        if self._owns_session:
            self._session = None

    def _get_session(self) -> ClientSession:
        if self._session is None or (self._owns_session and self._session.closed):
            self._session = ClientSession()
            self._owns_session = True
        return self._session

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"key={self.api_key}",
            "Accept": "application/json",
            "User-Agent": self.user_agent,
        }

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def station_post(
        self,
        station: Station,
        partner_id: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Result:
        """Create or update a station at the partner."""
        if station is None:
            raise ValueError("The given station must not be null!")
        if partner_id is None and self.hooks.station_partner_id_selector is not None:
            partner_id = self.hooks.station_partner_id_selector(station)
        return await self._execute(STATION_POST, station, partner_id or self.default_partner_id, timeout)

    async def connector_post_status(
        self,
        status: ConnectorStatus,
        partner_id: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Result:
        """Report the current status of one connector."""
        if status is None:
            raise ValueError("The given connector status must not be null!")
        if partner_id is None and self.hooks.connector_partner_id_selector is not None:
            partner_id = self.hooks.connector_partner_id_selector(status.id)
        return await self._execute(
            CONNECTOR_POST_STATUS, status, partner_id or self.default_partner_id, timeout
        )

    async def session_post(self, session: Session, timeout: Optional[float] = None) -> Result:
        """Upload a charging session."""
        if session is None:
            raise ValueError("The given charging session must not be null!")
        return await self._execute(SESSION_POST, session, session.partner_identifier, timeout)

    async def rfid_verify(self, rfid: str, timeout: Optional[float] = None) -> Result:
        """Ask the partner whether an RFID card may charge."""
        if not rfid:
            raise ValueError("The given RFID identification must not be null or empty!")
        return await self._execute(RFID_VERIFY, rfid, None, timeout)

    # ------------------------------------------------------------------
    # Request pipeline
    # ------------------------------------------------------------------

    async def _execute(
        self,
        operation: Operation,
        payload: Any,
        partner_id: Optional[str],
        timeout: Optional[float],
    ) -> Result:
        if not self.api_key:
            raise ValueError("The given API key must not be null or empty!")

        body = operation.request_body(payload, partner_id)
        body = self.hooks.map_request(operation.name, payload, body)

        context = PluginContext(
            owner=self,
            operation=operation.name,
            event_tracking_id=str(uuid.uuid4()),
            request=body,
            request_timestamp=datetime.now(UTC),
        )
        await self.plugins.execute(operation.before, context)

        log_oioi_message(
            logger,
            direction="sent",
            operation=operation.name,
            event_tracking_id=context.event_tracking_id,
            payload=body,
            url=self.url,
        )

        started = time.monotonic()
        result = await self._send(operation, body, timeout, context.event_tracking_id)

        context.duration = time.monotonic() - started
        context.response_timestamp = datetime.now(UTC)
        context.result = result

        log_oioi_message(
            logger,
            direction="received",
            operation=operation.name,
            event_tracking_id=context.event_tracking_id,
            code=result.code,
            result_message=result.message,
            outcome=result.outcome.value,
            http_status=result.http_status,
            duration=context.duration,
        )

        await self.plugins.execute(operation.after, context)
        return result

    async def _send(
        self,
        operation: Operation,
        body: dict[str, Any],
        timeout: Optional[float],
        event_tracking_id: str,
    ) -> Result:
        session = self._get_session()
        client_timeout = ClientTimeout(total=timeout if timeout is not None else self.request_timeout)

        try:
            async with session.post(
                self.url,
                json=body,
                headers=self._headers(),
                timeout=client_timeout,
            ) as resp:
                status = resp.status
                raw = await resp.read()
                retry_after = parse_retry_after(resp.headers.get("Retry-After"))
        except (TimeoutError, aiohttp.ClientError) as e:
            error = e
            if isinstance(e, TimeoutError):
                text = f"{operation.name} request timed out after {client_timeout.total} seconds"
                error = TimeoutError(f"{text}: {e}" if str(e) else text)
            log_error(
                logger,
                "transport_error",
                f"{operation.name} request failed: {error}",
                operation=operation.name,
                event_tracking_id=event_tracking_id,
            )
            return Result.transport_failure(
                operation.name, error, request=body, event_tracking_id=event_tracking_id
            )

        # JSON is UTF-8; undecodable bytes are kept as replacement characters in the message
        text = raw.decode("utf-8", errors="replace")
        try:
            json_body = json.loads(raw.decode("utf-8"))
            draft = operation.decode_response(json_body)
        except (ValueError, MalformedMessage) as e:
            log_error(
                logger,
                "response_format_error",
                f"Could not decode {operation.name} response: {e}",
                operation=operation.name,
                event_tracking_id=event_tracking_id,
                http_status=status,
            )
            if not 200 <= status < 300:
                return Result.invalid_http_response(
                    operation.name,
                    status,
                    text,
                    request=body,
                    retry_after=retry_after,
                    event_tracking_id=event_tracking_id,
                )
            return Result.invalid_response_format(
                operation.name,
                text,
                request=body,
                http_status=status,
                retry_after=retry_after,
                event_tracking_id=event_tracking_id,
            )

        draft.request = body
        draft.http_status = status
        draft.retry_after = retry_after
        draft.event_tracking_id = event_tracking_id

        try:
            draft = self.hooks.map_response(operation.name, json_body, draft)
        except Exception as e:
            log_error(
                logger,
                "response_mapper_error",
                f"Response mapper for {operation.name} failed: {e}",
                operation=operation.name,
                event_tracking_id=event_tracking_id,
                exc_info=e,
            )
            return Result.invalid_response_format(
                operation.name,
                text,
                request=body,
                http_status=status,
                retry_after=retry_after,
                event_tracking_id=event_tracking_id,
            )

        return draft.build()
