"""Pytest configuration and fixtures."""

import asyncio
import json
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from oioisync.models import (
    EVSE,
    Address,
    ChargeDetailRecord,
    ChargingStation,
    Connector,
    ConnectorTypes,
    Contact,
    EVSEStatusTypes,
    MeterValue,
    Operator,
    PlugTypes,
    Station,
)
from oioisync.protocol import CPOClient

SUCCESS = {"result": {"code": 0, "message": "Success."}}


@dataclass
class RecordedRequest:
    path: str
    headers: dict[str, str]
    body: Any


@dataclass
class CannedResponse:
    body: Any = field(default_factory=lambda: SUCCESS)
    status: int = 200
    headers: dict[str, str] = field(default_factory=dict)
    delay: float = 0.0


class FakePartner:
    """In-process stand-in for the OIOI partner API."""

    def __init__(self):
        self.requests: list[RecordedRequest] = []
        self.responses: deque[CannedResponse] = deque()
        self.default = CannedResponse()
        self.server: TestServer | None = None

    def respond(self, body: Any = None, status: int = 200, headers=None, delay: float = 0.0):
        """Queue a response for the next request; unqueued requests get a success result."""
        self.responses.append(
            CannedResponse(SUCCESS if body is None else body, status, headers or {}, delay)
        )

    @property
    def bodies(self) -> list[Any]:
        return [r.body for r in self.requests]

    def operations(self) -> list[str]:
        return [next(iter(r.body)) for r in self.requests]

    async def handle(self, request: web.Request) -> web.Response:
        text = await request.text()
        self.requests.append(RecordedRequest(request.path, dict(request.headers), json.loads(text)))

        canned = self.responses.popleft() if self.responses else self.default
        if canned.delay:
            await asyncio.sleep(canned.delay)
        if isinstance(canned.body, bytes):
            return web.Response(
                status=canned.status,
                body=canned.body,
                content_type="application/json",
                headers=canned.headers,
            )
        if isinstance(canned.body, str):
            return web.Response(status=canned.status, text=canned.body, headers=canned.headers)
        return web.json_response(canned.body, status=canned.status, headers=canned.headers)


@pytest.fixture(scope="session")
def event_loop_policy():
    """Set event loop policy for async tests."""
    return asyncio.get_event_loop_policy()


@pytest.fixture
async def partner():
    """Start a fake partner API on a random local port."""
    fake = FakePartner()
    app = web.Application()
    app.router.add_post("/api/v4/request", fake.handle)

    server = TestServer(app)
    await server.start_server()
    fake.server = server

    yield fake

    await server.close()


@pytest.fixture
async def client(partner):
    """Provide a CPOClient talking to the fake partner."""
    cpo = CPOClient(
        partner.server.host,
        "secret-key",
        port=partner.server.port,
        scheme="http",
        default_partner_id="partner-1",
        request_timeout=5,
    )
    async with cpo:
        yield cpo


@pytest.fixture
def sample_address():
    return Address(
        street="Hauptstrasse",
        street_number="12a",
        city="Jena",
        zip="07743",
        country="DE",
    )


@pytest.fixture
def sample_station(sample_address):
    """A valid partner-side Station."""
    return Station(
        id="ST-1",
        name="Market Square",
        latitude=50.9271234567,
        longitude=11.5892345678,
        address=sample_address,
        contact=Contact(phone="+49 3641 123456", web="https://example.com"),
        cpo_id="DE*GEF",
        connectors=(Connector("DE*GEF*E1", ConnectorTypes.TYPE2, 22),),
        description="Two parking bays next to the fountain",
        is_open_24=True,
        notes="Access via the car park",
        floor_level=0,
        total_parking=2,
        is_green_power_available=True,
    )


def make_charging_station(
    station_id: str = "ST-1",
    evses=None,
    deleted: bool = False,
    name: str = "Market Square",
) -> ChargingStation:
    """Build a local charging station with one Type 2 EVSE by default."""
    if evses is None:
        evses = (
            EVSE(
                f"{station_id}*E1",
                PlugTypes.TYPE2_OUTLET,
                22.0,
                EVSEStatusTypes.AVAILABLE,
                datetime(2024, 1, 1, 10, 0, tzinfo=UTC),
            ),
        )
    return ChargingStation(
        id=station_id,
        name=name,
        operator=Operator("DE*GEF", hotline_phone="+49 3641 123456", homepage="https://example.com"),
        latitude=50.927123,
        longitude=11.589234,
        address=Address("Hauptstrasse", "12a", "Jena", "07743", "DE"),
        evses=evses,
        deleted=deleted,
    )


def make_cdr(session_id: str = "S-1", finalized: bool = True, evse_id: str = "ST-1*E1"):
    """Build a local charge detail record with two meter values."""
    start = datetime(2024, 1, 1, 10, 0, tzinfo=UTC)
    end = datetime(2024, 1, 1, 11, 0, tzinfo=UTC)
    return ChargeDetailRecord(
        session_id=session_id,
        evse_id=evse_id,
        session_start=start,
        session_end=end if finalized else None,
        auth_token="CAFEBABE",
        meter_values=(
            MeterValue(datetime(2024, 1, 1, 10, 5, tzinfo=UTC), 100.0),
            MeterValue(datetime(2024, 1, 1, 10, 55, tzinfo=UTC), 112.5),
        ),
    )


@pytest.fixture
def charging_station():
    return make_charging_station()
