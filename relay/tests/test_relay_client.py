import asyncio
import json
import logging
import threading

import pytest
from requests.structures import CaseInsensitiveDict

from relay.config import RelaySettings
from relay.execution import HttpExecutor
from relay.handlers import RequestDispatcher
from relay.network.client import RelayClient
from relay.network.supervisor import SupervisorState
from relay.network.transport.dummy import DummyTransport

SETUP_FRAME = '{"SetupProxyClient":null}'


async def _wait_for(predicate, *, timeout: float = 0.5, interval: float = 0.01) -> bool:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()


class _FakeResponse:
    status_code = 200
    headers = CaseInsensitiveDict()
    content = b"ok"


class _GatedHttp:
    def __init__(self, gate=None) -> None:
        self.gate = gate
        self.calls = []

    def __call__(self, method, url, **kwargs):
        self.calls.append((method, url))
        if self.gate is not None:
            self.gate.wait(timeout=2)
        return _FakeResponse()


class _ManualScheduler:
    def __init__(self) -> None:
        self.timers = []

    def __call__(self, delay, callback):
        timer = asyncio.get_running_loop().call_later(3600, callback)
        self.timers.append((delay, callback, timer))
        return timer


class _GatedConnectTransport(DummyTransport):
    def __init__(self, settings, identity) -> None:
        super().__init__(settings, identity)
        self.gate = asyncio.Event()
        self.connect_started = False

    async def connect(self) -> None:
        self.connect_started = True
        await self.gate.wait()
        await super().connect()


class _TransportFactory:
    def __init__(self, *failures: Exception) -> None:
        self.failures = list(failures)
        self.transports = []

    def __call__(self, settings, identity):
        error = self.failures.pop(0) if self.failures else None
        transport = DummyTransport(settings, identity, connect_error=error)
        self.transports.append(transport)
        return transport


def _request_frame(request_id: int) -> str:
    return json.dumps(
        {"HttpRequest": [request_id, {"url": "http://example.com/a", "method": "GET", "headers": [], "body": None}]}
    )


def _client(factory, http, scheduler) -> RelayClient:
    return RelayClient(
        settings=RelaySettings(),
        transport_factory=factory,
        dispatcher=RequestDispatcher(executor=HttpExecutor(request_fn=http)),
        schedule=scheduler,
        identity="principal-1",
    )


@pytest.mark.asyncio
async def test_request_round_trip_over_channel():
    factory = _TransportFactory()
    client = _client(factory, _GatedHttp(), _ManualScheduler())
    await client.start()
    transport = factory.transports[0]
    assert client.supervisor.state is SupervisorState.CONNECTED

    transport.feed(_request_frame(7))

    assert await _wait_for(lambda: len(transport.sent) == 2)
    assert transport.sent[0] == SETUP_FRAME
    assert json.loads(transport.sent[1]) == {"HttpResponse": [7, {"status": 200, "headers": [], "body": "b2s="}]}
    await client.stop()


@pytest.mark.asyncio
async def test_reconnect_after_application_close_then_stop_on_gateway_end():
    factory = _TransportFactory()
    scheduler = _ManualScheduler()
    client = _client(factory, _GatedHttp(), scheduler)
    await client.start()
    first_session = client.session

    factory.transports[0].drop("ClosedByApplication", 4000)
    assert await _wait_for(lambda: scheduler.timers)
    delay, fire, _timer = scheduler.timers[0]
    assert delay == 45.0
    assert client.supervisor.state is SupervisorState.RECONNECTING

    fire()
    assert await _wait_for(lambda: client.supervisor.state is SupervisorState.CONNECTED)
    assert len(factory.transports) == 2
    assert client.session is not first_session
    assert client.session.identity == first_session.identity == "principal-1"
    assert factory.transports[1].sent == [SETUP_FRAME]

    factory.transports[1].drop("Connection ended", 1000)
    await asyncio.wait_for(client.wait_closed(), timeout=1)
    assert client.supervisor.state is SupervisorState.PERMANENTLY_CLOSED
    assert len(scheduler.timers) == 1
    await client.stop()


@pytest.mark.asyncio
async def test_failed_connect_retries_immediately():
    factory = _TransportFactory(OSError("connection refused"))
    scheduler = _ManualScheduler()
    client = _client(factory, _GatedHttp(), scheduler)

    await client.start()

    assert client.supervisor.state is SupervisorState.RECONNECTING
    assert [delay for delay, _fire, _timer in scheduler.timers] == [0.0]

    scheduler.timers[0][1]()
    assert await _wait_for(lambda: client.supervisor.state is SupervisorState.CONNECTED)
    await client.stop()


@pytest.mark.asyncio
async def test_in_flight_result_is_dropped_after_close():
    gate = threading.Event()
    http = _GatedHttp(gate)
    factory = _TransportFactory()
    scheduler = _ManualScheduler()
    client = _client(factory, http, scheduler)
    await client.start()
    transport = factory.transports[0]

    transport.feed(_request_frame(12))
    assert await _wait_for(lambda: http.calls)
    transport.drop("", 1006)
    assert await _wait_for(lambda: scheduler.timers)

    gate.set()
    await client.dispatcher.drain()

    assert transport.sent == [SETUP_FRAME]
    assert [delay for delay, _fire, _timer in scheduler.timers] == [0.0]
    await client.stop()


@pytest.mark.asyncio
async def test_stop_cancels_pending_reconnect():
    factory = _TransportFactory()
    scheduler = _ManualScheduler()
    client = _client(factory, _GatedHttp(), scheduler)
    await client.start()

    factory.transports[0].drop("ClosedByApplication", 4000)
    assert await _wait_for(lambda: scheduler.timers)
    await client.stop()

    _delay, _fire, timer = scheduler.timers[0]
    assert timer.cancelled()
    assert client.supervisor.state is SupervisorState.PERMANENTLY_CLOSED


@pytest.mark.asyncio
async def test_stop_during_reconnect_closes_the_new_transport(caplog):
    transports = []

    def _factory(settings, identity):
        transport = DummyTransport(settings, identity) if not transports else _GatedConnectTransport(settings, identity)
        transports.append(transport)
        return transport

    scheduler = _ManualScheduler()
    client = _client(_factory, _GatedHttp(), scheduler)
    caplog.set_level(logging.ERROR)
    await client.start()

    transports[0].drop("", 1006)
    assert await _wait_for(lambda: scheduler.timers)
    scheduler.timers[0][1]()
    assert await _wait_for(lambda: len(transports) == 2 and transports[1].connect_started)

    await client.stop()
    transports[1].gate.set()
    await asyncio.sleep(0.01)

    reconnecting = transports[1]
    assert reconnecting.closed
    assert not reconnecting.connected
    assert reconnecting.sent == []
    assert client.supervisor.state is SupervisorState.PERMANENTLY_CLOSED
    assert client.supervisor.reopen_tasks() == ()
    assert not [record for record in caplog.records if record.levelno >= logging.ERROR]
