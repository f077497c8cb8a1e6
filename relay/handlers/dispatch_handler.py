"""Request dispatch (HttpRequest → HttpResponse | Error)."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

from shared.models.proxy import ErrorEnvelope, RequestEnvelope, ResponseEnvelope
from shared.protocol import ProxyMessage

from relay.execution import ExecutionError, HttpExecutor, ResponseCorrelator, describe_failure

LOGGER = logging.getLogger(__name__)


class EnvelopeSink(Protocol):
    async def send(self, envelope: ProxyMessage) -> bool:
        ...


@dataclass
class RequestDispatcher:
    executor: HttpExecutor = field(default_factory=HttpExecutor)
    correlator: ResponseCorrelator = field(default_factory=ResponseCorrelator)

    _request_tasks: set[asyncio.Task[None]] = field(default_factory=set, init=False, repr=False)

    async def handle(self, session: EnvelopeSink, request: RequestEnvelope) -> None:
        """Start executing ``request`` in its own task and return immediately."""

        LOGGER.debug("Received HTTP request id=%s", request.id)
        task = asyncio.create_task(self._process(session, request), name=f"relay-request-{request.id}")
        self._request_tasks.add(task)

        def _finalise(completed: asyncio.Task[None]) -> None:
            self._request_tasks.discard(completed)
            with contextlib.suppress(asyncio.CancelledError, Exception):
                completed.result()

        task.add_done_callback(_finalise)

    async def dispatch(self, request: RequestEnvelope) -> ResponseEnvelope | ErrorEnvelope:
        """Execute ``request`` and return its single outbound envelope."""

        try:
            result = await self.executor.execute(request)
        except ExecutionError as exc:
            LOGGER.error("http-over-ws: error for request id=%s: %s", request.id, exc)
            return self.correlator.error(request.id, exc)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("http-over-ws: unexpected failure for request id=%s", request.id)
            return self.correlator.error(request.id, describe_failure(exc))
        return self.correlator.response(request, result)

    async def _process(self, session: EnvelopeSink, request: RequestEnvelope) -> None:
        try:
            outbound = await self.dispatch(request)
            if await session.send(outbound):
                LOGGER.info("Sent %s for request id=%s", type(outbound).__name__, request.id)
            else:
                LOGGER.warning(
                    "Channel unavailable; dropped %s for request id=%s", type(outbound).__name__, request.id
                )
        except asyncio.CancelledError:
            LOGGER.debug("Request task %s cancelled", request.id)
            raise
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("Request handling failed for id=%s: %s", request.id, exc)
            raise

    def inflight(self) -> int:
        """Return the number of requests still executing."""

        return len(self._request_tasks)

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for in-flight requests to settle; returns False if ``timeout`` ran out first."""

        pending = list(self._request_tasks)
        if not pending:
            return True
        _done, still_running = await asyncio.wait(pending, timeout=timeout)
        return not still_running
