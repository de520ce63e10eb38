"""Exclusively held resource driven by its own mailbox task.

A resource owns the authoritative occupancy state for its id. Requests arrive
through an ``AsyncChannel`` and are handled one at a time by a single
``asyncio.Task``, so two occupy attempts on the same resource can never
interleave: the first to arrive while vacant wins, every later one is told
``already_occupied``.

Request kinds:
  - ``occupy``: request/reply, publishes to the registry before replying
  - ``vacate``: fire-and-forget, publishes when the mailbox reaches it
  - ``status``: request/reply, answered from local state
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional, Union
from uuid import uuid4

from vacancy.concurrency import AsyncChannel, ChannelClosedError, with_timeout
from vacancy.config.logging_config import get_logger
from vacancy.market.registry import Registry
from vacancy.market.types import OccupancyStatus, OccupyResult, ResourceSnapshot
from vacancy.observability.metrics import MarketMetrics

log = get_logger(__name__)


@dataclass
class _Occupy:
    caller_id: str
    reply: asyncio.Future[OccupyResult]


@dataclass
class _Vacate:
    pass


@dataclass
class _Status:
    reply: asyncio.Future[ResourceSnapshot]


_Request = Union[_Occupy, _Vacate, _Status]


class Resource:
    """A single-occupant resource with fixed attributes.

    Use ``await Resource.create(...)`` rather than the constructor: creation
    publishes the initial vacant record and starts the serving task.

    Args:
        registry: The shared registry this resource publishes to.
        attributes: Fixed attributes, copied at construction.
        resource_id: Optional explicit id; defaults to a random hex id.
        metrics: Optional market metrics to record vacates into.
    """

    def __init__(
        self,
        registry: Registry,
        attributes: Mapping[str, float],
        resource_id: Optional[str] = None,
        metrics: Optional[MarketMetrics] = None,
    ) -> None:
        self.id = resource_id or uuid4().hex
        self.registry = registry
        self.metrics = metrics
        self._attributes: dict[str, float] = {k: float(v) for k, v in attributes.items()}
        self._occupant: Optional[str] = None
        self._inbox: AsyncChannel[_Request] = AsyncChannel()
        self._task: asyncio.Task[None] | None = None

    @classmethod
    async def create(
        cls,
        registry: Registry,
        attributes: Mapping[str, float],
        resource_id: Optional[str] = None,
        metrics: Optional[MarketMetrics] = None,
    ) -> "Resource":
        """Create a vacant resource, publish it and start serving requests."""
        resource = cls(registry, attributes, resource_id=resource_id, metrics=metrics)
        await resource.start()
        return resource

    async def start(self) -> None:
        """Publish the vacant record and start the serving task."""
        if self._task is not None:
            raise RuntimeError(f"Resource {self.id} was already started")
        await self._publish()
        self._task = asyncio.create_task(self._serve(), name=f"resource-{self.id}")
        log.debug(f"Resource {self.id} created with {self._attributes}")

    @property
    def attributes(self) -> Mapping[str, float]:
        """Read-only view of the fixed attributes."""
        return MappingProxyType(self._attributes)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # Public API

    async def occupy(self, caller_id: str) -> OccupyResult:
        """Ask to become the occupant; waits for the resource's answer."""
        reply: asyncio.Future[OccupyResult] = asyncio.get_running_loop().create_future()
        started = time.perf_counter()
        await self._inbox.send(_Occupy(caller_id=caller_id, reply=reply))
        result = await reply
        if self.metrics is not None:
            self.metrics.claim_latency.observe(time.perf_counter() - started)
        return result

    def vacate(self) -> None:
        """Release the resource without waiting for the transition.

        The registry keeps showing the previous record until the serving task
        handles this request.
        """
        self._inbox.send_nowait(_Vacate())

    async def status(self, timeout: Optional[float] = None) -> ResourceSnapshot:
        """Return the resource's current state.

        Raises:
            vacancy.concurrency.TimeoutError: If ``timeout`` elapses first.
        """
        reply: asyncio.Future[ResourceSnapshot] = asyncio.get_running_loop().create_future()
        await self._inbox.send(_Status(reply=reply))
        return await with_timeout(
            lambda: reply,
            timeout,
            exception_message=f"Resource {self.id} did not answer a status request within {timeout}s",
        )

    async def stop(self) -> None:
        """Stop serving requests.

        Pending vacates are still applied so that released resources end up
        listed as vacant. Occupy and status requests that were queued or in
        flight fail with ``ChannelClosedError``.
        """
        self._inbox.close()
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        for request in self._inbox.drain():
            if isinstance(request, _Vacate):
                await self._handle_vacate()
            else:
                self._refuse(request)
        # The registry mirrors local state once serving has stopped.
        await self._publish()

    # Serving loop

    async def _serve(self) -> None:
        while True:
            request = await self._inbox.receive()
            try:
                await self._handle(request)
            except asyncio.CancelledError:
                self._refuse(request)
                raise
            except Exception as e:
                log.exception(f"Resource {self.id} failed to handle {type(request).__name__}")
                reply = getattr(request, "reply", None)
                if reply is not None and not reply.done():
                    reply.set_exception(e)

    async def _handle(self, request: _Request) -> None:
        if isinstance(request, _Occupy):
            await self._handle_occupy(request)
        elif isinstance(request, _Vacate):
            await self._handle_vacate()
        elif isinstance(request, _Status):
            if not request.reply.done():
                request.reply.set_result(self._snapshot())

    async def _handle_occupy(self, request: _Occupy) -> None:
        if request.reply.cancelled():
            # Caller stopped waiting.
            return
        if self._occupant is not None:
            log.debug(f"Resource {self.id} refused {request.caller_id}: held by {self._occupant}")
            result = OccupyResult.ALREADY_OCCUPIED
        else:
            self._occupant = request.caller_id
            try:
                await self._publish()
            except BaseException:
                self._occupant = None
                raise
            if request.reply.cancelled():
                log.debug(f"Resource {self.id}: {request.caller_id} gave up, releasing")
                self._occupant = None
                await self._publish()
                return
            log.debug(f"Resource {self.id} occupied by {request.caller_id}")
            result = OccupyResult.ACQUIRED
        if not request.reply.done():
            request.reply.set_result(result)

    async def _handle_vacate(self) -> None:
        previous = self._occupant
        self._occupant = None
        await self._publish()
        if self.metrics is not None:
            self.metrics.vacates.increment()
        log.debug(f"Resource {self.id} vacated (was {previous})")

    def _refuse(self, request: _Request) -> None:
        reply = getattr(request, "reply", None)
        if reply is not None and not reply.done():
            reply.set_exception(ChannelClosedError(f"Resource {self.id} has stopped"))

    async def _publish(self) -> None:
        status = OccupancyStatus.VACANT if self._occupant is None else OccupancyStatus.OCCUPIED
        await self.registry.put(self.id, self._attributes, status, self._occupant)

    def _snapshot(self) -> ResourceSnapshot:
        return ResourceSnapshot(
            resource_id=self.id,
            attributes=dict(self._attributes),
            occupant_id=self._occupant,
        )

    def __repr__(self) -> str:
        holder = self._occupant or "vacant"
        return f"Resource({self.id}, {holder})"
