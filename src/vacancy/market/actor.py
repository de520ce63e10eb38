"""Per-actor async loop that holds resources and searches for upgrades.

Each actor runs in its own ``asyncio.Task`` and wakes once per ``interval``.
A tick is, in order:

  1. Exit check: a weighted coin flip on the actor's own ``random.Random``;
     on exit the held resource is vacated and the loop ends for good
  2. Dwell update: one more tick on the held resource
  3. Search decision: always when resourceless, otherwise only when
     ``satisfaction_fn(attributes, dwell_ticks)`` is negative
  4. Search: pick the vacancy with the highest ``utility_fn`` score (first in
     registry order on ties) and ask it to ``occupy``
  5. Chain release: the previous resource is vacated only after the new one
     answered ``acquired``

Notes:
  - Contention: ``already_occupied`` is a normal outcome of racing another
    actor on a stale listing; the actor just tries again next tick
  - Isolation: user scoring functions that raise abandon the current tick and
    are logged; they never end the loop
  - Determinism: ``tick()`` can be awaited directly without starting the loop
"""

from __future__ import annotations

import asyncio
import random
from typing import Mapping, Optional
from uuid import uuid4

from vacancy.concurrency import ChannelClosedError, TimeoutError
from vacancy.config.logging_config import get_logger
from vacancy.market.registry import Registry
from vacancy.market.resource import Resource
from vacancy.market.types import (
    ActorConfig,
    ActorState,
    Attributes,
    HeldResource,
    OccupyResult,
    ResourceRecord,
    SatisfactionFn,
    UtilityFn,
)
from vacancy.observability.metrics import MarketMetrics

log = get_logger(__name__)

DEFAULT_EXIT_PROBABILITY = 0.01


class Actor:
    """Autonomous market participant.

    Args:
        registry: Registry to search for vacancies.
        directory: Read-only mapping from resource id to the ``Resource`` to
            message when that vacancy is chosen.
        utility_fn: Scores a vacancy's attributes; the highest score is claimed.
        satisfaction_fn: Scores the held resource's attributes and dwell ticks;
            a negative value starts a search.
        interval: Seconds between ticks.
        exit_probability: Per-tick probability of leaving the market.
        status_timeout: Seconds to wait for attributes after a claim; defaults
            to ``interval``.
        actor_id: Optional explicit id; defaults to a random hex id.
        rng: Random source for the exit coin flip.
        metrics: Optional market metrics.

    Raises:
        pydantic.ValidationError: If ``interval``, ``exit_probability`` or
            ``status_timeout`` is out of range.
    """

    def __init__(
        self,
        registry: Registry,
        directory: Mapping[str, Resource],
        utility_fn: UtilityFn,
        satisfaction_fn: SatisfactionFn,
        interval: float,
        exit_probability: float = DEFAULT_EXIT_PROBABILITY,
        status_timeout: Optional[float] = None,
        actor_id: Optional[str] = None,
        rng: Optional[random.Random] = None,
        metrics: Optional[MarketMetrics] = None,
    ) -> None:
        self.config = ActorConfig(
            interval=interval,
            exit_probability=exit_probability,
            status_timeout=status_timeout,
        )
        self.id = actor_id or uuid4().hex
        self.registry = registry
        self.directory = directory
        self.utility_fn = utility_fn
        self.satisfaction_fn = satisfaction_fn
        self.metrics = metrics
        self._rng = rng or random.Random()
        self._current: Optional[HeldResource] = None
        self._alive = True
        self._ticks = 0
        self._task: asyncio.Task[None] | None = None

    @property
    def interval(self) -> float:
        return self.config.interval

    @property
    def exit_probability(self) -> float:
        return self.config.exit_probability

    @property
    def alive(self) -> bool:
        return self._alive

    @property
    def current(self) -> Optional[HeldResource]:
        """Copy of the held resource, or None when resourceless."""
        return self._current.model_copy(deep=True) if self._current is not None else None

    @property
    def state(self) -> ActorState:
        return ActorState(
            actor_id=self.id,
            alive=self._alive,
            ticks=self._ticks,
            current=self.current,
        )

    # Lifecycle

    def start(self) -> "Actor":
        """Schedule the tick loop on the running event loop."""
        if self._task is not None:
            raise RuntimeError(f"Actor {self.id} was already started")
        if not self._alive:
            raise RuntimeError(f"Actor {self.id} has already left the market")
        self._task = asyncio.create_task(self.run(), name=f"actor-{self.id}")
        return self

    async def run(self) -> None:
        """Tick every ``interval`` seconds until the actor exits."""
        if self.metrics is not None:
            self.metrics.active_actors.increment()
        try:
            while self._alive:
                await asyncio.sleep(self.interval)
                try:
                    await self.tick()
                except Exception:
                    log.exception(f"Actor {self.id} tick {self._ticks} failed")
        finally:
            if self.metrics is not None:
                self.metrics.active_actors.decrement()

    async def stop(self, release: bool = True) -> None:
        """Cancel the tick loop; with ``release`` the held resource is vacated."""
        was_alive = self._alive
        self._alive = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        if release and was_alive:
            self._release_current()

    async def wait(self) -> None:
        """Wait until the tick loop ends."""
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    # Tick

    async def tick(self) -> bool:
        """Run one tick. Returns False once the actor has left the market."""
        if not self._alive:
            return False
        self._ticks += 1

        if self._should_exit():
            self._exit_market()
            return False

        self._update_dwell_time()
        if self._should_search():
            await self._search_and_acquire()
        return True

    def _should_exit(self) -> bool:
        return self._rng.random() < self.exit_probability

    def _exit_market(self) -> None:
        log.debug(f"Actor {self.id} leaves the market holding {self._held_id()}")
        self._release_current()
        self._alive = False
        if self.metrics is not None:
            self.metrics.actor_exits.increment()

    def _update_dwell_time(self) -> None:
        if self._current is not None:
            self._current.dwell_ticks += 1

    def _should_search(self) -> bool:
        if self._current is None:
            return True
        return self.satisfaction_fn(self._current.attributes, self._current.dwell_ticks) < 0

    async def _search_and_acquire(self) -> None:
        if self.metrics is not None:
            self.metrics.searches.increment()

        vacancies = await self.registry.list_vacant()
        if not vacancies:
            if self.metrics is not None:
                self.metrics.empty_searches.increment()
            log.debug(f"Actor {self.id} found no vacancy")
            return

        best = self._select_best(vacancies)
        resource = self.directory.get(best.resource_id)
        if resource is None:
            log.warning(f"Actor {self.id}: vacancy {best.resource_id} is not addressable, skipping")
            return
        await self._try_acquire(resource)

    def _select_best(self, vacancies: list[ResourceRecord]) -> ResourceRecord:
        # max() keeps the first of equal scores, i.e. registry order.
        return max(vacancies, key=lambda record: self.utility_fn(record.attributes))

    async def _try_acquire(self, resource: Resource) -> None:
        claim = asyncio.ensure_future(resource.occupy(self.id))
        try:
            result = await asyncio.shield(claim)
        except asyncio.CancelledError:
            claim.add_done_callback(lambda c: self._abandon_claim(resource, c))
            raise
        if result is OccupyResult.ALREADY_OCCUPIED:
            if self.metrics is not None:
                self.metrics.claims_contended.increment()
            log.debug(f"Actor {self.id} lost the race for {resource.id}")
            return

        if self.metrics is not None:
            self.metrics.claims_acquired.increment()
        previous = self._held_id()
        self._current = HeldResource(resource_id=resource.id, dwell_ticks=0)
        if previous is not None and previous != resource.id:
            self._vacate(previous)
        log.debug(f"Actor {self.id} moved from {previous} to {resource.id}")
        self._current.attributes = await self._fetch_attributes(resource)

    def _abandon_claim(self, resource: Resource, claim: "asyncio.Future[OccupyResult]") -> None:
        """Give back a resource won by a claim the actor stopped waiting for."""
        if claim.cancelled() or claim.exception() is not None:
            return
        if claim.result() is not OccupyResult.ACQUIRED:
            return
        log.debug(f"Actor {self.id} stopped mid-claim, returning {resource.id}")
        try:
            resource.vacate()
        except ChannelClosedError:
            log.warning(f"Actor {self.id}: {resource.id} stopped before the abandoned claim was returned")

    async def _fetch_attributes(self, resource: Resource) -> Attributes:
        try:
            snapshot = await resource.status(timeout=self.config.effective_status_timeout)
        except TimeoutError as e:
            if self.metrics is not None:
                self.metrics.status_timeouts.increment()
            log.warning(f"Actor {self.id}: {e.message}; caching empty attributes")
            return {}
        return dict(snapshot.attributes)

    def _release_current(self) -> None:
        if self._current is not None:
            self._vacate(self._current.resource_id)
            self._current = None

    def _vacate(self, resource_id: str) -> None:
        resource = self.directory.get(resource_id)
        if resource is None:
            log.warning(f"Actor {self.id}: held resource {resource_id} is not addressable")
            return
        resource.vacate()

    def _held_id(self) -> Optional[str]:
        return self._current.resource_id if self._current is not None else None

    def __repr__(self) -> str:
        state = "alive" if self._alive else "gone"
        return f"Actor({self.id}, {state}, holding={self._held_id()})"
