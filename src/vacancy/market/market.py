"""In-process entry point that wires registry, resources and actors together."""

from __future__ import annotations

import random
from types import MappingProxyType
from typing import Mapping, Optional

from vacancy.config.environment import Environment, MarketSettings
from vacancy.config.logging_config import get_logger
from vacancy.market.actor import Actor
from vacancy.market.registry import Registry
from vacancy.market.resource import Resource
from vacancy.market.types import MarketSnapshot, SatisfactionFn, UtilityFn
from vacancy.observability.metrics import MarketMetrics, MetricsRegistry

log = get_logger(__name__)


class MarketError(Exception):
    """Base class for market construction errors."""


class DuplicateResourceError(MarketError):
    """Raised when a resource id is already taken in this market."""

    def __init__(self, resource_id: str) -> None:
        self.resource_id = resource_id
        super().__init__(f"Resource id {resource_id!r} is already registered")


class UnknownResourceError(MarketError, KeyError):
    """Raised when looking up a resource id this market never created."""

    def __init__(self, resource_id: str) -> None:
        self.resource_id = resource_id
        super().__init__(f"Unknown resource id {resource_id!r}")

    def __str__(self) -> str:
        return str(self.args[0])


class Market:
    """Owns one registry plus every resource and actor created through it.

    Markets are constructed explicitly and passed around; nothing here is a
    process-wide singleton. Use as an async context manager to guarantee
    teardown::

        async with Market(seed=7) as market:
            await market.new_resource({"quality": 0.5})
            market.new_actor(lambda a: a["quality"], lambda a, t: 1.0, interval=0.05)

    Args:
        registry: Registry to publish into; a fresh one by default.
        settings: Defaults for actors; ``Environment.market_settings()`` by default.
        seed: Seed for the market's random source. Each actor gets its own
            ``random.Random`` drawn from it, so a seeded market replays the
            same exit decisions.
    """

    def __init__(
        self,
        registry: Optional[Registry] = None,
        settings: Optional[MarketSettings] = None,
        seed: Optional[int] = None,
    ) -> None:
        self.registry = registry if registry is not None else Registry()
        self.settings = settings if settings is not None else Environment.market_settings()
        self.metrics_registry = MetricsRegistry()
        self.metrics: Optional[MarketMetrics] = (
            MarketMetrics(self.metrics_registry) if self.settings.metrics_enabled else None
        )
        self._rng = random.Random(seed)
        self._resources: dict[str, Resource] = {}
        self._actors: list[Actor] = []
        self._closed = False

    @property
    def resources(self) -> Mapping[str, Resource]:
        return MappingProxyType(self._resources)

    @property
    def actors(self) -> list[Actor]:
        return list(self._actors)

    def resource(self, resource_id: str) -> Resource:
        try:
            return self._resources[resource_id]
        except KeyError:
            raise UnknownResourceError(resource_id) from None

    async def new_resource(
        self,
        attributes: Mapping[str, float],
        resource_id: Optional[str] = None,
    ) -> Resource:
        """Create a vacant resource; it is listed in the registry on return."""
        self._ensure_open()
        if resource_id is not None and resource_id in self._resources:
            raise DuplicateResourceError(resource_id)
        resource = Resource(self.registry, attributes, resource_id=resource_id, metrics=self.metrics)
        # Addressable before it is discoverable.
        self._resources[resource.id] = resource
        try:
            await resource.start()
        except BaseException:
            del self._resources[resource.id]
            raise
        log.info(f"Market: resource {resource.id} listed with {dict(resource.attributes)}")
        return resource

    def new_actor(
        self,
        utility_fn: UtilityFn,
        satisfaction_fn: SatisfactionFn,
        interval: Optional[float] = None,
        exit_probability: Optional[float] = None,
        status_timeout: Optional[float] = None,
        actor_id: Optional[str] = None,
        start: bool = True,
    ) -> Actor:
        """Create an actor, started on the running loop unless ``start`` is False.

        Raises:
            pydantic.ValidationError: For out-of-range arguments.
        """
        self._ensure_open()
        actor = Actor(
            self.registry,
            self.resources,
            utility_fn,
            satisfaction_fn,
            interval=interval if interval is not None else self.settings.default_interval,
            exit_probability=(
                exit_probability
                if exit_probability is not None
                else self.settings.default_exit_probability
            ),
            status_timeout=status_timeout if status_timeout is not None else self.settings.status_timeout,
            actor_id=actor_id,
            rng=random.Random(self._rng.getrandbits(64)),
            metrics=self.metrics,
        )
        self._actors.append(actor)
        if start:
            actor.start()
        log.info(f"Market: actor {actor.id} joined (interval={actor.interval}s)")
        return actor

    async def snapshot(self) -> MarketSnapshot:
        return MarketSnapshot(
            resources=await self.registry.list_records(),
            actors=[actor.state for actor in self._actors],
        )

    async def shutdown(self) -> None:
        """Stop all actors (releasing what they hold), then all resources."""
        if self._closed:
            return
        self._closed = True
        for actor in self._actors:
            await actor.stop(release=True)
        for resource in self._resources.values():
            await resource.stop()
        log.info(
            f"Market: shut down {len(self._actors)} actors and {len(self._resources)} resources"
        )

    def _ensure_open(self) -> None:
        if self._closed:
            raise MarketError("Market has been shut down")

    async def __aenter__(self) -> "Market":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.shutdown()
