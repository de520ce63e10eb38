"""
Decentralized resource market.

Actors hold at most one resource at a time and periodically search the shared
registry for a better vacancy; resources guarantee a single occupant by
handling claims one at a time from their own mailbox.

Example:
    from vacancy.market import Market

    async with Market() as market:
        await market.new_resource({"quality": 0.5})
        market.new_actor(
            utility_fn=lambda attrs: attrs.get("quality", 0.0),
            satisfaction_fn=lambda attrs, ticks: 1.0,
            interval=0.05,
            exit_probability=0.0,
        )
"""

from .actor import DEFAULT_EXIT_PROBABILITY, Actor
from .market import DuplicateResourceError, Market, MarketError, UnknownResourceError
from .registry import Registry
from .resource import Resource
from .types import (
    ActorConfig,
    ActorState,
    HeldResource,
    MarketSnapshot,
    OccupancyStatus,
    OccupyResult,
    ResourceRecord,
    ResourceSnapshot,
)

__all__ = [
    "DEFAULT_EXIT_PROBABILITY",
    "Actor",
    "ActorConfig",
    "ActorState",
    "DuplicateResourceError",
    "HeldResource",
    "Market",
    "MarketError",
    "MarketSnapshot",
    "OccupancyStatus",
    "OccupyResult",
    "Registry",
    "Resource",
    "ResourceRecord",
    "ResourceSnapshot",
    "UnknownResourceError",
]
