from enum import Enum
from typing import Callable, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

Attributes = dict[str, float]
UtilityFn = Callable[[Mapping[str, float]], float]
SatisfactionFn = Callable[[Mapping[str, float], int], float]


class OccupancyStatus(str, Enum):
    """Occupancy state of a resource as published to the registry."""

    VACANT = "vacant"
    OCCUPIED = "occupied"


class OccupyResult(str, Enum):
    """Outcome of an occupy request."""

    ACQUIRED = "acquired"
    ALREADY_OCCUPIED = "already_occupied"


class ResourceRecord(BaseModel):
    """
    The latest snapshot a resource published about itself.

    ``occupant_id`` is set exactly when ``status`` is ``occupied``.
    """

    model_config = ConfigDict(frozen=True)

    resource_id: str
    attributes: Attributes = Field(default_factory=dict)
    status: OccupancyStatus = OccupancyStatus.VACANT
    occupant_id: Optional[str] = None

    @model_validator(mode="after")
    def _occupant_matches_status(self) -> "ResourceRecord":
        if self.status is OccupancyStatus.VACANT and self.occupant_id is not None:
            raise ValueError("A vacant resource cannot have an occupant")
        if self.status is OccupancyStatus.OCCUPIED and self.occupant_id is None:
            raise ValueError("An occupied resource must name its occupant")
        return self

    @property
    def is_vacant(self) -> bool:
        return self.status is OccupancyStatus.VACANT


class ResourceSnapshot(BaseModel):
    """Reply to a status request, read from the resource's own state."""

    model_config = ConfigDict(frozen=True)

    resource_id: str
    attributes: Attributes
    occupant_id: Optional[str] = None


class HeldResource(BaseModel):
    """An actor's view of the resource it currently holds."""

    resource_id: str
    dwell_ticks: int = Field(default=0, ge=0)
    attributes: Attributes = Field(default_factory=dict)


class ActorConfig(BaseModel):
    """Validated construction arguments of an actor."""

    model_config = ConfigDict(frozen=True)

    interval: float = Field(gt=0)
    exit_probability: float = Field(default=0.01, ge=0.0, le=1.0)
    status_timeout: Optional[float] = Field(default=None, gt=0)

    @property
    def effective_status_timeout(self) -> float:
        return self.status_timeout if self.status_timeout is not None else self.interval


class ActorState(BaseModel):
    """Point-in-time view of an actor for introspection."""

    model_config = ConfigDict(frozen=True)

    actor_id: str
    alive: bool
    ticks: int
    current: Optional[HeldResource] = None


class MarketSnapshot(BaseModel):
    """Registry records and actor states of one market."""

    model_config = ConfigDict(frozen=True)

    resources: list[ResourceRecord]
    actors: list[ActorState]

    @property
    def occupied(self) -> dict[str, str]:
        """Map of occupied resource id to occupant id."""
        return {
            r.resource_id: r.occupant_id
            for r in self.resources
            if r.occupant_id is not None
        }
