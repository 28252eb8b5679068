"""
TreePulse — Pydantic Models

Tree layer: MonitorableNode / TreeSnapshot — the observed container tree
Event layer: ActivationEvent / ObservationCycle — what reacted, and when
View layer: GraphViewNode / GraphViewEdge — derived per render pass, never stored

Events are immutable once recorded. View objects are rebuilt from scratch
on every pass.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ═══════════════════════════════════════════════════════════
# ENUMS
# ═══════════════════════════════════════════════════════════

class UpdateStrategy(str, Enum):
    EAGER = "eager"     # re-evaluates on every host cycle
    LAZY = "lazy"       # re-evaluates only when explicitly marked


class TriggerKind(str, Enum):
    USER_INTERACTION = "user-interaction"
    ASYNC_OPERATION = "async-operation"
    INPUT_CHANGE = "input-change"
    OUTPUT_EVENT = "output-event"
    SIGNAL_UPDATE = "signal-update"
    MANUAL_TRIGGER = "manual-trigger"
    UNKNOWN = "unknown"


class FilterMode(str, Enum):
    ALL = "all"
    ACTIVE_ONLY = "active-only"
    LAZY_ONLY = "lazy-only"
    MODIFIED_ONLY = "modified-only"


# ═══════════════════════════════════════════════════════════
# VALUE OBJECTS
# ═══════════════════════════════════════════════════════════

class TriggerSource(BaseModel):
    """Why a propagation started, attached to its origin node only."""
    kind: TriggerKind = TriggerKind.UNKNOWN
    confidence: float = Field(1.0, ge=0.0, le=1.0)
    details: str = ""

    class Config:
        frozen = True


class Position(BaseModel):
    x: float
    y: float

    class Config:
        frozen = True


# ═══════════════════════════════════════════════════════════
# TREE LAYER
# ═══════════════════════════════════════════════════════════

class MonitorableNode(BaseModel):
    id: str
    name: str
    selector: str
    update_strategy: UpdateStrategy = UpdateStrategy.EAGER
    parent_id: Optional[str] = None          # back-reference by id, never owns
    children: list["MonitorableNode"] = Field(default_factory=list)
    depth: int = 0

    # Activity (carried across re-scans)
    activation_count: int = 0
    is_active: bool = False
    last_activation_time: Optional[datetime] = None
    trigger_source: Optional[TriggerSource] = None
    propagated_from: Optional[str] = None

    @property
    def is_lazy(self) -> bool:
        return self.update_strategy == UpdateStrategy.LAZY


MonitorableNode.model_rebuild()


class TreeSnapshot(BaseModel):
    timestamp: datetime = Field(default_factory=utcnow)
    nodes: list[MonitorableNode] = Field(default_factory=list)
    root_nodes: list[MonitorableNode] = Field(default_factory=list)


# ═══════════════════════════════════════════════════════════
# EVENT LAYER
# ═══════════════════════════════════════════════════════════

class ActivationEvent(BaseModel):
    id: str
    timestamp: datetime = Field(default_factory=utcnow)
    node_id: str
    trigger: TriggerKind = TriggerKind.UNKNOWN
    is_manual: bool = False

    class Config:
        frozen = True


class ObservationCycle(BaseModel):
    id: str
    start_time: datetime = Field(default_factory=utcnow)
    end_time: Optional[datetime] = None      # absent while the cycle is open
    events: list[ActivationEvent] = Field(default_factory=list)
    affected_node_ids: list[str] = Field(default_factory=list)  # ordered, unique

    @property
    def is_open(self) -> bool:
        return self.end_time is None


# ═══════════════════════════════════════════════════════════
# VIEW LAYER
# ═══════════════════════════════════════════════════════════

class GraphViewNode(BaseModel):
    id: str
    name: str = ""
    x: float
    y: float
    is_trigger_source: bool = False
    propagation_depth: int = 0
    is_active: bool = False
    activation_count: int = 0


class GraphViewEdge(BaseModel):
    source_id: str
    target_id: str
    is_propagation_path: bool = False


class GraphView(BaseModel):
    nodes: list[GraphViewNode] = Field(default_factory=list)
    edges: list[GraphViewEdge] = Field(default_factory=list)
