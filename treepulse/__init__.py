"""TreePulse — activation monitor for reactive container trees."""

from .config import Settings, get_settings, settings_for_environment
from .host import HostAdapter, HostNodeRef, StaticHostAdapter
from .layout import GraphLayoutEngine
from .models import (
    ActivationEvent,
    FilterMode,
    GraphView,
    GraphViewEdge,
    GraphViewNode,
    MonitorableNode,
    ObservationCycle,
    Position,
    TreeSnapshot,
    TriggerKind,
    TriggerSource,
    UpdateStrategy,
)
from .monitor import EventMonitor, detect_trigger
from .propagation import PropagationCascade, PropagationTracker, compute_propagation_depth
from .queries import TreeQueryFacade
from .registry import NodeRegistry
from .service import VisualizerService

__all__ = [
    "ActivationEvent",
    "EventMonitor",
    "FilterMode",
    "GraphLayoutEngine",
    "GraphView",
    "GraphViewEdge",
    "GraphViewNode",
    "HostAdapter",
    "HostNodeRef",
    "MonitorableNode",
    "NodeRegistry",
    "ObservationCycle",
    "Position",
    "PropagationCascade",
    "PropagationTracker",
    "Settings",
    "StaticHostAdapter",
    "TreeQueryFacade",
    "TreeSnapshot",
    "TriggerKind",
    "TriggerSource",
    "UpdateStrategy",
    "VisualizerService",
    "compute_propagation_depth",
    "detect_trigger",
    "get_settings",
    "settings_for_environment",
]
