"""
PySpring: interactive spring-embedder graph layout

A mutable directed graph with incidence tracking and a force-directed
layout that keeps settling while the graph is edited.
"""

__version__ = "0.1.0"

from .geom import Point
from .graph import (
    Node,
    Edge,
    EdgeCollection,
    Graph,
    GraphEventType,
    GraphError,
    UnknownEndpointError,
    SelfLoopError,
    CapacityError,
    DetachedNodeError,
)
from .layout import SpringLayout, LayoutState, EventType, NonFinitePositionWarning
from .drag import DragController, NodeDragState
from .batch import build_graph, attach_random_node_to, add_random_nodes, create_random_graph

__all__ = [
    "Point",
    "Node",
    "Edge",
    "EdgeCollection",
    "Graph",
    "GraphEventType",
    "GraphError",
    "UnknownEndpointError",
    "SelfLoopError",
    "CapacityError",
    "DetachedNodeError",
    "SpringLayout",
    "LayoutState",
    "EventType",
    "NonFinitePositionWarning",
    "DragController",
    "NodeDragState",
    "build_graph",
    "attach_random_node_to",
    "add_random_nodes",
    "create_random_graph",
]
