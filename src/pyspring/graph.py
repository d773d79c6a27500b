"""
Directed graph model with incidence tracking.

This module implements the mutable graph the layout engine runs against:
- Node and Edge value types
- EdgeCollection, an incidence index keyed by target node
- Graph, which owns the node arena, enforces referential integrity and
  fires a notification after every committed mutation
"""

from __future__ import annotations

from typing import Any, Callable, Iterator, Optional, TypedDict, Union
from enum import IntEnum
import random
import uuid
import weakref

from sortedcontainers import SortedDict, SortedSet

from .geom import Point, as_point


class GraphError(ValueError):
    """Base class for structural graph errors."""
    pass


class UnknownEndpointError(GraphError):
    """An edge references a node that is not a member of the graph."""
    pass


class SelfLoopError(GraphError):
    """An edge would connect a node to itself."""
    pass


class CapacityError(GraphError):
    """Adding a node would exceed the graph's node ceiling."""
    pass


class DetachedNodeError(GraphError):
    """A node-level query was made on a node that is not in a live graph."""
    pass


class GraphEventType(IntEnum):
    """
    The graph fires four notifications, always after the mutation is committed:
    - node_added: a node became a member
    - node_removed: a node and its incident edges were removed
    - edge_added: a new edge was inserted
    - edge_removed: an existing edge was removed
    """
    node_added = 0
    node_removed = 1
    edge_added = 2
    edge_removed = 3


class GraphEvent(TypedDict, total=False):
    """Event dictionary passed to graph listeners."""
    type: GraphEventType
    node: Node
    source: Node
    target: Node
    label: str


GraphListener = Callable[[GraphEvent], None]


class Node:
    """
    Graph node.

    Nodes are distinct by identity, never by attribute equality. Once added
    to a graph the node carries its arena slot in ``index`` and a weak
    reference to the owning graph.

    Attributes:
        id: Opaque stable identifier, a fresh UUID string by default
        title: Display title
        info: Arbitrary payload
        fixed: If True the layout never moves this node, but it still
            exerts forces on the others
        initial_position: Optional Point where the layout places the node
        index: Arena slot in the owning graph, None while detached
    """

    def __init__(
        self,
        id: Any = None,
        title: str = "",
        info: Any = None,
        fixed: bool = False,
        initial_position: Optional[Union[Point, tuple[float, float]]] = None,
        **kwargs
    ):
        self.id = id if id is not None else str(uuid.uuid4())
        self.title = title
        self.info = info
        self.fixed = fixed
        self.initial_position: Optional[Point] = as_point(initial_position)
        self.index: Optional[int] = None
        self._graph_ref: Optional[weakref.ref] = None

        # Copy over any additional properties
        for key, value in kwargs.items():
            if not hasattr(self, key):
                setattr(self, key, value)

    def __repr__(self) -> str:
        return f"Node(id={self.id!r}, title={self.title!r})"

    @property
    def graph(self) -> Optional[Graph]:
        """The owning graph, or None if detached or the graph was collected."""
        if self._graph_ref is None:
            return None
        return self._graph_ref()

    def _owner(self) -> Graph:
        g = self.graph
        if g is None or not g.contains(self):
            raise DetachedNodeError(f"{self!r} is not a member of a live graph")
        return g

    def children_nodes(self) -> list[Node]:
        """Targets of this node's outgoing edges."""
        return self._owner().children_of(self)

    def parent_nodes(self) -> list[Node]:
        """Sources of this node's incoming edges."""
        return self._owner().parents_of(self)

    def has_edge_with(self, other: Node) -> bool:
        """True if an edge joins this node and other, in either direction."""
        return self._owner().has_edge(self, other)


class Edge:
    """
    Directed edge between two nodes.

    Edges have no identity of their own: the (source, target) pair is the
    key. Instances are handed out by Graph.edges() and are also the default
    token the layout attaches to node states for edge rendering.
    """

    def __init__(self, source: Node, target: Node, label: str = ""):
        self.source = source
        self.target = target
        self.label = label

    def __repr__(self) -> str:
        return f"Edge({self.source!r}, {self.target!r}, label={self.label!r})"


class EdgeCollection:
    """
    Incidence index over node arena slots.

    Maps a child (target) index to the ordered set of its parent (source)
    indices, so parent lookup is direct and child lookup is a scan. Labels
    are kept per ordered pair.
    """

    def __init__(self):
        self._parents: SortedDict = SortedDict()
        self._labels: dict[tuple[int, int], str] = {}

    def add_edge(self, source: int, target: int, label: str = "") -> bool:
        """
        Add the edge source -> target.

        Args:
            source: Parent index
            target: Child index
            label: Edge label, ignored if the edge already exists

        Returns:
            True if the edge was inserted, False if it already existed
        """
        parents = self._parents.get(target)
        if parents is None:
            parents = SortedSet()
            self._parents[target] = parents
        if source in parents:
            return False
        parents.add(source)
        self._labels[(source, target)] = label
        return True

    def remove_edge(self, source: int, target: int) -> bool:
        """
        Remove the edge source -> target.

        Returns:
            True if an edge was removed
        """
        parents = self._parents.get(target)
        if parents is None or source not in parents:
            return False
        parents.remove(source)
        if not parents:
            del self._parents[target]
        self._labels.pop((source, target), None)
        return True

    def remove_node(self, index: int) -> int:
        """
        Purge every edge incident to index.

        Returns:
            Number of edges removed
        """
        removed = 0
        own = self._parents.pop(index, None)
        if own is not None:
            for source in own:
                self._labels.pop((source, index), None)
            removed += len(own)

        # Collect first, then mutate
        keys = [k for k, parents in self._parents.items() if index in parents]
        for k in keys:
            self.remove_edge(index, k)
            removed += 1
        return removed

    def contains(self, source: int, target: int) -> bool:
        """Directed existence of source -> target."""
        parents = self._parents.get(target)
        return parents is not None and source in parents

    def has_edge(self, a: int, b: int) -> bool:
        """Existence of an edge between a and b in either direction."""
        return self.contains(a, b) or self.contains(b, a)

    def label(self, source: int, target: int) -> Optional[str]:
        """Label of source -> target, or None if there is no such edge."""
        return self._labels.get((source, target))

    def children_of(self, index: int) -> list[int]:
        """Indices of the targets of index's outgoing edges."""
        return [k for k, parents in self._parents.items() if index in parents]

    def parents_of(self, index: int) -> list[int]:
        """Indices of the sources of index's incoming edges."""
        parents = self._parents.get(index)
        if parents is None:
            return []
        return list(parents)

    def clear(self) -> None:
        self._parents.clear()
        self._labels.clear()

    def __iter__(self) -> Iterator[tuple[int, int]]:
        """Yield (source, target) index pairs."""
        for target, parents in list(self._parents.items()):
            for source in list(parents):
                yield source, target

    def __len__(self) -> int:
        return len(self._labels)


class Graph:
    """
    Mutable directed graph.

    The graph is the single source of truth for membership and
    connectivity. Nodes live in an arena keyed by a stable integer slot;
    the incidence index only stores slots. Every committed mutation fires
    exactly one notification to the registered listeners, unless events
    are blocked.
    """

    def __init__(self, max_nodes: Optional[int] = None):
        """
        Initialize an empty graph.

        Args:
            max_nodes: Optional ceiling on the node count. add_node raises
                CapacityError once it is reached.
        """
        self._nodes: SortedDict = SortedDict()
        self._edges = EdgeCollection()
        self._next_index = 0
        self._max_nodes = max_nodes
        self._block_events = False
        self._listeners: dict[GraphEventType, list[GraphListener]] = {}

    # Events

    def on(self, e: Union[GraphEventType, str], listener: GraphListener) -> Graph:
        """
        Subscribe a listener to a graph event.

        Several listeners may be registered per event type; they are called
        in registration order.

        Args:
            e: Event type (GraphEventType enum or string name)
            listener: Function to call with the event dict

        Returns:
            self for method chaining
        """
        if isinstance(e, str):
            e = GraphEventType[e]
        self._listeners.setdefault(e, []).append(listener)
        return self

    def off(self, e: Union[GraphEventType, str], listener: GraphListener) -> Graph:
        """Unsubscribe a listener. Unknown listeners are ignored."""
        if isinstance(e, str):
            e = GraphEventType[e]
        listeners = self._listeners.get(e)
        if listeners and listener in listeners:
            listeners.remove(listener)
        return self

    def trigger(self, e: GraphEvent) -> None:
        """Call the listeners registered for e['type'] unless events are blocked."""
        if self._block_events:
            return
        for listener in list(self._listeners.get(e['type'], ())):
            listener(e)

    def block_events(self, v: Optional[bool] = None) -> Union[bool, Graph]:
        """
        Get or set whether notifications are suppressed.

        Used for bulk loads: the index stays consistent while no listener
        runs, and the consumer materializes everything in one pass after.

        Args:
            v: Optional value to set

        Returns:
            Current value if v is None, otherwise self for chaining
        """
        if v is None:
            return self._block_events

        self._block_events = bool(v)
        return self

    def max_nodes(self, v: Optional[int] = None) -> Union[Optional[int], Graph]:
        """Get or set the node ceiling (0 or a negative value removes it)."""
        if v is None:
            return self._max_nodes

        self._max_nodes = v if v > 0 else None
        return self

    # Membership

    def contains(self, node: Node) -> bool:
        """True if node is currently a member of this graph."""
        return node.index is not None and self._nodes.get(node.index) is node

    def __contains__(self, node: Node) -> bool:
        return self.contains(node)

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[Node]:
        return iter(list(self._nodes.values()))

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    @property
    def edge_count(self) -> int:
        return len(self._edges)

    def nodes(self) -> list[Node]:
        """Snapshot of the member nodes in arena order."""
        return list(self._nodes.values())

    def node_at(self, index: int) -> Node:
        """Node stored in arena slot index. Raises KeyError if empty."""
        return self._nodes[index]

    def node_by_id(self, id: Any) -> Optional[Node]:
        """First member whose id equals id, or None."""
        for node in self._nodes.values():
            if node.id == id:
                return node
        return None

    def edges(self) -> list[Edge]:
        """Snapshot of all edges as Edge objects, grouped by target."""
        result = []
        for source, target in self._edges:
            result.append(Edge(
                self._nodes[source],
                self._nodes[target],
                self._edges.label(source, target)
            ))
        return result

    def random_node(self, rng: Optional[random.Random] = None) -> Node:
        """
        Pick a member uniformly at random.

        Args:
            rng: Optional random.Random instance, the module generator otherwise

        Raises:
            GraphError: If the graph is empty
        """
        if not self._nodes:
            raise GraphError("cannot pick a random node from an empty graph")
        rng = rng or random
        return self._nodes.peekitem(rng.randrange(len(self._nodes)))[1]

    # Mutation

    def add_node(self, node: Node) -> None:
        """
        Add a node. No-op if it is already a member.

        Raises:
            CapacityError: If the node ceiling is reached
            GraphError: If the node belongs to another live graph
        """
        if self.contains(node):
            return
        if self._max_nodes is not None and len(self._nodes) >= self._max_nodes:
            raise CapacityError(
                f"the graph does not allow more than {self._max_nodes} nodes"
            )
        owner = node.graph
        if owner is not None and owner is not self and owner.contains(node):
            raise GraphError(f"{node!r} already belongs to another graph")

        index = self._next_index
        self._next_index += 1
        node.index = index
        node._graph_ref = weakref.ref(self)
        self._nodes[index] = node

        self.trigger({'type': GraphEventType.node_added, 'node': node})

    def remove_node(self, node: Node) -> None:
        """Remove a node and all its incident edges. No-op if absent."""
        if not self.contains(node):
            return
        index = node.index
        del self._nodes[index]
        self._edges.remove_node(index)

        self.trigger({'type': GraphEventType.node_removed, 'node': node})

        # Detach after listeners ran so they can still read the slot
        if not self.contains(node):
            node.index = None
            node._graph_ref = None

    def add_edge(self, source: Node, target: Node, label: str = "") -> None:
        """
        Add the directed edge source -> target.

        Re-adding an existing edge is a no-op and fires nothing.

        Raises:
            UnknownEndpointError: If either node is not a member
            SelfLoopError: If source is target
        """
        if not self.contains(source) or not self.contains(target):
            raise UnknownEndpointError(
                "one or both of the nodes attached to the edge is not contained in the graph"
            )
        if source is target:
            raise SelfLoopError(f"self loop on {source!r} is not allowed")

        if self._edges.add_edge(source.index, target.index, label):
            self.trigger({
                'type': GraphEventType.edge_added,
                'source': source,
                'target': target,
                'label': label
            })

    def remove_edge(self, source: Node, target: Node) -> None:
        """Remove the directed edge source -> target. No-op if absent."""
        if not self.contains(source) or not self.contains(target):
            return
        if self._edges.remove_edge(source.index, target.index):
            self.trigger({
                'type': GraphEventType.edge_removed,
                'source': source,
                'target': target
            })

    def clear(self) -> None:
        """Remove every node and edge without firing per-item notifications."""
        for node in self._nodes.values():
            node.index = None
            node._graph_ref = None
        self._nodes.clear()
        self._edges.clear()

    # Queries

    def has_edge(self, a: Node, b: Node) -> bool:
        """True if an edge joins a and b in either direction."""
        if not self.contains(a) or not self.contains(b):
            return False
        return self._edges.has_edge(a.index, b.index)

    def has_directed_edge(self, source: Node, target: Node) -> bool:
        """True if the edge source -> target exists."""
        if not self.contains(source) or not self.contains(target):
            return False
        return self._edges.contains(source.index, target.index)

    def edge_label(self, source: Node, target: Node) -> Optional[str]:
        """Label of source -> target, or None if there is no such edge."""
        if not self.contains(source) or not self.contains(target):
            return None
        return self._edges.label(source.index, target.index)

    def children_of(self, node: Node) -> list[Node]:
        """Targets of node's outgoing edges."""
        if not self.contains(node):
            return []
        return [self._nodes[i] for i in self._edges.children_of(node.index)]

    def parents_of(self, node: Node) -> list[Node]:
        """Sources of node's incoming edges."""
        if not self.contains(node):
            return []
        return [self._nodes[i] for i in self._edges.parents_of(node.index)]

    def adjacent_nodes(self, node: Node) -> list[Node]:
        """Union of children and parents, without duplicates."""
        if not self.contains(node):
            return []
        seen = set()
        result = []
        for i in self._edges.children_of(node.index) + self._edges.parents_of(node.index):
            if i not in seen:
                seen.add(i)
                result.append(self._nodes[i])
        return result

    def edge_index_pairs(self) -> list[tuple[int, int]]:
        """Snapshot of all edges as (source, target) arena slots."""
        return list(self._edges)
