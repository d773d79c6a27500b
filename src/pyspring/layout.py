"""
Interactive 2D spring-embedder layout engine.

This module implements the SpringLayout class which provides:
- Per-node simulation state (position, velocity, edge bookkeeping)
- Coulomb repulsion between all nodes and spring attraction along edges
- Damped velocity integration, several inner iterations per tick
- Centroid recentring toward a target point
- Pinned nodes and a single interactively dragged node
- Event system (start/tick/end events)
- Live synchronization with a mutating Graph
"""

from __future__ import annotations

from typing import Any, Callable, Optional, TypedDict, Union
from enum import IntEnum
import warnings

import numpy as np

from .drag import DragController
from .forces import (
    Locks,
    PseudoRandom,
    MIN_SEPARATION,
    adjacency_matrix,
    pairwise_offsets,
    repulsion_forces,
    attraction_forces,
    integrate,
    recentre,
    kinetic_energy,
)
from .geom import Point, as_point, centroid, is_finite, label_position
from .graph import Edge, Graph, GraphEvent, GraphEventType, Node


class NonFinitePositionWarning(RuntimeWarning):
    """A node position became NaN or infinite and the node was frozen."""
    pass


class EventType(IntEnum):
    """
    The layout process fires three events:
    - start: the driver started ticking
    - tick: fired once per step, listen to this to redraw
    - end: kinetic energy fell below the convergence threshold
    """
    start = 0
    tick = 1
    end = 2


class Event(TypedDict, total=False):
    """Event dictionary passed to event listeners."""
    type: EventType
    energy: Optional[float]
    ticks: int


EdgeTokenFactory = Callable[[Node, Node, str], Any]


class LayoutState:
    """
    Simulation state of one node.

    Attributes:
        node: The node this state belongs to (non-owning)
        position: Position as a float array of shape (2,)
        velocity: Velocity as a float array of shape (2,)
        children_lines: (child, token) pairs for the node's outgoing edges
        parent_lines: (parent, token) pairs for the node's incoming edges
    """

    def __init__(self, node: Node, position: Point, velocity: Optional[Point] = None):
        self.node = node
        self.position = np.array([position.x, position.y], dtype=float)
        if velocity is None:
            self.velocity = np.zeros(2)
        else:
            self.velocity = np.array([velocity.x, velocity.y], dtype=float)
        self.children_lines: list[tuple[Node, Any]] = []
        self.parent_lines: list[tuple[Node, Any]] = []

    @property
    def point(self) -> Point:
        return Point(float(self.position[0]), float(self.position[1]))

    def is_finite(self) -> bool:
        return is_finite(self.point)


class SpringLayout:
    """
    Spring embedder over a live Graph.

    The layout subscribes to the graph's notifications and keeps exactly one
    LayoutState per member node. A periodic driver calls step(); each step
    runs several inner iterations of force computation and integration.
    Configuration uses a fluent API: called without argument a method
    returns the current value, otherwise it sets it and returns self.
    """

    DEFAULT_SIZE = (600.0, 600.0)
    SPAWN_WIDTH = 200.0
    SPAWN_HEIGHT = 150.0

    def __init__(self, graph: Optional[Graph] = None, seed: int = 1):
        """
        Initialize the layout with default parameters.

        Args:
            graph: Graph to lay out; a new empty graph if omitted
            seed: Seed of the generator used for spawn points and
                coincident-node perturbation
        """
        self._graph = graph if graph is not None else Graph()
        self._size: list[float] = list(self.DEFAULT_SIZE)
        self._center: Optional[Point] = None
        self._repulsionStrength: float = 1200.0
        self._repulsionAttenuation: float = 6e-8
        self._repulsionClipping: float = 200.0
        self._attractionStrength: float = 0.9
        self._timeStep: float = 0.95
        self._damping: float = 0.9
        self._centroidSpeed: float = 2.0
        self._centroidTolerance: float = 1e-3
        self._useCentralForce: bool = True
        self._iterations: int = 10
        self._threshold: float = 1e-4
        self._minSeparation: float = MIN_SEPARATION
        self._edgeTokenFactory: EdgeTokenFactory = Edge
        self._seed = seed

        self._states: dict[int, LayoutState] = {}
        self._random = PseudoRandom(seed)
        self._locks = Locks()
        self._warned: set[int] = set()
        self._running: bool = False
        self._ticks: int = 0
        self._lastEnergy: Optional[float] = None

        self.drag = DragController(self)

        # Event system - list of listeners per event type
        self.event: Optional[dict[EventType, list[Callable[[Event], None]]]] = None

        self._graph.on(GraphEventType.node_added, self._on_node_added)
        self._graph.on(GraphEventType.node_removed, self._on_node_removed)
        self._graph.on(GraphEventType.edge_added, self._on_edge_added)
        self._graph.on(GraphEventType.edge_removed, self._on_edge_removed)

        self.sync()

    @property
    def graph(self) -> Graph:
        return self._graph

    # Events

    def on(self, e: Union[EventType, str], listener: Callable[[Event], None]) -> SpringLayout:
        """
        Subscribe a listener to an event.

        Args:
            e: Event type (EventType enum or string name)
            listener: Function to call when event fires

        Returns:
            self for method chaining
        """
        if self.event is None:
            self.event = {}

        if isinstance(e, str):
            e = EventType[e]
        self.event.setdefault(e, []).append(listener)

        return self

    def off(self, e: Union[EventType, str], listener: Callable[[Event], None]) -> SpringLayout:
        """Unsubscribe a listener. Unknown listeners are ignored."""
        if isinstance(e, str):
            e = EventType[e]
        if self.event and listener in self.event.get(e, []):
            self.event[e].remove(listener)
        return self

    def trigger(self, e: Event) -> None:
        """
        Trigger an event by calling registered listeners.

        Args:
            e: Event to trigger
        """
        if self.event and e['type'] in self.event:
            for listener in list(self.event[e['type']]):
                listener(e)

    # Graph notifications

    def _on_node_added(self, e: GraphEvent) -> None:
        self._add_state(e['node'])

    def _on_node_removed(self, e: GraphEvent) -> None:
        node = e['node']
        if self.drag.node is node:
            self.drag.end_drag()

        state = self._states.get(node.index)
        if state is None or state.node is not node:
            return
        del self._states[node.index]
        self._warned.discard(node.index)

        for parent, _ in state.parent_lines:
            ps = self.state(parent)
            if ps is not None:
                ps.children_lines = [l for l in ps.children_lines if l[0] is not node]
        for child, _ in state.children_lines:
            cs = self.state(child)
            if cs is not None:
                cs.parent_lines = [l for l in cs.parent_lines if l[0] is not node]

    def _on_edge_added(self, e: GraphEvent) -> None:
        self._add_lines(e['source'], e['target'], e.get('label', ""))

    def _on_edge_removed(self, e: GraphEvent) -> None:
        self._remove_lines(e['source'], e['target'])

    def _spawn_point(self) -> Point:
        c = self.center()
        return Point(
            c.x + self.SPAWN_WIDTH * (self._random.get_next() - 0.5),
            c.y + self.SPAWN_HEIGHT * (self._random.get_next() - 0.5)
        )

    def _add_state(self, node: Node) -> LayoutState:
        state = self.state(node)
        if state is not None:
            return state
        p = node.initial_position if node.initial_position is not None else self._spawn_point()
        state = LayoutState(node, p)
        self._states[node.index] = state
        return state

    def _add_lines(self, source: Node, target: Node, label: str) -> None:
        fs = self.state(source)
        ts = self.state(target)
        if fs is None or ts is None:
            return
        if any(child is target for child, _ in fs.children_lines):
            return
        token = self._edgeTokenFactory(source, target, label)
        fs.children_lines.append((target, token))
        ts.parent_lines.append((source, token))

    def _remove_lines(self, source: Node, target: Node) -> None:
        fs = self.state(source)
        ts = self.state(target)
        if fs is not None:
            fs.children_lines = [l for l in fs.children_lines if l[0] is not target]
        if ts is not None:
            ts.parent_lines = [l for l in ts.parent_lines if l[0] is not source]

    def _prune(self) -> None:
        # Graph.clear() sends no per-node notifications
        g = self._graph
        for index in list(self._states.keys()):
            state = self._states[index]
            if not g.contains(state.node) or state.node.index != index:
                del self._states[index]
                self._warned.discard(index)
        if self.drag.node is not None and self.state(self.drag.node) is None:
            self.drag.end_drag()

    def sync(self) -> SpringLayout:
        """
        Bring the state map in line with the graph in one pass.

        Creates states for member nodes that have none (for instance after a
        load with graph events blocked), drops states of nodes that left the
        graph, and reconciles the edge lines. Existing tokens are kept.

        Returns:
            self for method chaining
        """
        g = self._graph
        self._prune()

        for node in g:
            self._add_state(node)

        for state in self._states.values():
            state.children_lines = [
                l for l in state.children_lines if g.has_directed_edge(state.node, l[0])
            ]
            state.parent_lines = [
                l for l in state.parent_lines if g.has_directed_edge(l[0], state.node)
            ]
        for edge in g.edges():
            self._add_lines(edge.source, edge.target, edge.label)

        return self

    # Queries

    def state(self, node: Node) -> Optional[LayoutState]:
        """The state of node, or None if the node has none."""
        if node.index is None:
            return None
        state = self._states.get(node.index)
        if state is None or state.node is not node:
            return None
        return state

    def _live_states(self) -> list[LayoutState]:
        g = self._graph
        return [s for s in self._states.values() if g.contains(s.node)]

    def states(self) -> list[LayoutState]:
        """Snapshot of the states of the nodes currently in the graph."""
        return self._live_states()

    def position(self, node: Node) -> Optional[Point]:
        state = self.state(node)
        return state.point if state is not None else None

    def velocity(self, node: Node) -> Optional[Point]:
        state = self.state(node)
        if state is None:
            return None
        return Point(float(state.velocity[0]), float(state.velocity[1]))

    def is_finite_position(self, node: Node) -> bool:
        """True if node has a state and its position is neither NaN nor infinite."""
        state = self.state(node)
        return state is not None and is_finite(state.point)

    def centroid(self) -> Point:
        """
        Center of gravity of all finite node positions.

        Returns:
            The centroid, or the origin when there are no nodes
        """
        return centroid(p for p in (s.point for s in self._live_states()) if is_finite(p))

    def kinetic_energy(self) -> float:
        """Sum of squared velocities over all nodes."""
        live = self._live_states()
        if not live:
            return 0.0
        return kinetic_energy(np.array([s.velocity for s in live]))

    def edge_label_position(self, source: Node, target: Node) -> Optional[Point]:
        """Anchor point for the label of the edge source-target (its midpoint)."""
        fs = self.state(source)
        ts = self.state(target)
        if fs is None or ts is None:
            return None
        return label_position(fs.point, ts.point)

    def edge_token(self, source: Node, target: Node) -> Any:
        """Token attached to the edge source -> target, or None."""
        fs = self.state(source)
        if fs is None:
            return None
        for child, token in fs.children_lines:
            if child is target:
                return token
        return None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def ticks(self) -> int:
        """Number of ticks since the driver was last started."""
        return self._ticks

    # Mutation

    def add_node(self, node: Node, to: Optional[Node] = None) -> Node:
        """
        Add node to the graph and optionally link it to an existing node.

        Args:
            node: Node to add
            to: Optional target of an edge node -> to

        Returns:
            The node
        """
        self._graph.add_node(node)
        if to is not None:
            self._graph.add_edge(node, to)
        return node

    def set_position(self, node: Node, p: Union[Point, tuple[float, float]]) -> bool:
        """
        Move node to p.

        Returns:
            False if the node has no state
        """
        state = self.state(node)
        if state is None:
            return False
        p = as_point(p)
        state.position = np.array([p.x, p.y], dtype=float)
        if state.is_finite():
            self._warned.discard(node.index)
        return True

    def reset_position(
        self,
        node: Node,
        p: Optional[Union[Point, tuple[float, float]]] = None
    ) -> bool:
        """
        Put node back at p (a fresh spawn point if omitted) with zero velocity.

        This is the way out for a node whose position became non-finite.

        Returns:
            False if the node has no state
        """
        state = self.state(node)
        if state is None:
            return False
        p = as_point(p) if p is not None else self._spawn_point()
        state.position = np.array([p.x, p.y], dtype=float)
        state.velocity = np.zeros(2)
        self._warned.discard(node.index)
        return True

    def new_diagram(self) -> SpringLayout:
        """Clear the graph and every layout state."""
        self.drag.end_drag()
        self._graph.clear()
        self._states.clear()
        self._warned.clear()
        return self

    # Simulation

    def _check_finite(self, states: list[LayoutState], active: np.ndarray) -> None:
        for i in np.flatnonzero(~active):
            node = states[i].node
            if node.index in self._warned:
                continue
            self._warned.add(node.index)
            warnings.warn(
                f"position of {node!r} is not finite; the node is frozen until its position is reset",
                NonFinitePositionWarning,
                stacklevel=3
            )

    def step(self) -> float:
        """
        Apply one tick of the layout algorithm.

        Runs iterations_per_tick inner iterations, moving nodes toward a
        more stable configuration, then fires a tick event.

        Returns:
            Kinetic energy after the step
        """
        self._prune()
        # Snapshot, so listeners mutating the graph cannot disturb the pass
        states = list(self._states.values())
        n = len(states)
        if n > 0:
            rows = {s.node.index: i for i, s in enumerate(states)}
            pairs = [
                (rows[a], rows[b]) for a, b in self._graph.edge_index_pairs()
                if a in rows and b in rows
            ]
            adjacency = adjacency_matrix(pairs, n)

            x = np.array([s.position for s in states], dtype=float)
            v = np.array([s.velocity for s in states], dtype=float)
            active = np.all(np.isfinite(x), axis=1)
            self._check_finite(states, active)

            dragged = self.drag.node
            self._locks.clear()
            for i, s in enumerate(states):
                if s.node.fixed or s.node is dragged or not active[i]:
                    self._locks.add(i)
            locked = self._locks.mask(n)
            held = locked.copy()
            target = np.array(list(self.center()), dtype=float)

            for _ in range(self._iterations):
                # A row that overflowed during this tick stops taking part
                active &= np.all(np.isfinite(x), axis=1)
                held |= ~active
                diff, dist = pairwise_offsets(x, self._random, self._minSeparation)
                f = repulsion_forces(
                    diff, dist, active,
                    self._repulsionStrength,
                    self._repulsionAttenuation,
                    self._repulsionClipping
                )
                f += attraction_forces(diff, dist, adjacency, active, self._attractionStrength)
                integrate(x, v, f, held, self._timeStep, self._damping)
                if self._useCentralForce and dragged is None:
                    recentre(x, ~held, target, self._centroidSpeed, self._centroidTolerance)

            for i, s in enumerate(states):
                if locked[i]:
                    continue
                s.position = x[i].copy()
                s.velocity = v[i].copy()

        energy = self.kinetic_energy()
        self._lastEnergy = energy
        self.trigger({
            'type': EventType.tick,
            'energy': energy,
            'ticks': self._ticks
        })
        return energy

    def tick(self) -> bool:
        """
        Step the layout once and check for convergence.

        Returns:
            True when the kinetic energy fell below the convergence threshold
        """
        energy = self.step()
        self._ticks += 1
        if energy < self._threshold:
            self._running = False
            self.trigger({
                'type': EventType.end,
                'energy': energy,
                'ticks': self._ticks
            })
            return True
        return False

    def kick(self, max_ticks: Optional[int] = None) -> None:
        """
        Tick repeatedly while running.

        Stops on convergence, after max_ticks ticks, or when a listener
        calls stop(). Subclass and override to dispatch ticks on a timer.
        """
        while self._running:
            if self.tick():
                break
            if max_ticks is not None and self._ticks >= max_ticks:
                self._running = False

    def start(self, max_ticks: Optional[int] = None) -> SpringLayout:
        """
        Start the driver.

        Args:
            max_ticks: Optional bound on the number of ticks

        Returns:
            self for method chaining
        """
        if self._running:
            return self
        self._running = True
        self._ticks = 0
        self.trigger({'type': EventType.start, 'energy': self._lastEnergy, 'ticks': 0})
        self.kick(max_ticks)
        return self

    def stop(self) -> SpringLayout:
        """Stop the driver after the current tick."""
        self._running = False
        return self

    # Configuration

    def size(self, x: Optional[list[float]] = None) -> Union[list[float], SpringLayout]:
        """
        Get or set canvas size [width, height].

        Unless center() was set explicitly, the recentring target and the
        spawn origin are the middle of the canvas.

        Args:
            x: Optional size to set

        Returns:
            Current size if x is None, otherwise self for chaining
        """
        if x is None:
            return self._size

        self._size = [float(x[0]), float(x[1])]
        return self

    def center(
        self,
        p: Optional[Union[Point, tuple[float, float]]] = None
    ) -> Union[Point, SpringLayout]:
        """
        Get or set the recentring target.

        Args:
            p: Optional target point

        Returns:
            Current target if p is None, otherwise self for chaining
        """
        if p is None:
            if self._center is not None:
                return self._center
            return Point(self._size[0] / 2, self._size[1] / 2)

        self._center = as_point(p)
        return self

    def repulsion_strength(self, x: Optional[float] = None) -> Union[float, SpringLayout]:
        """Get or set the Coulomb constant of the repulsion."""
        if x is None:
            return self._repulsionStrength

        self._repulsionStrength = float(x)
        return self

    def repulsion_attenuation(self, x: Optional[float] = None) -> Union[float, SpringLayout]:
        """
        Get or set the linear attenuation of the repulsion.

        The linear term is repulsion_strength * attenuation * d, which stops
        far apart nodes from pushing each other forever.
        """
        if x is None:
            return self._repulsionAttenuation

        self._repulsionAttenuation = float(x)
        return self

    def repulsion_clipping(self, x: Optional[float] = None) -> Union[float, SpringLayout]:
        """Get or set the maximum repulsion magnitude."""
        if x is None:
            return self._repulsionClipping

        if x <= 0:
            raise ValueError("repulsion clipping must be positive")
        self._repulsionClipping = float(x)
        return self

    def attraction_strength(self, x: Optional[float] = None) -> Union[float, SpringLayout]:
        if x is None:
            return self._attractionStrength

        self._attractionStrength = float(x)
        return self

    def time_step(self, x: Optional[float] = None) -> Union[float, SpringLayout]:
        """
        Get or set the integration time step.

        Raises:
            ValueError: If x is not positive
        """
        if x is None:
            return self._timeStep

        if x <= 0:
            raise ValueError("time step must be positive")
        self._timeStep = float(x)
        return self

    def damping(self, x: Optional[float] = None) -> Union[float, SpringLayout]:
        """
        Get or set the velocity damping factor.

        Damping must lie strictly between 0 and 1 so every iteration
        dissipates energy.

        Raises:
            ValueError: If x is outside (0, 1)
        """
        if x is None:
            return self._damping

        if not 0 < x < 1:
            raise ValueError("damping must lie strictly between 0 and 1")
        self._damping = float(x)
        return self

    def centroid_speed(self, x: Optional[float] = None) -> Union[float, SpringLayout]:
        """
        Get or set the recentring speed.

        Maximum distance the diagram is translated per inner iteration.
        Around 10 the motion looks instantaneous, 0.5 gives a slow drift.
        """
        if x is None:
            return self._centroidSpeed

        if x < 0:
            raise ValueError("centroid speed must not be negative")
        self._centroidSpeed = float(x)
        return self

    def centroid_tolerance(self, x: Optional[float] = None) -> Union[float, SpringLayout]:
        if x is None:
            return self._centroidTolerance

        self._centroidTolerance = abs(float(x))
        return self

    def use_central_force(self, v: Optional[bool] = None) -> Union[bool, SpringLayout]:
        """
        Get or set whether the diagram is pulled toward center().

        Args:
            v: Optional value to set

        Returns:
            Current value if v is None, otherwise self for chaining
        """
        if v is None:
            return self._useCentralForce

        self._useCentralForce = bool(v)
        return self

    def iterations_per_tick(self, x: Optional[int] = None) -> Union[int, SpringLayout]:
        """Get or set the number of inner iterations run by step()."""
        if x is None:
            return self._iterations

        if x < 1:
            raise ValueError("at least one iteration per tick is required")
        self._iterations = int(x)
        return self

    def convergence_threshold(self, x: Optional[float] = None) -> Union[float, SpringLayout]:
        """
        Get or set convergence threshold.

        tick() reports convergence once the kinetic energy is below it.
        """
        if x is None:
            return self._threshold

        self._threshold = float(x)
        return self

    def edge_token_factory(
        self,
        f: Optional[EdgeTokenFactory] = None
    ) -> Union[EdgeTokenFactory, SpringLayout]:
        """
        Get or set the factory of edge tokens.

        The factory is called as f(source, target, label) whenever an edge
        gains lines in the node states; the rendering layer typically
        returns its visual edge. Defaults to Edge.
        """
        if f is None:
            return self._edgeTokenFactory

        self._edgeTokenFactory = f
        return self

    def seed(self, x: Optional[int] = None) -> Union[int, SpringLayout]:
        """Get or set the seed, restarting the pseudo random sequence."""
        if x is None:
            return self._seed

        self._seed = int(x)
        self._random = PseudoRandom(self._seed)
        return self
