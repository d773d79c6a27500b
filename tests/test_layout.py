"""Tests for the spring layout engine."""

import math
import warnings
import pytest
import numpy as np
from pyspring.geom import Point
from pyspring.graph import Edge, Graph, Node
from pyspring.layout import (
    EventType, LayoutState, NonFinitePositionWarning, SpringLayout
)


def angle_at(b, a, c):
    """Angle abc in degrees."""
    u = np.array([a.x - b.x, a.y - b.y])
    v = np.array([c.x - b.x, c.y - b.y])
    cos = np.dot(u, v) / (np.linalg.norm(u) * np.linalg.norm(v))
    return math.degrees(math.acos(max(-1.0, min(1.0, cos))))


def ring(layout, n):
    nodes = [Node(title=str(i)) for i in range(n)]
    for node in nodes:
        layout.graph.add_node(node)
    for i in range(n):
        layout.graph.add_edge(nodes[i], nodes[(i + 1) % n])
    return nodes


class TestEventType:
    """Test EventType enum."""

    def test_event_values(self):
        assert EventType.start == 0
        assert EventType.tick == 1
        assert EventType.end == 2

    def test_string_access(self):
        assert EventType['tick'] == EventType.tick


class TestLayoutState:
    """Test LayoutState class."""

    def test_create_state(self):
        n = Node()
        s = LayoutState(n, Point(1, 2))
        assert s.node is n
        assert s.point == Point(1, 2)
        assert s.velocity.tolist() == [0.0, 0.0]
        assert s.children_lines == []
        assert s.parent_lines == []
        assert s.is_finite()


class TestStateLifecycle:
    """Test that states follow graph membership."""

    def test_state_created_on_add(self):
        layout = SpringLayout()
        n = Node()
        layout.graph.add_node(n)
        assert layout.state(n) is not None
        assert len(layout.states()) == 1

    def test_initial_position_hint(self):
        layout = SpringLayout()
        n = Node(initial_position=(10, 20))
        layout.graph.add_node(n)
        assert layout.position(n) == Point(10.0, 20.0)

    def test_random_spawn_region(self):
        """Test nodes without a hint spawn in a box around the centre."""
        layout = SpringLayout()
        c = layout.center()
        for _ in range(20):
            n = Node()
            layout.graph.add_node(n)
            p = layout.position(n)
            assert abs(p.x - c.x) <= SpringLayout.SPAWN_WIDTH / 2
            assert abs(p.y - c.y) <= SpringLayout.SPAWN_HEIGHT / 2

    def test_same_seed_same_spawn(self):
        l1 = SpringLayout(seed=5)
        l2 = SpringLayout(seed=5)
        a = Node()
        b = Node()
        l1.graph.add_node(a)
        l2.graph.add_node(b)
        assert l1.position(a) == l2.position(b)

    def test_state_destroyed_on_remove(self):
        layout = SpringLayout()
        n = Node()
        layout.graph.add_node(n)
        layout.graph.remove_node(n)
        assert layout.state(n) is None
        assert layout.states() == []

    def test_adopts_existing_graph(self):
        """Test states are created for nodes added before the layout existed."""
        g = Graph()
        a = Node()
        b = Node()
        g.add_node(a)
        g.add_node(b)
        g.add_edge(a, b)
        layout = SpringLayout(g)
        assert layout.state(a) is not None
        assert layout.edge_token(a, b) is not None

    def test_edge_lines(self):
        """Test edge tokens are kept on both endpoint states."""
        layout = SpringLayout()
        a = Node()
        b = Node()
        layout.add_node(a)
        layout.add_node(b, to=a)
        token = layout.edge_token(b, a)
        assert isinstance(token, Edge)
        assert layout.state(b).children_lines == [(a, token)]
        assert layout.state(a).parent_lines == [(b, token)]

        layout.graph.remove_edge(b, a)
        assert layout.state(b).children_lines == []
        assert layout.state(a).parent_lines == []

    def test_edge_lines_purged_on_node_removal(self):
        layout = SpringLayout()
        a, b, c = Node(), Node(), Node()
        for n in (a, b, c):
            layout.add_node(n)
        layout.graph.add_edge(a, b)
        layout.graph.add_edge(b, c)
        layout.graph.remove_node(b)
        assert layout.state(a).children_lines == []
        assert layout.state(c).parent_lines == []

    def test_custom_edge_token_factory(self):
        layout = SpringLayout().edge_token_factory(lambda s, t, label: ("line", label))
        a = Node()
        b = Node()
        layout.add_node(a)
        layout.add_node(b)
        layout.graph.add_edge(a, b, "knows")
        assert layout.edge_token(a, b) == ("line", "knows")

    def test_sync_after_blocked_load(self):
        """Test sync materializes states for a load done with events blocked."""
        layout = SpringLayout()
        g = layout.graph
        g.block_events(True)
        a = Node()
        b = Node()
        g.add_node(a)
        g.add_node(b)
        g.add_edge(a, b, "x")
        g.block_events(False)
        assert layout.states() == []
        layout.sync()
        assert len(layout.states()) == 2
        assert layout.edge_token(a, b).label == "x"

    def test_sync_drops_stale_states(self):
        layout = SpringLayout()
        a = Node()
        layout.add_node(a)
        layout.graph.clear()
        layout.sync()
        assert layout.states() == []

    def test_cleared_graph_leaves_no_force(self):
        """Test nodes dropped by Graph.clear() stop acting on the layout."""
        layout = SpringLayout().use_central_force(False)
        old = Node(fixed=True, initial_position=(100, 100))
        layout.add_node(old)
        layout.graph.clear()
        assert layout.states() == []
        assert layout.centroid() == Point(0.0, 0.0)

        fresh = Node(initial_position=(105, 100))
        layout.add_node(fresh)
        layout.step()
        assert layout.position(fresh) == Point(105.0, 100.0)
        assert [s.node for s in layout.states()] == [fresh]
        assert layout.centroid() == Point(105.0, 100.0)
        assert layout.kinetic_energy() == 0.0

    def test_new_diagram(self):
        layout = SpringLayout()
        a = Node()
        layout.add_node(a)
        layout.new_diagram()
        assert len(layout.graph) == 0
        assert layout.states() == []

    def test_edge_label_position(self):
        layout = SpringLayout()
        a = Node(initial_position=(0, 0))
        b = Node(initial_position=(10, 20))
        layout.add_node(a)
        layout.add_node(b)
        assert layout.edge_label_position(a, b) == Point(5, 10)


class TestConfiguration:
    """Test fluent configuration."""

    def test_defaults(self):
        layout = SpringLayout()
        assert layout.repulsion_strength() == 1200.0
        assert layout.repulsion_attenuation() == 6e-8
        assert layout.repulsion_clipping() == 200.0
        assert layout.attraction_strength() == 0.9
        assert layout.time_step() == 0.95
        assert layout.damping() == 0.9
        assert layout.centroid_speed() == 2.0
        assert layout.use_central_force() is True
        assert layout.iterations_per_tick() == 10
        assert layout.size() == [600.0, 600.0]
        assert layout.center() == Point(300.0, 300.0)

    def test_chaining(self):
        layout = SpringLayout()
        result = layout.damping(0.5).time_step(0.2).iterations_per_tick(3)
        assert result is layout
        assert layout.damping() == 0.5
        assert layout.time_step() == 0.2
        assert layout.iterations_per_tick() == 3

    def test_center_follows_size(self):
        layout = SpringLayout().size([800, 400])
        assert layout.center() == Point(400.0, 200.0)
        layout.center((10, 20))
        assert layout.center() == Point(10.0, 20.0)

    @pytest.mark.parametrize("value", [0.0, 1.0, 1.5, -0.1])
    def test_invalid_damping(self, value):
        with pytest.raises(ValueError):
            SpringLayout().damping(value)

    def test_invalid_time_step(self):
        with pytest.raises(ValueError):
            SpringLayout().time_step(0)

    def test_invalid_iterations(self):
        with pytest.raises(ValueError):
            SpringLayout().iterations_per_tick(0)


class TestStep:
    """Test the layout step."""

    def test_empty_step(self):
        layout = SpringLayout()
        assert layout.step() == 0.0

    def test_two_nodes_repel(self):
        """Test unconnected nodes move apart."""
        layout = SpringLayout()
        a = Node(initial_position=(290, 300))
        b = Node(initial_position=(310, 300))
        layout.add_node(a)
        layout.add_node(b)
        layout.step()
        assert layout.position(b).x - layout.position(a).x > 20

    def test_pinned_invariance(self):
        """Test a fixed node stays exactly where it was put."""
        layout = SpringLayout()
        pinned = Node(initial_position=(10, 10), fixed=True)
        layout.add_node(pinned)
        others = [Node() for _ in range(3)]
        for n in others:
            layout.add_node(n, to=pinned)
        for _ in range(50):
            layout.step()
        p = layout.position(pinned)
        assert p.x == 10.0
        assert p.y == 10.0

    def test_pinned_node_exerts_force(self):
        """Test a fixed node still pushes the others."""
        layout = SpringLayout().use_central_force(False)
        pinned = Node(initial_position=(100, 100), fixed=True)
        free = Node(initial_position=(110, 100))
        layout.add_node(pinned)
        layout.add_node(free)
        layout.step()
        assert layout.position(free).x > 110

    def test_three_node_chain(self):
        """Test a chain settles collinear, evenly spaced, centred on the target."""
        layout = SpringLayout().center((200, 250))
        a = Node(title="A", initial_position=(250, 305))
        b = Node(title="B", initial_position=(300, 295))
        c = Node(title="C", initial_position=(350, 300))
        for n in (a, b, c):
            layout.add_node(n)
        layout.graph.add_edge(a, b)
        layout.graph.add_edge(b, c)

        for _ in range(100):
            layout.step()

        pa, pb, pc = layout.position(a), layout.position(b), layout.position(c)
        ab = math.hypot(pa.x - pb.x, pa.y - pb.y)
        bc = math.hypot(pc.x - pb.x, pc.y - pb.y)
        assert angle_at(pb, pa, pc) > 160
        assert 0.9 < ab / bc < 1.1
        assert 50 < ab < 120

        centroid = layout.centroid()
        assert centroid.x == pytest.approx(200, abs=1e-2)
        assert centroid.y == pytest.approx(250, abs=1e-2)

    def test_energy_dissipation(self):
        """Test kinetic energy dies out on a static graph."""
        layout = SpringLayout()
        ring(layout, 4)
        energies = [layout.step() for _ in range(600)]
        assert max(energies[:10]) > 0
        assert energies[50] < max(energies[:10])
        assert energies[-1] < 1e-4

    def test_ring_converges(self):
        """Test the driver fires end once a ring settles."""
        layout = SpringLayout()
        ring(layout, 4)
        ended = []
        layout.on('end', ended.append)
        layout.start(max_ticks=3000)
        assert len(ended) == 1
        assert ended[0]['energy'] < layout.convergence_threshold()

    def test_converges_without_central_force(self):
        layout = SpringLayout().use_central_force(False)
        ring(layout, 3)
        for _ in range(1000):
            layout.step()
        assert layout.kinetic_energy() < 1e-4

    def test_centroid_empty(self):
        assert SpringLayout().centroid() == Point(0.0, 0.0)

    def test_coincident_nodes_separate(self):
        """Test coincident nodes are pushed apart without NaN."""
        layout = SpringLayout()
        a = Node(initial_position=(100, 100))
        b = Node(initial_position=(100, 100))
        layout.add_node(a)
        layout.add_node(b)
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            layout.step()
        pa = layout.position(a)
        pb = layout.position(b)
        assert layout.is_finite_position(a)
        assert layout.is_finite_position(b)
        assert (pa.x, pa.y) != (pb.x, pb.y)

    def test_far_node_keeps_others_finite(self):
        """Test a node too far away for a finite distance does not spread NaN."""
        layout = SpringLayout()
        a = Node(initial_position=(300, 300))
        b = Node(initial_position=(320, 300))
        c = Node(initial_position=(280, 300))
        for n in (a, b, c):
            layout.add_node(n)
        layout.graph.add_edge(a, c)
        layout.set_position(c, (1e200, 0))
        layout.step()
        assert layout.is_finite_position(a)
        assert layout.is_finite_position(b)
        assert layout.is_finite_position(c)
        assert layout.position(b).x > layout.position(a).x

    def test_iterations_per_tick(self):
        """Test one step with n iterations equals n steps with one iteration."""
        def run(iterations, steps):
            layout = SpringLayout().iterations_per_tick(iterations)
            a = Node(initial_position=(280, 300))
            b = Node(initial_position=(320, 310))
            layout.add_node(a)
            layout.add_node(b, to=a)
            for _ in range(steps):
                layout.step()
            return layout.position(a)

        assert run(10, 1).x == pytest.approx(run(1, 10).x)


class TestNonFinitePositions:
    """Test the NaN policy."""

    def test_nan_node_frozen_and_warned(self):
        layout = SpringLayout()
        a = Node()
        b = Node()
        c = Node()
        for n in (a, b, c):
            layout.add_node(n)
        layout.graph.add_edge(a, b)
        layout.set_position(a, (math.nan, math.nan))

        with pytest.warns(NonFinitePositionWarning):
            layout.step()

        assert not layout.is_finite_position(a)
        assert layout.is_finite_position(b)
        assert layout.is_finite_position(c)
        assert math.isfinite(layout.centroid().x)

    def test_warned_once(self):
        layout = SpringLayout()
        a = Node()
        layout.add_node(a)
        layout.set_position(a, (math.inf, 0))
        with pytest.warns(NonFinitePositionWarning):
            layout.step()
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            layout.step()

    def test_reset_position(self):
        layout = SpringLayout()
        a = Node()
        layout.add_node(a)
        layout.set_position(a, (math.nan, 0))
        with pytest.warns(NonFinitePositionWarning):
            layout.step()
        assert layout.reset_position(a, (5, 6))
        assert layout.position(a) == Point(5.0, 6.0)
        assert layout.velocity(a) == Point(0.0, 0.0)
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            layout.step()
        assert layout.is_finite_position(a)


class TestEvents:
    """Test layout events and the driver."""

    def test_tick_event(self):
        layout = SpringLayout()
        layout.add_node(Node())
        events = []
        layout.on(EventType.tick, events.append)
        layout.step()
        assert len(events) == 1
        assert events[0]['type'] == EventType.tick
        assert 'energy' in events[0]

    def test_start_converges(self):
        """Test start fires start and end for a trivially stable graph."""
        layout = SpringLayout()
        layout.add_node(Node())
        seen = []
        layout.on('start', lambda e: seen.append(e['type']))
        layout.on('end', lambda e: seen.append(e['type']))
        layout.start()
        assert seen == [EventType.start, EventType.end]
        assert not layout.running

    def test_start_max_ticks(self):
        layout = SpringLayout().convergence_threshold(0)
        ring(layout, 3)
        ended = []
        layout.on('end', ended.append)
        layout.start(max_ticks=3)
        assert layout.ticks == 3
        assert not layout.running
        assert ended == []

    def test_stop_from_listener(self):
        layout = SpringLayout().convergence_threshold(0)
        ring(layout, 3)

        def stop_after_two(e):
            if e['ticks'] >= 1:
                layout.stop()

        layout.on('tick', stop_after_two)
        layout.start(max_ticks=100)
        assert layout.ticks == 2

    def test_off(self):
        layout = SpringLayout()
        events = []
        layout.on('tick', events.append)
        layout.off('tick', events.append)
        layout.step()
        assert events == []

    def test_reentrant_mutation_from_tick(self):
        """Test graph edits from inside a tick listener keep states consistent."""
        layout = SpringLayout()
        nodes = ring(layout, 4)
        added = []

        def churn(e):
            if nodes:
                layout.graph.remove_node(nodes.pop())
            n = Node()
            layout.add_node(n, to=added[-1] if added else None)
            added.append(n)

        layout.on('tick', churn)
        for _ in range(6):
            layout.step()

        assert len(layout.states()) == len(layout.graph)
        for node in layout.graph:
            assert layout.state(node) is not None
            assert layout.is_finite_position(node)
