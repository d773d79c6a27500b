"""
Batch graph operations.

This module provides bulk construction of a laid out graph from already
parsed node and edge requests, and helpers that grow a graph with random
nodes.
"""

from typing import Any, Iterable, Optional, Sequence, Union
import random

from .graph import Graph, Node, UnknownEndpointError
from .layout import SpringLayout


NodeSpec = Union[Node, dict, Sequence[Any]]
EdgeSpec = Sequence[Any]


def _make_node(request: NodeSpec) -> Node:
    """
    Turn a node request into a Node.

    Args:
        request: A Node, a dict of Node keyword arguments (``id`` required),
            or an (id, title[, info]) sequence

    Returns:
        The node
    """
    if isinstance(request, Node):
        return request
    if isinstance(request, dict):
        if request.get('id') is None:
            raise ValueError(f"node request without id: {request!r}")
        return Node(**request)
    if len(request) < 2:
        raise ValueError(f"node request needs at least an id and a title: {request!r}")
    info = request[2] if len(request) > 2 else None
    return Node(id=request[0], title=request[1], info=info)


def build_graph(
    layout: SpringLayout,
    nodes: Iterable[NodeSpec],
    edges: Iterable[EdgeSpec] = ()
) -> dict[Any, Node]:
    """
    Load nodes and edges into the layout's graph in one pass.

    Graph notifications are blocked during the load; the layout states and
    edge lines are materialized once at the end. Node requests come first,
    edge requests reference their ids.

    Args:
        layout: Layout whose graph receives the nodes
        nodes: Node requests (see _make_node)
        edges: (source_id, target_id[, label]) requests

    Returns:
        Dict from node id to the created node

    Raises:
        UnknownEndpointError: If an edge references an id that was not
            created by this load. Nodes and edges added before the bad
            request stay in the graph.
    """
    graph = layout.graph
    memory: dict[Any, Node] = {}
    blocked = graph.block_events()
    graph.block_events(True)
    try:
        for request in nodes:
            n = _make_node(request)
            memory[n.id] = n
            graph.add_node(n)

        for request in edges:
            source_id, target_id = request[0], request[1]
            label = request[2] if len(request) > 2 and request[2] is not None else ""
            if source_id not in memory or target_id not in memory:
                raise UnknownEndpointError(
                    f"edge {source_id!r} -> {target_id!r} references an unknown node id"
                )
            graph.add_edge(memory[source_id], memory[target_id], label)
    finally:
        graph.block_events(blocked)
        layout.sync()

    return memory


def attach_random_node_to(
    layout: SpringLayout,
    source: Optional[Node] = None,
    title: str = "",
    info: Any = None,
    rng: Optional[random.Random] = None
) -> Node:
    """
    Create a node and link it to source.

    Args:
        layout: Layout whose graph receives the node
        source: Node the new node is linked to; a random other node if None
        title: Title of the new node
        info: Payload of the new node
        rng: Optional random generator

    Returns:
        The new node
    """
    graph = layout.graph
    n = Node(title=title, info=info)
    graph.add_node(n)
    if len(graph) < 2 and source is None:
        return n

    b = source
    if b is None:
        b = graph.random_node(rng)
        while b is n:
            b = graph.random_node(rng)
    graph.add_edge(n, b)
    return n


def add_random_nodes(
    layout: SpringLayout,
    amount: int,
    titles: Optional[Sequence[str]] = None,
    rng: Optional[random.Random] = None
) -> list[Node]:
    """
    Grow the graph by amount nodes, each attached to a random existing node.

    Args:
        layout: Layout whose graph receives the nodes
        amount: Number of nodes to add
        titles: Optional pool the titles are drawn from
        rng: Optional random generator

    Returns:
        The new nodes
    """
    rng = rng or random.Random()
    added = []
    for _ in range(amount):
        title = rng.choice(titles) if titles else ""
        added.append(attach_random_node_to(layout, None, title=title, rng=rng))
    return added


def create_random_graph(
    layout: SpringLayout,
    n: int,
    rng: Optional[random.Random] = None
) -> list[Node]:
    """
    Build n nodes, each linked to a random other node.

    Args:
        layout: Layout whose graph receives the nodes
        n: Number of nodes
        rng: Optional random generator

    Returns:
        The created nodes, in creation order
    """
    rng = rng or random.Random()
    graph: Graph = layout.graph
    all_nodes = [Node(title=f"Node {i}") for i in range(n)]
    for node in all_nodes:
        graph.add_node(node)

    for i, node in enumerate(all_nodes):
        dest = rng.randrange(n)
        if dest == i:
            continue
        graph.add_edge(node, all_nodes[dest])

    return all_nodes
