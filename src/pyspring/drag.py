"""
Interactive node dragging.

At most one node can be dragged at a time. While the drag is active the
layout treats the node as pinned, and its position follows the pointer.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Union

import numpy as np

from .geom import Point, as_point

if TYPE_CHECKING:
    from .graph import Node
    from .layout import SpringLayout


class NodeDragState:
    """
    Keeps track of what is being dragged.

    Attributes:
        is_dragging: True while a drag session is open
        node: The node being dragged, None when idle
        offset: Pointer position relative to the node's centre at grab time
    """

    def __init__(self):
        self.is_dragging: bool = False
        self.node: Optional[Node] = None
        self.offset: Point = Point(0.0, 0.0)

    def reset(self) -> None:
        self.is_dragging = False
        self.node = None
        self.offset = Point(0.0, 0.0)


class DragController:
    """
    Idle/Dragging state machine driven by the input layer.

    Rejected intents return False and leave the state untouched.
    """

    def __init__(self, layout: SpringLayout):
        self._layout = layout
        self._state = NodeDragState()

    @property
    def is_dragging(self) -> bool:
        return self._state.is_dragging

    @property
    def node(self) -> Optional[Node]:
        """The node being dragged, or None."""
        return self._state.node

    @property
    def offset(self) -> Point:
        return self._state.offset

    def begin_drag(
        self,
        node: Node,
        offset: Optional[Union[Point, tuple[float, float]]] = None
    ) -> bool:
        """
        Start dragging node.

        Args:
            node: Node grabbed by the user
            offset: Grab point relative to the node's centre

        Returns:
            False if another drag of a laid out node is active, the node is
            fixed or the node is not laid out; True otherwise
        """
        if self._state.is_dragging:
            if self._layout.state(self._state.node) is not None:
                return False
            # The dragged node left the graph without a notification
            self._state.reset()
        if node.fixed:
            return False
        ns = self._layout.state(node)
        if ns is None:
            return False

        self._state.is_dragging = True
        self._state.node = node
        self._state.offset = as_point(offset) if offset is not None else Point(0.0, 0.0)
        ns.velocity = np.zeros(2)
        return True

    def drag_move(self, pointer: Union[Point, tuple[float, float]]) -> bool:
        """
        Move the dragged node so that the grab point sits under pointer.

        Returns:
            False when no drag is active
        """
        if not self._state.is_dragging:
            return False
        pointer = as_point(pointer)
        return self._layout.set_position(self._state.node, pointer - self._state.offset)

    def end_drag(self) -> bool:
        """
        Release the dragged node.

        Returns:
            True if a drag was active
        """
        was_dragging = self._state.is_dragging
        self._state.reset()
        return was_dragging
