"""Drag-and-drop reparenting: validate a drop locally, then confirm it with the store"""
import enum
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Iterable, Optional

from projectfiles.core.exceptions import FileManagerError, InvalidOperationError, NotFoundError
from projectfiles.models import NodeKind
from projectfiles.utils.tree import TreeIndex
from projectfiles.utils.logger import get_logger

logger = get_logger(__name__)

Mover = Callable[[str, Optional[str]], Awaitable[object]]


class DropStatus(str, enum.Enum):
    MOVED = "moved"
    NOOP = "noop"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass
class DragItem:
    id: str
    name: str
    kind: NodeKind
    parent_id: Optional[str]


@dataclass
class DropResult:
    status: DropStatus
    node_id: str
    target_id: Optional[str]
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status in (DropStatus.MOVED, DropStatus.NOOP)


class DragCoordinator:
    """
    Tracks one drag gesture over a local copy of a project's tree.

    The dragged node and hovered folder are transient UI state. A drop is
    checked locally (self-drop, drop into own descendant, drop onto current
    parent) before the mover is awaited, and the local tree only changes once
    the mover has succeeded.
    """

    def __init__(self, nodes: Iterable, mover: Mover):
        self.mover = mover
        self.items: Dict[str, DragItem] = {}
        self.dragged_id: Optional[str] = None
        self.hovered_folder_id: Optional[str] = None
        self.pending: Optional[tuple] = None
        self.refresh(nodes)

    def refresh(self, nodes: Iterable) -> None:
        """Replace the local tree, e.g. after a listing reload"""
        self.items = {
            n.id: DragItem(id=n.id, name=n.name, kind=NodeKind(n.kind), parent_id=n.parent_id)
            for n in nodes
        }

    @property
    def dragging(self) -> bool:
        return self.dragged_id is not None

    def begin_drag(self, node_id: str) -> None:
        if node_id not in self.items:
            raise NotFoundError(f"File not found: {node_id}")
        self.dragged_id = node_id
        self.hovered_folder_id = None

    def hover(self, folder_id: Optional[str]) -> bool:
        """Record the folder under the pointer; returns whether dropping there is allowed"""
        if folder_id is not None and (
            folder_id not in self.items or self.items[folder_id].kind != NodeKind.FOLDER
        ):
            return False
        self.hovered_folder_id = folder_id
        return self.can_drop(folder_id)

    def cancel(self) -> None:
        self.dragged_id = None
        self.hovered_folder_id = None

    def can_drop(self, target_id: Optional[str]) -> bool:
        if not self.dragging:
            return False
        try:
            self.validate(self.dragged_id, target_id)
        except FileManagerError:
            return False
        return True

    def validate(self, node_id: str, target_id: Optional[str]) -> bool:
        """
        Raise if the drop is not allowed.

        Returns False when the drop would be a no-op (target is the current
        parent) and True when it would move the node.
        """
        node = self.items.get(node_id)
        if node is None:
            raise NotFoundError(f"File not found: {node_id}")
        if target_id is not None:
            target = self.items.get(target_id)
            if target is None:
                raise NotFoundError(f"Parent folder not found: {target_id}")
            if node_id == target_id:
                raise InvalidOperationError("Cannot move a folder into itself")
            if target.kind != NodeKind.FOLDER:
                raise InvalidOperationError("Target is not a folder")
            if node.kind == NodeKind.FOLDER and TreeIndex(self.items.values()).is_descendant(target_id, node_id):
                raise InvalidOperationError("Cannot move a folder into one of its own subfolders")
        return node.parent_id != target_id

    async def drop(self, target_id: Optional[str] = None) -> DropResult:
        """Finish the gesture on target_id (None = project root)"""
        if not self.dragging:
            raise InvalidOperationError("No drag in progress")

        node_id = self.dragged_id
        try:
            try:
                should_move = self.validate(node_id, target_id)
            except FileManagerError as e:
                return DropResult(DropStatus.REJECTED, node_id, target_id, e.message)

            if not should_move:
                return DropResult(DropStatus.NOOP, node_id, target_id, "Already in this folder")

            self.pending = (node_id, target_id)
            try:
                await self.mover(node_id, target_id)
            except FileManagerError as e:
                logger.info(f"Move of {node_id} to {target_id or 'root'} failed: {e.message}")
                return DropResult(DropStatus.FAILED, node_id, target_id, e.message)

            self.items[node_id].parent_id = target_id
            target_name = self.items[target_id].name if target_id else "root"
            return DropResult(
                DropStatus.MOVED, node_id, target_id,
                f'Moved "{self.items[node_id].name}" to {target_name}',
            )
        finally:
            self.pending = None
            self.cancel()
