"""Typed Forge node model.

Each node kind is its own frozen dataclass; kinds share ``BaseNode`` and differ
in which capabilities they carry (status, dependencies, parent container).
Code that needs a capability asks for it through the predicates at the bottom
of this module instead of probing attributes.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union


class NodeType(str, Enum):
    """Discriminator for the Forge node kinds."""

    Task = "task"
    Decision = "decision"
    Component = "component"
    Note = "note"
    Subsystem = "subsystem"
    Assembly = "assembly"
    Module = "module"


CONTAINER_TYPES: frozenset[NodeType] = frozenset({NodeType.Subsystem, NodeType.Assembly, NodeType.Module})


# ─── Status Types ─────────────────────────────────────────────────────────────


class TaskStatus(str, Enum):
    Pending = "pending"
    InProgress = "in_progress"
    Blocked = "blocked"
    Complete = "complete"


class TaskPriority(str, Enum):
    High = "high"
    Medium = "medium"
    Low = "low"


class DecisionStatus(str, Enum):
    Pending = "pending"
    Selected = "selected"


class ComponentStatus(str, Enum):
    Selected = "selected"
    Considering = "considering"
    Rejected = "rejected"


class ContainerStatus(str, Enum):
    Planning = "planning"
    InProgress = "in_progress"
    Complete = "complete"
    OnHold = "on_hold"


# ─── Node Kinds ───────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class BaseNode:
    """Fields every node kind carries."""

    id: str
    title: str
    tags: tuple[str, ...] = ()
    content: str = ""

    @property
    def type(self) -> NodeType:
        raise NotImplementedError


@dataclass(frozen=True)
class TaskNode(BaseNode):
    """Work item; the only kind that declares dependencies."""

    status: TaskStatus = TaskStatus.Pending
    priority: TaskPriority = TaskPriority.Medium
    depends_on: tuple[str, ...] = ()
    parent: str | None = None

    @property
    def type(self) -> NodeType:
        return NodeType.Task


@dataclass(frozen=True)
class DecisionNode(BaseNode):
    status: DecisionStatus = DecisionStatus.Pending
    parent: str | None = None

    @property
    def type(self) -> NodeType:
        return NodeType.Decision


@dataclass(frozen=True)
class ComponentNode(BaseNode):
    status: ComponentStatus = ComponentStatus.Considering
    parent: str | None = None

    @property
    def type(self) -> NodeType:
        return NodeType.Component


@dataclass(frozen=True)
class NoteNode(BaseNode):
    parent: str | None = None

    @property
    def type(self) -> NodeType:
        return NodeType.Note


@dataclass(frozen=True)
class SubsystemNode(BaseNode):
    """Top-level container for a major functional area."""

    status: ContainerStatus = ContainerStatus.Planning

    @property
    def type(self) -> NodeType:
        return NodeType.Subsystem


@dataclass(frozen=True)
class AssemblyNode(BaseNode):
    status: ContainerStatus = ContainerStatus.Planning
    parent: str | None = None

    @property
    def type(self) -> NodeType:
        return NodeType.Assembly


@dataclass(frozen=True)
class ModuleNode(BaseNode):
    status: ContainerStatus = ContainerStatus.Planning
    parent: str | None = None

    @property
    def type(self) -> NodeType:
        return NodeType.Module


ForgeNode = Union[TaskNode, DecisionNode, ComponentNode, NoteNode, SubsystemNode, AssemblyNode, ModuleNode]

#: Node collections are ordered id → node mappings; iteration order drives default placement.
NodeMap = dict[str, ForgeNode]


def node_map(*nodes: ForgeNode) -> NodeMap:
    """Build an ordered id → node mapping from nodes in the given order."""
    return {node.id: node for node in nodes}


# ─── Capabilities ─────────────────────────────────────────────────────────────


def is_task_node(node: ForgeNode) -> bool:
    return node.type is NodeType.Task


def is_decision_node(node: ForgeNode) -> bool:
    return node.type is NodeType.Decision


def is_container_node(node: ForgeNode) -> bool:
    """True for the kinds that can hold other nodes (Subsystem, Assembly, Module)."""
    return node.type in CONTAINER_TYPES


def has_status(node: ForgeNode) -> bool:
    return not isinstance(node, NoteNode)


def has_dependencies(node: ForgeNode) -> bool:
    return isinstance(node, TaskNode)


def has_parent(node: ForgeNode) -> bool:
    """True if the node kind can declare a parent container (whether or not it does)."""
    return not isinstance(node, SubsystemNode)


def get_node_status(node: ForgeNode) -> str | None:
    if isinstance(node, NoteNode):
        return None
    return node.status.value


def get_parent_id(node: ForgeNode) -> str | None:
    if isinstance(node, SubsystemNode):
        return None
    return node.parent


def get_dependencies(node: ForgeNode) -> tuple[str, ...]:
    if isinstance(node, TaskNode):
        return node.depends_on
    return ()
