"""Bidirectional wiki-link index.

The index is normally built outside this package whenever node content
changes; the graph builder only reads it. ``build_link_index`` is provided for
hosts (and tests) that do not maintain their own.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field

from forge_graph.nodes import ForgeNode

logger = logging.getLogger(__name__)

# [[target]] or [[target|alias]]
WIKI_LINK_PATTERN = re.compile(r"\[\[([^\[\]|]+)(?:\|[^\[\]]*)?\]\]")


@dataclass
class LinkIndex:
    """node id → ids it references (outgoing) and ids referencing it (incoming)."""

    outgoing: dict[str, set[str]] = field(default_factory=dict)
    incoming: dict[str, set[str]] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> LinkIndex:
        return cls()

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[str, str]]) -> LinkIndex:
        """Build both directions from (source, target) pairs."""
        index = cls()
        for source, target in pairs:
            index.outgoing.setdefault(source, set()).add(target)
            index.incoming.setdefault(target, set()).add(source)
        return index


def extract_wiki_links(content: str) -> list[str]:
    """Return unique ``[[...]]`` targets in first-seen order."""
    links: list[str] = []
    for match in WIKI_LINK_PATTERN.finditer(content or ""):
        target = match.group(1).strip()
        if target and target not in links:
            links.append(target)
    return links


def resolve_link_target(link_target: str, nodes: Mapping[str, ForgeNode]) -> str | None:
    """Resolve a raw link target to a node id.

    Tries an exact id match, then a case-insensitive title match, then a
    case-insensitive id match. Returns None if nothing matches.
    """
    if link_target in nodes:
        return link_target

    lowered = link_target.lower()
    for node_id, node in nodes.items():
        if node.title.lower() == lowered:
            return node_id

    for node_id in nodes:
        if node_id.lower() == lowered:
            return node_id

    return None


def build_link_index(
    nodes: Mapping[str, ForgeNode],
    extract_links: Callable[[str], Iterable[str]] = extract_wiki_links,
) -> LinkIndex:
    """Build a LinkIndex from node content.

    Every node gets an (possibly empty) entry in both maps. Unresolved targets
    and links from a node to itself are left out.
    """
    outgoing: dict[str, set[str]] = {node_id: set() for node_id in nodes}
    incoming: dict[str, set[str]] = {node_id: set() for node_id in nodes}

    for source_id, node in nodes.items():
        for raw_target in extract_links(node.content):
            target_id = resolve_link_target(raw_target, nodes)
            if target_id is None:
                logger.debug("Unresolved link %r in %s", raw_target, source_id)
                continue
            if target_id == source_id:
                continue
            outgoing[source_id].add(target_id)
            incoming[target_id].add(source_id)

    return LinkIndex(outgoing=outgoing, incoming=incoming)


def get_outgoing_links(link_index: LinkIndex, node_id: str) -> list[str]:
    return sorted(link_index.outgoing.get(node_id, ()))


def get_incoming_links(link_index: LinkIndex, node_id: str) -> list[str]:
    return sorted(link_index.incoming.get(node_id, ()))


def has_links(link_index: LinkIndex, node_id: str) -> bool:
    return bool(link_index.outgoing.get(node_id)) or bool(link_index.incoming.get(node_id))
