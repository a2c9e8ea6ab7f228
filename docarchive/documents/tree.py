"""
docarchive Category Tree — rebuild the folder hierarchy from a flat list.

The store returns categories as a flat list with parent references and no
ordering guarantee. build_tree() indexes them by id, attaches children to
their parents and sorts every sibling list. Records that cannot be attached
(missing parent, self parent, parent cycle) are demoted to roots so no
category, and therefore no document, ever disappears from the tree.

Cycle detection runs on a NetworkX DiGraph of child → parent edges. Each
category has at most one parent, so cycles are disjoint and demoting one
member per cycle (the lowest id) leaves an acyclic graph.
"""

from __future__ import annotations

import locale
import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

import networkx as nx

from docarchive.documents.models import Category
from docarchive.engine.errors import ArchiveHierarchyError
from docarchive.engine.logging import log, log_hierarchy_issue

logger = logging.getLogger("docarchive.documents.tree")


class SortPolicy(str, Enum):
    """Sibling ordering."""

    EXPLORER = "explorer"  # admin hierarchical explorer: order, then name
    BROWSER = "browser"    # public/member folder browser: folders with children first, then name


def collation_key(text: Optional[str]) -> str:
    """Locale-aware, case-insensitive sort key."""
    return locale.strxfrm((text or "").casefold())


@dataclass(frozen=True)
class CategoryNode:
    """A category plus its already-sorted children. Never carries UI state."""

    category: Category
    children: Tuple["CategoryNode", ...] = ()

    @property
    def id(self) -> int:
        return self.category.id

    @property
    def parent(self) -> Optional[int]:
        return self.category.parent

    @property
    def name(self) -> str:
        return self.category.name_primary

    @property
    def has_children(self) -> bool:
        return bool(self.children)


# ---------------------------------------------------------------------------
# Hierarchy diagnostics
# ---------------------------------------------------------------------------

@dataclass
class HierarchyReport:
    """Data-quality findings for one category list."""

    orphans: List[Tuple[int, int]] = field(default_factory=list)   # (category id, missing parent id)
    self_references: List[int] = field(default_factory=list)
    cycles: List[List[int]] = field(default_factory=list)
    duplicates: List[int] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not (self.orphans or self.self_references or self.cycles or self.duplicates)

    @property
    def demoted(self) -> Set[int]:
        """Ids that are attached as roots although they declare a parent."""
        ids = {cat_id for cat_id, _ in self.orphans}
        ids.update(self.self_references)
        ids.update(min(cycle) for cycle in self.cycles)
        return ids

    def to_dict(self) -> Dict[str, object]:
        return {
            "orphans": [{"id": cat_id, "parent": parent} for cat_id, parent in self.orphans],
            "self_references": list(self.self_references),
            "cycles": [list(cycle) for cycle in self.cycles],
            "duplicates": list(self.duplicates),
        }


def _unique(categories: Iterable[Category], report: HierarchyReport) -> Dict[int, Category]:
    lookup: Dict[int, Category] = {}
    for cat in categories:
        if cat.id in lookup:
            report.duplicates.append(cat.id)
            continue
        lookup[cat.id] = cat
    return lookup


def _find_cycles(lookup: Dict[int, Category]) -> List[List[int]]:
    graph = nx.DiGraph()
    graph.add_nodes_from(lookup)
    for cat in lookup.values():
        if cat.parent is not None and cat.parent != cat.id and cat.parent in lookup:
            graph.add_edge(cat.id, cat.parent)

    cycles = []
    for cycle in nx.simple_cycles(graph):
        # Rotate so the lowest id leads; keeps reports stable across runs
        start = cycle.index(min(cycle))
        cycles.append(cycle[start:] + cycle[:start])
    cycles.sort(key=lambda c: c[0])
    return cycles


def diagnose_hierarchy(categories: Iterable[Category]) -> HierarchyReport:
    """Find duplicate ids, orphans, self references and parent cycles."""
    report = HierarchyReport()
    lookup = _unique(categories, report)

    for cat in lookup.values():
        if cat.parent is None:
            continue
        if cat.parent == cat.id:
            report.self_references.append(cat.id)
        elif cat.parent not in lookup:
            report.orphans.append((cat.id, cat.parent))

    report.cycles = _find_cycles(lookup)
    return report


def _record_issues(report: HierarchyReport) -> None:
    for cat_id in report.duplicates:
        logger.warning(f"Duplicate category id {cat_id}: later record ignored")
        log(log_hierarchy_issue("duplicate", cat_id))
    for cat_id, parent in report.orphans:
        logger.warning(f"Category {cat_id} references missing parent {parent}: shown as root")
        log(log_hierarchy_issue("orphan", cat_id, parent))
    for cat_id in report.self_references:
        logger.warning(f"Category {cat_id} is its own parent: shown as root")
        log(log_hierarchy_issue("self_reference", cat_id, cat_id))
    for cycle in report.cycles:
        logger.warning(f"Category parent cycle {cycle}: category {cycle[0]} shown as root")
        log(log_hierarchy_issue("cycle", cycle[0], details={"cycle": cycle}))


# ---------------------------------------------------------------------------
# Forest
# ---------------------------------------------------------------------------

class Forest:
    """
    The rooted forest produced by build_tree(), indexed by category id.

    Read-only: a new Forest is built from scratch on every fetch.
    """

    def __init__(
        self,
        roots: Sequence[CategoryNode],
        index: Dict[int, CategoryNode],
        parents: Dict[int, Optional[int]],
        policy: SortPolicy,
        report: HierarchyReport,
    ):
        self._roots = tuple(roots)
        self._index = index
        self._parents = parents
        self._policy = policy
        self._report = report
        self._depths: Dict[int, int] = {}
        for node, depth in self.walk():
            self._depths[node.id] = depth

    @property
    def roots(self) -> Tuple[CategoryNode, ...]:
        return self._roots

    @property
    def policy(self) -> SortPolicy:
        return self._policy

    @property
    def report(self) -> HierarchyReport:
        return self._report

    def find(self, category_id: Optional[int]) -> Optional[CategoryNode]:
        if category_id is None:
            return None
        return self._index.get(category_id)

    def depth_of(self, category_id: int) -> int:
        """Depth of a category (roots are 0). -1 when the id is unknown."""
        return self._depths.get(category_id, -1)

    def root_ids(self) -> Set[int]:
        return {node.id for node in self._roots}

    def is_root(self, category_id: Optional[int]) -> bool:
        return category_id is not None and self._parents.get(category_id, 0) is None

    def parent_of(self, category_id: int) -> Optional[int]:
        """Effective parent after orphan/cycle demotion."""
        return self._parents.get(category_id)

    def children_of(self, category_id: Optional[int]) -> Tuple[CategoryNode, ...]:
        """Subfolders of a category; ``None`` ("All Files") yields the roots."""
        if category_id is None:
            return self._roots
        node = self._index.get(category_id)
        return node.children if node else ()

    def path_to(self, category_id: int) -> List[CategoryNode]:
        """Breadcrumb from the root down to the category (empty when unknown)."""
        path: List[CategoryNode] = []
        current: Optional[int] = category_id
        while current is not None and current in self._index:
            path.append(self._index[current])
            current = self._parents.get(current)
        path.reverse()
        return path

    def walk(self) -> Iterator[Tuple[CategoryNode, int]]:
        """Pre-order (node, depth) pairs in sibling order."""
        stack: List[Tuple[CategoryNode, int]] = [(node, 0) for node in reversed(self._roots)]
        while stack:
            node, depth = stack.pop()
            yield node, depth
            stack.extend((child, depth + 1) for child in reversed(node.children))

    def iter_nodes(self) -> Iterator[CategoryNode]:
        for node, _ in self.walk():
            yield node

    def node_count(self) -> int:
        return len(self._index)

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, category_id: object) -> bool:
        return category_id in self._index

    def __iter__(self) -> Iterator[CategoryNode]:
        return iter(self._roots)

    def __repr__(self) -> str:
        return f"<Forest roots={len(self._roots)} nodes={len(self._index)} policy={self._policy.value}>"


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

def _sort_key(policy: SortPolicy, child_counts: Dict[int, int]):
    if policy is SortPolicy.EXPLORER:
        def key(cat: Category):
            return (cat.order, collation_key(cat.name_primary), cat.id)
    else:
        def key(cat: Category):
            has_children = child_counts.get(cat.id, 0) > 0
            return (0 if has_children else 1, collation_key(cat.name_primary), cat.id)
    return key


def build_tree(
    categories: Iterable[Category],
    policy: SortPolicy = SortPolicy.BROWSER,
    strict: bool = False,
) -> Forest:
    """
    Build a sorted forest from a flat category list.

    Every input category (by id) appears exactly once. Orphans, self parents
    and one member of each parent cycle become roots. With ``strict=True`` a
    malformed hierarchy raises ArchiveHierarchyError instead.
    """
    categories = list(categories)
    report = diagnose_hierarchy(categories)
    if not report.is_clean:
        if strict:
            raise ArchiveHierarchyError(
                "Category hierarchy is malformed",
                object_ref="categories",
                report=report.to_dict(),
            )
        _record_issues(report)

    lookup = _unique(categories, HierarchyReport())
    demoted = report.demoted

    parents: Dict[int, Optional[int]] = {}
    child_ids: Dict[int, List[int]] = {cat_id: [] for cat_id in lookup}
    root_ids: List[int] = []
    for cat_id, cat in lookup.items():
        parent = cat.parent
        if parent is None or cat_id in demoted or parent not in lookup:
            parents[cat_id] = None
            root_ids.append(cat_id)
        else:
            parents[cat_id] = parent
            child_ids[parent].append(cat_id)

    key = _sort_key(policy, {cat_id: len(ids) for cat_id, ids in child_ids.items()})

    # Breadth-first from the roots gives an order where parents precede
    # children; building in reverse creates every child before its parent.
    order: List[int] = []
    queue = deque(root_ids)
    while queue:
        cat_id = queue.popleft()
        order.append(cat_id)
        queue.extend(child_ids[cat_id])

    index: Dict[int, CategoryNode] = {}
    for cat_id in reversed(order):
        children = sorted((index[c].category for c in child_ids[cat_id]), key=key)
        index[cat_id] = CategoryNode(
            category=lookup[cat_id],
            children=tuple(index[c.id] for c in children),
        )

    roots = [index[cat.id] for cat in sorted((lookup[r] for r in root_ids), key=key)]
    forest = Forest(roots, index, parents, policy, report)
    logger.debug(f"Built {forest!r}")
    return forest
