"""
docarchive Tree Flattener — one ordered render list of folder and file rows.

Expansion is kept out of the tree: ExpansionState is a small immutable set
of expanded category ids, and flatten() is a pure function of
(forest, expansion, documents by category). Re-running it with the same
inputs yields an identical list, which the list views rely on for diffing.

Row order, depth first and pre-order:
    folder row
    if expanded: subfolders (recursively), then the folder's own files
uncategorized files follow at depth 0 after the whole forest.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Set, Tuple, Union

from docarchive.documents.models import Document
from docarchive.documents.query import DocumentSort, sort_documents
from docarchive.documents.tree import CategoryNode, Forest, collation_key


# ---------------------------------------------------------------------------
# Expansion state
# ---------------------------------------------------------------------------

class ExpansionState:
    """
    Set of expanded category ids for one browsing session.

    Transitions return a new state; an instance is never changed in place.
    """

    __slots__ = ("_ids",)

    def __init__(self, ids: Iterable[int] = ()):
        self._ids: FrozenSet[int] = frozenset(ids)

    @classmethod
    def empty(cls) -> "ExpansionState":
        """Public explorer start: everything collapsed under "All Files"."""
        return cls()

    @classmethod
    def seed_admin(cls, forest: Forest) -> "ExpansionState":
        """
        Admin explorer start: every root expanded plus the first subcategory
        (alphabetically) of each root.
        """
        ids: Set[int] = set()
        for root in forest.roots:
            ids.add(root.id)
            if root.children:
                first = min(root.children, key=lambda n: (collation_key(n.name), n.id))
                ids.add(first.id)
        return cls(ids)

    @property
    def ids(self) -> FrozenSet[int]:
        return self._ids

    def is_expanded(self, category_id: int) -> bool:
        return category_id in self._ids

    def toggle(self, category_id: int) -> "ExpansionState":
        if category_id in self._ids:
            return ExpansionState(self._ids - {category_id})
        return ExpansionState(self._ids | {category_id})

    def expand(self, category_id: int) -> "ExpansionState":
        return ExpansionState(self._ids | {category_id})

    def collapse(self, category_id: int) -> "ExpansionState":
        return ExpansionState(self._ids - {category_id})

    def __contains__(self, category_id: object) -> bool:
        return category_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ExpansionState):
            return self._ids == other._ids
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._ids)

    def __repr__(self) -> str:
        return f"ExpansionState({sorted(self._ids)})"


# ---------------------------------------------------------------------------
# Render rows
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CategoryRow:
    node: CategoryNode
    depth: int
    expanded: bool = False
    document_count: int = 0

    type = "category"

    @property
    def key(self) -> str:
        return f"category-{self.node.id}"


@dataclass(frozen=True)
class DocumentRow:
    doc: Document
    depth: int
    category_id: Optional[int]

    type = "document"

    @property
    def key(self) -> str:
        return f"document-{self.doc.id}"


RenderRow = Union[CategoryRow, DocumentRow]
DocumentsByCategory = Dict[Optional[int], List[Document]]


def group_by_category(documents: Iterable[Document]) -> DocumentsByCategory:
    """Bucket documents by their category id (None = uncategorized)."""
    grouped: DocumentsByCategory = defaultdict(list)
    grouped[None] = []
    for doc in documents:
        grouped[doc.category].append(doc)
    return dict(grouped)


def flatten(
    forest: Forest,
    expanded: Union[ExpansionState, Iterable[int]],
    documents_by_category: DocumentsByCategory,
    sort: Optional[DocumentSort] = None,
    language: str = "primary",
) -> List[RenderRow]:
    """
    Produce the render list for the tree view.

    Only direct files of an expanded folder are emitted beneath it; files of
    collapsed descendants stay hidden. Documents in each bucket are sorted
    with the explorer's document sort.
    """
    if not isinstance(expanded, ExpansionState):
        expanded = ExpansionState(expanded)

    rows: List[RenderRow] = []
    # Explicit stack instead of recursion: deep hierarchies must not hit the
    # interpreter recursion limit. Entries are folder nodes or pending file runs.
    stack: List[Tuple[str, object, int]] = [
        ("node", node, 0) for node in reversed(forest.roots)
    ]
    while stack:
        kind, item, depth = stack.pop()
        if kind == "files":
            category_id, docs = item  # type: ignore[misc]
            rows.extend(DocumentRow(doc=doc, depth=depth, category_id=category_id) for doc in docs)
            continue

        node: CategoryNode = item  # type: ignore[assignment]
        is_open = node.id in expanded
        direct = documents_by_category.get(node.id, [])
        rows.append(CategoryRow(node=node, depth=depth, expanded=is_open, document_count=len(direct)))
        if not is_open:
            continue
        # Files are pushed first so they pop after every subfolder
        if direct:
            stack.append(("files", (node.id, sort_documents(direct, sort, language)), depth + 1))
        stack.extend(("node", child, depth + 1) for child in reversed(node.children))

    uncategorized = sort_documents(documents_by_category.get(None, []), sort, language)
    rows.extend(DocumentRow(doc=doc, depth=0, category_id=None) for doc in uncategorized)
    return rows


def subtree_ids(node: CategoryNode) -> Set[int]:
    """Ids of a node and all of its descendants."""
    ids: Set[int] = set()
    stack = [node]
    while stack:
        current = stack.pop()
        ids.add(current.id)
        stack.extend(current.children)
    return ids


def iter_document_rows(rows: Iterable[RenderRow]) -> Iterator[DocumentRow]:
    for row in rows:
        if isinstance(row, DocumentRow):
            yield row
