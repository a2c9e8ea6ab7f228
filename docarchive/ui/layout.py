"""
docarchive UI — Page layout (sidebar + content) and shared row helpers.
"""

from typing import Any, Dict, Optional

import reflex as rx

from docarchive.documents.flatten import CategoryRow, RenderRow
from docarchive.documents.models import Document, format_file_size


def archive_layout(content: rx.Component, title: str = "Document Archive") -> rx.Component:
    """Wrap content in the archive layout with sidebar navigation."""
    return rx.hstack(
        _sidebar(title),
        rx.box(
            content,
            flex="1",
            overflow_y="auto",
            height="100vh",
            padding="24px",
        ),
        spacing="0",
        width="100%",
        height="100vh",
    )


def _sidebar(title: str) -> rx.Component:
    return rx.box(
        rx.vstack(
            rx.heading(title, size="4", padding="4"),
            rx.divider(),
            _nav_item("Resources", "/resources", "folder-open"),
            _nav_item("Member Resources", "/members/resources", "users"),
            rx.divider(),
            _nav_item("Archive Manager", "/admin/archive", "archive"),
            spacing="1",
            padding="3",
            width="100%",
        ),
        width="220px",
        min_width="220px",
        height="100vh",
        border_right="1px solid var(--gray-5)",
        background="var(--gray-2)",
    )


def _nav_item(label: str, href: str, icon: str) -> rx.Component:
    return rx.link(
        rx.hstack(
            rx.icon(icon, size=16),
            rx.text(label, size="2"),
            spacing="2",
            padding_x="3",
            padding_y="2",
            border_radius="6px",
            width="100%",
            _hover={"background": "var(--gray-4)"},
        ),
        href=href,
        width="100%",
        underline="none",
    )


# ---------------------------------------------------------------------------
# State serialization helpers
# ---------------------------------------------------------------------------

def document_dict(doc: Document, language: str, category_name: str = "") -> Dict[str, Any]:
    """Flat dict of one document for rx.foreach rendering."""
    return {
        "id": doc.id,
        "title": doc.display_title(language),
        "description": (
            doc.description_secondary if language == "secondary" and doc.description_secondary
            else doc.description_primary or ""
        ),
        "file_type": doc.file_type.value,
        "size": format_file_size(doc.file_size),
        "visibility": doc.visibility.value,
        "visibility_label": doc.visibility.label,
        "created": doc.created_at.date().isoformat() if doc.created_at else "",
        "author": doc.author,
        "category_id": doc.category if doc.category is not None else -1,
        "category_name": category_name,
        "tags": ", ".join(tag.name for tag in doc.tags),
    }


def row_dict(row: RenderRow, language: str, category_name: Optional[str] = None) -> Dict[str, Any]:
    """Flat dict of one render row; ``indent`` is the left padding in px."""
    if isinstance(row, CategoryRow):
        return {
            "key": row.key,
            "type": "category",
            "id": row.node.id,
            "label": row.node.category.display_name(language),
            "depth": row.depth,
            "indent": f"{row.depth * 20}px",
            "expanded": row.expanded,
            "has_children": row.node.has_children,
            "count": row.document_count,
            "visibility": "",
            "size": "",
            "created": "",
        }
    data = document_dict(row.doc, language, category_name or "")
    data.update({
        "key": row.key,
        "type": "document",
        "label": data["title"],
        "depth": row.depth,
        "indent": f"{row.depth * 20}px",
        "expanded": False,
        "has_children": False,
        "count": 0,
    })
    return data
