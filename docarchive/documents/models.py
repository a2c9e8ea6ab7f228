"""
docarchive Category & Document Models — Pydantic definitions.

Category: Named folder node with an optional parent reference.
Document: File metadata tagged with an optional category and a visibility tag.
Tag: Free label attached to documents.

The store's wire format is not uniform (``title_en``/``title_am``,
``category`` as an id, as ``category_id`` or as a nested object). Everything
is normalised here, right after the fetch, so the tree, flatten and query
code only ever sees one shape.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from pathlib import PurePosixPath
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger("docarchive.documents.models")

UNTITLED = "Untitled"
_EPOCH = 0.0


class Visibility(str, Enum):
    PUBLIC = "public"
    MEMBER = "member"
    GENERAL_ASSEMBLY = "general_assembly"
    EXECUTIVE = "executive"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


class FileType(str, Enum):
    PDF = "pdf"
    DOC = "doc"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    OTHER = "other"

    @classmethod
    def coerce(cls, value: Any) -> "FileType":
        """Map a store file-type tag onto the known set (``docx`` is a doc)."""
        if isinstance(value, FileType):
            return value
        tag = str(value or "").strip().lower()
        if tag == "docx":
            return cls.DOC
        try:
            return cls(tag)
        except ValueError:
            return cls.OTHER


def _pick_label(primary: Optional[str], secondary: Optional[str], language: str) -> str:
    if language == "secondary" and secondary:
        return secondary
    return primary or secondary or UNTITLED


# ---------------------------------------------------------------------------
# Category record
# ---------------------------------------------------------------------------

class Category(BaseModel):
    """
    Archive folder. ``parent`` is None for roots; ``order`` breaks ties among
    siblings in the hierarchical explorer.
    """

    id: int = Field(description="Unique category id")
    name_primary: str = Field(default="", description="Name in the primary language")
    name_secondary: Optional[str] = Field(default=None, description="Name in the secondary language")
    description: Optional[str] = Field(default=None)
    parent: Optional[int] = Field(default=None, description="Parent category id")
    order: int = Field(default=0, description="Sibling ordering weight")

    model_config = {"frozen": True}

    def display_name(self, language: str = "primary") -> str:
        return _pick_label(self.name_primary, self.name_secondary, language)

    def matches(self, needle: str) -> bool:
        """Case-insensitive substring match against either name."""
        needle = needle.casefold()
        return any(
            needle in (name or "").casefold()
            for name in (self.name_primary, self.name_secondary)
        )


class Tag(BaseModel):
    id: int
    name: str

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Document record
# ---------------------------------------------------------------------------

class Document(BaseModel):
    """
    Archive document metadata. The binary lives in the backing store and is
    fetched through the download endpoint.
    """

    id: int = Field(description="Unique document id")
    title_primary: str = Field(default="")
    title_secondary: Optional[str] = Field(default=None)
    description_primary: Optional[str] = Field(default=None)
    description_secondary: Optional[str] = Field(default=None)
    file_type: FileType = Field(default=FileType.OTHER)
    file_size: int = Field(default=0, ge=0, description="Size in bytes")
    category: Optional[int] = Field(default=None, description="Category id, None = uncategorized")
    visibility: Visibility = Field(default=Visibility.PUBLIC)
    created_at: Optional[datetime] = Field(default=None)
    author: str = Field(default="")
    file: Optional[str] = Field(default=None, description="Store-relative file path")
    file_url: Optional[str] = Field(default=None)
    tags: List[Tag] = Field(default_factory=list)
    download_count: int = Field(default=0)

    model_config = {"frozen": True}

    def display_title(self, language: str = "primary") -> str:
        return _pick_label(self.title_primary, self.title_secondary, language)

    def timestamp(self) -> float:
        """POSIX timestamp of created_at; missing dates sort as the epoch."""
        if self.created_at is None:
            return _EPOCH
        value = self.created_at
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()

    def download_filename(self, language: str = "primary") -> str:
        if self.file:
            name = PurePosixPath(self.file).name
            if name:
                return name
        return f"{self.display_title(language)}.{self.file_type.value}"

    def matches_text(self, needle: str) -> bool:
        """Admin search: titles, descriptions and author in both languages."""
        needle = needle.casefold()
        fields = (
            self.title_primary,
            self.title_secondary,
            self.description_primary,
            self.description_secondary,
            self.author,
        )
        return any(needle in (value or "").casefold() for value in fields)


# ---------------------------------------------------------------------------
# Boundary normalisation
# ---------------------------------------------------------------------------

def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO timestamp; anything unparseable becomes None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        logger.debug(f"Unparseable date {value!r} treated as missing")
        return None


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def normalize_category(raw: Dict[str, Any]) -> Category:
    """Build a Category from either wire (``name_en``) or canonical field names."""
    parent = raw.get("parent")
    if isinstance(parent, dict):
        parent = parent.get("id")
    return Category(
        id=int(raw["id"]),
        name_primary=raw.get("name_primary", raw.get("name_en")) or "",
        name_secondary=raw.get("name_secondary", raw.get("name_am")) or None,
        description=raw.get("description") or None,
        parent=_optional_int(parent),
        order=_optional_int(raw.get("order")) or 0,
    )


def document_category_id(raw: Dict[str, Any]) -> Optional[int]:
    """Resolve the category reference: ``category_id`` first, then ``category``."""
    if raw.get("category_id") is not None:
        return _optional_int(raw["category_id"])
    category = raw.get("category")
    if isinstance(category, dict):
        return _optional_int(category.get("id"))
    return _optional_int(category)


def normalize_document(raw: Dict[str, Any]) -> Document:
    """Build a Document from the store payload, degrading bad fields instead of failing."""
    tags = []
    for tag in raw.get("tags") or []:
        if isinstance(tag, dict) and "id" in tag:
            tags.append(Tag(id=int(tag["id"]), name=str(tag.get("name", ""))))

    visibility = raw.get("visibility") or Visibility.PUBLIC.value
    try:
        visibility = Visibility(visibility)
    except ValueError:
        # Unknown tags are treated as the most restrictive tier
        logger.warning(f"Document {raw.get('id')} has unknown visibility {visibility!r}")
        visibility = Visibility.EXECUTIVE

    return Document(
        id=int(raw["id"]),
        title_primary=raw.get("title_primary", raw.get("title_en")) or "",
        title_secondary=raw.get("title_secondary", raw.get("title_am")) or None,
        description_primary=raw.get("description_primary", raw.get("description_en")) or None,
        description_secondary=raw.get("description_secondary", raw.get("description_am")) or None,
        file_type=FileType.coerce(raw.get("file_type")),
        file_size=max(_optional_int(raw.get("file_size")) or 0, 0),
        category=document_category_id(raw),
        visibility=visibility,
        created_at=parse_datetime(raw.get("created_at")),
        author=raw.get("author") or "",
        file=raw.get("file") or None,
        file_url=raw.get("file_url") or None,
        tags=tags,
        download_count=_optional_int(raw.get("download_count")) or 0,
    )


def parse_categories(items: Iterable[Dict[str, Any]]) -> List[Category]:
    return [normalize_category(item) for item in items]


def parse_documents(items: Iterable[Dict[str, Any]]) -> List[Document]:
    return [normalize_document(item) for item in items]


# ---------------------------------------------------------------------------
# Render helpers
# ---------------------------------------------------------------------------

_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


def format_file_size(size: Optional[int]) -> str:
    """Human readable size: whole numbers from 10 up, one decimal below."""
    if not size or size < 0:
        return "—"
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(_SIZE_UNITS) - 1:
        value /= 1024
        unit += 1
    if value >= 10 or unit == 0:
        return f"{value:.0f} {_SIZE_UNITS[unit]}"
    return f"{value:.1f} {_SIZE_UNITS[unit]}"
