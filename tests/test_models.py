"""Unit tests for docarchive.documents.models — records and wire normalisation."""

from datetime import datetime, timezone

import pytest

from conftest import make_category, make_document
from docarchive.documents.models import (
    FileType,
    Visibility,
    document_category_id,
    format_file_size,
    normalize_category,
    normalize_document,
    parse_categories,
    parse_datetime,
)


class TestCategory:
    def test_display_name_falls_back_to_primary(self):
        cat = make_category(1, "Reports")
        assert cat.display_name("secondary") == "Reports"

    def test_display_name_secondary(self):
        cat = make_category(1, "Reports", name_secondary="ሪፖርቶች")
        assert cat.display_name("secondary") == "ሪፖርቶች"
        assert cat.display_name() == "Reports"

    def test_untitled(self):
        assert make_category(1, "").display_name() == "Untitled"

    def test_matches_either_name(self):
        cat = make_category(1, "Annual Reports", name_secondary="ዓመታዊ")
        assert cat.matches("annual")
        assert cat.matches("ዓመ")
        assert not cat.matches("minutes")

    def test_frozen(self):
        with pytest.raises(Exception):
            make_category(1, "Reports").name_primary = "Other"


class TestDocument:
    def test_timestamp_of_missing_date_is_epoch(self):
        assert make_document(1, "x", created_at=None).timestamp() == 0.0

    def test_naive_timestamp_treated_as_utc(self):
        doc = make_document(1, "x", created_at="2024-01-01T00:00:00")
        expected = datetime(2024, 1, 1, tzinfo=timezone.utc).timestamp()
        assert doc.timestamp() == expected

    def test_download_filename_from_file_path(self):
        doc = make_document(1, "Charter", file="archive/2024/charter-v2.pdf")
        assert doc.download_filename() == "charter-v2.pdf"

    def test_download_filename_from_title(self):
        assert make_document(1, "Charter", file_type="doc").download_filename() == "Charter.doc"

    def test_matches_text(self):
        doc = make_document(1, "Budget", description_primary="Fiscal plan", author="Treasurer")
        assert doc.matches_text("fiscal")
        assert doc.matches_text("TREASURER")
        assert not doc.matches_text("minutes")

    def test_visibility_label(self):
        assert Visibility.GENERAL_ASSEMBLY.label == "General Assembly"


class TestFileTypeCoerce:
    @pytest.mark.parametrize("raw,expected", [
        ("pdf", FileType.PDF),
        ("PDF", FileType.PDF),
        ("docx", FileType.DOC),
        ("spreadsheet", FileType.OTHER),
        (None, FileType.OTHER),
        (FileType.VIDEO, FileType.VIDEO),
    ])
    def test_coerce(self, raw, expected):
        assert FileType.coerce(raw) is expected


class TestParseDatetime:
    def test_zulu_suffix(self):
        assert parse_datetime("2024-03-01T10:00:00Z") == datetime(2024, 3, 1, 10, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", [None, "", "not-a-date"])
    def test_unparseable_is_none(self, value):
        assert parse_datetime(value) is None

    def test_datetime_passthrough(self):
        now = datetime.now(timezone.utc)
        assert parse_datetime(now) is now


class TestNormalizeCategory:
    def test_wire_names(self):
        cat = normalize_category({"id": "4", "name_en": "Bylaws", "name_am": "", "parent": 1, "order": "2"})
        assert cat.id == 4
        assert cat.name_primary == "Bylaws"
        assert cat.name_secondary is None
        assert cat.parent == 1
        assert cat.order == 2

    def test_nested_parent(self):
        assert normalize_category({"id": 2, "name_en": "x", "parent": {"id": 1}}).parent == 1

    def test_canonical_names(self):
        cat = normalize_category({"id": 2, "name_primary": "Minutes", "parent": None})
        assert cat.name_primary == "Minutes"
        assert cat.parent is None

    def test_parse_categories(self):
        cats = parse_categories([{"id": 1, "name_en": "a"}, {"id": 2, "name_en": "b", "parent": 1}])
        assert [c.id for c in cats] == [1, 2]


class TestNormalizeDocument:
    def test_wire_fields(self):
        doc = normalize_document({
            "id": 9,
            "title_en": "Charter",
            "title_am": "ቻርተር",
            "file_type": "docx",
            "file_size": "2048",
            "category_id": 3,
            "visibility": "member",
            "created_at": "2024-01-01T00:00:00Z",
            "tags": [{"id": 1, "name": "legal"}, "bogus"],
        })
        assert doc.title_primary == "Charter"
        assert doc.title_secondary == "ቻርተር"
        assert doc.file_type is FileType.DOC
        assert doc.file_size == 2048
        assert doc.category == 3
        assert doc.visibility is Visibility.MEMBER
        assert [t.name for t in doc.tags] == ["legal"]

    def test_unknown_visibility_is_most_restrictive(self):
        doc = normalize_document({"id": 1, "visibility": "board_only"})
        assert doc.visibility is Visibility.EXECUTIVE

    def test_missing_visibility_is_public(self):
        assert normalize_document({"id": 1}).visibility is Visibility.PUBLIC

    def test_negative_size_clamped(self):
        assert normalize_document({"id": 1, "file_size": -5}).file_size == 0

    def test_bad_date_becomes_none(self):
        assert normalize_document({"id": 1, "created_at": "yesterday"}).created_at is None

    @pytest.mark.parametrize("raw,expected", [
        ({"category_id": 4}, 4),
        ({"category_id": 4, "category": 9}, 4),
        ({"category": {"id": 5, "name": "x"}}, 5),
        ({"category": "6"}, 6),
        ({"category": None}, None),
        ({}, None),
    ])
    def test_document_category_id(self, raw, expected):
        assert document_category_id(raw) == expected


class TestFormatFileSize:
    @pytest.mark.parametrize("size,expected", [
        (None, "—"),
        (0, "—"),
        (512, "512 B"),
        (1536, "1.5 KB"),
        (20 * 1024, "20 KB"),
        (5 * 1024 * 1024, "5.0 MB"),
    ])
    def test_format(self, size, expected):
        assert format_file_size(size) == expected
