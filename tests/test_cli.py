"""Unit tests for docarchive.cli — command parsing and execution."""

import json

import pytest

import docarchive.cli as cli_mod
from docarchive.cli import main
from docarchive.engine.logging import FileLogger
from docarchive.store import client as client_mod


@pytest.fixture(autouse=True)
def _isolated_cwd(tmp_path, monkeypatch):
    """Keep config auto-discovery away from any docarchive.yaml on disk."""
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def local(json_exports):
    return ["--categories", str(json_exports["categories"]), "--documents", str(json_exports["documents"])]


@pytest.fixture
def patched_store(monkeypatch, fake_store):
    """Route every ArchiveStoreClient the CLI creates to the fake store."""
    real = client_mod.ArchiveStoreClient

    def factory(config=None, transport=None, token=None):
        return real(config, transport=fake_store.transport(), token=token)

    monkeypatch.setattr(client_mod, "ArchiveStoreClient", factory)
    return fake_store


class TestCLIParsing:
    def test_module_has_expected_commands(self):
        for name in ("cmd_tree", "cmd_documents", "cmd_check", "cmd_download", "cmd_run"):
            assert hasattr(cli_mod, name)

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "docarchive" in capsys.readouterr().out

    def test_unknown_role_rejected(self, local):
        with pytest.raises(SystemExit):
            main(["tree", "--role", "guest", *local])


class TestCmdTree:
    def test_collapsed_public_tree(self, local, capsys):
        assert main(["tree", *local]) == 0
        assert capsys.readouterr().out.splitlines() == [
            "[+] Reports (#1, 1 file(s))",
            "[+] Minutes (#2, 0 file(s))",
            "[+] Policies (#6, 0 file(s))",
            "    Welcome Pack [image, —]",
        ]

    def test_expand(self, local, capsys):
        assert main(["tree", "--expand", "1", *local]) == 0
        out = capsys.readouterr().out.splitlines()
        assert out[:4] == [
            "[-] Reports (#1, 1 file(s))",
            "  [+] Annual (#3, 0 file(s))",
            "  [+] Quarterly (#4, 1 file(s))",
            "      Reports Index [pdf, —]",
        ]

    def test_expand_all_as_executive(self, local, capsys):
        assert main(["tree", "--expand-all", "--role", "member", "--member-type", "executive", *local]) == 0
        out = capsys.readouterr().out
        assert "Board Minutes" in out
        assert "Annual Report 2023" not in out

    def test_search(self, local, capsys):
        assert main(["tree", "--expand-all", "--search", "summary", *local]) == 0
        out = capsys.readouterr().out
        assert "Q1 Summary" in out
        assert "Reports Index" not in out

    def test_from_store(self, patched_store, capsys):
        assert main(["tree", "--store", "http://store.test/api"]) == 0
        assert "[+] Reports (#1, 1 file(s))" in capsys.readouterr().out
        paths = {r.url.path for r in patched_store.requests}
        assert paths == {"/api/archive/", "/api/archive/categories/"}

    def test_hierarchy_issues_logged(self, tmp_path, capsys):
        categories = tmp_path / "broken.json"
        categories.write_text(json.dumps([{"id": 1, "name_en": "Lost", "parent": 9}]), encoding="utf-8")
        log_dir = tmp_path / "logs"
        assert main(["--log-dir", str(log_dir), "tree", "--categories", str(categories)]) == 0
        entries = FileLogger(str(log_dir)).read("categories", "data_quality")
        assert entries[0]["event"] == "hierarchy_orphan"


class TestCmdDocuments:
    def test_all_files(self, local, capsys):
        assert main(["documents", *local]) == 0
        out = capsys.readouterr().out
        assert out.startswith("Resources: All Files (scope: public)")
        assert "  [dir] Reports" in out
        assert "Reports Index" in out
        assert "2 document(s)" in out

    def test_category_breadcrumb(self, local, capsys):
        assert main(["documents", "--category", "5", *local]) == 0
        out = capsys.readouterr().out
        assert out.startswith("Resources: Reports / Annual / 2023 (scope: public)")
        assert "Annual Report 2023" in out
        assert "1 document(s)" in out

    def test_json_member_scope(self, local, capsys):
        assert main(["documents", "--role", "member", "--member-type", "executive", "--category", "2", "--json", *local]) == 0
        docs = json.loads(capsys.readouterr().out)
        assert [d["id"] for d in docs] == [103]
        assert docs[0]["visibility"] == "executive"

    def test_sort_ascending_by_name(self, local, capsys):
        assert main(["documents", "--role", "admin", "--sort", "name", "--asc", "--json", *local]) == 0
        titles = [d["title_primary"] for d in json.loads(capsys.readouterr().out)]
        assert titles == sorted(titles, key=str.casefold)

    def test_personal_title(self, local, capsys):
        args = ["documents", "--role", "member", "--member-type", "general_assembly", "--mode", "personal", *local]
        assert main(args) == 0
        assert capsys.readouterr().out.startswith("General Assembly Resources: All Files (scope: personal)")

    def test_unknown_category(self, local, capsys):
        assert main(["documents", "--category", "404", *local]) == 1
        assert "[ERROR] Unknown category 404" in capsys.readouterr().err

    def test_unknown_file_type(self, local, capsys):
        assert main(["documents", "--file-type", "spreadsheet", *local]) == 1
        assert "spreadsheet" in capsys.readouterr().err

    def test_bad_export(self, tmp_path, capsys):
        bad = tmp_path / "bad.json"
        bad.write_text('"nope"', encoding="utf-8")
        assert main(["documents", "--documents", str(bad)]) == 1
        assert "expected a list of records" in capsys.readouterr().err


class TestCmdCheck:
    def test_clean(self, local, capsys):
        assert main(["check", *local]) == 0
        out = capsys.readouterr().out
        assert "Checked 6 categories" in out
        assert "[OK] Hierarchy is clean" in out

    def test_malformed(self, tmp_path, capsys):
        path = tmp_path / "categories.json"
        path.write_text(json.dumps([
            {"id": 1, "name_en": "A", "parent": 2},
            {"id": 2, "name_en": "B", "parent": 1},
            {"id": 3, "name_en": "C", "parent": 3},
            {"id": 4, "name_en": "D", "parent": 40},
        ]), encoding="utf-8")
        assert main(["check", "--categories", str(path)]) == 1
        out = capsys.readouterr().out
        assert "[WARN] Orphan: category 4 references missing parent 40" in out
        assert "[WARN] Self reference: category 3 is its own parent" in out
        assert "[WARN] Cycle: 1 -> 2 -> 1" in out
        assert "3 categories shown as root" in out

    def test_json(self, tmp_path, capsys):
        path = tmp_path / "categories.json"
        path.write_text(json.dumps({"results": [{"id": 1, "name_en": "A"}, {"id": 1, "name_en": "B"}]}), encoding="utf-8")
        assert main(["check", "--json", "--categories", str(path)]) == 1
        assert json.loads(capsys.readouterr().out)["duplicates"] == [1]


class TestCmdDownload:
    def test_download(self, patched_store, tmp_path, capsys):
        output = tmp_path / "charter.pdf"
        assert main(["download", "102", "--store", "http://store.test/api", "-o", str(output)]) == 0
        assert output.read_bytes() == b"%PDF-1.4 fake"
        assert "Saved" in capsys.readouterr().out
        assert patched_store.requests[0].url.path == "/api/archive/102/download/"

    def test_member_endpoint(self, patched_store, tmp_path):
        main(["download", "103", "--mode", "member", "--store", "http://store.test/api", "-o", str(tmp_path / "x")])
        assert patched_store.requests[0].url.path == "/api/members/archive/103/download/"

    def test_store_error(self, patched_store, capsys):
        patched_store.fail["GET /archive/7/download/"] = (404, {"detail": "Not found."})
        assert main(["download", "7", "--store", "http://store.test/api"]) == 1
        assert "[ERROR] Not found." in capsys.readouterr().err


class TestCmdRun:
    def test_reflex_missing(self, monkeypatch, capsys):
        import subprocess

        def missing(*args, **kwargs):
            raise FileNotFoundError("reflex")

        monkeypatch.setattr(subprocess, "run", missing)
        assert main(["run"]) == 1
        assert "'reflex' command not found" in capsys.readouterr().out
