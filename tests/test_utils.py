"""Tests for shared helpers."""

import io
import zipfile

from cv_platform.schemas import FileUpdate
from cv_platform.utils import (
    guess_language_from_filename,
    load_prompt,
    make_zip_bytes,
    merge_file_updates,
    normalize_path,
    safe_project_name,
)


class TestNormalizePath:

    def test_adds_leading_slash(self):
        assert normalize_path("src/App.tsx") == "/src/App.tsx"

    def test_strips_dot_slash_and_quotes(self):
        assert normalize_path(" './src/App.tsx' ") == "/src/App.tsx"

    def test_windows_separators_and_duplicates(self):
        assert normalize_path("src\\\\components//Hero.tsx") == "/src/components/Hero.tsx"


class TestMergeFileUpdates:

    def test_replaces_and_adds(self):
        files = {"/a.ts": "old", "/b.ts": "keep"}
        merged = merge_file_updates(files, [FileUpdate(path="/a.ts", content="new"), FileUpdate(path="/c.ts", content="c")])
        assert merged == {"/a.ts": "new", "/b.ts": "keep", "/c.ts": "c"}

    def test_input_is_not_mutated(self):
        files = {"/a.ts": "old"}
        merge_file_updates(files, [FileUpdate(path="/a.ts", content="new")])
        assert files == {"/a.ts": "old"}

    def test_last_write_wins(self):
        updates = [FileUpdate(path="/a.ts", content="1"), FileUpdate(path="a.ts", content="2")]
        assert merge_file_updates({}, updates) == {"/a.ts": "2"}


class TestMakeZipBytes:

    def test_entries_are_relative(self):
        data = make_zip_bytes({"/src/App.tsx": "app", "/index.html": "<html></html>"})
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            assert sorted(zf.namelist()) == ["index.html", "src/App.tsx"]
            assert zf.read("src/App.tsx").decode() == "app"


class TestGuessLanguage:

    def test_known_extensions(self):
        assert guess_language_from_filename("/src/App.tsx") == "tsx"
        assert guess_language_from_filename("/src/index.css") == "css"
        assert guess_language_from_filename("/package.json") == "json"

    def test_special_and_unknown(self):
        assert guess_language_from_filename(".gitignore") == "text"
        assert guess_language_from_filename("/Dockerfile") == "text"


class TestSafeProjectName:

    def test_person_name(self):
        assert safe_project_name("Ada Lovelace") == "ada_lovelace"

    def test_empty_falls_back(self):
        assert safe_project_name("!!!") == "portfolio_site"


class TestLoadPrompt:

    def test_prompts_ship_with_package(self):
        for name in ("editor_system.txt", "technical_constraints.txt", "motion_system.txt", "builder_system.txt"):
            assert load_prompt(name).strip()
