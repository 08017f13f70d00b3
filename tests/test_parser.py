"""Tests for splitting model replies into prose and file updates."""

from cv_platform.parser import format_file_blocks, match_file_marker, parse_reply
from cv_platform.schemas import FileUpdate


class TestMatchFileMarker:
    """Marker lines are case-insensitive and whitespace tolerant."""

    def test_plain_marker(self):
        assert match_file_marker("### FILE: /src/App.tsx") == "/src/App.tsx"

    def test_spacing_and_trailing_hashes(self):
        assert match_file_marker("###   FILE:   /a.tsx   ###") == "/a.tsx"

    def test_lowercase(self):
        assert match_file_marker("### file: /a.tsx") == "/a.tsx"

    def test_relative_path_gets_leading_slash(self):
        assert match_file_marker("### FILE: src/components/Hero.tsx") == "/src/components/Hero.tsx"

    def test_backticked_path(self):
        assert match_file_marker("### FILE: `/src/App.tsx`") == "/src/App.tsx"

    def test_not_a_marker(self):
        assert match_file_marker("## FILE: /a.tsx") is None
        assert match_file_marker("Here is FILE: /a.tsx") is None
        assert match_file_marker("### FILE:") is None


class TestParseReply:
    """Test parse_reply on typical model output."""

    def test_no_markers_is_conversation_only(self):
        result = parse_reply("  Sure, what colour would you like?  \n")
        assert result.updates == []
        assert result.natural_message == "Sure, what colour would you like?"

    def test_empty_reply(self):
        result = parse_reply("")
        assert result.updates == []
        assert result.natural_message == ""

    def test_prose_and_files(self):
        reply = (
            "I made the hero bolder.\n"
            "### FILE: /src/components/Hero.tsx\n"
            "export default function Hero() {}\n"
            "### FILE: /src/index.css\n"
            "body { margin: 0; }\n"
        )
        result = parse_reply(reply)
        assert result.natural_message == "I made the hero bolder."
        assert [u.path for u in result.updates] == ["/src/components/Hero.tsx", "/src/index.css"]
        assert result.updates[0].content == "export default function Hero() {}"
        assert result.updates[1].content == "body { margin: 0; }"

    def test_wrapping_fence_is_stripped(self):
        reply = "### FILE: /src/App.tsx\n```tsx\nexport default 1;\n```\n"
        assert parse_reply(reply).updates[0].content == "export default 1;"

    def test_fence_kept_when_disabled(self):
        reply = "### FILE: /README.md\n```\ncode\n```"
        assert parse_reply(reply, strip_fences=False).updates[0].content == "```\ncode\n```"

    def test_inner_fences_are_kept(self):
        reply = "### FILE: /README.md\n# Title\n```\nnpm run dev\n```\nDone"
        assert parse_reply(reply).updates[0].content == "# Title\n```\nnpm run dev\n```\nDone"

    def test_duplicate_paths_are_kept_in_order(self):
        reply = "### FILE: /a.tsx\none\n### FILE: /a.tsx\ntwo"
        updates = parse_reply(reply).updates
        assert [u.content for u in updates] == ["one", "two"]

    def test_windows_line_endings(self):
        reply = "Done\r\n### FILE: /a.ts\r\nconst a = 1;\r\n"
        result = parse_reply(reply)
        assert result.updates[0].content == "const a = 1;"

    def test_empty_file_body(self):
        result = parse_reply("### FILE: /empty.ts\n### FILE: /b.ts\nx")
        assert result.updates[0].content == ""
        assert result.updates[1].content == "x"


class TestFormatFileBlocks:
    """Serialized blocks parse back to the same files."""

    def test_round_trip_from_mapping(self):
        files = {"/src/App.tsx": "export default function App() {}", "/src/index.css": "body {}"}
        updates = parse_reply(format_file_blocks(files)).updates
        assert {u.path: u.content for u in updates} == files
        assert [u.path for u in updates] == list(files)

    def test_round_trip_from_updates(self):
        updates = [FileUpdate(path="/b.ts", content="b"), FileUpdate(path="/a.ts", content="a")]
        assert parse_reply(format_file_blocks(updates)).updates == updates

    def test_paths_are_normalized(self):
        assert format_file_blocks({"src/a.ts": "x"}).startswith("### FILE: /src/a.ts\n")
