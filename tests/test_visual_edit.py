"""Tests for the visual-edit protocol."""

from cv_platform.sandbox.visual_edit import (
    HOVER_OUTLINE,
    MSG_ELEMENT_SELECTED,
    MSG_PREVIEW_ERROR,
    MSG_READY,
    MSG_TOGGLE,
    SELECTED_OUTLINE,
    SelectionTracker,
    render_visual_edit_script,
)

from node_harness import requires_node, run_visual_edit


@requires_node
class TestInFrameScript:
    """The script shipped into the preview frame, run against a small DOM."""

    def test_selection_round_trip(self, tmp_path):
        out = run_visual_edit(tmp_path, """
var title = el('H1', 'hero-title', 'text-5xl font-bold', '  Ada Lovelace  ');
toggle(true);
results.cursor = document.body.style.cursor;
dispatch('mouseover', title);
results.hover = title.style.outline;
results.prevented = dispatch('click', title);
results.selected = title.style.outline;
""")
        assert out["results"] == {
            "cursor": "crosshair",
            "hover": HOVER_OUTLINE,
            "prevented": True,
            "selected": SELECTED_OUTLINE,
        }
        assert out["posted"] == [
            {"type": MSG_READY},
            {
                "type": MSG_ELEMENT_SELECTED,
                "payload": {
                    "tag": "h1",
                    "id": "hero-title",
                    "className": "text-5xl font-bold",
                    "textContent": "Ada Lovelace",
                    "selectorPath": "#hero-title",
                },
            },
        ]

    def test_disabled_by_default(self, tmp_path):
        out = run_visual_edit(tmp_path, """
var button = el('BUTTON', null, null, 'Go');
dispatch('mouseover', button);
results.prevented = dispatch('click', button);
results.outline = button.style.outline;
""")
        assert out["results"] == {"prevented": False, "outline": ""}
        assert out["posted"] == [{"type": MSG_READY}]

    def test_root_is_ignored(self, tmp_path):
        out = run_visual_edit(tmp_path, """
toggle(true);
dispatch('mouseover', document.body);
results.prevented = dispatch('click', document.body);
results.outline = document.body.style.outline || '';
""")
        assert out["results"] == {"prevented": False, "outline": ""}
        assert len(out["posted"]) == 1

    def test_pointer_out_restores_outline(self, tmp_path):
        out = run_visual_edit(tmp_path, """
var card = el('DIV', null, 'card', '', '1px dotted red');
toggle(true);
dispatch('mouseover', card);
dispatch('mouseout', card);
results.outline = card.style.outline;
""")
        assert out["results"]["outline"] == "1px dotted red"

    def test_selection_survives_hovering_elsewhere(self, tmp_path):
        out = run_visual_edit(tmp_path, """
var title = el('H1');
var card = el('DIV');
toggle(true);
dispatch('click', title);
dispatch('mouseover', card);
results.title = title.style.outline;
results.card = card.style.outline;
""")
        assert out["results"] == {"title": SELECTED_OUTLINE, "card": HOVER_OUTLINE}

    def test_new_click_moves_selection(self, tmp_path):
        out = run_visual_edit(tmp_path, """
var first = el('H1');
var second = el('P', null, 'lead muted', 'x'.repeat(80));
toggle(true);
dispatch('click', first);
dispatch('click', second);
results.first = first.style.outline;
results.second = second.style.outline;
""")
        assert out["results"] == {"first": "", "second": SELECTED_OUTLINE}
        payload = out["posted"][-1]["payload"]
        assert payload["selectorPath"] == "p.lead"
        assert payload["textContent"] == "x" * 50
        assert payload["id"] is None

    def test_bare_tag_selector(self, tmp_path):
        out = run_visual_edit(tmp_path, """
toggle(true);
dispatch('click', el('SPAN'));
""")
        payload = out["posted"][-1]["payload"]
        assert payload["selectorPath"] == "span"
        assert payload["className"] is None
        assert payload["textContent"] is None

    def test_disable_clears_everything(self, tmp_path):
        out = run_visual_edit(tmp_path, """
var title = el('H1');
var card = el('DIV');
toggle(true);
dispatch('click', title);
dispatch('mouseover', card);
toggle(false);
results.title = title.style.outline;
results.card = card.style.outline;
results.cursor = document.body.style.cursor;
results.prevented = dispatch('click', card);
""")
        assert out["results"] == {"title": "", "card": "", "cursor": "", "prevented": False}
        assert [message["type"] for message in out["posted"]] == [MSG_READY, MSG_ELEMENT_SELECTED]

    def test_unknown_messages_are_ignored(self, tmp_path):
        out = run_visual_edit(tmp_path, """
send({ type: 'SOMETHING_ELSE', enabled: true });
results.prevented = dispatch('click', el('H1'));
""")
        assert out["results"]["prevented"] is False


class TestScriptRendering:

    def test_placeholders_filled(self):
        script = render_visual_edit_script()
        assert HOVER_OUTLINE in script
        assert SELECTED_OUTLINE in script
        assert "var TEXT_LIMIT = 50;" in script
        for placeholder in ("__HOVER_OUTLINE__", "__SELECTED_OUTLINE__", "__TEXT_LIMIT__"):
            assert placeholder not in script


class TestSelectionTracker:
    """Host-side handling of frame messages."""

    PAYLOAD = {"tag": "h1", "id": "hero-title", "className": None, "textContent": "Ada", "selectorPath": "#hero-title"}

    def test_toggle_message(self):
        tracker = SelectionTracker()
        assert tracker.set_enabled(True) == {"type": MSG_TOGGLE, "enabled": True}

    def test_selection_when_enabled(self):
        tracker = SelectionTracker()
        tracker.set_enabled(True)
        selection = tracker.handle_event({"type": MSG_ELEMENT_SELECTED, "payload": self.PAYLOAD})
        assert selection is tracker.selection
        assert selection.selector_path == "#hero-title"

    def test_selection_ignored_when_disabled(self):
        tracker = SelectionTracker()
        assert tracker.handle_event({"type": MSG_ELEMENT_SELECTED, "payload": self.PAYLOAD}) is None
        assert tracker.selection is None

    def test_invalid_payload(self):
        tracker = SelectionTracker()
        tracker.set_enabled(True)
        assert tracker.handle_event({"type": MSG_ELEMENT_SELECTED, "payload": {"id": "x"}}) is None
        assert tracker.selection is None

    def test_disable_and_turn_clear_selection(self):
        tracker = SelectionTracker()
        tracker.set_enabled(True)
        tracker.handle_event({"type": MSG_ELEMENT_SELECTED, "payload": self.PAYLOAD})
        tracker.clear_after_turn()
        assert tracker.selection is None

        tracker.handle_event({"type": MSG_ELEMENT_SELECTED, "payload": self.PAYLOAD})
        tracker.set_enabled(False)
        assert tracker.selection is None

    def test_errors_reset_on_ready(self):
        tracker = SelectionTracker()
        tracker.handle_event({"type": MSG_PREVIEW_ERROR, "kind": "compile", "message": "Unexpected token", "file": "/src/App.tsx"})
        assert tracker.errors[0]["kind"] == "compile"
        tracker.handle_event({"type": MSG_READY})
        assert tracker.ready is True
        assert tracker.errors == []
