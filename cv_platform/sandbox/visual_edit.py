"""
Visual Editing - element selection inside the preview frame.

This module handles:
- The in-frame script that outlines hovered/selected elements and reports clicks
- SelectionTracker: host-side state fed by messages coming out of the frame

Messages crossing the frame boundary:
- inbound  {type: VISUAL_EDITING_TOGGLE, enabled}
- outbound {type: VISUAL_EDITING_READY}
- outbound {type: ELEMENT_SELECTED, payload: SelectedElement}
- outbound {type: PREVIEW_ERROR, kind, message, file}
"""

from typing import Any, Dict, List, Mapping, Optional

import structlog
from pydantic import ValidationError as PayloadError

from cv_platform.schemas import SelectedElement


logger = structlog.get_logger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

MSG_TOGGLE = "VISUAL_EDITING_TOGGLE"
MSG_READY = "VISUAL_EDITING_READY"
MSG_ELEMENT_SELECTED = "ELEMENT_SELECTED"
MSG_PREVIEW_ERROR = "PREVIEW_ERROR"

HOVER_OUTLINE = "2px solid #3b82f6"
SELECTED_OUTLINE = "2px solid #f59e0b"
TEXT_PREVIEW_LENGTH = 50


# =============================================================================
# HOST SIDE
# =============================================================================

class SelectionTracker:
    """
    Host-side view of the preview frame.

    Holds the current selection until the next turn completes or visual
    editing is switched off.
    """

    def __init__(self):
        self.enabled = False
        self.ready = False
        self.selection: Optional[SelectedElement] = None
        self.errors: List[Dict[str, Any]] = []

    def set_enabled(self, enabled: bool) -> Dict[str, Any]:
        """Record the toggle and return the message to send into the frame."""
        self.enabled = enabled
        if not enabled:
            self.selection = None
        return {"type": MSG_TOGGLE, "enabled": enabled}

    def handle_event(self, message: Mapping[str, Any]) -> Optional[SelectedElement]:
        """
        Apply an outbound message from the frame.

        Returns:
            The new selection when the message selected an element
        """
        kind = message.get("type")
        if kind == MSG_READY:
            self.ready = True
            self.errors = []
        elif kind == MSG_ELEMENT_SELECTED and self.enabled:
            try:
                self.selection = SelectedElement.model_validate(message.get("payload") or {})
            except PayloadError as e:
                logger.warning("selection_payload_invalid", errors=e.error_count())
                return None
            return self.selection
        elif kind == MSG_PREVIEW_ERROR:
            self.errors.append(dict(message))
        return None

    def clear_after_turn(self) -> None:
        self.selection = None


# =============================================================================
# IN-FRAME SCRIPT
# =============================================================================

VISUAL_EDIT_SCRIPT = r"""
(function () {
  var HOVER_OUTLINE = '__HOVER_OUTLINE__';
  var SELECTED_OUTLINE = '__SELECTED_OUTLINE__';
  var TEXT_LIMIT = __TEXT_LIMIT__;
  var enabled = false;
  var hovered = null;
  var selected = null;
  var savedOutlines = new WeakMap();

  function post(message) {
    try { window.parent.postMessage(message, '*'); } catch (e) {}
  }

  function isRoot(el) {
    return !el || el.nodeType !== 1 || el === document.body || el === document.documentElement ||
      el.id === 'root' || (el.closest && el.closest('#__preview_overlay'));
  }

  function remember(el) {
    if (!savedOutlines.has(el)) savedOutlines.set(el, el.style.outline || '');
  }

  function restore(el) {
    if (!el) return;
    el.style.outline = savedOutlines.has(el) ? savedOutlines.get(el) : '';
    savedOutlines.delete(el);
  }

  function classNameOf(el) {
    return (el.getAttribute && el.getAttribute('class')) || '';
  }

  function selectorPath(el) {
    if (el.id) return '#' + el.id;
    var tag = el.tagName.toLowerCase();
    var first = classNameOf(el).trim().split(/\s+/)[0];
    return first ? tag + '.' + first : tag;
  }

  function clearHover() {
    if (hovered && hovered !== selected) restore(hovered);
    hovered = null;
  }

  function onOver(event) {
    var el = event.target;
    if (isRoot(el) || el === selected) return;
    clearHover();
    hovered = el;
    remember(el);
    el.style.outline = HOVER_OUTLINE;
  }

  function onOut(event) {
    if (event.target === hovered) clearHover();
  }

  function onClick(event) {
    var el = event.target;
    if (isRoot(el)) return;
    event.preventDefault();
    event.stopPropagation();
    if (selected && selected !== el) restore(selected);
    if (hovered === el) hovered = null;
    selected = el;
    remember(el);
    el.style.outline = SELECTED_OUTLINE;
    var text = (el.textContent || '').trim().slice(0, TEXT_LIMIT);
    post({
      type: 'ELEMENT_SELECTED',
      payload: {
        tag: el.tagName.toLowerCase(),
        id: el.id || null,
        className: classNameOf(el) || null,
        textContent: text || null,
        selectorPath: selectorPath(el)
      }
    });
  }

  function enable() {
    if (enabled) return;
    enabled = true;
    document.body.style.cursor = 'crosshair';
    document.addEventListener('mouseover', onOver, true);
    document.addEventListener('mouseout', onOut, true);
    document.addEventListener('click', onClick, true);
  }

  function disable() {
    enabled = false;
    document.body.style.cursor = '';
    document.removeEventListener('mouseover', onOver, true);
    document.removeEventListener('mouseout', onOut, true);
    document.removeEventListener('click', onClick, true);
    restore(hovered);
    restore(selected);
    hovered = null;
    selected = null;
  }

  window.addEventListener('message', function (event) {
    var data = event.data;
    if (data && data.type === 'VISUAL_EDITING_TOGGLE') {
      if (data.enabled) enable(); else disable();
    }
  });

  post({ type: 'VISUAL_EDITING_READY' });
})();
"""


def render_visual_edit_script() -> str:
    """In-frame script with the outline styles filled in."""
    return (
        VISUAL_EDIT_SCRIPT
        .replace("__HOVER_OUTLINE__", HOVER_OUTLINE)
        .replace("__SELECTED_OUTLINE__", SELECTED_OUTLINE)
        .replace("__TEXT_LIMIT__", str(TEXT_PREVIEW_LENGTH))
    )
