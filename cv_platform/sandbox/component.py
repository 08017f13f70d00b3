"""
Preview Frame - Streamlit component hosting the preview document.

The component page (frontend/index.html) loads the preview document into a
sandboxed iframe, forwards the visual-edit toggle into it and relays
ELEMENT_SELECTED / PREVIEW_ERROR messages back to the app as the
component value.
"""

from pathlib import Path
from typing import Any, Dict, Optional

import streamlit.components.v1 as components


FRONTEND_DIR = Path(__file__).parent / "frontend"

# Same restrictions the editor used for its preview iframe
IFRAME_SANDBOX = "allow-scripts allow-popups allow-forms allow-modals"

_preview_component = components.declare_component("cv_preview", path=str(FRONTEND_DIR))


def preview_frame(
    html: str,
    visual_edit: bool = False,
    height: int = 720,
    key: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """
    Render the preview.

    Args:
        html: Document from build_preview_document
        visual_edit: Whether element selection is switched on
        height: Frame height in pixels
        key: Streamlit widget key

    Returns:
        Last message relayed from the frame (with a `nonce`), or None
    """
    return _preview_component(
        html=html,
        visual_edit=visual_edit,
        height=height,
        sandbox=IFRAME_SANDBOX,
        key=key,
        default=None,
    )
