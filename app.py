"""
CV Platform - Streamlit Application

Chat with the model to build and edit a portfolio site. Every reply goes
through validation and auto-repair before it is applied, and the result is
rendered live in the preview, where elements can be picked for targeted edits.
"""

import streamlit as st

from cv_platform.builder import generate_site
from cv_platform.config import ConfigError, get_config
from cv_platform.llm.openai_client import ChatModelClient
from cv_platform.logging_setup import setup_logging
from cv_platform.orchestrator import TurnInProgressError, create_orchestrator
from cv_platform.sandbox.component import preview_frame
from cv_platform.sandbox.preview import build_preview_document
from cv_platform.sandbox.visual_edit import SelectionTracker
from cv_platform.schemas import (
    Brief,
    ChatTurn,
    ColorPalette,
    MotionProfile,
    Moodboard,
    PersonalInfo,
    StylePreferences,
    ThoughtStep,
    WorkItem,
)
from cv_platform.utils import guess_language_from_filename, make_zip_bytes, merge_file_updates, safe_project_name


# Page configuration
st.set_page_config(
    page_title="CV Platform",
    page_icon="🎨",
    layout="wide",
)

STEP_ICONS = {
    "thinking": "🧠",
    "generating": "✍️",
    "validating": "🔍",
    "fixing": "🔧",
    "complete": "✅",
    "error": "❌",
}


def init_session_state():
    """Initialize session state variables."""
    if "messages" not in st.session_state:
        st.session_state.messages = []
    if "files" not in st.session_state:
        st.session_state.files = {}
    if "site_name" not in st.session_state:
        st.session_state.site_name = "portfolio"
    if "last_steps" not in st.session_state:
        st.session_state.last_steps = []
    if "last_warnings" not in st.session_state:
        st.session_state.last_warnings = []
    if "selection_tracker" not in st.session_state:
        st.session_state.selection_tracker = SelectionTracker()
    if "last_event_nonce" not in st.session_state:
        st.session_state.last_event_nonce = None


@st.cache_resource
def get_orchestrator():
    """One orchestrator per server process; it serializes turns with its own lock."""
    return create_orchestrator(get_config())


def load_config() -> bool:
    """Load configuration and set up logging; show the error if it is missing."""
    try:
        config = get_config()
    except ConfigError as e:
        st.error(f"⚠️ Configuration Error\n\n{str(e)}")
        st.info(
            "Please create a `.env` file in the project root with your OpenRouter API key. "
            "See `.env.example` for reference."
        )
        return False
    setup_logging(config.log_level, config.log_format, config.log_dir)
    return True


def display_thought_steps(steps):
    """Show the trace of the last turn."""
    if not steps:
        return
    with st.expander("🧠 Thought process", expanded=False):
        for step in steps:
            if isinstance(step, dict):
                step = ThoughtStep.model_validate(step)
            icon = STEP_ICONS.get(step.type, "•")
            line = f"{icon} {step.message}"
            if step.duration is not None:
                line += f" _({step.duration:.2f}s)_"
            st.markdown(line)
            for detail in step.details or []:
                st.caption(f"↳ {detail}")


def display_warnings(warnings):
    """Validation errors the repair engine could not fix."""
    for warning in warnings:
        st.warning(f"`{warning.file}`: {warning.message}")


def display_chat():
    """Conversation history plus the trace of the last turn."""
    for message in st.session_state.messages:
        with st.chat_message(message["role"]):
            st.markdown(message["content"])
    display_thought_steps(st.session_state.last_steps)
    display_warnings(st.session_state.last_warnings)


def handle_chat_input():
    """Run one editing turn for the message typed by the user."""
    orchestrator = get_orchestrator()
    tracker: SelectionTracker = st.session_state.selection_tracker

    if tracker.selection is not None:
        st.info(f"🎯 Editing `{tracker.selection.selector_path}`")

    prompt = st.chat_input(
        "Describe a change to your site...",
        disabled=orchestrator.busy,
    )
    if not prompt:
        return

    st.session_state.messages.append({"role": "user", "content": prompt})
    history = [ChatTurn(**message) for message in st.session_state.messages]

    with st.spinner("Working on it..."):
        try:
            result = orchestrator.run_turn(history, st.session_state.files, tracker.selection)
        except TurnInProgressError as e:
            st.session_state.messages.pop()
            st.warning(str(e))
            return

    st.session_state.messages.append({"role": "assistant", "content": result.natural_message or "Done."})
    st.session_state.files = result.files
    st.session_state.last_steps = result.thought_steps
    st.session_state.last_warnings = result.warnings
    if result.success:
        tracker.clear_after_turn()
    st.rerun()


def display_preview():
    """Live preview with the visual-edit relay."""
    tracker: SelectionTracker = st.session_state.selection_tracker
    files = st.session_state.files
    if not files:
        st.info("👈 Generate a site from the sidebar, or ask for one in the chat.")
        return

    event = preview_frame(
        build_preview_document(files, title=st.session_state.site_name),
        visual_edit=tracker.enabled,
        key="preview",
    )
    if event and event.get("nonce") != st.session_state.last_event_nonce:
        st.session_state.last_event_nonce = event.get("nonce")
        if tracker.handle_event(event) is not None:
            st.rerun()

    for error in tracker.errors:
        st.error(f"Preview {error.get('kind', 'runtime')} error in `{error.get('file') or 'app'}`: {error.get('message')}")


def display_code():
    """Project files, one tab per file."""
    files = st.session_state.files
    if not files:
        st.warning("No files yet.")
        return
    paths = sorted(files)
    tabs = st.tabs(paths)
    for tab, path in zip(tabs, paths):
        with tab:
            st.code(files[path], language=guess_language_from_filename(path), line_numbers=True)


def create_download_button():
    """Download the project as a ZIP file."""
    files = st.session_state.files
    if not files:
        return
    st.download_button(
        label="📥 Download as ZIP",
        data=make_zip_bytes(files),
        file_name=f"{safe_project_name(st.session_state.site_name)}.zip",
        mime="application/zip",
        use_container_width=True,
    )


def display_brief_form():
    """Sidebar form that generates the first version of the site."""
    with st.form("brief_form"):
        name = st.text_input("Name")
        role = st.text_input("Role", placeholder="Product Designer")
        tagline = st.text_input("Tagline")
        bio = st.text_area("Bio")
        email = st.text_input("Email")
        work = st.text_area("Work (one project per line: Title - description)")
        vibe = st.text_input("Vibe", placeholder="Minimal, editorial, lots of whitespace")
        motion = st.selectbox("Motion profile", options=["STUDIO", "TECH", "BOLD"])
        primary = st.color_picker("Primary color", value=ColorPalette().primary)
        submitted = st.form_submit_button("✨ Generate site", use_container_width=True)

    if not submitted:
        return
    if not name.strip() or not role.strip():
        st.error("Name and role are required.")
        return

    items = []
    for line in work.splitlines():
        title, _, description = line.partition(" - ")
        if title.strip():
            items.append(WorkItem(title=title.strip(), description=description.strip()))

    brief = Brief(
        personal=PersonalInfo(name=name.strip(), role=role.strip(), tagline=tagline, bio=bio, email=email or None),
        work=items,
        style=StylePreferences(vibe=vibe),
    )
    moodboard = Moodboard(
        visual_direction=vibe,
        color_palette=ColorPalette(primary=primary),
        motion=MotionProfile(profile=motion),
    )

    with st.spinner("Generating your site..."):
        client = ChatModelClient.from_config(get_config(), builder=True)
        result = generate_site(client, brief, moodboard)

    st.session_state.files = merge_file_updates({}, result.files)
    st.session_state.site_name = brief.personal.name
    st.session_state.messages = []
    st.session_state.last_steps = result.thought_steps
    st.session_state.last_warnings = [error for error in result.validation_errors if not error.fixable]
    st.session_state.selection_tracker.clear_after_turn()
    if not result.success:
        st.session_state.last_warnings = []
        st.warning("Generation failed, a starter site was created instead.")
    st.rerun()


# =============================================================================
# MAIN APPLICATION
# =============================================================================

def main():
    """Main application entry point."""
    init_session_state()

    st.title("🎨 CV Platform")
    st.caption("Build your portfolio by chatting. Pick elements in the preview to edit them directly.")

    if not load_config():
        return

    tracker: SelectionTracker = st.session_state.selection_tracker

    with st.sidebar:
        st.header("New site")
        display_brief_form()

        st.divider()

        st.header("Visual editing")
        enabled = st.toggle("Select elements in the preview", value=tracker.enabled)
        if enabled != tracker.enabled:
            tracker.set_enabled(enabled)
        if tracker.selection is not None:
            st.caption(f"Selected: `{tracker.selection.selector_path}`")
            if st.button("Clear selection", use_container_width=True):
                tracker.clear_after_turn()
                st.rerun()

        st.divider()

        st.header("Session Info")
        st.write(f"💬 Messages: {len(st.session_state.messages)}")
        st.write(f"📁 Files: {len(st.session_state.files)}")
        create_download_button()

        if st.button("🗑️ Clear Session", use_container_width=True):
            for key in ["messages", "files", "last_steps", "last_warnings", "selection_tracker", "last_event_nonce"]:
                st.session_state.pop(key, None)
            st.rerun()

    chat_col, preview_col = st.columns([2, 3])

    with chat_col:
        display_chat()
        handle_chat_input()

    with preview_col:
        preview_tab, code_tab = st.tabs(["🌐 Preview", "💻 Code"])
        with preview_tab:
            display_preview()
        with code_tab:
            display_code()


if __name__ == "__main__":
    main()
