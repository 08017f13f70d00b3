"""
LangGraph implementation of one editing turn.

Nodes:
- compose_node: Records the thinking step and builds the prompt context
- generate_node: Calls the model
- parse_node: Splits the reply into prose and file updates
- validate_node: Runs the static validator on the updates
- repair_node: Single auto-fix pass plus re-validation (only when something is fixable)
- complete_node: Records the summary step

Any exception propagates out of the graph; the orchestrator turns it into a
failed turn.
"""

import time
from typing import List, Literal, Optional, Sequence

import structlog
from langgraph.graph import END, StateGraph

from cv_platform.llm.openai_client import ModelClient
from cv_platform.parser import format_file_blocks, parse_reply
from cv_platform.repair import auto_fix_errors
from cv_platform.schemas import ChatTurn, ProjectFileSet, SelectedElement, ThoughtStep, ValidationError
from cv_platform.state import TurnState
from cv_platform.utils import load_prompt
from cv_platform.validator import detect_errors, has_fixable


logger = structlog.get_logger(__name__)


# =============================================================================
# PROMPT COMPOSITION
# =============================================================================

def compose_system_prompt() -> str:
    """Persona prompt followed by the constraint and motion reference documents."""
    return "\n\n".join([
        load_prompt("editor_system.txt").strip(),
        load_prompt("technical_constraints.txt").strip(),
        load_prompt("motion_system.txt").strip(),
    ])


def describe_selection(selection: SelectedElement) -> str:
    """Bracketed instruction steering the edit toward the selected element."""
    text = f"[CONTEXT: User has selected a <{selection.tag}> element"
    if selection.id:
        text += f' with id="{selection.id}"'
    if selection.text_content:
        text += f' containing text "{selection.text_content}"'
    return text + ". Focus your changes on this specific element.]"


def build_context_message(
    files: ProjectFileSet,
    user_message: str,
    selection: Optional[SelectedElement] = None,
) -> str:
    """
    Build the final user turn: the whole codebase followed by the request.

    Args:
        files: Current project files
        user_message: What the user asked for
        selection: Element picked in the preview, if any
    """
    request = user_message
    if selection is not None:
        request = f"{user_message}\n\n{describe_selection(selection)}"

    return f"""## CURRENT CODEBASE STATE
{format_file_blocks(files)}

## USER REQUEST
{request}
"""


def trim_history(history: Sequence[ChatTurn], max_turns: Optional[int]) -> List[ChatTurn]:
    """Keep the most recent `max_turns` messages (all of them when None)."""
    if not max_turns:
        return list(history)
    return list(history[-max_turns:])


def _error_details(errors: Sequence[ValidationError]) -> List[str]:
    return [f"{error.file}: {error.message}" for error in errors]


def _elapsed(since: float) -> float:
    return round(time.perf_counter() - since, 2)


# =============================================================================
# GRAPH NODES
# =============================================================================

def make_compose_node(system_prompt: str, max_history_turns: Optional[int] = None):
    def compose_node(state: TurnState) -> TurnState:
        """Record the thinking step and compose the prompt."""
        messages = state["messages"]
        if not messages or messages[-1].role != "user":
            raise ValueError("The last message of a turn must come from the user")

        state["thought_steps"] = [
            *state.get("thought_steps", []),
            ThoughtStep.create("thinking", "Analyzing your request...", duration=0),
        ]
        state["system_prompt"] = system_prompt
        state["history"] = trim_history(messages[:-1], max_history_turns)
        state["context_message"] = build_context_message(
            state.get("current_files", {}),
            messages[-1].content,
            state.get("selection"),
        )
        return state

    return compose_node


def make_generate_node(client: ModelClient):
    def generate_node(state: TurnState) -> TurnState:
        """Invoke the model with the history plus the composed context."""
        started = time.perf_counter()
        conversation = [*state["history"], ChatTurn(role="user", content=state["context_message"])]

        state["reply"] = client.complete(conversation, state["system_prompt"])
        state["thought_steps"] = [
            *state["thought_steps"],
            ThoughtStep.create("generating", "Generating code changes...", duration=_elapsed(started)),
        ]
        return state

    return generate_node


def parse_node(state: TurnState) -> TurnState:
    """Split the reply into the natural-language message and file updates."""
    parsed = parse_reply(state["reply"])
    state["natural_message"] = parsed.natural_message
    state["updates"] = parsed.updates
    logger.info("reply_parsed", files=[update.path for update in parsed.updates])
    return state


def validate_node(state: TurnState) -> TurnState:
    """Run the static validator over this turn's updates."""
    started = time.perf_counter()
    errors = detect_errors(state["updates"])

    state["errors"] = errors
    state["thought_steps"] = [
        *state["thought_steps"],
        ThoughtStep.create(
            "validating",
            "Checking for errors..." if errors else "No issues found",
            duration=_elapsed(started),
            details=_error_details(errors),
        ),
    ]
    return state


def repair_node(state: TurnState) -> TurnState:
    """Single auto-fix pass, then re-validate for reporting only."""
    fixable = [error for error in state["errors"] if error.fixable]
    started = time.perf_counter()

    repaired = auto_fix_errors(state["updates"], state["errors"])
    remaining = detect_errors(repaired)

    state["updates"] = repaired
    state["errors"] = remaining
    state["fix_attempts"] = state.get("fix_attempts", 0) + 1
    state["thought_steps"] = [
        *state["thought_steps"],
        ThoughtStep.create(
            "fixing",
            f"Auto-fixing {len(fixable)} issue{'s' if len(fixable) != 1 else ''}...",
            duration=_elapsed(started),
            details=[error.message for error in fixable],
        ),
    ]
    logger.info("repair_pass_completed", fixed=len(fixable), remaining=len(remaining))
    return state


def complete_node(state: TurnState) -> TurnState:
    """Record the summary step."""
    count = len({update.path for update in state["updates"]})
    state["thought_steps"] = [
        *state["thought_steps"],
        ThoughtStep.create(
            "complete",
            f"Updated {count} file{'s' if count != 1 else ''}",
            duration=_elapsed(state["started_at"]),
        ),
    ]
    return state


# =============================================================================
# ROUTING
# =============================================================================

def after_validate_route(state: TurnState) -> Literal["repair_node", "complete_node"]:
    """Repair only when at least one finding is fixable."""
    if has_fixable(state.get("errors", [])):
        return "repair_node"
    return "complete_node"


# =============================================================================
# GRAPH CONSTRUCTION
# =============================================================================

def build_graph(
    client: ModelClient,
    system_prompt: Optional[str] = None,
    max_history_turns: Optional[int] = None,
) -> StateGraph:
    """
    Build the turn graph around an injected model client.

    Args:
        client: Model capability used by the generate node
        system_prompt: Override for the composed system prompt
        max_history_turns: Optional cap on prior messages sent to the model
    """
    graph = StateGraph(TurnState)

    # Add nodes
    graph.add_node("compose_node", make_compose_node(system_prompt or compose_system_prompt(), max_history_turns))
    graph.add_node("generate_node", make_generate_node(client))
    graph.add_node("parse_node", parse_node)
    graph.add_node("validate_node", validate_node)
    graph.add_node("repair_node", repair_node)
    graph.add_node("complete_node", complete_node)

    # Set entry point
    graph.set_entry_point("compose_node")

    graph.add_edge("compose_node", "generate_node")
    graph.add_edge("generate_node", "parse_node")
    graph.add_edge("parse_node", "validate_node")

    graph.add_conditional_edges(
        "validate_node",
        after_validate_route,
        {
            "repair_node": "repair_node",
            "complete_node": "complete_node",
        }
    )

    # Terminal edges
    graph.add_edge("repair_node", "complete_node")
    graph.add_edge("complete_node", END)

    return graph
