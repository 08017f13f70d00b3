"""
State definitions for the LangGraph turn workflow.
"""

import time
from typing import List, Mapping, Optional, Sequence, TypedDict

from cv_platform.schemas import (
    ChatTurn,
    FileUpdate,
    ProjectFileSet,
    SelectedElement,
    ThoughtStep,
    ValidationError,
)


class TurnState(TypedDict, total=False):
    """
    Typed state dictionary for one conversation turn.
    
    Nodes return the whole state; lists are replaced, never appended in place,
    so every streamed snapshot stays a consistent trace.
    """
    # Inputs (read-only during the turn)
    messages: List[ChatTurn]
    current_files: ProjectFileSet
    selection: Optional[SelectedElement]
    
    # Prompt composition
    system_prompt: str
    history: List[ChatTurn]
    context_message: str
    
    # Model output
    reply: str
    natural_message: str
    updates: List[FileUpdate]
    
    # Validation / repair
    errors: List[ValidationError]
    fix_attempts: int
    
    # Trace
    thought_steps: List[ThoughtStep]
    started_at: float


def create_initial_state(
    messages: Sequence[ChatTurn],
    current_files: Mapping[str, str],
    selection: Optional[SelectedElement] = None,
) -> TurnState:
    """
    Create the initial state for one turn.
    
    Args:
        messages: Full conversation, current user message last
        current_files: Project files before the turn
        selection: Element picked in the preview, if any
        
    Returns:
        Initialized TurnState
    """
    return TurnState(
        messages=list(messages),
        current_files=dict(current_files),
        selection=selection,
        system_prompt="",
        history=[],
        context_message="",
        reply="",
        natural_message="",
        updates=[],
        errors=[],
        fix_attempts=0,
        thought_steps=[],
        started_at=time.perf_counter(),
    )
