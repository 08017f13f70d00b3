"""
Conversation Orchestrator - drives one editing turn end-to-end.

Provides:
- ConversationOrchestrator: runs the turn graph around an injected model client
- handle_chat_request: the request/response Turn API used by the UI layer
"""

import threading
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

import structlog
from pydantic import ValidationError as PayloadError

from cv_platform.config import Config
from cv_platform.graph import build_graph
from cv_platform.llm.openai_client import ChatModelClient, ModelClient
from cv_platform.schemas import (
    ChatTurn,
    SelectedElement,
    ThoughtStep,
    TurnRequest,
    TurnResponse,
    TurnResult,
)
from cv_platform.state import TurnState, create_initial_state
from cv_platform.utils import merge_file_updates


logger = structlog.get_logger(__name__)

GENERIC_FAILURE_MESSAGE = "I encountered an error while processing your request."


class TurnInProgressError(RuntimeError):
    """Raised when a turn is started while another one is still running."""
    pass


# =============================================================================
# ORCHESTRATOR
# =============================================================================

class ConversationOrchestrator:
    """
    Runs user turns one at a time.

    The caller's file mapping is never modified: a successful turn returns a
    new merged mapping, a failed turn returns an unchanged copy of it.
    """

    def __init__(
        self,
        client: ModelClient,
        max_history_turns: Optional[int] = None,
        system_prompt: Optional[str] = None,
    ):
        self.client = client
        self._graph = build_graph(client, system_prompt=system_prompt, max_history_turns=max_history_turns).compile()
        self._lock = threading.Lock()

    @property
    def busy(self) -> bool:
        """True while a turn is in flight."""
        return self._lock.locked()

    def run_turn(
        self,
        messages: Sequence[ChatTurn],
        current_files: Mapping[str, str],
        selection: Optional[SelectedElement] = None,
    ) -> TurnResult:
        """
        Run one turn.

        Args:
            messages: Full conversation, current user message last
            current_files: Project files before the turn
            selection: Element picked in the preview, if any

        Returns:
            TurnResult; `success` is False when the turn failed and nothing was applied
            (`files` is then a copy of current_files)

        Raises:
            TurnInProgressError: If another turn of this orchestrator is running
        """
        if not self._lock.acquire(blocking=False):
            raise TurnInProgressError("A turn is already in progress")
        try:
            return self._run(messages, current_files, selection)
        finally:
            self._lock.release()

    def _run(
        self,
        messages: Sequence[ChatTurn],
        current_files: Mapping[str, str],
        selection: Optional[SelectedElement],
    ) -> TurnResult:
        state = create_initial_state(messages, current_files, selection)
        last: TurnState = state

        try:
            for snapshot in self._graph.stream(state, stream_mode="values"):
                last = snapshot
        except Exception as e:
            logger.error("turn_failed", error=str(e), exc_info=True)
            steps = [
                *last.get("thought_steps", []),
                ThoughtStep.create("error", f"Error: {e}"),
            ]
            return TurnResult(
                natural_message=GENERIC_FAILURE_MESSAGE,
                files=dict(current_files),
                thought_steps=steps,
                success=False,
            )

        updates = last.get("updates", [])
        result = TurnResult(
            natural_message=last.get("natural_message", ""),
            updates=updates,
            files=merge_file_updates(current_files, updates),
            thought_steps=last.get("thought_steps", []),
            errors=last.get("errors", []),
            fix_attempts=last.get("fix_attempts", 0),
        )
        logger.info(
            "turn_completed",
            files_changed=len(updates),
            warnings=len(result.warnings),
            fix_attempts=result.fix_attempts,
        )
        return result


def create_orchestrator(config: Config) -> ConversationOrchestrator:
    """Build an orchestrator with a model client configured from the environment."""
    return ConversationOrchestrator(
        ChatModelClient.from_config(config),
        max_history_turns=config.max_history_turns,
    )


# =============================================================================
# TURN API
# =============================================================================

def handle_chat_request(
    orchestrator: ConversationOrchestrator,
    payload: Mapping[str, Any],
) -> Tuple[int, Dict[str, Any]]:
    """
    Request/response entry point for the UI layer.

    Args:
        orchestrator: Orchestrator to run the turn on
        payload: `{messages, currentFiles, selectionContext?}`

    Returns:
        (status, body) where body is `{message, files, thoughtSteps,
        validationErrors, fixAttempts, filesChanged}`. Status is 200 on
        success, 500 with the partial trace on failure, 400 for a malformed
        payload and 409 while another turn is running.
    """
    try:
        request = TurnRequest.model_validate(payload)
    except PayloadError as e:
        logger.warning("turn_request_invalid", errors=e.error_count())
        body = TurnResponse(
            message="Invalid request.",
            thought_steps=[ThoughtStep.create("error", f"Invalid request: {e.error_count()} problem(s)")],
        )
        return 400, body.model_dump(by_alias=True)

    try:
        result = orchestrator.run_turn(request.messages, request.current_files, request.selection_context)
    except TurnInProgressError as e:
        body = TurnResponse(message=str(e), thought_steps=[ThoughtStep.create("error", str(e))])
        return 409, body.model_dump(by_alias=True)

    changed = {update.path: update.content for update in result.updates}
    body = TurnResponse(
        message=result.natural_message,
        files=changed,
        thought_steps=result.thought_steps,
        validation_errors=result.errors,
        fix_attempts=result.fix_attempts,
        files_changed=len(changed),
    )
    return (200 if result.success else 500), body.model_dump(by_alias=True)
