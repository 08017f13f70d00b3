"""
Pydantic schemas shared by the parser, validator, orchestrator and sandbox.
"""

import uuid
from typing import Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field

# Normalized path (always leading slash) -> full file content
ProjectFileSet = Dict[str, str]

StepType = Literal["thinking", "generating", "validating", "fixing", "complete", "error"]


class ChatTurn(BaseModel):
    """A single turn in a conversation."""
    role: Literal["user", "assistant"] = Field(..., description="Role of the speaker")
    content: str = Field(..., description="Message content")


class FileUpdate(BaseModel):
    """Full replacement content for one file."""
    path: str = Field(..., description="Leading-slash normalized file path")
    content: str = Field(..., description="Complete file content")


class ParsedReply(BaseModel):
    """A model reply split into prose and file updates."""
    natural_message: str = Field("", description="Conversational text before the first file marker")
    updates: List[FileUpdate] = Field(default_factory=list, description="File updates in reply order")


class ValidationError(BaseModel):
    """A defect found by the static validator in one file."""
    file: str = Field(..., description="Path of the offending file")
    message: str = Field(..., description="Human readable description")
    fixable: bool = Field(..., description="Whether the repair engine can fix it without the model")
    rule: str = Field("", description="Stable code of the rule that produced it")
    line: Optional[int] = Field(None, description="1-based line of the first occurrence")


class ThoughtStep(BaseModel):
    """One entry of a turn's execution trace (UI only, never sent to the model)."""
    id: str
    type: StepType
    message: str
    duration: Optional[float] = Field(None, description="Seconds spent in this step")
    details: Optional[List[str]] = None

    @classmethod
    def create(
        cls,
        step_type: StepType,
        message: str,
        prefix: str = "chat",
        duration: Optional[float] = None,
        details: Optional[List[str]] = None,
    ) -> "ThoughtStep":
        return cls(
            id=f"{prefix}-{step_type}-{uuid.uuid4().hex[:8]}",
            type=step_type,
            message=message,
            duration=duration,
            details=details,
        )


class SelectedElement(BaseModel):
    """Element picked in the preview while visual editing is on."""
    model_config = ConfigDict(populate_by_name=True)

    tag: str = Field(..., description="Lowercase tag name")
    id: Optional[str] = Field(None, description="Element id attribute")
    class_name: Optional[str] = Field(None, alias="className")
    text_content: Optional[str] = Field(None, alias="textContent", description="Visible text, truncated")
    selector_path: str = Field(..., alias="selectorPath")


class TurnResult(BaseModel):
    """Outcome of one conversation turn."""
    natural_message: str = ""
    updates: List[FileUpdate] = Field(default_factory=list)
    files: ProjectFileSet = Field(default_factory=dict, description="Project files after merging updates")
    thought_steps: List[ThoughtStep] = Field(default_factory=list)
    errors: List[ValidationError] = Field(default_factory=list)
    fix_attempts: int = 0
    success: bool = True

    @property
    def warnings(self) -> List[ValidationError]:
        """Validation defects the repair pass could not remove."""
        return [e for e in self.errors if not e.fixable]


class TurnRequest(BaseModel):
    """Payload accepted by the turn API."""
    model_config = ConfigDict(populate_by_name=True)

    messages: List[ChatTurn] = Field(..., min_length=1)
    current_files: ProjectFileSet = Field(default_factory=dict, alias="currentFiles")
    selection_context: Optional[SelectedElement] = Field(None, alias="selectionContext")


class TurnResponse(BaseModel):
    """Payload returned by the turn API (camelCase on the wire)."""
    model_config = ConfigDict(populate_by_name=True)

    message: str
    files: ProjectFileSet = Field(default_factory=dict, description="Changed files only")
    thought_steps: List[ThoughtStep] = Field(default_factory=list, alias="thoughtSteps")
    validation_errors: List[ValidationError] = Field(default_factory=list, alias="validationErrors")
    fix_attempts: int = Field(0, alias="fixAttempts")
    files_changed: int = Field(0, alias="filesChanged")


# =============================================================================
# INITIAL GENERATION
# =============================================================================

class PersonalInfo(BaseModel):
    name: str
    role: str
    tagline: str = ""
    bio: str = ""
    location: Optional[str] = None
    avatar_url: Optional[str] = None
    email: Optional[str] = None


class WorkItem(BaseModel):
    title: str
    role: str = ""
    description: str = ""
    link: Optional[str] = None
    impact: Optional[str] = None


class StylePreferences(BaseModel):
    vibe: str = ""
    likes: List[str] = Field(default_factory=list)
    dislikes: List[str] = Field(default_factory=list)


class Brief(BaseModel):
    """Who the portfolio is for and how it should feel."""
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    personal: PersonalInfo
    socials: Dict[str, str] = Field(default_factory=dict)
    work: List[WorkItem] = Field(default_factory=list)
    style: StylePreferences = Field(default_factory=StylePreferences)


class ColorPalette(BaseModel):
    primary: str = "#6366f1"
    secondary: str = "#22d3ee"
    accent: str = "#f59e0b"
    background: str = "#0f172a"
    surface: str = "#1e293b"
    text: str = "#f8fafc"


class Typography(BaseModel):
    heading_font: str = "Inter"
    body_font: str = "Inter"
    mono_font: str = "JetBrains Mono"


class MotionProfile(BaseModel):
    profile: Literal["STUDIO", "TECH", "BOLD"] = "STUDIO"
    description: str = ""


class Moodboard(BaseModel):
    """Visual direction chosen for a brief."""
    visual_direction: str = ""
    color_palette: ColorPalette = Field(default_factory=ColorPalette)
    typography: Typography = Field(default_factory=Typography)
    motion: MotionProfile = Field(default_factory=MotionProfile)


class SpecDocument(BaseModel):
    """A planning document (style guide, requirements, section specs) fed to the builder."""
    path: str
    content: str


class BuildResult(BaseModel):
    """Result of generating a complete site from a brief."""
    files: List[FileUpdate] = Field(default_factory=list)
    thought_steps: List[ThoughtStep] = Field(default_factory=list)
    validation_errors: List[ValidationError] = Field(default_factory=list)
    fix_attempts: int = 0
    success: bool = True
