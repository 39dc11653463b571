"""
Pydantic models for API request/response validation.
"""

from typing import Optional, List
from pydantic import BaseModel, Field, field_validator


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    message: str


class ReorderPromptsRequest(BaseModel):
    """New queue order for a league's scheduled prompts."""

    prompt_ids: List[int] = Field(min_length=1)

    @field_validator("prompt_ids")
    @classmethod
    def _positive_ids(cls, value: List[int]) -> List[int]:
        if any(pid <= 0 for pid in value):
            raise ValueError("prompt_ids must be positive integers")
        return value


class PromptSummary(BaseModel):
    """A prompt as shown in the admin queue."""

    id: int
    text: str
    status: str
    queue_order: int
    phase_started_at: Optional[str] = None
    phase_ends_at: Optional[str] = None
    completed_at: Optional[str] = None


class PromptQueueResponse(BaseModel):
    """A league's prompts grouped by phase."""

    active: List[PromptSummary]
    voting: List[PromptSummary]
    scheduled: List[PromptSummary]
    completed: List[PromptSummary]


class PhaseTransitionResponse(BaseModel):
    """Result of a manual phase transition."""

    success: bool
    action: str
    prompt: Optional[str] = None  # Set for single-prompt actions
    completed_prompt: Optional[str] = None  # Set for completed_and_started_next
    new_prompt: Optional[str] = None
