"""Core data models for job lifecycle, progress tracking and results."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any, List, FrozenSet

from pydantic import BaseModel, ConfigDict, Field, model_validator

from utils.cancellation import CancellationToken
from .modes import GenerationMode, OutputKind


class JobStatus(str, Enum):
    """Lifecycle states of an asynchronous provider job."""
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    THROTTLED = "THROTTLED"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: FrozenSet[JobStatus] = frozenset({
    JobStatus.SUCCEEDED,
    JobStatus.FAILED,
    JobStatus.TIMED_OUT,
    JobStatus.CANCELLED,
})

_EXITS = frozenset({JobStatus.FAILED, JobStatus.TIMED_OUT, JobStatus.CANCELLED})

ALLOWED_TRANSITIONS: Dict[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PENDING, JobStatus.RUNNING, JobStatus.THROTTLED,
                                  JobStatus.SUCCEEDED}) | _EXITS,
    JobStatus.RUNNING: frozenset({JobStatus.RUNNING, JobStatus.THROTTLED, JobStatus.SUCCEEDED}) | _EXITS,
    JobStatus.THROTTLED: frozenset({JobStatus.THROTTLED, JobStatus.RUNNING, JobStatus.SUCCEEDED}) | _EXITS,
    JobStatus.SUCCEEDED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.TIMED_OUT: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}

# Provider-native status spellings, compared case-insensitively
STATUS_ALIASES: Dict[str, JobStatus] = {
    "pending": JobStatus.PENDING,
    "queued": JobStatus.PENDING,
    "in_queue": JobStatus.PENDING,
    "queueing": JobStatus.PENDING,
    "starting": JobStatus.PENDING,
    "submitted": JobStatus.PENDING,
    "running": JobStatus.RUNNING,
    "in_progress": JobStatus.RUNNING,
    "processing": JobStatus.RUNNING,
    "preparing": JobStatus.RUNNING,
    "throttled": JobStatus.THROTTLED,
    "rate_limited": JobStatus.THROTTLED,
    "succeeded": JobStatus.SUCCEEDED,
    "success": JobStatus.SUCCEEDED,
    "completed": JobStatus.SUCCEEDED,
    "complete": JobStatus.SUCCEEDED,
    "failed": JobStatus.FAILED,
    "fail": JobStatus.FAILED,
    "failure": JobStatus.FAILED,
    "error": JobStatus.FAILED,
    "canceled": JobStatus.FAILED,
    "cancelled": JobStatus.FAILED,
}


def normalize_status(raw: Optional[str]) -> Optional[JobStatus]:
    """Map a provider status string onto a canonical JobStatus.

    A provider-side cancel counts as FAILED: only the user cancels a job.
    Returns None for unknown spellings.
    """
    if not raw:
        return None
    return STATUS_ALIASES.get(str(raw).strip().lower())


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


@dataclass
class JobHandle:
    """Client-side reference to one submitted provider job."""
    job_id: str
    mode: GenerationMode
    request_id: str
    created_at: float
    estimated_seconds: float
    token: CancellationToken = field(default_factory=CancellationToken)
    status: JobStatus = JobStatus.PENDING

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def cancel(self) -> bool:
        """Stop waiting for this job."""
        return self.token.cancel()

    def advance(self, target: JobStatus) -> None:
        """Move to a new state, enforcing the transition table.

        Raises:
            ValueError: On an illegal transition
        """
        if not can_transition(self.status, target):
            raise ValueError(f"Illegal transition {self.status.value} -> {target.value} for job {self.job_id}")
        self.status = target


class VariationResult(BaseModel):
    """One unit of generated output."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Stable result identifier")
    output_kind: OutputKind = Field(..., description="Image or video")
    image_url: Optional[str] = Field(default=None, description="Generated image URL")
    video_url: Optional[str] = Field(default=None, description="Generated video URL")

    description: str = Field(default="", description="Human-readable description")
    angle: str = Field(default="", description="Angle label")
    pose: str = Field(default="", description="Pose label")

    prompt: str = Field(default="", description="Originating prompt")
    mode: Optional[GenerationMode] = Field(default=None, description="Mode that produced it")
    timestamp: Optional[int] = Field(
        default=None,
        description="Insertion key in epoch milliseconds, set on commit"
    )
    storage_id: Optional[str] = Field(default=None, description="Persisted-storage identifier")

    @model_validator(mode='after')
    def validate_single_output(self):
        """Exactly one output reference, matching the output kind."""
        if bool(self.image_url) == bool(self.video_url):
            raise ValueError("Exactly one of image_url or video_url must be set")
        if self.output_kind == OutputKind.IMAGE and not self.image_url:
            raise ValueError("Image results must carry image_url")
        if self.output_kind == OutputKind.VIDEO and not self.video_url:
            raise ValueError("Video results must carry video_url")
        return self

    @property
    def output_url(self) -> str:
        return self.image_url or self.video_url

    def label_text(self) -> str:
        """All free text a provider attached to this result."""
        return " ".join(part for part in (self.description, self.angle, self.pose) if part)


class ProcessingItem(BaseModel):
    """UI-facing projection of an in-flight job."""

    id: str = Field(..., description="Job identifier")
    request_id: str = Field(..., description="Originating request")
    kind: OutputKind = Field(..., description="Kind of output being produced")
    model_name: str = Field(..., description="Display name of the mode")
    prompt: str = Field(default="")
    status: JobStatus = Field(default=JobStatus.PENDING)
    progress: int = Field(default=0, ge=0, le=100, description="Progress percentage")
    current_step: str = Field(default="Submitted")
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    cancellable: bool = Field(default=True)


class OutcomeKind(str, Enum):
    """How one generate action ended, as seen by the user."""
    SUCCEEDED = "succeeded"
    FILTERED = "filtered"
    EMPTY = "empty"
    TRANSIENT_ERROR = "transient_error"
    TERMINAL_ERROR = "terminal_error"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


DEFAULT_MESSAGES: Dict[OutcomeKind, str] = {
    OutcomeKind.SUCCEEDED: "Generation complete",
    OutcomeKind.FILTERED: (
        "The generation finished but every result was withheld by the content policy"
    ),
    OutcomeKind.EMPTY: "The provider returned no results. Please try again",
    OutcomeKind.TRANSIENT_ERROR: "The service is busy right now. Please try again",
    OutcomeKind.TERMINAL_ERROR: "The generation could not be completed",
    OutcomeKind.TIMED_OUT: (
        "Generation is taking unusually long; the server may be under load. "
        "It may still finish, check your gallery later"
    ),
    OutcomeKind.CANCELLED: "Generation cancelled",
    OutcomeKind.REJECTED: "A generation is already running for this input",
}


class GenerationOutcome(BaseModel):
    """Final, classified outcome of one generate action."""

    request_id: str = Field(..., description="Originating request")
    mode: GenerationMode = Field(..., description="Mode used")
    kind: OutcomeKind = Field(..., description="Outcome classification")
    message: str = Field(..., description="User-facing message")
    job_id: Optional[str] = Field(default=None, description="Provider job id, if one was created")
    error_code: Optional[str] = Field(default=None)
    results: List[VariationResult] = Field(default_factory=list, description="Committed results")
    filtered_count: int = Field(default=0, ge=0)
    credits_debited: float = Field(default=0.0, ge=0)
    details: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def build(cls, request_id: str, mode: GenerationMode, kind: OutcomeKind,
              message: Optional[str] = None, **kwargs) -> 'GenerationOutcome':
        return cls(
            request_id=request_id,
            mode=mode,
            kind=kind,
            message=message or DEFAULT_MESSAGES[kind],
            **kwargs
        )

    @property
    def succeeded(self) -> bool:
        return self.kind == OutcomeKind.SUCCEEDED

    def to_summary_dict(self) -> Dict[str, Any]:
        """Convert to summary dictionary for reporting."""
        return {
            "request_id": self.request_id,
            "job_id": self.job_id,
            "mode": self.mode.value,
            "kind": self.kind.value,
            "result_count": len(self.results),
            "filtered_count": self.filtered_count,
            "credits_debited": self.credits_debited,
            "error": self.error_code
        }
