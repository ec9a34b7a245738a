"""Generation request, media input and settings models."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .modes import ContentIntent, GenerationMode


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MediaKind(str, Enum):
    """Declared kind of an uploaded media item."""
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"


class MediaInput(BaseModel):
    """One uploaded media item."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id, description="Upload identifier")
    kind: MediaKind = Field(..., description="Declared media kind")
    reference: str = Field(..., min_length=1, description="URL or data URI of the raw bytes")
    mime_type: Optional[str] = Field(default=None, description="Declared MIME type")
    preview: Optional[str] = Field(default=None, description="Display preview reference")

    @model_validator(mode='after')
    def validate_mime_type(self):
        """MIME major type must agree with the declared kind."""
        if self.mime_type:
            major = self.mime_type.split("/", 1)[0].lower()
            if major != self.kind.value:
                raise ValueError(
                    f"MIME type {self.mime_type} does not match declared kind {self.kind.value}"
                )
        return self


class GenerationSettings(BaseModel):
    """Closed set of generation settings shared by all providers."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    aspect_ratio: Literal["1:1", "16:9", "9:16", "4:3", "3:4", "21:9"] = Field(
        default="1:1",
        description="Output aspect ratio"
    )
    guidance_scale: Optional[float] = Field(
        default=None,
        description="Prompt adherence",
        ge=0,
        le=20
    )
    seed: Optional[int] = Field(default=None, description="Random seed", ge=0)
    duration: Optional[int] = Field(
        default=None,
        description="Video duration in seconds",
        ge=1,
        le=20
    )
    resolution: Optional[Literal["480p", "720p", "768P", "1080p"]] = Field(
        default=None,
        description="Output resolution"
    )
    output_format: Optional[Literal["png", "jpeg", "webp", "mp4"]] = Field(
        default=None,
        description="Output file format"
    )


class Identity(BaseModel):
    """The acting user."""

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., min_length=1, description="User identifier")
    is_admin: bool = Field(default=False, description="Privileged identities skip credit checks")


class GenerationRequest(BaseModel):
    """Immutable input to one generation job."""

    model_config = ConfigDict(frozen=True)

    request_id: str = Field(default_factory=_new_id, description="Unique request identifier")
    mode: GenerationMode = Field(..., description="Selected generation mode")
    media: Tuple[MediaInput, ...] = Field(default=(), description="Uploaded media")
    prompt: str = Field(default="", max_length=2000, description="User instruction")
    settings: GenerationSettings = Field(default_factory=GenerationSettings)

    slot: str = Field(default="main", description="Logical slot the generate action belongs to")
    draft_revision: Optional[int] = Field(
        default=None,
        description="Revision of the input draft this request was built from"
    )
    created_at: datetime = Field(default_factory=_utcnow, description="Request creation time")

    def media_of(self, kind: MediaKind) -> List[MediaInput]:
        return [item for item in self.media if item.kind == kind]

    @property
    def images(self) -> List[MediaInput]:
        return self.media_of(MediaKind.IMAGE)

    @property
    def videos(self) -> List[MediaInput]:
        return self.media_of(MediaKind.VIDEO)

    @property
    def audio(self) -> List[MediaInput]:
        return self.media_of(MediaKind.AUDIO)

    @property
    def source_preview(self) -> Optional[str]:
        """Preview of the first visual input, stored alongside results."""
        for item in self.media:
            if item.kind != MediaKind.AUDIO:
                return item.preview or item.reference
        return None


class InputDraft(BaseModel):
    """Mutable input surface the user is composing.

    Every mutation bumps ``revision`` so a finished job only clears the
    draft it was actually built from.
    """

    media: List[MediaInput] = Field(default_factory=list)
    prompt: str = Field(default="")
    intent: ContentIntent = Field(default=ContentIntent.IMAGE)
    selected_mode: Optional[GenerationMode] = Field(default=None)
    settings: GenerationSettings = Field(default_factory=GenerationSettings)
    slot: str = Field(default="main")
    revision: int = Field(default=0, ge=0)

    def _touch(self) -> None:
        self.revision += 1

    def add_media(self, item: MediaInput) -> None:
        self.media.append(item)
        self._touch()

    def remove_media(self, media_id: str) -> bool:
        remaining = [item for item in self.media if item.id != media_id]
        if len(remaining) == len(self.media):
            return False
        self.media = remaining
        self._touch()
        return True

    def set_prompt(self, prompt: str) -> None:
        self.prompt = prompt
        self._touch()

    def set_intent(self, intent: ContentIntent) -> None:
        self.intent = ContentIntent(intent)
        self._touch()

    def select_mode(self, mode: Optional[GenerationMode]) -> None:
        self.selected_mode = mode
        self._touch()

    def clear_inputs(self) -> None:
        """Drop uploaded media and prompt, keeping intent, mode and settings."""
        self.media = []
        self.prompt = ""
        self._touch()

    def to_request(self) -> GenerationRequest:
        """Snapshot the draft into an immutable request.

        Raises:
            ValueError: If no mode is selected
        """
        if self.selected_mode is None:
            raise ValueError("No generation mode selected")
        return GenerationRequest(
            mode=self.selected_mode,
            media=tuple(self.media),
            prompt=self.prompt,
            settings=self.settings,
            slot=self.slot,
            draft_revision=self.revision
        )
