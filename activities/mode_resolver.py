"""Mode compatibility resolution.

Pure functions: the same media set, intent and current mode always give the
same answer.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from models.generation_request import MediaInput, MediaKind
from models.modes import ContentIntent, GenerationMode, ModeDescriptor, iter_descriptors
from config.error_policies import IncompatibleMediaError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MediaShape:
    """Counts of each media kind in an upload set."""
    images: int = 0
    videos: int = 0
    audio: int = 0

    @property
    def is_empty(self) -> bool:
        return self.images == 0 and self.videos == 0 and self.audio == 0

    @classmethod
    def of(cls, media_inputs: Iterable[MediaInput]) -> 'MediaShape':
        """Count media inputs by kind.

        Raises:
            IncompatibleMediaError: If images and videos are mixed
        """
        items = list(media_inputs)
        return cls.from_counts(
            images=sum(1 for item in items if item.kind == MediaKind.IMAGE),
            videos=sum(1 for item in items if item.kind == MediaKind.VIDEO),
            audio=sum(1 for item in items if item.kind == MediaKind.AUDIO),
        )

    @classmethod
    def from_counts(cls, images: int = 0, videos: int = 0, audio: int = 0) -> 'MediaShape':
        if images and videos:
            raise IncompatibleMediaError(
                "Images and videos cannot be combined in one request; remove one of them"
            )
        return cls(images=images, videos=videos, audio=audio)


@dataclass(frozen=True)
class ResolveResult:
    """Modes usable with the current inputs."""
    available_modes: List[GenerationMode] = field(default_factory=list)
    corrected_mode: Optional[GenerationMode] = None
    current_mode: Optional[GenerationMode] = None

    @property
    def changed(self) -> bool:
        """True when the caller must switch away from its current mode."""
        return self.corrected_mode != self.current_mode


def shape_matches(descriptor: ModeDescriptor, shape: MediaShape) -> bool:
    """Check whether a mode's static input requirement fits a media shape."""
    if descriptor.text_only:
        return shape.is_empty
    if shape.is_empty:
        return False
    if not descriptor.min_images <= shape.images <= descriptor.max_images:
        return False
    if shape.images >= 2 and not (descriptor.dual_frame or descriptor.multi_image_edit):
        return False
    if shape.videos != descriptor.video_inputs:
        return False
    if descriptor.requires_audio:
        return shape.audio == 1
    return shape.audio == 0


def resolve_shape(
    shape: MediaShape,
    content_intent: ContentIntent,
    current_mode: Optional[GenerationMode] = None,
    allowed_modes: Optional[Iterable[GenerationMode]] = None
) -> ResolveResult:
    """Compute compatible modes for already-counted media."""
    intent = ContentIntent(content_intent)
    allowed = set(allowed_modes) if allowed_modes is not None else None

    available = [
        descriptor.mode
        for descriptor in iter_descriptors()
        if descriptor.output_kind == intent
        and shape_matches(descriptor, shape)
        and (allowed is None or descriptor.mode in allowed)
    ]

    if current_mode is not None and current_mode in available:
        corrected = current_mode
    else:
        corrected = available[0] if available else None

    if corrected != current_mode:
        logger.debug(f"Mode {current_mode} no longer valid for {shape}, using {corrected}")

    return ResolveResult(
        available_modes=available,
        corrected_mode=corrected,
        current_mode=current_mode
    )


def resolve(
    media_inputs: Sequence[MediaInput],
    content_intent: ContentIntent,
    current_mode: Optional[GenerationMode] = None,
    allowed_modes: Optional[Iterable[GenerationMode]] = None
) -> ResolveResult:
    """Compute the modes compatible with an upload set and intent.

    Args:
        media_inputs: Uploaded media
        content_intent: Whether the user wants an image or a video
        current_mode: Mode currently selected, if any
        allowed_modes: Optional subset the user has unlocked

    Returns:
        ResolveResult with available modes in priority order and the mode
        to use: the current one if still valid, else the first available
        one, else None

    Raises:
        IncompatibleMediaError: If images and videos are mixed
    """
    return resolve_shape(MediaShape.of(media_inputs), content_intent, current_mode, allowed_modes)
