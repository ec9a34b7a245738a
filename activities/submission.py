"""Job submission: prompt enrichment, payload building and output extraction.

Per-mode behaviour lives in two lookup tables keyed by descriptor fields:
``PROMPT_ENRICHERS`` by enrichment tag and ``PAYLOAD_BUILDERS`` by provider
family. The submitter itself has no mode-specific branches.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from config.error_policies import JobCancelledError, ValidationError, classify_message
from models.core_models import JobHandle, JobStatus, VariationResult, normalize_status
from models.generation_request import GenerationRequest, GenerationSettings
from models.modes import (
    ModeDescriptor,
    OutputKind,
    PromptEnrichment,
    ProviderFamily,
    get_descriptor,
)
from utils.cancellation import CancellationToken
from utils.clock import Clock
from .provider_transport import ProviderTransport

logger = logging.getLogger(__name__)

CAMERA_MOTION_HINT = "smooth cinematic camera movement"
AVATAR_SPEECH_HINT = "natural facial expressions with lip movement synchronized to the audio"

# Keys that may hold a single output URL, in lookup order
URL_KEYS = ("url", "imageUrl", "image_url", "videoUrl", "video_url", "uri")
# Keys that may wrap nested outputs
NESTED_KEYS = ("images", "variations", "videos", "outputs", "output", "video", "image", "data")


# Prompt enrichment

def _enrich_none(prompt: str, descriptor: ModeDescriptor) -> str:
    return prompt


def _enrich_camera_motion(prompt: str, descriptor: ModeDescriptor) -> str:
    if "camera" in prompt.lower():
        return prompt
    return f"{prompt}, {CAMERA_MOTION_HINT}" if prompt else CAMERA_MOTION_HINT


def _enrich_variation_angles(prompt: str, descriptor: ModeDescriptor) -> str:
    return (
        f"{prompt}. Generate {descriptor.max_results} variations of this character, each from a "
        f"distinctly different camera angle and pose, keeping clothing, accessories and art style "
        f"consistent. For each variation give an angle, a pose and a description."
    )


def _enrich_avatar_speech(prompt: str, descriptor: ModeDescriptor) -> str:
    return f"{prompt}, {AVATAR_SPEECH_HINT}" if prompt else AVATAR_SPEECH_HINT


PROMPT_ENRICHERS: Dict[PromptEnrichment, Callable[[str, ModeDescriptor], str]] = {
    PromptEnrichment.NONE: _enrich_none,
    PromptEnrichment.CAMERA_MOTION: _enrich_camera_motion,
    PromptEnrichment.VARIATION_ANGLES: _enrich_variation_angles,
    PromptEnrichment.AVATAR_SPEECH: _enrich_avatar_speech,
}


def effective_prompt(request: GenerationRequest, descriptor: ModeDescriptor) -> str:
    """User prompt, or the mode's default prompt when it is optional and empty."""
    prompt = request.prompt.strip()
    if not prompt and descriptor.prompt_optional:
        prompt = descriptor.default_prompt
    return prompt


def enrich_prompt(request: GenerationRequest, descriptor: ModeDescriptor) -> str:
    """Build the prompt actually sent to the provider."""
    enricher = PROMPT_ENRICHERS[descriptor.enrichment]
    return enricher(effective_prompt(request, descriptor), descriptor)


# Payload builders

def _settings_dict(settings: GenerationSettings) -> Dict[str, Any]:
    return settings.model_dump(exclude_none=True)


def _first(items: List[Any]) -> Optional[str]:
    return items[0].reference if items else None


def _build_fal(descriptor: ModeDescriptor, request: GenerationRequest, prompt: str) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"model": descriptor.model_id, "prompt": prompt}
    payload.update(_settings_dict(request.settings))

    images = [item.reference for item in request.images]
    if descriptor.multi_image_edit:
        payload["image_urls"] = images
    elif images:
        payload["image_url"] = images[0]
    if request.videos:
        payload["video_url"] = _first(request.videos)
    if request.audio:
        payload["audio_url"] = _first(request.audio)
    if descriptor.output_kind == OutputKind.IMAGE and descriptor.max_results > 1:
        payload["num_images"] = descriptor.max_results
    return payload


def _build_replicate(descriptor: ModeDescriptor, request: GenerationRequest, prompt: str) -> Dict[str, Any]:
    model_input: Dict[str, Any] = {"prompt": prompt}
    model_input.update(_settings_dict(request.settings))
    if request.images:
        model_input["image"] = _first(request.images)
    if request.videos:
        model_input["video"] = _first(request.videos)
    if request.audio:
        model_input["audio"] = _first(request.audio)
    return {"model": descriptor.model_id, "input": model_input}


def _build_minimax(descriptor: ModeDescriptor, request: GenerationRequest, prompt: str) -> Dict[str, Any]:
    settings = request.settings
    payload: Dict[str, Any] = {
        "model": descriptor.model_id,
        "prompt": prompt,
        "duration": settings.duration or 6,
        "resolution": settings.resolution or "768P",
    }
    images = request.images
    if images:
        payload["first_frame_image"] = images[0].reference
    if descriptor.dual_frame and len(images) > 1:
        payload["last_frame_image"] = images[1].reference
    return payload


def _build_runway(descriptor: ModeDescriptor, request: GenerationRequest, prompt: str) -> Dict[str, Any]:
    settings = request.settings
    payload: Dict[str, Any] = {
        "model": descriptor.model_id,
        "promptText": prompt,
        "ratio": settings.aspect_ratio,
    }
    if settings.seed is not None:
        payload["seed"] = settings.seed
    if request.videos:
        payload["videoUri"] = _first(request.videos)
    if request.images:
        payload["referenceImages"] = [{"uri": item.reference} for item in request.images]
    return payload


def _build_gemini(descriptor: ModeDescriptor, request: GenerationRequest, prompt: str) -> Dict[str, Any]:
    return {
        "model": descriptor.model_id,
        "prompt": prompt,
        "images": [item.reference for item in request.images],
        "variationCount": descriptor.max_results,
    }


PAYLOAD_BUILDERS: Dict[ProviderFamily, Callable[[ModeDescriptor, GenerationRequest, str], Dict[str, Any]]] = {
    ProviderFamily.FAL: _build_fal,
    ProviderFamily.REPLICATE: _build_replicate,
    ProviderFamily.MINIMAX: _build_minimax,
    ProviderFamily.RUNWAY: _build_runway,
    ProviderFamily.GEMINI: _build_gemini,
}


def build_payload(request: GenerationRequest, descriptor: ModeDescriptor) -> Dict[str, Any]:
    """Build the provider request body for a request."""
    prompt = enrich_prompt(request, descriptor)
    return PAYLOAD_BUILDERS[descriptor.provider](descriptor, request, prompt)


# Output extraction

def _extract_entries(output: Any) -> List[Dict[str, str]]:
    """Flatten any of the provider output shapes into url/label entries."""
    if output is None:
        return []
    if isinstance(output, str):
        url = output.strip()
        return [{"url": url}] if url else []
    if isinstance(output, (list, tuple)):
        entries = []
        for item in output:
            entries.extend(_extract_entries(item))
        return entries
    if not isinstance(output, dict):
        return []

    for key in URL_KEYS:
        url = output.get(key)
        if isinstance(url, str) and url.strip():
            return [{
                "url": url.strip(),
                "description": str(output.get("description") or ""),
                "angle": str(output.get("angle") or ""),
                "pose": str(output.get("pose") or ""),
            }]

    for key in NESTED_KEYS:
        if output.get(key):
            return _extract_entries(output[key])
    return []


def normalize_outputs(output: Any, request: GenerationRequest,
                      descriptor: ModeDescriptor) -> List[VariationResult]:
    """Turn raw provider output into result drafts.

    Drafts carry no timestamp; the result sink assigns one on commit.
    Duplicate URLs inside one response are collapsed and the list is capped
    at the mode's ``max_results``.
    """
    prompt = effective_prompt(request, descriptor)
    results: List[VariationResult] = []
    seen = set()

    for entry in _extract_entries(output):
        url = entry["url"]
        if url in seen:
            continue
        seen.add(url)
        url_field = "video_url" if descriptor.is_video else "image_url"
        try:
            results.append(VariationResult(**{
                "id": uuid.uuid4().hex,
                "output_kind": descriptor.output_kind,
                url_field: url,
                "description": entry.get("description", ""),
                "angle": entry.get("angle", ""),
                "pose": entry.get("pose", ""),
                "prompt": prompt,
                "mode": descriptor.mode,
            }))
        except PydanticValidationError as e:
            logger.warning(f"Skipping malformed output from {descriptor.mode.value}: {str(e)}")
            continue
        if len(results) >= descriptor.max_results:
            break

    return results


@dataclass
class Immediate:
    """The provider answered synchronously with output."""
    results: List[VariationResult] = field(default_factory=list)


@dataclass
class Deferred:
    """The provider accepted a job that must be polled."""
    handle: JobHandle


SubmitResult = Union[Immediate, Deferred]


class JobSubmitter:
    """Sends a validated request to its provider."""

    def __init__(self, transport: ProviderTransport, clock: Clock):
        self.transport = transport
        self.clock = clock

    async def submit(self, request: GenerationRequest,
                     token: Optional[CancellationToken] = None) -> SubmitResult:
        """Submit a request and classify the provider's answer.

        Args:
            request: Request that already passed the pre-flight gate
            token: Cancellation token for the job

        Returns:
            Immediate with result drafts, or Deferred with a job handle

        Raises:
            JobCancelledError: If the token was cancelled before sending
            GenerationError: On transport failure or an unusable response
        """
        token = token or CancellationToken(request.request_id)
        if token.cancelled:
            raise JobCancelledError("Generation cancelled before submission")

        descriptor = get_descriptor(request.mode)
        payload = build_payload(request, descriptor)
        response = await self.transport.submit(descriptor, payload)

        if normalize_status(response.status) == JobStatus.FAILED:
            raise classify_message(response.error)

        if response.has_output:
            results = normalize_outputs(response.output, request, descriptor)
            if results:
                logger.info(f"{descriptor.mode.value} answered immediately with {len(results)} result(s)")
                return Immediate(results=results)

        if response.job_id and descriptor.status_path:
            handle = JobHandle(
                job_id=response.job_id,
                mode=descriptor.mode,
                request_id=request.request_id,
                created_at=self.clock.now(),
                estimated_seconds=descriptor.estimated_seconds,
                token=token,
            )
            logger.info(f"{descriptor.mode.value} accepted job {handle.job_id}")
            return Deferred(handle=handle)

        raise ValidationError(
            f"{descriptor.display_name} returned neither output nor a job id",
            code="EMPTY_PROVIDER_RESPONSE"
        )
