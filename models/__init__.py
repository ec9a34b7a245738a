"""Data models for the generation orchestrator."""

from .modes import (
    GenerationMode,
    ModeDescriptor,
    OutputKind,
    ContentIntent,
    ProviderFamily,
    PromptEnrichment,
    MODE_TABLE,
    get_descriptor,
    iter_descriptors,
    parse_modes
)
from .generation_request import (
    MediaKind,
    MediaInput,
    GenerationSettings,
    GenerationRequest,
    Identity,
    InputDraft
)
from .core_models import (
    JobStatus,
    JobHandle,
    VariationResult,
    ProcessingItem,
    OutcomeKind,
    GenerationOutcome,
    normalize_status
)

__all__ = [
    "GenerationMode",
    "ModeDescriptor",
    "OutputKind",
    "ContentIntent",
    "ProviderFamily",
    "PromptEnrichment",
    "MODE_TABLE",
    "get_descriptor",
    "iter_descriptors",
    "parse_modes",
    "MediaKind",
    "MediaInput",
    "GenerationSettings",
    "GenerationRequest",
    "Identity",
    "InputDraft",
    "JobStatus",
    "JobHandle",
    "VariationResult",
    "ProcessingItem",
    "OutcomeKind",
    "GenerationOutcome",
    "normalize_status"
]
