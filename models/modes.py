"""Generation modes and their static descriptors.

Each mode is one provider/model combination with a fixed input/output
contract. Adding a provider means adding a row to ``MODE_TABLE``; the
resolver, pre-flight gate, submitter and poller only read descriptors.
The table order is the priority order used when a selected mode has to be
replaced by the first compatible one.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Iterator, Optional


class OutputKind(str, Enum):
    """Kind of media a mode produces."""
    IMAGE = "image"
    VIDEO = "video"


# The user's declared intent uses the same vocabulary as a mode's output
ContentIntent = OutputKind


class ProviderFamily(str, Enum):
    """Provider families; each has its own payload builder."""
    FAL = "fal"
    REPLICATE = "replicate"
    MINIMAX = "minimax"
    RUNWAY = "runway"
    GEMINI = "gemini"


class PromptEnrichment(str, Enum):
    """Per-mode prompt elaboration applied before submission."""
    NONE = "none"
    CAMERA_MOTION = "camera_motion"
    VARIATION_ANGLES = "variation_angles"
    AVATAR_SPEECH = "avatar_speech"


class GenerationMode(str, Enum):
    """Enumeration of supported generation modes."""
    # Image output
    NANO_BANANA_EDIT = "nano-banana-edit"
    SEEDREAM_4_EDIT = "seedream-4-edit"
    CHARACTER_VARIATION = "character-variation"
    QWEN_IMAGE_EDIT = "qwen-image-edit"
    FLUX_PRO_KONTEXT = "flux-pro-kontext"
    LUMA_PHOTON_REFRAME = "luma-photon-reframe"
    RUNWAY_T2I = "runway-t2i"
    SEEDREAM_3 = "seedream-3"
    DREAMINA_T2I = "dreamina-v3-1-t2i"
    IMAGEN4_PREVIEW = "imagen4-preview"
    FAST_SDXL = "fast-sdxl"

    # Video output
    KLING_MASTER_I2V = "kling-2.1-master-i2v"
    VEO3_FAST_I2V = "veo3-fast-i2v"
    MINIMAX_2_I2V = "minimax-2-i2v"
    SEEDANCE_PRO_I2V = "seedance-1-pro-i2v"
    WAN_I2V_LORA = "wan-v2-2-a14b-i2v-lora"
    DECART_LUCY_I2V = "decart-lucy-14b-i2v"
    MINIMAX_ENDFRAME = "minimax-endframe"
    RUNWAY_ALEPH = "runway-aleph-v2v"
    KLING_MASTER_T2V = "kling-2.1-master-t2v"
    VEO3_FAST_T2V = "veo3-fast-t2v"
    MINIMAX_2_T2V = "minimax-2-t2v"
    KLING_AI_AVATAR = "kling-ai-avatar"
    LIPSYNC_2_PRO = "lipsync-2-pro"
    LATENTSYNC = "latentsync"


@dataclass(frozen=True)
class ModeDescriptor:
    """Static metadata for one generation mode."""
    mode: GenerationMode
    display_name: str
    provider: ProviderFamily
    model_id: str
    output_kind: OutputKind
    submit_path: str
    # None means the provider always answers synchronously
    status_path: Optional[str] = None

    # Input shape
    min_images: int = 0
    max_images: int = 0
    video_inputs: int = 0
    requires_audio: bool = False
    text_only: bool = False
    dual_frame: bool = False
    multi_image_edit: bool = False

    # Prompt handling
    prompt_optional: bool = False
    default_prompt: str = ""
    enrichment: PromptEnrichment = PromptEnrichment.NONE

    # Cost and timing
    cost: float = 1.0
    estimated_seconds: float = 30.0
    poll_interval: float = 3.0
    timeout_multiplier: Optional[float] = None
    max_results: int = 1

    @property
    def is_video(self) -> bool:
        return self.output_kind == OutputKind.VIDEO

    def timeout_budget(self, default_multiplier: float) -> float:
        """Seconds the client is willing to wait for this mode."""
        multiplier = self.timeout_multiplier or default_multiplier
        return self.estimated_seconds * multiplier


_DESCRIPTORS = [
    # Image output, highest priority first
    ModeDescriptor(
        mode=GenerationMode.NANO_BANANA_EDIT,
        display_name="Nano Banana Edit",
        provider=ProviderFamily.FAL,
        model_id="fal-ai/nano-banana/edit",
        output_kind=OutputKind.IMAGE,
        submit_path="fal/image-edit",
        min_images=1,
        max_images=4,
        multi_image_edit=True,
        estimated_seconds=20,
    ),
    ModeDescriptor(
        mode=GenerationMode.SEEDREAM_4_EDIT,
        display_name="Seedream 4.0 Edit",
        provider=ProviderFamily.FAL,
        model_id="fal-ai/bytedance/seedream/v4/edit",
        output_kind=OutputKind.IMAGE,
        submit_path="fal/seedream-4-edit",
        min_images=1,
        max_images=4,
        multi_image_edit=True,
        estimated_seconds=25,
        max_results=4,
    ),
    ModeDescriptor(
        mode=GenerationMode.CHARACTER_VARIATION,
        display_name="Character Variations",
        provider=ProviderFamily.GEMINI,
        model_id="gemini-2.5-flash-image-preview",
        output_kind=OutputKind.IMAGE,
        submit_path="vary-character",
        min_images=1,
        max_images=1,
        prompt_optional=True,
        default_prompt="Show this character from different angles and poses",
        enrichment=PromptEnrichment.VARIATION_ANGLES,
        estimated_seconds=25,
        max_results=4,
    ),
    ModeDescriptor(
        mode=GenerationMode.QWEN_IMAGE_EDIT,
        display_name="Qwen Image Edit",
        provider=ProviderFamily.FAL,
        model_id="fal-ai/qwen-image-edit",
        output_kind=OutputKind.IMAGE,
        submit_path="fal/image-edit",
        min_images=1,
        max_images=1,
        estimated_seconds=25,
    ),
    ModeDescriptor(
        mode=GenerationMode.FLUX_PRO_KONTEXT,
        display_name="Flux Pro Kontext",
        provider=ProviderFamily.FAL,
        model_id="fal-ai/flux-pro/kontext",
        output_kind=OutputKind.IMAGE,
        submit_path="fal/image-edit",
        min_images=1,
        max_images=1,
        estimated_seconds=30,
    ),
    ModeDescriptor(
        mode=GenerationMode.LUMA_PHOTON_REFRAME,
        display_name="Luma Photon Reframe",
        provider=ProviderFamily.FAL,
        model_id="fal-ai/luma-photon/reframe",
        output_kind=OutputKind.IMAGE,
        submit_path="luma-photon-reframe",
        status_path="luma-photon-reframe",
        min_images=1,
        max_images=1,
        prompt_optional=True,
        default_prompt="Extend the scene naturally to fill the new frame",
        estimated_seconds=30,
    ),
    ModeDescriptor(
        mode=GenerationMode.RUNWAY_T2I,
        display_name="Runway Text to Image",
        provider=ProviderFamily.RUNWAY,
        model_id="gen4_image",
        output_kind=OutputKind.IMAGE,
        submit_path="runway-t2i",
        status_path="runway-t2i",
        text_only=True,
        estimated_seconds=30,
    ),
    ModeDescriptor(
        mode=GenerationMode.SEEDREAM_3,
        display_name="Seedream 3",
        provider=ProviderFamily.REPLICATE,
        model_id="bytedance/seedream-3",
        output_kind=OutputKind.IMAGE,
        submit_path="replicate/seedream-3",
        status_path="replicate/prediction",
        text_only=True,
        estimated_seconds=20,
        poll_interval=2.0,
    ),
    ModeDescriptor(
        mode=GenerationMode.DREAMINA_T2I,
        display_name="Dreamina V3.1",
        provider=ProviderFamily.FAL,
        model_id="fal-ai/bytedance/dreamina/v3.1/text-to-image",
        output_kind=OutputKind.IMAGE,
        submit_path="fal/text-to-image",
        text_only=True,
        estimated_seconds=20,
    ),
    ModeDescriptor(
        mode=GenerationMode.IMAGEN4_PREVIEW,
        display_name="Imagen4 Preview",
        provider=ProviderFamily.FAL,
        model_id="fal-ai/imagen4/preview",
        output_kind=OutputKind.IMAGE,
        submit_path="fal/text-to-image",
        text_only=True,
        estimated_seconds=35,
    ),
    ModeDescriptor(
        mode=GenerationMode.FAST_SDXL,
        display_name="Fast SDXL",
        provider=ProviderFamily.FAL,
        model_id="fal-ai/fast-sdxl",
        output_kind=OutputKind.IMAGE,
        submit_path="fal/text-to-image",
        text_only=True,
        estimated_seconds=15,
    ),

    # Video output, highest priority first
    ModeDescriptor(
        mode=GenerationMode.KLING_MASTER_I2V,
        display_name="Kling 2.1 Master",
        provider=ProviderFamily.FAL,
        model_id="fal-ai/kling-video/v2.1/master/image-to-video",
        output_kind=OutputKind.VIDEO,
        submit_path="kling-2.1-master",
        status_path="kling-2.1-master",
        min_images=1,
        max_images=1,
        enrichment=PromptEnrichment.CAMERA_MOTION,
        cost=4,
        estimated_seconds=90,
        poll_interval=5.0,
    ),
    ModeDescriptor(
        mode=GenerationMode.VEO3_FAST_I2V,
        display_name="Veo3 Fast Image to Video",
        provider=ProviderFamily.FAL,
        model_id="fal-ai/veo3/fast/image-to-video",
        output_kind=OutputKind.VIDEO,
        submit_path="fal/veo3-fast-i2v",
        status_path="fal/veo3-fast-i2v",
        min_images=1,
        max_images=1,
        enrichment=PromptEnrichment.CAMERA_MOTION,
        cost=4,
        estimated_seconds=45,
    ),
    ModeDescriptor(
        mode=GenerationMode.MINIMAX_2_I2V,
        display_name="Minimax Hailuo 02",
        provider=ProviderFamily.MINIMAX,
        model_id="MiniMax-Hailuo-02",
        output_kind=OutputKind.VIDEO,
        submit_path="minimax-2",
        status_path="minimax-2",
        min_images=1,
        max_images=1,
        enrichment=PromptEnrichment.CAMERA_MOTION,
        cost=4,
        estimated_seconds=120,
        poll_interval=5.0,
    ),
    ModeDescriptor(
        mode=GenerationMode.SEEDANCE_PRO_I2V,
        display_name="Seedance 1 Pro",
        provider=ProviderFamily.REPLICATE,
        model_id="bytedance/seedance-1-pro",
        output_kind=OutputKind.VIDEO,
        submit_path="replicate/seedance-1-pro",
        status_path="replicate/prediction",
        min_images=1,
        max_images=1,
        enrichment=PromptEnrichment.CAMERA_MOTION,
        cost=6,
        estimated_seconds=60,
    ),
    ModeDescriptor(
        mode=GenerationMode.WAN_I2V_LORA,
        display_name="Wan V2.2 A14b LoRA",
        provider=ProviderFamily.FAL,
        model_id="fal-ai/wan/v2.2-a14b/image-to-video/lora",
        output_kind=OutputKind.VIDEO,
        submit_path="fal/image-to-video",
        status_path="fal/image-to-video",
        min_images=1,
        max_images=1,
        enrichment=PromptEnrichment.CAMERA_MOTION,
        cost=4,
        estimated_seconds=80,
    ),
    ModeDescriptor(
        mode=GenerationMode.DECART_LUCY_I2V,
        display_name="Decart Lucy 14B",
        provider=ProviderFamily.FAL,
        model_id="decart/lucy-14b/image-to-video",
        output_kind=OutputKind.VIDEO,
        submit_path="fal/image-to-video",
        status_path="fal/image-to-video",
        min_images=1,
        max_images=1,
        cost=4,
        estimated_seconds=40,
    ),
    ModeDescriptor(
        mode=GenerationMode.MINIMAX_ENDFRAME,
        display_name="Minimax End Frame",
        provider=ProviderFamily.MINIMAX,
        model_id="MiniMax-Hailuo-02",
        output_kind=OutputKind.VIDEO,
        submit_path="endframe",
        status_path="endframe",
        min_images=2,
        max_images=2,
        dual_frame=True,
        cost=4,
        estimated_seconds=120,
        poll_interval=5.0,
    ),
    ModeDescriptor(
        mode=GenerationMode.RUNWAY_ALEPH,
        display_name="Runway Aleph Video Variation",
        provider=ProviderFamily.RUNWAY,
        model_id="gen4_aleph",
        output_kind=OutputKind.VIDEO,
        submit_path="runway-video",
        status_path="runway-video",
        video_inputs=1,
        cost=4,
        estimated_seconds=90,
        poll_interval=5.0,
    ),
    ModeDescriptor(
        mode=GenerationMode.KLING_MASTER_T2V,
        display_name="Kling 2.1 Master Text to Video",
        provider=ProviderFamily.FAL,
        model_id="fal-ai/kling-video/v2.1/master/text-to-video",
        output_kind=OutputKind.VIDEO,
        submit_path="cling-2.1-master-t2v",
        status_path="cling-2.1-master-t2v",
        text_only=True,
        enrichment=PromptEnrichment.CAMERA_MOTION,
        cost=4,
        estimated_seconds=90,
        poll_interval=5.0,
    ),
    ModeDescriptor(
        mode=GenerationMode.VEO3_FAST_T2V,
        display_name="Veo3 Fast Text to Video",
        provider=ProviderFamily.FAL,
        model_id="fal-ai/veo3/fast",
        output_kind=OutputKind.VIDEO,
        submit_path="veo3-fast-t2v",
        status_path="veo3-fast-t2v",
        text_only=True,
        enrichment=PromptEnrichment.CAMERA_MOTION,
        cost=4,
        estimated_seconds=45,
    ),
    ModeDescriptor(
        mode=GenerationMode.MINIMAX_2_T2V,
        display_name="Minimax Hailuo 02 Text to Video",
        provider=ProviderFamily.MINIMAX,
        model_id="MiniMax-Hailuo-02",
        output_kind=OutputKind.VIDEO,
        submit_path="minimax-2-t2v",
        status_path="minimax-2-t2v",
        text_only=True,
        enrichment=PromptEnrichment.CAMERA_MOTION,
        cost=4,
        estimated_seconds=120,
        poll_interval=5.0,
    ),
    ModeDescriptor(
        mode=GenerationMode.KLING_AI_AVATAR,
        display_name="Kling AI Avatar",
        provider=ProviderFamily.FAL,
        model_id="fal-ai/kling-video/v1/standard/ai-avatar",
        output_kind=OutputKind.VIDEO,
        submit_path="kling-ai-avatar",
        status_path="kling-ai-avatar-status",
        min_images=1,
        max_images=1,
        requires_audio=True,
        prompt_optional=True,
        enrichment=PromptEnrichment.AVATAR_SPEECH,
        cost=8,
        estimated_seconds=300,
        poll_interval=5.0,
        # Avatar renders routinely run for half an hour
        timeout_multiplier=6.0,
    ),
    ModeDescriptor(
        mode=GenerationMode.LIPSYNC_2_PRO,
        display_name="Lipsync 2 Pro",
        provider=ProviderFamily.REPLICATE,
        model_id="sync/lipsync-2-pro",
        output_kind=OutputKind.VIDEO,
        submit_path="replicate/lipsync-2-pro",
        status_path="replicate/prediction",
        video_inputs=1,
        requires_audio=True,
        prompt_optional=True,
        cost=4,
        estimated_seconds=120,
        poll_interval=5.0,
    ),
    ModeDescriptor(
        mode=GenerationMode.LATENTSYNC,
        display_name="LatentSync",
        provider=ProviderFamily.FAL,
        model_id="fal-ai/latentsync",
        output_kind=OutputKind.VIDEO,
        submit_path="fal/lip-sync",
        status_path="fal/lip-sync",
        video_inputs=1,
        requires_audio=True,
        prompt_optional=True,
        cost=4,
        estimated_seconds=60,
    ),
]

MODE_TABLE: Dict[GenerationMode, ModeDescriptor] = {
    descriptor.mode: descriptor for descriptor in _DESCRIPTORS
}


def get_descriptor(mode: GenerationMode) -> ModeDescriptor:
    """Look up the descriptor for a mode.

    Args:
        mode: Generation mode or its string value

    Returns:
        ModeDescriptor for the mode

    Raises:
        ValueError: If the mode is unknown
    """
    return MODE_TABLE[GenerationMode(mode)]


def iter_descriptors() -> Iterator[ModeDescriptor]:
    """Iterate descriptors in priority order."""
    return iter(MODE_TABLE.values())


def parse_modes(names: Iterable[str]) -> Optional[FrozenSet[GenerationMode]]:
    """Turn configured mode names into a mode set.

    Returns:
        Set of modes, or None when no names are given (every mode allowed)

    Raises:
        ValueError: If a name is not a known mode
    """
    modes = frozenset(GenerationMode(name) for name in names)
    return modes or None
