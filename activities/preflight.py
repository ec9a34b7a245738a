"""Pre-flight gate run before anything is sent to a provider."""

import logging
from typing import Optional

from config.error_policies import InsufficientCreditsError, MissingInputError
from models.generation_request import GenerationRequest, Identity
from models.modes import ModeDescriptor, get_descriptor
from .account_services import CreditService
from .mode_resolver import MediaShape, shape_matches

logger = logging.getLogger(__name__)


class PreflightGate:
    """Fail-fast credit and input checks for a generation request.

    The gate never mutates anything: on success the request may be
    submitted, on failure a ``PreflightError`` (or ``IncompatibleMediaError``)
    tells the caller why not.
    """

    def __init__(self, credit_service: Optional[CreditService], credits_enabled: bool = True):
        self.credit_service = credit_service
        self.credits_enabled = credits_enabled and credit_service is not None

    async def check(self, request: GenerationRequest, identity: Identity) -> ModeDescriptor:
        """Validate a request for an identity.

        Args:
            request: Request about to be submitted
            identity: Acting user

        Returns:
            ModeDescriptor of the request's mode

        Raises:
            InsufficientCreditsError: If the balance does not cover the mode
            MissingInputError: If the mode needs an input the request lacks
            IncompatibleMediaError: If images and videos are mixed
        """
        descriptor = get_descriptor(request.mode)
        await self._check_credits(descriptor, identity)
        self._check_inputs(descriptor, request)
        logger.debug(f"Pre-flight passed for request {request.request_id} ({descriptor.mode.value})")
        return descriptor

    async def _check_credits(self, descriptor: ModeDescriptor, identity: Identity) -> None:
        if not self.credits_enabled or identity.is_admin:
            return

        result = await self.credit_service.check(identity, descriptor)
        if not result.has_credits:
            required = result.required_cost or descriptor.cost
            logger.info(
                f"Blocking {descriptor.mode.value} for {identity.user_id}: "
                f"requires {required}, has {result.available_balance}"
            )
            raise InsufficientCreditsError(required=required, available=result.available_balance)

    def _check_inputs(self, descriptor: ModeDescriptor, request: GenerationRequest) -> None:
        shape = MediaShape.of(request.media)

        if descriptor.min_images and shape.images == 0:
            raise MissingInputError("image", f"{descriptor.display_name} needs an image")
        if descriptor.dual_frame and shape.images < descriptor.min_images:
            raise MissingInputError(
                "second_image",
                f"{descriptor.display_name} needs a start frame and an end frame"
            )
        if descriptor.video_inputs and shape.videos == 0:
            raise MissingInputError("video", f"{descriptor.display_name} needs a video")
        if descriptor.requires_audio and shape.audio == 0:
            raise MissingInputError("audio", f"{descriptor.display_name} needs an audio track")
        if not descriptor.prompt_optional and not request.prompt.strip():
            raise MissingInputError("prompt", "Please enter a prompt")

        if not shape_matches(descriptor, shape):
            raise MissingInputError(
                "media",
                f"{descriptor.display_name} does not accept {shape.images} image(s), "
                f"{shape.videos} video(s) and {shape.audio} audio track(s)"
            )
