"""Credit, usage accounting and gallery collaborators."""

import logging
from typing import Any, Dict, List, Optional, Protocol

import httpx
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from config.settings import CreditConfig, GalleryConfig
from models.core_models import VariationResult
from models.generation_request import Identity
from models.modes import ModeDescriptor
from .provider_transport import parse_response, request_json

logger = logging.getLogger(__name__)


class CreditCheck(BaseModel):
    """Answer of the credit service for one identity and mode."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    has_credits: bool = Field(validation_alias=AliasChoices("hasCredits", "has_credits"))
    required_cost: float = Field(
        default=0.0,
        validation_alias=AliasChoices("requiredCost", "modelCost", "required_cost")
    )
    available_balance: float = Field(
        default=0.0,
        validation_alias=AliasChoices("availableBalance", "availableCredits", "available_balance")
    )


class DebitReceipt(BaseModel):
    """Answer of the credit service to a debit."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    credits_used: float = Field(default=0.0, validation_alias=AliasChoices("creditsUsed", "credits_used"))
    remaining_credits: float = Field(
        default=0.0,
        validation_alias=AliasChoices("remainingCredits", "remaining_credits")
    )


class CreditService:
    """Client for the credit and usage endpoints."""

    def __init__(self, config: CreditConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport

    def _url(self, path: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/{path}"

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await request_json(
            "POST",
            self._url(path),
            timeout=self.config.request_timeout,
            transport=self._transport,
            json=payload
        )

    async def check(self, identity: Identity, descriptor: ModeDescriptor) -> CreditCheck:
        """Query remaining quota against the cost of a mode."""
        data = await self._post("check-credits", {
            "userId": identity.user_id,
            "modelName": descriptor.mode.value
        })
        result = parse_response(CreditCheck, data, "check-credits")
        logger.info(
            f"Credit check for {identity.user_id} on {descriptor.mode.value}: "
            f"has_credits={result.has_credits}, cost={result.required_cost}, balance={result.available_balance}"
        )
        return result

    async def debit(self, identity: Identity, descriptor: ModeDescriptor, generation_id: str) -> DebitReceipt:
        """Charge the cost of a mode after a confirmed success."""
        data = await self._post("use-credits", {
            "userId": identity.user_id,
            "modelName": descriptor.mode.value,
            "generationType": descriptor.output_kind.value,
            "generationId": generation_id
        })
        receipt = parse_response(DebitReceipt, data, "use-credits")
        logger.info(f"Debited {receipt.credits_used} credits from {identity.user_id}, {receipt.remaining_credits} left")
        return receipt

    async def record_usage(self, identity: Identity, descriptor: ModeDescriptor) -> None:
        """Record that a mode was used."""
        await self._post("update-analytics", {
            "userId": identity.user_id,
            "modelName": descriptor.mode.value,
            "generationType": descriptor.output_kind.value
        })


class GalleryStore(Protocol):
    """Append-only result log with delete-by-id."""

    async def append(self, results: List[VariationResult], prompt: str,
                     source_preview: Optional[str]) -> List[VariationResult]:
        ...

    async def remove(self, result_id: str, timestamp: int) -> None:
        ...


class InMemoryGalleryStore:
    """Gallery store used when no persistence service is configured."""

    def __init__(self):
        self.entries: List[Dict[str, Any]] = []

    async def append(self, results: List[VariationResult], prompt: str,
                     source_preview: Optional[str]) -> List[VariationResult]:
        for result in results:
            self.entries.append({
                "result": result,
                "prompt": prompt,
                "source_preview": source_preview
            })
        return list(results)

    async def remove(self, result_id: str, timestamp: int) -> None:
        self.entries = [
            entry for entry in self.entries
            if not (entry["result"].id == result_id and entry["result"].timestamp == timestamp)
        ]


class HttpGalleryStore:
    """Gallery store backed by the gallery HTTP endpoint."""

    def __init__(self, config: GalleryConfig, user_id: str,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.user_id = user_id
        self._transport = transport

    def _url(self) -> str:
        return f"{self.config.base_url.rstrip('/')}/gallery"

    async def append(self, results: List[VariationResult], prompt: str,
                     source_preview: Optional[str]) -> List[VariationResult]:
        """Persist results and attach the storage ids the service assigned."""
        data = await request_json(
            "POST",
            self._url(),
            timeout=self.config.request_timeout,
            transport=self._transport,
            json={
                "userId": self.user_id,
                "prompt": prompt,
                "sourcePreview": source_preview,
                "variations": [result.model_dump(mode="json") for result in results]
            }
        )
        storage_ids = data.get("ids") or []
        if len(storage_ids) != len(results):
            return list(results)
        return [
            result.model_copy(update={"storage_id": str(storage_id)})
            for result, storage_id in zip(results, storage_ids)
        ]

    async def remove(self, result_id: str, timestamp: int) -> None:
        await request_json(
            "DELETE",
            self._url(),
            timeout=self.config.request_timeout,
            transport=self._transport,
            params={"userId": self.user_id, "id": result_id, "timestamp": timestamp}
        )
