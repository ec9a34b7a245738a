"""Result collection and the sink that commits results into it exactly once."""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from config.error_policies import GenerationError
from models.core_models import VariationResult
from models.generation_request import GenerationRequest, Identity, InputDraft
from models.modes import get_descriptor
from utils.clock import Clock
from .account_services import CreditService, GalleryStore

logger = logging.getLogger(__name__)


class ResultCollection:
    """Ordered, de-duplicated set of committed results.

    Output URLs are unique across the collection. Adding and removing are
    synchronous so concurrent commits cannot interleave a check and an add.
    """

    def __init__(self):
        self._items: List[VariationResult] = []
        self._urls: Dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._items)

    def contains(self, output_url: str) -> bool:
        return output_url in self._urls

    def add(self, result: VariationResult) -> bool:
        """Append a result unless its output URL is already present."""
        if self.contains(result.output_url):
            return False
        self._items.append(result)
        self._urls[result.output_url] = result.id
        return True

    def replace(self, result: VariationResult) -> None:
        """Swap in an updated copy of a result with the same id."""
        for index, item in enumerate(self._items):
            if item.id == result.id:
                self._items[index] = result
                return

    def remove(self, result_id: str, timestamp: Optional[int] = None) -> bool:
        """Remove a result by id, optionally also matching its timestamp."""
        for index, item in enumerate(self._items):
            if item.id == result_id and (timestamp is None or item.timestamp == timestamp):
                del self._items[index]
                self._urls.pop(item.output_url, None)
                return True
        return False

    def items(self) -> List[VariationResult]:
        """Results, most recent first."""
        return sorted(self._items, key=lambda item: item.timestamp or 0, reverse=True)


@dataclass
class CommitReport:
    """What one commit changed."""
    committed: List[VariationResult] = field(default_factory=list)
    duplicates: List[VariationResult] = field(default_factory=list)
    credits_debited: float = 0.0
    debit_error: Optional[str] = None
    persist_error: Optional[str] = None
    draft_cleared: bool = False


class ResultSink:
    """Commits kept results, persists them and settles their cost."""

    def __init__(
        self,
        collection: ResultCollection,
        store: Optional[GalleryStore],
        credit_service: Optional[CreditService],
        clock: Clock,
        credits_enabled: bool = True
    ):
        self.collection = collection
        self.store = store
        self.credit_service = credit_service
        self.clock = clock
        self.credits_enabled = credits_enabled and credit_service is not None

    async def commit(
        self,
        results: Sequence[VariationResult],
        request: GenerationRequest,
        identity: Identity,
        draft: Optional[InputDraft] = None,
        job_id: Optional[str] = None
    ) -> CommitReport:
        """Commit results that already passed the content filter.

        Args:
            results: Kept results
            request: Originating request
            identity: Acting user
            draft: Input draft to clear if it still matches the request
            job_id: Provider job id, used as the generation id for the debit

        Returns:
            CommitReport
        """
        report = CommitReport()
        descriptor = get_descriptor(request.mode)
        base_ms = int(self.clock.wall_time() * 1000)

        for index, result in enumerate(results):
            stamped = result.model_copy(update={"timestamp": base_ms + index})
            if self.collection.add(stamped):
                report.committed.append(stamped)
            else:
                report.duplicates.append(stamped)

        if report.duplicates:
            logger.info(f"Skipped {len(report.duplicates)} duplicate result(s) for request {request.request_id}")
        if not report.committed:
            return report

        await self._persist(report, request)
        await self._settle(report, request, identity, descriptor, job_id or request.request_id)

        if draft is not None and request.draft_revision is not None and draft.revision == request.draft_revision:
            draft.clear_inputs()
            report.draft_cleared = True

        logger.info(f"Committed {len(report.committed)} result(s) for request {request.request_id}")
        return report

    async def _persist(self, report: CommitReport, request: GenerationRequest) -> None:
        if self.store is None:
            return
        try:
            persisted = await self.store.append(report.committed, request.prompt, request.source_preview)
        except GenerationError as e:
            logger.error(f"Failed to persist results for request {request.request_id}: {e.message}")
            report.persist_error = e.message
            return
        for result in persisted:
            self.collection.replace(result)
        report.committed = list(persisted)

    async def _settle(self, report: CommitReport, request: GenerationRequest, identity: Identity,
                      descriptor, generation_id: str) -> None:
        if self.credit_service is None:
            return

        try:
            await self.credit_service.record_usage(identity, descriptor)
        except GenerationError as e:
            logger.warning(f"Failed to record usage for {identity.user_id}: {e.message}")

        if not self.credits_enabled or identity.is_admin:
            return
        try:
            receipt = await self.credit_service.debit(identity, descriptor, generation_id)
        except GenerationError as e:
            logger.error(f"Credit debit failed for request {request.request_id}: {e.message}")
            report.debit_error = e.message
            return
        report.credits_debited = receipt.credits_used or descriptor.cost

    async def remove(self, result_id: str, timestamp: int) -> bool:
        """Delete a committed result from the collection and the store."""
        if not self.collection.remove(result_id, timestamp):
            return False
        if self.store is not None:
            await self.store.remove(result_id, timestamp)
        return True
