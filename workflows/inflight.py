"""In-flight tracker: the keyed map of jobs the user is currently waiting on."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

from models.core_models import JobHandle, JobStatus, ProcessingItem
from models.modes import ModeDescriptor

logger = logging.getLogger(__name__)


@dataclass
class TrackedJob:
    """A processing item together with the handle that drives it."""
    item: ProcessingItem
    handle: JobHandle


class InFlightTracker:
    """Processing items keyed by job id.

    Progress per item never decreases. Updates for a job that has already
    been removed are ignored, so a late callback cannot resurrect it.
    """

    def __init__(self):
        self._jobs: Dict[str, TrackedJob] = {}

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._jobs

    def insert(self, handle: JobHandle, descriptor: ModeDescriptor, prompt: str = "") -> ProcessingItem:
        item = ProcessingItem(
            id=handle.job_id,
            request_id=handle.request_id,
            kind=descriptor.output_kind,
            model_name=descriptor.display_name,
            prompt=prompt,
            status=handle.status,
            progress=0,
            current_step="Submitted",
            started_at=datetime.now(timezone.utc),
        )
        self._jobs[handle.job_id] = TrackedJob(item=item, handle=handle)
        logger.debug(f"Tracking job {handle.job_id} ({descriptor.mode.value})")
        return item

    def update_progress(self, job_id: str, progress: int, status: Optional[JobStatus] = None,
                        step: Optional[str] = None) -> Optional[ProcessingItem]:
        """Raise an item's progress; lower values are ignored.

        Returns:
            Updated item, or None if the job is no longer tracked
        """
        tracked = self._jobs.get(job_id)
        if tracked is None:
            return None

        item = tracked.item
        updates = {"progress": max(item.progress, min(100, max(0, int(progress))))}
        if status is not None:
            updates["status"] = status
            if status.is_terminal:
                updates["cancellable"] = False
        if step:
            updates["current_step"] = step
        tracked.item = item.model_copy(update=updates)
        return tracked.item

    def remove(self, job_id: str) -> Optional[TrackedJob]:
        tracked = self._jobs.pop(job_id, None)
        if tracked is not None:
            logger.debug(f"Stopped tracking job {job_id}")
        return tracked

    def cancel(self, job_id: str) -> bool:
        """Cancel a tracked job and drop its item.

        Returns:
            bool: False if the job is not tracked or has already finished
        """
        tracked = self._jobs.get(job_id)
        if tracked is None or not tracked.item.cancellable:
            return False
        del self._jobs[job_id]
        tracked.handle.cancel()
        logger.info(f"Cancelled job {job_id}")
        return True

    def get(self, job_id: str) -> Optional[ProcessingItem]:
        tracked = self._jobs.get(job_id)
        return tracked.item if tracked else None

    def items(self) -> List[ProcessingItem]:
        """Items in insertion order."""
        return [tracked.item for tracked in self._jobs.values()]
