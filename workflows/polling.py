"""Polling scheduler for deferred provider jobs.

One ``run`` call drives one job handle through
PENDING -> RUNNING -> (THROTTLED <-> RUNNING) -> SUCCEEDED | FAILED |
TIMED_OUT | CANCELLED. Time and I/O come from the injected clock and
transport, so tests can script both.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Set

from config.error_policies import GenerationError, TerminalError, classify_message
from config.settings import PollingConfig
from models.core_models import DEFAULT_MESSAGES, JobHandle, JobStatus, OutcomeKind, normalize_status
from models.modes import ModeDescriptor, get_descriptor
from activities.provider_transport import ProviderTransport
from utils.clock import Clock

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[JobHandle, int, JobStatus], None]


@dataclass
class PollResult:
    """Terminal state of one polled job."""
    status: JobStatus
    output: Any = None
    error: Optional[GenerationError] = None
    message: str = ""
    polls: int = 0


class PollingScheduler:
    """Drives job handles to a terminal state."""

    def __init__(self, transport: ProviderTransport, clock: Clock, config: Optional[PollingConfig] = None):
        self.transport = transport
        self.clock = clock
        self.config = config or PollingConfig()
        self._active: Set[str] = set()

    def is_polling(self, job_id: str) -> bool:
        return job_id in self._active

    def interval_for(self, descriptor: ModeDescriptor) -> float:
        return max(descriptor.poll_interval, self.config.min_poll_interval)

    def progress_for(self, handle: JobHandle, reported: Optional[float] = None) -> int:
        """Progress estimate for a running job, capped below completion.

        The estimate is time based. A progress value reported by the provider
        raises it when ahead; fractions (0-1) and percentages are both accepted.
        """
        cap = self.config.progress_cap
        if handle.estimated_seconds <= 0:
            return cap
        elapsed = max(0.0, self.clock.now() - handle.created_at)
        estimate = elapsed / handle.estimated_seconds * 100
        if reported is not None and reported > 0:
            estimate = max(estimate, reported * 100 if reported <= 1 else reported)
        return int(min(cap, estimate))

    async def run(self, handle: JobHandle, on_progress: Optional[ProgressCallback] = None) -> PollResult:
        """Poll a job until it reaches a terminal state.

        Args:
            handle: Deferred job handle
            on_progress: Called with (handle, progress, status) after each
                non-terminal poll

        Returns:
            PollResult with the terminal status and, on success, the raw output

        Raises:
            RuntimeError: If the handle is already being polled
            ValueError: If the handle is already terminal
        """
        if handle.job_id in self._active:
            raise RuntimeError(f"Job {handle.job_id} is already being polled")
        if handle.status.is_terminal:
            raise ValueError(f"Job {handle.job_id} is already {handle.status.value}")

        self._active.add(handle.job_id)
        try:
            return await self._poll_until_done(handle, on_progress)
        finally:
            self._active.discard(handle.job_id)

    async def _poll_until_done(self, handle: JobHandle, on_progress: Optional[ProgressCallback]) -> PollResult:
        descriptor = get_descriptor(handle.mode)
        interval = self.interval_for(descriptor)
        deadline = handle.created_at + descriptor.timeout_budget(self.config.default_timeout_multiplier)
        consecutive_errors = 0
        polls = 0

        logger.info(
            f"Polling job {handle.job_id} ({descriptor.mode.value}) every {interval}s, "
            f"giving up after {deadline - handle.created_at:.0f}s"
        )
        self._notify(handle, on_progress)

        while True:
            if handle.cancelled:
                return self._finish(handle, JobStatus.CANCELLED, polls=polls)

            remaining = deadline - self.clock.now()
            if remaining <= 0:
                return self._time_out(handle, polls)

            # A poll closer than one interval to the previous one is never sent
            last_wait = remaining < interval
            await self.clock.sleep(min(interval, remaining), handle.token)
            if handle.cancelled:
                return self._finish(handle, JobStatus.CANCELLED, polls=polls)
            if last_wait or self.clock.now() >= deadline:
                return self._time_out(handle, polls)

            try:
                polls += 1
                response = await self.transport.poll(descriptor, handle.job_id)
            except GenerationError as e:
                if handle.cancelled:
                    return self._finish(handle, JobStatus.CANCELLED, polls=polls)
                consecutive_errors += 1
                if not e.retryable or consecutive_errors >= self.config.max_consecutive_poll_errors:
                    logger.error(f"Polling job {handle.job_id} failed: {e.message}")
                    return self._finish(handle, JobStatus.FAILED, error=e, message=e.message, polls=polls)
                logger.warning(
                    f"Poll {polls} for job {handle.job_id} failed "
                    f"({consecutive_errors}/{self.config.max_consecutive_poll_errors}): {e.message}"
                )
                continue

            if handle.cancelled:
                return self._finish(handle, JobStatus.CANCELLED, polls=polls)
            consecutive_errors = 0

            status = normalize_status(response.status)
            if status is None:
                if response.has_output:
                    status = JobStatus.SUCCEEDED
                else:
                    logger.debug(f"Unrecognised status {response.status!r} for job {handle.job_id}")
                    status = handle.status if handle.status != JobStatus.PENDING else JobStatus.RUNNING

            if status == JobStatus.SUCCEEDED:
                return self._finish(handle, status, output=response.output, polls=polls)
            if status == JobStatus.FAILED:
                error = classify_message(response.error or "Generation failed", default=TerminalError)
                return self._finish(handle, status, error=error, message=error.message, polls=polls)

            handle.advance(status)
            self._notify(handle, on_progress, response.progress)

            if self.clock.now() >= deadline:
                return self._time_out(handle, polls)

    def _notify(self, handle: JobHandle, on_progress: Optional[ProgressCallback],
                reported: Optional[float] = None) -> None:
        if on_progress is not None:
            on_progress(handle, self.progress_for(handle, reported), handle.status)

    def _time_out(self, handle: JobHandle, polls: int) -> PollResult:
        logger.warning(f"Job {handle.job_id} exceeded its time budget after {polls} poll(s)")
        return self._finish(handle, JobStatus.TIMED_OUT, message=DEFAULT_MESSAGES[OutcomeKind.TIMED_OUT],
                            polls=polls)

    def _finish(self, handle: JobHandle, status: JobStatus, output: Any = None,
                error: Optional[GenerationError] = None, message: str = "", polls: int = 0) -> PollResult:
        handle.advance(status)
        logger.info(f"Job {handle.job_id} finished as {status.value} after {polls} poll(s)")
        return PollResult(status=status, output=output, error=error, message=message, polls=polls)
