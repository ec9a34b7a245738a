"""Generation orchestrator.

Wires the resolver, pre-flight gate, submitter, polling scheduler, content
filter and result sink together for one user session. All state the
pipeline touches lives on an explicit ``OrchestrationContext``.
"""

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

import httpx

from config.concurrency_control import SlotGuard
from config.error_policies import (
    DuplicateSubmissionError,
    GenerationError,
    JobCancelledError,
    TerminalError,
)
from config.settings import AppConfig
from models.core_models import (
    GenerationOutcome,
    JobHandle,
    JobStatus,
    OutcomeKind,
    ProcessingItem,
    VariationResult,
)
from models.generation_request import GenerationRequest, Identity, InputDraft
from models.modes import GenerationMode, get_descriptor, parse_modes
from activities.account_services import (
    CreditService,
    GalleryStore,
    HttpGalleryStore,
    InMemoryGalleryStore,
)
from activities.content_filter import DEFAULT_BANNED_TERMS, build_term_table, filter_results
from activities.mode_resolver import ResolveResult, resolve
from activities.preflight import PreflightGate
from activities.provider_transport import HttpProviderTransport, ProviderTransport
from activities.result_sink import ResultCollection, ResultSink
from activities.submission import Immediate, JobSubmitter, normalize_outputs
from utils.cancellation import CancellationToken
from utils.clock import Clock, SystemClock
from .inflight import InFlightTracker
from .polling import PollingScheduler

logger = logging.getLogger(__name__)

STEP_LABELS: Dict[JobStatus, str] = {
    JobStatus.PENDING: "Queued",
    JobStatus.RUNNING: "Generating",
    JobStatus.THROTTLED: "Waiting for provider capacity",
}


@dataclass
class OrchestrationContext:
    """Everything one session's generate actions read and write."""
    config: AppConfig
    identity: Identity
    transport: ProviderTransport
    clock: Clock = field(default_factory=SystemClock)
    credit_service: Optional[CreditService] = None
    store: Optional[GalleryStore] = None
    collection: ResultCollection = field(default_factory=ResultCollection)
    tracker: InFlightTracker = field(default_factory=InFlightTracker)
    draft: InputDraft = field(default_factory=InputDraft)
    slot_guard: SlotGuard = field(default_factory=SlotGuard)
    banned_terms: Tuple[str, ...] = DEFAULT_BANNED_TERMS
    allowed_modes: Optional[FrozenSet[GenerationMode]] = None


def build_context(
    config: AppConfig,
    user_id: str,
    provider_transport: Optional[ProviderTransport] = None,
    http_transport: Optional[httpx.AsyncBaseTransport] = None,
    clock: Optional[Clock] = None
) -> OrchestrationContext:
    """Build a session context from application configuration.

    Args:
        config: Application configuration
        user_id: Acting user
        provider_transport: Provider transport to share across sessions
        http_transport: Optional httpx transport for the credit and gallery clients
        clock: Clock override

    Returns:
        OrchestrationContext
    """
    identity = Identity(user_id=user_id, is_admin=config.is_admin(user_id))
    credit_service = CreditService(config.credits, http_transport) if config.credits.enabled else None
    if config.gallery.base_url:
        store = HttpGalleryStore(config.gallery, user_id, http_transport)
    else:
        store = InMemoryGalleryStore()

    return OrchestrationContext(
        config=config,
        identity=identity,
        transport=provider_transport or HttpProviderTransport(config.provider, http_transport),
        clock=clock or SystemClock(),
        credit_service=credit_service,
        store=store,
        banned_terms=build_term_table(config.content_filter.extra_banned_terms),
        allowed_modes=None if identity.is_admin else parse_modes(config.credits.unlocked_modes),
    )


class GenerationOrchestrator:
    """Runs generate actions for one session."""

    def __init__(self, context: OrchestrationContext):
        self.context = context
        config = context.config
        self.gate = PreflightGate(context.credit_service, config.credits.enabled)
        self.submitter = JobSubmitter(context.transport, context.clock)
        self.scheduler = PollingScheduler(context.transport, context.clock, config.polling)
        self.sink = ResultSink(
            context.collection,
            context.store,
            context.credit_service,
            context.clock,
            config.credits.enabled
        )
        self.outcomes: "OrderedDict[str, GenerationOutcome]" = OrderedDict()
        self._tokens: Dict[str, CancellationToken] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    # Mode selection

    def resolve_modes(self, current_mode: Optional[GenerationMode] = None) -> ResolveResult:
        """Resolve modes for the draft and switch its selection if it became invalid."""
        draft = self.context.draft
        result = resolve(
            draft.media,
            draft.intent,
            current_mode or draft.selected_mode,
            self.context.allowed_modes
        )
        if result.corrected_mode != draft.selected_mode:
            draft.select_mode(result.corrected_mode)
        return result

    # Generate actions

    async def generate(self, request: Optional[GenerationRequest] = None) -> GenerationOutcome:
        """Run one generate action to completion.

        Args:
            request: Request to run; defaults to a snapshot of the draft

        Returns:
            GenerationOutcome; classified errors become outcomes
        """
        request = request or self.context.draft.to_request()
        try:
            token = self._claim(request)
        except DuplicateSubmissionError as e:
            return self._record(self._error_outcome(request, e))
        return await self._run(request, token)

    def start(self, request: Optional[GenerationRequest] = None) -> asyncio.Task:
        """Start a generate action in the background.

        The slot is claimed before this returns, so a second start for the
        same slot fails immediately.

        Raises:
            DuplicateSubmissionError: If the request's slot is busy
        """
        request = request or self.context.draft.to_request()
        token = self._claim(request)
        task = asyncio.create_task(self._run(request, token))
        self._tasks[request.request_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(request.request_id, None))
        return task

    def _claim(self, request: GenerationRequest) -> CancellationToken:
        self.context.slot_guard.acquire(request.slot, request.request_id)
        token = CancellationToken(request.request_id)
        self._tokens[request.request_id] = token
        return token

    async def _run(self, request: GenerationRequest, token: CancellationToken) -> GenerationOutcome:
        try:
            outcome = await self._execute(request, token)
        except GenerationError as e:
            outcome = self._error_outcome(request, e)
        finally:
            self._tokens.pop(request.request_id, None)
            self.context.slot_guard.release(request.slot, request.request_id)

        logger.info(f"Request {request.request_id} finished: {outcome.to_summary_dict()}")
        return self._record(outcome)

    async def _execute(self, request: GenerationRequest, token: CancellationToken) -> GenerationOutcome:
        identity = self.context.identity
        descriptor = await self.gate.check(request, identity)

        submitted = await self.submitter.submit(request, token)
        if isinstance(submitted, Immediate):
            if token.cancelled:
                return GenerationOutcome.build(request.request_id, request.mode, OutcomeKind.CANCELLED)
            return await self._deliver(request, submitted.results)

        handle = submitted.handle
        self.context.tracker.insert(handle, descriptor, request.prompt)
        try:
            polled = await self.scheduler.run(handle, on_progress=self._on_progress)
        finally:
            self.context.tracker.remove(handle.job_id)

        if polled.status == JobStatus.CANCELLED:
            return GenerationOutcome.build(request.request_id, request.mode, OutcomeKind.CANCELLED,
                                           job_id=handle.job_id)
        if polled.status == JobStatus.TIMED_OUT:
            return GenerationOutcome.build(request.request_id, request.mode, OutcomeKind.TIMED_OUT,
                                           polled.message, job_id=handle.job_id, error_code="TIMED_OUT")
        if polled.status == JobStatus.FAILED:
            error = polled.error or TerminalError(polled.message or "Generation failed")
            return self._error_outcome(request, error, job_id=handle.job_id)

        results = normalize_outputs(polled.output, request, descriptor)
        return await self._deliver(request, results, handle.job_id)

    async def _deliver(self, request: GenerationRequest, results: Sequence[VariationResult],
                       job_id: Optional[str] = None) -> GenerationOutcome:
        if not results:
            return GenerationOutcome.build(request.request_id, request.mode, OutcomeKind.EMPTY,
                                           job_id=job_id, error_code="EMPTY_RESULT")

        report = filter_results(results, self.context.banned_terms)
        if report.all_filtered:
            return GenerationOutcome.build(request.request_id, request.mode, OutcomeKind.FILTERED,
                                           job_id=job_id, error_code="CONTENT_FILTERED",
                                           filtered_count=len(report.rejected))

        commit = await self.sink.commit(report.kept, request, self.context.identity,
                                        self.context.draft, job_id)
        details = {"duplicates": len(commit.duplicates), "draft_cleared": commit.draft_cleared}
        if commit.debit_error:
            details["debit_error"] = commit.debit_error
        if commit.persist_error:
            details["persist_error"] = commit.persist_error

        message = None
        if not commit.committed:
            message = "These results are already in your collection"
        return GenerationOutcome.build(
            request.request_id,
            request.mode,
            OutcomeKind.SUCCEEDED,
            message,
            job_id=job_id,
            results=commit.committed,
            filtered_count=len(report.rejected),
            credits_debited=commit.credits_debited,
            details=details
        )

    def _error_outcome(self, request: GenerationRequest, error: GenerationError,
                       job_id: Optional[str] = None) -> GenerationOutcome:
        if isinstance(error, DuplicateSubmissionError):
            kind = OutcomeKind.REJECTED
        elif isinstance(error, JobCancelledError):
            kind = OutcomeKind.CANCELLED
        elif error.retryable:
            kind = OutcomeKind.TRANSIENT_ERROR
        else:
            kind = OutcomeKind.TERMINAL_ERROR

        message = None if kind == OutcomeKind.TRANSIENT_ERROR else error.message
        return GenerationOutcome.build(
            request.request_id,
            request.mode,
            kind,
            message,
            job_id=job_id,
            error_code=error.code,
            details=error.to_dict()
        )

    def _record(self, outcome: GenerationOutcome) -> GenerationOutcome:
        self.outcomes[outcome.request_id] = outcome
        self.outcomes.move_to_end(outcome.request_id)
        while len(self.outcomes) > self.context.config.api.outcome_history_size:
            self.outcomes.popitem(last=False)
        return outcome

    def _on_progress(self, handle: JobHandle, progress: int, status: JobStatus) -> None:
        self.context.tracker.update_progress(handle.job_id, progress, status, STEP_LABELS.get(status))

    # Queries and cancellation

    def cancel(self, job_or_request_id: str) -> bool:
        """Cancel an in-flight job by job id, or a not-yet-polled request by request id."""
        if self.context.tracker.cancel(job_or_request_id):
            return True
        token = self._tokens.get(job_or_request_id)
        if token is None:
            return False
        return token.cancel()

    def is_pending(self, request_id: str) -> bool:
        return request_id in self._tokens

    def get_outcome(self, request_id: str) -> Optional[GenerationOutcome]:
        return self.outcomes.get(request_id)

    def processing_items(self) -> List[ProcessingItem]:
        return self.context.tracker.items()

    def results(self) -> List[VariationResult]:
        return self.context.collection.items()

    async def remove_result(self, result_id: str, timestamp: int) -> bool:
        return await self.sink.remove(result_id, timestamp)

    async def shutdown(self) -> None:
        """Cancel everything still running and wait for it to settle."""
        for token in list(self._tokens.values()):
            token.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks.values(), return_exceptions=True)
