"""Shared fixtures: a fake clock, a scripted provider transport and fake services."""

import asyncio
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

import pytest

from activities.account_services import CreditCheck, DebitReceipt, InMemoryGalleryStore
from activities.provider_transport import PollResponse, SubmitResponse
from config.settings import AppConfig
from models.generation_request import Identity, MediaInput, MediaKind
from models.modes import ModeDescriptor
from workflows.orchestrator import GenerationOrchestrator, OrchestrationContext


class FakeClock:
    """Clock whose sleeps advance time instantly."""

    def __init__(self, start: float = 1000.0, wall_start: float = 1_700_000_000.0):
        self.start = start
        self.current = start
        self.wall_start = wall_start
        self.sleeps: List[float] = []

    def now(self) -> float:
        return self.current

    def wall_time(self) -> float:
        return self.wall_start + (self.current - self.start)

    def advance(self, seconds: float) -> None:
        self.current += seconds

    async def sleep(self, seconds: float, token=None) -> None:
        self.sleeps.append(seconds)
        await asyncio.sleep(0)
        if token is not None and token.cancelled:
            return
        self.current += seconds


class ScriptedTransport:
    """Provider transport that replays scripted responses.

    Poll scripts repeat their last entry once exhausted. Entries may be
    dicts, response models or exceptions to raise.
    """

    def __init__(self, submit_script: Optional[List[Any]] = None, poll_script: Optional[List[Any]] = None):
        self.submit_script = list(submit_script or [])
        self.poll_script = list(poll_script or [])
        self.submit_calls: List[Dict[str, Any]] = []
        self.poll_calls: List[str] = []
        self.active_polls: Dict[str, int] = defaultdict(int)
        self.max_concurrent_polls: Dict[str, int] = defaultdict(int)
        self.on_poll: Optional[Callable[[str, int], None]] = None

    async def submit(self, descriptor: ModeDescriptor, payload: Dict[str, Any]) -> SubmitResponse:
        self.submit_calls.append({"mode": descriptor.mode, "payload": payload})
        await asyncio.sleep(0)
        item = self.submit_script.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, SubmitResponse):
            return item
        return SubmitResponse.model_validate(item)

    async def poll(self, descriptor: ModeDescriptor, job_id: str) -> PollResponse:
        self.poll_calls.append(job_id)
        self.active_polls[job_id] += 1
        self.max_concurrent_polls[job_id] = max(self.max_concurrent_polls[job_id], self.active_polls[job_id])
        try:
            if self.on_poll is not None:
                self.on_poll(job_id, len(self.poll_calls))
            await asyncio.sleep(0)
            item = self.poll_script.pop(0) if len(self.poll_script) > 1 else self.poll_script[0]
            if isinstance(item, Exception):
                raise item
            if isinstance(item, PollResponse):
                return item
            return PollResponse.model_validate(item)
        finally:
            self.active_polls[job_id] -= 1


class FakeCreditService:
    """Credit service double that records every call."""

    def __init__(self, has_credits: bool = True, cost: float = 1.0, balance: float = 100.0):
        self.has_credits = has_credits
        self.cost = cost
        self.balance = balance
        self.checks: List[str] = []
        self.debits: List[str] = []
        self.usage: List[str] = []
        self.debit_error: Optional[Exception] = None

    async def check(self, identity: Identity, descriptor: ModeDescriptor) -> CreditCheck:
        self.checks.append(descriptor.mode.value)
        return CreditCheck(has_credits=self.has_credits, required_cost=self.cost, available_balance=self.balance)

    async def debit(self, identity: Identity, descriptor: ModeDescriptor, generation_id: str) -> DebitReceipt:
        if self.debit_error is not None:
            raise self.debit_error
        self.debits.append(generation_id)
        self.balance -= self.cost
        return DebitReceipt(credits_used=self.cost, remaining_credits=self.balance)

    async def record_usage(self, identity: Identity, descriptor: ModeDescriptor) -> None:
        self.usage.append(descriptor.mode.value)


def image(reference: str = "https://cdn.example.com/in.png", media_id: Optional[str] = None) -> MediaInput:
    kwargs = {"id": media_id} if media_id else {}
    return MediaInput(kind=MediaKind.IMAGE, reference=reference, mime_type="image/png", **kwargs)


def video(reference: str = "https://cdn.example.com/in.mp4") -> MediaInput:
    return MediaInput(kind=MediaKind.VIDEO, reference=reference, mime_type="video/mp4")


def audio(reference: str = "https://cdn.example.com/in.mp3") -> MediaInput:
    return MediaInput(kind=MediaKind.AUDIO, reference=reference, mime_type="audio/mpeg")


@pytest.fixture
def app_config():
    """Configuration isolated from the environment's toggles."""
    config = AppConfig(load_env_file=False)
    config.credits.enabled = True
    config.credits.admin_user_ids = ["admin-1"]
    config.gallery.base_url = None
    config.polling.min_poll_interval = 2.0
    config.polling.default_timeout_multiplier = 6.0
    config.polling.max_consecutive_poll_errors = 3
    config.polling.progress_cap = 90
    config.content_filter.extra_banned_terms = []
    config.api.outcome_history_size = 50
    return config


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def identity():
    return Identity(user_id="user-1")


@pytest.fixture
def admin_identity():
    return Identity(user_id="admin-1", is_admin=True)


@pytest.fixture
def credits():
    return FakeCreditService()


@pytest.fixture
def store():
    return InMemoryGalleryStore()


@pytest.fixture
def make_orchestrator(app_config, clock, identity, credits, store):
    """Factory building an orchestrator around a scripted transport."""

    def factory(transport: ScriptedTransport, **overrides) -> GenerationOrchestrator:
        fields = {
            "config": app_config,
            "identity": identity,
            "transport": transport,
            "clock": clock,
            "credit_service": credits,
            "store": store,
        }
        fields.update(overrides)
        return GenerationOrchestrator(OrchestrationContext(**fields))

    return factory
