"""Tests for the in-flight tracker, slot guard and system clock."""

import asyncio

import pytest

from config.concurrency_control import SlotGuard
from config.error_policies import DuplicateSubmissionError
from models.core_models import JobHandle, JobStatus
from models.modes import GenerationMode, get_descriptor
from utils.cancellation import CancellationToken
from utils.clock import SystemClock
from workflows.inflight import InFlightTracker


def make_handle(job_id="job-1"):
    return JobHandle(job_id=job_id, mode=GenerationMode.VEO3_FAST_I2V, request_id="req-1",
                     created_at=0.0, estimated_seconds=45)


class TestInFlightTracker:
    """Test cases for InFlightTracker."""

    def test_insert_and_progress(self):
        tracker = InFlightTracker()
        tracker.insert(make_handle(), get_descriptor(GenerationMode.VEO3_FAST_I2V), "a cat")

        tracker.update_progress("job-1", 40, JobStatus.RUNNING, "Generating")
        item = tracker.update_progress("job-1", 10)

        assert item.progress == 40
        assert item.status == JobStatus.RUNNING
        assert item.current_step == "Generating"
        assert item.model_name == "Veo3 Fast Image to Video"
        assert "job-1" in tracker

    def test_update_after_remove_is_ignored(self):
        tracker = InFlightTracker()
        tracker.insert(make_handle(), get_descriptor(GenerationMode.VEO3_FAST_I2V))
        tracker.remove("job-1")

        assert tracker.update_progress("job-1", 50) is None
        assert tracker.items() == []

    def test_cancel_signals_handle(self):
        tracker = InFlightTracker()
        handle = make_handle()
        tracker.insert(handle, get_descriptor(GenerationMode.VEO3_FAST_I2V))

        assert tracker.cancel("job-1")
        assert handle.cancelled
        assert len(tracker) == 0
        assert not tracker.cancel("job-1")

    def test_terminal_status_ends_cancellability(self):
        tracker = InFlightTracker()
        handle = make_handle()
        tracker.insert(handle, get_descriptor(GenerationMode.VEO3_FAST_I2V))

        running = tracker.update_progress("job-1", 30, JobStatus.RUNNING)
        finished = tracker.update_progress("job-1", 90, JobStatus.SUCCEEDED)

        assert running.cancellable
        assert not finished.cancellable
        assert not tracker.cancel("job-1")
        assert not handle.cancelled
        assert "job-1" in tracker


class TestSlotGuard:
    """Test cases for SlotGuard."""

    def test_single_flight_per_slot(self):
        guard = SlotGuard()
        guard.acquire("main", "req-1")
        guard.acquire("gallery-3", "req-2")

        with pytest.raises(DuplicateSubmissionError):
            guard.acquire("main", "req-3")
        assert guard.holder("main") == "req-1"
        assert guard.get_status()["busy_slots"] == ["gallery-3", "main"]

    def test_release_only_by_owner(self):
        guard = SlotGuard()
        guard.acquire("main", "req-1")

        assert not guard.release("main", "req-2")
        assert guard.release("main", "req-1")
        assert not guard.is_busy("main")


class TestSystemClock:
    """Test cases for SystemClock."""

    @pytest.mark.asyncio
    async def test_sleep_wakes_on_cancel(self):
        clock = SystemClock()
        token = CancellationToken("test")
        started = clock.now()

        asyncio.get_running_loop().call_later(0.01, token.cancel)
        await clock.sleep(5, token)

        assert clock.now() - started < 1

    @pytest.mark.asyncio
    async def test_sleep_returns_at_once_when_cancelled(self):
        clock = SystemClock()
        token = CancellationToken()
        token.cancel()
        started = clock.now()

        await clock.sleep(5, token)

        assert clock.now() - started < 0.5
