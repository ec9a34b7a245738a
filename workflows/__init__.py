"""Job lifecycle: polling, in-flight tracking and orchestration."""

from .inflight import InFlightTracker, TrackedJob
from .polling import PollingScheduler, PollResult
from .orchestrator import GenerationOrchestrator, OrchestrationContext, build_context

__all__ = [
    "InFlightTracker",
    "TrackedJob",
    "PollingScheduler",
    "PollResult",
    "GenerationOrchestrator",
    "OrchestrationContext",
    "build_context"
]
