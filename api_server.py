#!/usr/bin/env python3
"""
FastAPI server for the generation orchestrator

This module exposes the orchestrator over HTTP. Each user session (identified
by the ``X-User-Id`` header) gets its own orchestrator, draft and result
collection; the provider transport is shared.

Features:
- Mode resolution for an upload shape
- Background generate actions with per-slot single-flight
- In-flight job listing and cancellation
- Result collection listing and deletion
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
from fastapi import FastAPI, Header, HTTPException, Query
from pydantic import BaseModel, Field

from config.concurrency_control import DEFAULT_SLOT
from config.error_policies import DuplicateSubmissionError, GenerationError, IncompatibleMediaError
from config.settings import AppConfig, get_config
from models.generation_request import GenerationRequest, GenerationSettings, MediaInput
from models.modes import ContentIntent, GenerationMode, get_descriptor
from activities.mode_resolver import MediaShape, resolve, resolve_shape
from activities.provider_transport import HttpProviderTransport, ProviderTransport
from utils.clock import Clock
from workflows.orchestrator import GenerationOrchestrator, build_context

logger = logging.getLogger(__name__)


class GenerateRequestBody(BaseModel):
    """Body of a generate call."""
    mode: Optional[GenerationMode] = Field(None, description="Mode to use; resolved from the media when omitted")
    intent: ContentIntent = Field(ContentIntent.IMAGE, description="Desired output kind when resolving a mode")
    media: List[MediaInput] = Field(default_factory=list, description="Uploaded media")
    prompt: str = Field("", max_length=2000, description="User instruction")
    settings: GenerationSettings = Field(default_factory=GenerationSettings)
    slot: str = Field(DEFAULT_SLOT, description="Logical slot of the generate action")


class GenerateAccepted(BaseModel):
    """Response to an accepted generate call."""
    request_id: str = Field(..., description="Id to query the outcome with")
    mode: GenerationMode = Field(..., description="Mode the request runs with")
    status: str = Field("accepted")
    timestamp: datetime = Field(default_factory=datetime.now)


class SessionRegistry:
    """One orchestrator per user, sharing the provider transport."""

    def __init__(
        self,
        config: AppConfig,
        provider_transport: ProviderTransport,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Optional[Clock] = None
    ):
        self.config = config
        self.provider_transport = provider_transport
        self.http_transport = http_transport
        self.clock = clock
        self._sessions: Dict[str, GenerationOrchestrator] = {}

    def get(self, user_id: str) -> GenerationOrchestrator:
        orchestrator = self._sessions.get(user_id)
        if orchestrator is None:
            context = build_context(
                self.config,
                user_id,
                provider_transport=self.provider_transport,
                http_transport=self.http_transport,
                clock=self.clock
            )
            orchestrator = GenerationOrchestrator(context)
            self._sessions[user_id] = orchestrator
            logger.info(f"Created session for user {user_id}")
        return orchestrator

    def __len__(self) -> int:
        return len(self._sessions)

    async def close(self) -> None:
        for orchestrator in self._sessions.values():
            await orchestrator.shutdown()
        self._sessions.clear()


def _error_detail(error: GenerationError) -> Dict[str, Any]:
    return error.to_dict()


def create_app(
    config: Optional[AppConfig] = None,
    provider_transport: Optional[ProviderTransport] = None,
    http_transport: Optional[httpx.AsyncBaseTransport] = None,
    clock: Optional[Clock] = None
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        config: Application configuration, defaults to the global one
        provider_transport: Provider transport override
        http_transport: httpx transport for the provider, credit and gallery clients
        clock: Clock override

    Returns:
        FastAPI application
    """
    config = config or get_config()
    transport = provider_transport or HttpProviderTransport(config.provider, http_transport)
    sessions = SessionRegistry(config, transport, http_transport, clock)

    app = FastAPI(
        title="Media Variation Orchestrator",
        description="Submits generation jobs to media providers and tracks them to completion",
        version="1.0.0"
    )
    app.state.sessions = sessions
    app.state.config = config

    @app.on_event("startup")
    async def startup_event():
        """Log configuration problems on startup."""
        logger.info("Starting generation orchestrator API server")
        for problem in config.validate():
            logger.warning(f"Configuration problem: {problem}")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Cancel outstanding jobs on shutdown."""
        logger.info("Shutting down generation orchestrator API server")
        await sessions.close()

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "sessions": len(sessions)
        }

    @app.get("/modes")
    async def list_modes(
        intent: ContentIntent = Query(ContentIntent.IMAGE, description="Desired output kind"),
        images: int = Query(0, ge=0, description="Number of uploaded images"),
        videos: int = Query(0, ge=0, description="Number of uploaded videos"),
        audio: int = Query(0, ge=0, description="Number of uploaded audio tracks"),
        current: Optional[GenerationMode] = Query(None, description="Currently selected mode"),
        allowed: Optional[List[GenerationMode]] = Query(None, description="Restrict the listing to these modes"),
        x_user_id: Optional[str] = Header(None, alias="X-User-Id")
    ):
        """List modes compatible with an upload shape.

        With an ``X-User-Id`` header only the modes unlocked for that user are
        listed; ``allowed`` narrows the listing further.
        """
        try:
            shape = MediaShape.from_counts(images=images, videos=videos, audio=audio)
        except IncompatibleMediaError as e:
            raise HTTPException(status_code=400, detail=_error_detail(e))

        allowed_modes = frozenset(allowed) if allowed else None
        if x_user_id:
            unlocked = sessions.get(x_user_id).context.allowed_modes
            if unlocked is not None:
                allowed_modes = unlocked if allowed_modes is None else allowed_modes & unlocked

        result = resolve_shape(shape, intent, current, allowed_modes)
        return {
            "available_modes": [
                {
                    "mode": mode.value,
                    "display_name": get_descriptor(mode).display_name,
                    "cost": get_descriptor(mode).cost,
                    "estimated_seconds": get_descriptor(mode).estimated_seconds
                }
                for mode in result.available_modes
            ],
            "corrected_mode": result.corrected_mode.value if result.corrected_mode else None,
            "changed": result.changed
        }

    @app.post("/generate", status_code=202, response_model=GenerateAccepted)
    async def generate(body: GenerateRequestBody, x_user_id: str = Header(..., alias="X-User-Id")):
        """Start a generate action for the calling user."""
        orchestrator = sessions.get(x_user_id)
        unlocked = orchestrator.context.allowed_modes

        mode = body.mode
        if mode is not None and unlocked is not None and mode not in unlocked:
            raise HTTPException(status_code=403, detail=f"Mode {mode.value} is not unlocked for this user")
        try:
            if mode is None:
                mode = resolve(body.media, body.intent, allowed_modes=unlocked).corrected_mode
            else:
                MediaShape.of(body.media)
        except IncompatibleMediaError as e:
            raise HTTPException(status_code=400, detail=_error_detail(e))
        if mode is None:
            raise HTTPException(status_code=400, detail="No generation mode accepts this combination of inputs")

        request = GenerationRequest(
            mode=mode,
            media=tuple(body.media),
            prompt=body.prompt,
            settings=body.settings,
            slot=body.slot
        )
        try:
            orchestrator.start(request)
        except DuplicateSubmissionError as e:
            raise HTTPException(status_code=409, detail=_error_detail(e))

        logger.info(f"Accepted request {request.request_id} ({mode.value}) for {x_user_id}")
        return GenerateAccepted(request_id=request.request_id, mode=mode)

    @app.get("/outcomes/{request_id}")
    async def get_outcome(request_id: str, x_user_id: str = Header(..., alias="X-User-Id")):
        """Get the outcome of a generate action."""
        orchestrator = sessions.get(x_user_id)
        outcome = orchestrator.get_outcome(request_id)
        if outcome is None:
            if orchestrator.is_pending(request_id):
                raise HTTPException(status_code=404, detail="Generation still in progress")
            raise HTTPException(status_code=404, detail=f"Unknown request {request_id}")
        return outcome.model_dump(mode="json")

    @app.get("/jobs")
    async def list_jobs(x_user_id: str = Header(..., alias="X-User-Id")):
        """List in-flight jobs."""
        orchestrator = sessions.get(x_user_id)
        return [item.model_dump(mode="json") for item in orchestrator.processing_items()]

    @app.post("/jobs/{job_id}/cancel")
    async def cancel_job(job_id: str, x_user_id: str = Header(..., alias="X-User-Id")):
        """Stop waiting for a job."""
        orchestrator = sessions.get(x_user_id)
        if not orchestrator.cancel(job_id):
            raise HTTPException(status_code=404, detail=f"No in-flight job {job_id}")
        return {
            "success": True,
            "message": f"Job {job_id} cancelled",
            "timestamp": datetime.now().isoformat()
        }

    @app.get("/results")
    async def list_results(x_user_id: str = Header(..., alias="X-User-Id")):
        """List committed results, most recent first."""
        orchestrator = sessions.get(x_user_id)
        return [result.model_dump(mode="json") for result in orchestrator.results()]

    @app.delete("/results/{result_id}")
    async def delete_result(
        result_id: str,
        timestamp: int = Query(..., description="Insertion key of the result"),
        x_user_id: str = Header(..., alias="X-User-Id")
    ):
        """Delete a committed result."""
        orchestrator = sessions.get(x_user_id)
        try:
            removed = await orchestrator.remove_result(result_id, timestamp)
        except GenerationError as e:
            logger.error(f"Failed to delete result {result_id}: {e.message}")
            raise HTTPException(status_code=502, detail=_error_detail(e))
        if not removed:
            raise HTTPException(status_code=404, detail=f"No result {result_id} at {timestamp}")
        return {"success": True, "message": f"Result {result_id} deleted"}

    return app


app = create_app()
