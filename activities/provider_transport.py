"""HTTP boundary to the provider gateway.

Every raw ``httpx`` failure is converted into a classified
``GenerationError`` here, so nothing above this module handles transport
exceptions.
"""

import logging
from typing import Any, Dict, Optional, Protocol, Type, TypeVar

import httpx
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from config.settings import ProviderConfig
from config.error_policies import (
    APIError,
    GatewayTimeoutError,
    NetworkError,
    classify_http_status,
    classify_message,
)
from models.modes import ModeDescriptor

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Keys under which providers return finished output
OUTPUT_KEYS = ("output", "variations", "videoUrl", "video_url", "imageUrl", "image_url",
               "images", "video", "image", "result")

MALFORMED_RESPONSE_CODE = "MALFORMED_PROVIDER_RESPONSE"


def error_text(value: Any) -> Optional[str]:
    """Reduce a structured provider error to its message text."""
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, dict):
        for key in ("message", "detail", "error", "msg"):
            if value.get(key):
                return error_text(value[key])
        return str(value)
    if isinstance(value, (list, tuple)):
        parts = [error_text(item) for item in value]
        return "; ".join(part for part in parts if part) or None
    return str(value)


class ProviderEnvelope(BaseModel):
    """Fields common to submit and poll responses."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    success: bool = Field(default=True)
    status: Optional[str] = Field(default=None)
    output: Any = Field(default=None)
    error: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("error", "errorMessage", "error_message", "detail")
    )

    @field_validator("status", mode='before')
    @classmethod
    def coerce_status(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @field_validator("error", mode='before')
    @classmethod
    def flatten_error(cls, value: Any) -> Optional[str]:
        return error_text(value)

    @model_validator(mode='before')
    @classmethod
    def collect_output(cls, data: Any) -> Any:
        """Gather output from whichever key the provider used."""
        if not isinstance(data, dict) or data.get("output") is not None:
            return data
        for key in OUTPUT_KEYS[1:]:
            if data.get(key):
                data = dict(data)
                data["output"] = data[key]
                break
        return data

    @property
    def has_output(self) -> bool:
        return self.output not in (None, "", [], {})


class SubmitResponse(ProviderEnvelope):
    """Provider answer to a submission."""

    job_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("taskId", "task_id", "requestId", "request_id",
                                      "predictionId", "prediction_id", "id", "job_id")
    )

    @field_validator("job_id", mode='before')
    @classmethod
    def coerce_job_id(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class PollResponse(ProviderEnvelope):
    """Provider answer to a status poll."""

    progress: Optional[float] = Field(default=None)


def parse_response(model: Type[ModelT], data: Dict[str, Any], source: str) -> ModelT:
    """Validate a decoded response body against its model.

    Raises:
        APIError: With code MALFORMED_PROVIDER_RESPONSE when the body does
            not fit the model
    """
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        logger.warning(f"Malformed response from {source}: {e.error_count()} validation error(s)")
        raise APIError(f"Malformed response from {source}", code=MALFORMED_RESPONSE_CODE)


class ProviderTransport(Protocol):
    """Abstract per-provider submit/poll contract."""

    async def submit(self, descriptor: ModeDescriptor, payload: Dict[str, Any]) -> SubmitResponse:
        ...

    async def poll(self, descriptor: ModeDescriptor, job_id: str) -> PollResponse:
        ...


async def request_json(
    method: str,
    url: str,
    *,
    timeout: float,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    headers: Optional[Dict[str, str]] = None,
    **kwargs
) -> Dict[str, Any]:
    """Perform one HTTP call and return its JSON object body.

    Args:
        method: HTTP method
        url: Absolute URL
        timeout: Timeout in seconds
        transport: Optional httpx transport (tests use httpx.MockTransport)
        headers: Extra request headers

    Returns:
        Decoded JSON object

    Raises:
        GenerationError: Classified failure
    """
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.request(method, url, headers=headers, **kwargs)
    except httpx.TimeoutException as e:
        logger.warning(f"Timeout calling {url}: {str(e)}")
        raise GatewayTimeoutError(f"Request timeout: {str(e) or url}")
    except (httpx.ConnectError, httpx.NetworkError) as e:
        logger.warning(f"Network error calling {url}: {str(e)}")
        raise NetworkError(f"Network error: {str(e) or url}")
    except httpx.HTTPError as e:
        logger.error(f"Unexpected HTTP error calling {url}: {str(e)}")
        raise APIError(f"API error: {str(e) or url}")

    if response.status_code >= 400:
        logger.warning(f"{method} {url} returned {response.status_code}")
        raise classify_http_status(response.status_code, response.text)

    try:
        data = response.json()
    except ValueError:
        raise APIError(f"Non-JSON response from {url}")

    if not isinstance(data, dict):
        raise APIError(f"Unexpected response shape from {url}")
    return data


class HttpProviderTransport:
    """Provider transport over the HTTP gateway."""

    def __init__(self, config: ProviderConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport

    def _url(self, path: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/{path.lstrip('/')}"

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    async def submit(self, descriptor: ModeDescriptor, payload: Dict[str, Any]) -> SubmitResponse:
        """Submit a job for a mode.

        Raises:
            GenerationError: On transport failure or an explicit provider error
        """
        logger.info(f"Submitting {descriptor.mode.value} to {descriptor.submit_path}")
        data = await request_json(
            "POST",
            self._url(descriptor.submit_path),
            timeout=self.config.request_timeout,
            transport=self._transport,
            headers=self._headers(),
            json=payload
        )
        response = parse_response(SubmitResponse, data, descriptor.submit_path)
        if not response.success:
            raise classify_message(response.error)
        return response

    async def poll(self, descriptor: ModeDescriptor, job_id: str) -> PollResponse:
        """Query the status of a job.

        Raises:
            GenerationError: On transport failure, or an explicit provider
                error that carries no job status
        """
        if not descriptor.status_path:
            raise APIError(f"Mode {descriptor.mode.value} has no status endpoint")

        data = await request_json(
            "GET",
            self._url(descriptor.status_path),
            timeout=self.config.poll_timeout,
            transport=self._transport,
            headers=self._headers(),
            params={"taskId": job_id, "model": descriptor.model_id}
        )
        response = parse_response(PollResponse, data, descriptor.status_path)
        if not response.success and response.status is None:
            raise classify_message(response.error)
        return response
