"""Tests for the HTTP provider transport and the credit and gallery clients."""

import json

import httpx
import pytest

from activities.account_services import CreditService, HttpGalleryStore
from activities.provider_transport import MALFORMED_RESPONSE_CODE, HttpProviderTransport, SubmitResponse
from config.error_policies import (
    APIError,
    ContentModerationError,
    GatewayTimeoutError,
    NetworkError,
    RateLimitError,
)
from config.settings import CreditConfig, GalleryConfig, ProviderConfig
from models.core_models import VariationResult
from models.generation_request import Identity
from models.modes import GenerationMode, OutputKind, get_descriptor


def recording(handler):
    """Wrap a handler so every request it sees is kept on ``.requests``."""
    requests = []

    def wrapped(request):
        requests.append(request)
        return handler(request)

    transport = httpx.MockTransport(wrapped)
    transport.requests = requests
    return transport


class TestHttpProviderTransport:
    """Test cases for HttpProviderTransport."""

    @pytest.fixture
    def config(self):
        return ProviderConfig(base_url="https://gateway.test/api/", api_key="k-1")

    @pytest.mark.asyncio
    async def test_submit_posts_payload(self, config):
        transport = recording(lambda request: httpx.Response(200, json={"success": True, "taskId": "t-1"}))
        provider = HttpProviderTransport(config, transport)

        response = await provider.submit(get_descriptor(GenerationMode.KLING_MASTER_I2V), {"prompt": "x"})

        request = transport.requests[0]
        assert response.job_id == "t-1"
        assert str(request.url) == "https://gateway.test/api/kling-2.1-master"
        assert request.headers["Authorization"] == "Bearer k-1"
        assert json.loads(request.content) == {"prompt": "x"}

    @pytest.mark.asyncio
    async def test_poll_sends_job_id(self, config):
        transport = recording(lambda request: httpx.Response(200, json={"status": "IN_PROGRESS"}))
        provider = HttpProviderTransport(config, transport)

        response = await provider.poll(get_descriptor(GenerationMode.SEEDANCE_PRO_I2V), "p-9")

        assert response.status == "IN_PROGRESS"
        assert transport.requests[0].url.params["taskId"] == "p-9"
        assert transport.requests[0].url.params["model"] == "bytedance/seedance-1-pro"

    @pytest.mark.asyncio
    async def test_poll_without_status_endpoint(self, config):
        provider = HttpProviderTransport(config, recording(lambda request: httpx.Response(200, json={})))

        with pytest.raises(APIError):
            await provider.poll(get_descriptor(GenerationMode.FLUX_PRO_KONTEXT), "x")

    @pytest.mark.asyncio
    async def test_http_status_classified(self, config):
        provider = HttpProviderTransport(config, recording(lambda request: httpx.Response(429, text="slow down")))

        with pytest.raises(RateLimitError):
            await provider.submit(get_descriptor(GenerationMode.FLUX_PRO_KONTEXT), {})

    @pytest.mark.asyncio
    async def test_unsuccessful_body_classified(self, config):
        provider = HttpProviderTransport(config, recording(
            lambda request: httpx.Response(200, json={"success": False, "error": "Blocked by content policy"})
        ))

        with pytest.raises(ContentModerationError):
            await provider.submit(get_descriptor(GenerationMode.FLUX_PRO_KONTEXT), {})

    @pytest.mark.asyncio
    async def test_network_failures_classified(self, config):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        def stall(request):
            raise httpx.ReadTimeout("stalled", request=request)

        with pytest.raises(NetworkError):
            await HttpProviderTransport(config, httpx.MockTransport(refuse)).submit(
                get_descriptor(GenerationMode.FLUX_PRO_KONTEXT), {})
        with pytest.raises(GatewayTimeoutError):
            await HttpProviderTransport(config, httpx.MockTransport(stall)).submit(
                get_descriptor(GenerationMode.FLUX_PRO_KONTEXT), {})

    @pytest.mark.asyncio
    async def test_non_json_body(self, config):
        provider = HttpProviderTransport(config, recording(lambda request: httpx.Response(200, text="<html>")))

        with pytest.raises(APIError):
            await provider.submit(get_descriptor(GenerationMode.FLUX_PRO_KONTEXT), {})

    @pytest.mark.asyncio
    async def test_numeric_task_id_kept_as_text(self, config):
        provider = HttpProviderTransport(config, recording(
            lambda request: httpx.Response(200, json={"success": True, "taskId": 12345})
        ))

        response = await provider.submit(get_descriptor(GenerationMode.KLING_MASTER_I2V), {})

        assert response.job_id == "12345"

    @pytest.mark.asyncio
    async def test_structured_error_flattened(self, config):
        provider = HttpProviderTransport(config, recording(lambda request: httpx.Response(200, json={
            "success": False, "status": "FAILED", "error": {"message": "nsfw content"}
        })))

        response = await provider.poll(get_descriptor(GenerationMode.KLING_MASTER_I2V), "t-1")

        assert response.status == "FAILED"
        assert response.error == "nsfw content"

    @pytest.mark.asyncio
    async def test_structured_submit_error_classified(self, config):
        provider = HttpProviderTransport(config, recording(lambda request: httpx.Response(200, json={
            "success": False, "error": [{"detail": "Blocked by content policy"}]
        })))

        with pytest.raises(ContentModerationError):
            await provider.submit(get_descriptor(GenerationMode.FLUX_PRO_KONTEXT), {})

    @pytest.mark.asyncio
    async def test_malformed_body_is_an_api_error(self, config):
        provider = HttpProviderTransport(config, recording(
            lambda request: httpx.Response(200, json={"status": "RUNNING", "progress": "halfway"})
        ))

        with pytest.raises(APIError) as exc_info:
            await provider.poll(get_descriptor(GenerationMode.KLING_MASTER_I2V), "t-1")

        assert exc_info.value.code == MALFORMED_RESPONSE_CODE
        assert exc_info.value.retryable


class TestProviderEnvelope:
    """Output and id aliases accepted from providers."""

    def test_output_collected_from_alias(self):
        response = SubmitResponse.model_validate({"videoUrl": "https://out/v.mp4", "prediction_id": "p"})

        assert response.output == "https://out/v.mp4"
        assert response.job_id == "p"
        assert response.has_output

    def test_empty_output(self):
        assert not SubmitResponse.model_validate({"output": []}).has_output


class TestCreditService:
    """Test cases for CreditService."""

    @pytest.mark.asyncio
    async def test_check_accepts_aliases(self):
        transport = recording(lambda request: httpx.Response(200, json={
            "hasCredits": False, "modelCost": 4, "availableCredits": 2
        }))
        service = CreditService(CreditConfig(base_url="https://credits.test/api"), transport)

        result = await service.check(Identity(user_id="u-1"), get_descriptor(GenerationMode.KLING_MASTER_I2V))

        assert not result.has_credits
        assert result.required_cost == 4
        assert result.available_balance == 2
        assert str(transport.requests[0].url) == "https://credits.test/api/check-credits"
        assert json.loads(transport.requests[0].content) == {"userId": "u-1", "modelName": "kling-2.1-master-i2v"}

    @pytest.mark.asyncio
    async def test_check_without_verdict_is_an_api_error(self):
        transport = recording(lambda request: httpx.Response(200, json={"requiredCost": 4}))
        service = CreditService(CreditConfig(base_url="https://credits.test/api"), transport)

        with pytest.raises(APIError) as exc_info:
            await service.check(Identity(user_id="u-1"), get_descriptor(GenerationMode.KLING_MASTER_I2V))

        assert exc_info.value.code == MALFORMED_RESPONSE_CODE

    @pytest.mark.asyncio
    async def test_debit_sends_generation_id(self):
        transport = recording(lambda request: httpx.Response(200, json={"creditsUsed": 4, "remainingCredits": 6}))
        service = CreditService(CreditConfig(base_url="https://credits.test/api"), transport)

        receipt = await service.debit(Identity(user_id="u-1"), get_descriptor(GenerationMode.KLING_MASTER_I2V), "job-1")

        body = json.loads(transport.requests[0].content)
        assert receipt.credits_used == 4
        assert body["generationId"] == "job-1"
        assert body["generationType"] == "video"


class TestHttpGalleryStore:
    """Test cases for HttpGalleryStore."""

    @pytest.mark.asyncio
    async def test_append_attaches_storage_ids(self):
        transport = recording(lambda request: httpx.Response(200, json={"ids": [17]}))
        store = HttpGalleryStore(GalleryConfig(base_url="https://gallery.test"), "u-1", transport)
        result = VariationResult(id="r-1", output_kind=OutputKind.IMAGE, image_url="https://out/1.png", timestamp=5)

        stored = await store.append([result], "paint", "https://in/1.png")

        body = json.loads(transport.requests[0].content)
        assert stored[0].storage_id == "17"
        assert body["userId"] == "u-1"
        assert body["variations"][0]["image_url"] == "https://out/1.png"

    @pytest.mark.asyncio
    async def test_remove_sends_delete(self):
        transport = recording(lambda request: httpx.Response(200, json={"success": True}))
        store = HttpGalleryStore(GalleryConfig(base_url="https://gallery.test"), "u-1", transport)

        await store.remove("r-1", 5)

        request = transport.requests[0]
        assert request.method == "DELETE"
        assert request.url.params["id"] == "r-1"
        assert request.url.params["timestamp"] == "5"
