"""Tests for the Replicate client and the adapters built on it."""

import json

import httpx
import pytest

from mirrorx_tryon.clients.face_swap import FaceSwapAdapter
from mirrorx_tryon.clients.replicate import ReplicateClient, coerce_output
from mirrorx_tryon.clients.vton import VirtualTryOnAdapter
from mirrorx_tryon.config import ReplicateConfig
from mirrorx_tryon.errors import NoImageProduced, ProviderError
from mirrorx_tryon.types import GarmentCategory, GenerationOptions, ImageForm

OUTPUT_URL = "https://replicate.delivery/out.png"


def make_client(handler, **config):
    settings = ReplicateConfig(
        api_token="r8_test",
        api_url="https://replicate.test/v1",
        poll_interval_seconds=0,
        **config,
    )
    return ReplicateClient(settings, transport=httpx.MockTransport(handler))


class TestCoerceOutput:
    @pytest.mark.parametrize(
        "output",
        [OUTPUT_URL, [OUTPUT_URL, "https://replicate.delivery/other.png"], {"image": OUTPUT_URL}],
    )
    def test_known_shapes(self, output):
        image = coerce_output(output)

        assert image.form is ImageForm.URI
        assert image.uri == OUTPUT_URL

    @pytest.mark.parametrize("output", [None, [], {}, 42, "not-a-url", {"image": None}])
    def test_unknown_shapes_yield_none(self, output):
        assert coerce_output(output) is None


@pytest.mark.asyncio
async def test_versioned_model_polls_until_succeeded():
    requests = []
    statuses = iter(["processing", "succeeded"])

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.method == "POST":
            return httpx.Response(
                201,
                json={"id": "p1", "status": "starting", "urls": {"get": "https://replicate.test/v1/predictions/p1"}},
            )
        status = next(statuses)
        return httpx.Response(200, json={"id": "p1", "status": status, "output": OUTPUT_URL if status == "succeeded" else None})

    async with make_client(handler) as client:
        output = await client.run("owner/model:abc123", {"x": 1})

    assert output == OUTPUT_URL
    create = requests[0]
    assert create.url.path == "/v1/predictions"
    assert json.loads(create.content) == {"version": "abc123", "input": {"x": 1}}
    assert create.headers["Authorization"] == "Bearer r8_test"
    assert len(requests) == 3


@pytest.mark.asyncio
async def test_unversioned_model_uses_model_endpoint():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/models/owner/model/predictions"
        return httpx.Response(201, json={"id": "p2", "status": "succeeded", "output": [OUTPUT_URL]})

    async with make_client(handler) as client:
        assert await client.run("owner/model", {}) == [OUTPUT_URL]


@pytest.mark.asyncio
async def test_failed_prediction_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(201, json={"id": "p3", "status": "failed", "error": "CUDA out of memory"})

    async with make_client(handler) as client:
        with pytest.raises(ProviderError) as excinfo:
            await client.run("owner/model:v", {})

    assert "CUDA out of memory" in excinfo.value.raw_message
    assert not excinfo.value.permission_denied


@pytest.mark.asyncio
async def test_hung_prediction_stops_after_max_polls():
    polls = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            polls.append(request)
        return httpx.Response(200, json={"id": "p4", "status": "processing"})

    async with make_client(handler, max_poll_attempts=3) as client:
        with pytest.raises(ProviderError, match="did not complete"):
            await client.run("owner/model:v", {})

    assert len(polls) == 3


@pytest.mark.asyncio
async def test_unauthorized_is_permission_denied():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"detail": "Invalid token"})

    async with make_client(handler) as client:
        with pytest.raises(ProviderError) as excinfo:
            await client.run("owner/model:v", {})

    assert excinfo.value.permission_denied


class TestFaceSwapAdapter:
    @pytest.mark.asyncio
    async def test_sends_source_and_target_as_uris(self, subject_ref, result_ref):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(201, json={"id": "f", "status": "succeeded", "output": OUTPUT_URL})

        async with make_client(handler) as client:
            result = await FaceSwapAdapter(client, "owner/faceswap:v1").swap(subject_ref, result_ref)

        assert result.swapped
        assert result.image.uri == OUTPUT_URL
        swap_input = bodies[0]["input"]
        assert swap_input["swap_image"].startswith("data:image/png;base64,")
        assert swap_input["target_image"] == result_ref.to_display()

    @pytest.mark.asyncio
    async def test_unexpected_output_keeps_target(self, subject_ref, result_ref):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(201, json={"id": "f", "status": "succeeded", "output": {"faces": 1}})

        async with make_client(handler) as client:
            result = await FaceSwapAdapter(client, "owner/faceswap:v1").swap(subject_ref, result_ref)

        assert not result.swapped
        assert result.image is result_ref


class TestVirtualTryOnAdapter:
    @pytest.mark.asyncio
    async def test_fashn_input_uses_category_mapping(self, subject_ref, garment_ref):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(201, json={"id": "v", "status": "succeeded", "output": OUTPUT_URL})

        options = GenerationOptions(garment_category=GarmentCategory.DRESSES)
        async with make_client(handler) as client:
            image = await VirtualTryOnAdapter(client).generate(
                "fashn-ai/tryon:v1", "ignored", [subject_ref, garment_ref], options
            )

        assert image.uri == OUTPUT_URL
        model_input = bodies[0]["input"]
        assert model_input["category"] == "one-pieces"
        assert model_input["model_image"] == subject_ref.to_display()
        assert model_input["garment_image"] == garment_ref.to_display()

    @pytest.mark.asyncio
    async def test_idm_vton_input(self, subject_ref, garment_ref):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(201, json={"id": "v", "status": "succeeded", "output": OUTPUT_URL})

        async with make_client(handler) as client:
            await VirtualTryOnAdapter(client).generate(
                "cuuupid/idm-vton:v1", "ignored", [subject_ref, garment_ref], GenerationOptions(seed=7)
            )

        model_input = bodies[0]["input"]
        assert model_input["human_img"] == subject_ref.to_display()
        assert model_input["category"] == "upper_body"
        assert model_input["seed"] == 7

    @pytest.mark.asyncio
    async def test_missing_output_raises_no_image(self, subject_ref, garment_ref):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(201, json={"id": "v", "status": "succeeded", "output": None})

        async with make_client(handler) as client:
            with pytest.raises(NoImageProduced):
                await VirtualTryOnAdapter(client).generate(
                    "cuuupid/idm-vton:v1", "ignored", [subject_ref, garment_ref]
                )


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [[], ["https://replicate.delivery/out.png"], "ok", 7])
async def test_non_object_prediction_is_provider_error(body):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(201, json=body)

    async with make_client(handler) as client:
        with pytest.raises(ProviderError, match="Malformed response"):
            await client.run("owner/model:v", {})


@pytest.mark.asyncio
async def test_odd_status_and_urls_fall_back_to_prediction_id():
    paths = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        return httpx.Response(200, json={"id": "p5", "status": 5, "urls": "nope"})

    async with make_client(handler, max_poll_attempts=1) as client:
        with pytest.raises(ProviderError, match="did not complete"):
            await client.run("owner/model:v", {})

    assert paths == ["/v1/predictions", "/v1/predictions/p5"]
