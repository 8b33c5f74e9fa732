import json
import time

import httpx
import pytest

from mindflow.domain.errors import AuthError, NetworkError, ServerError, SyncError
from mindflow.infrastructure.adapters.auth import SessionFileAuthProvider, StaticTokenAuthProvider
from mindflow.infrastructure.adapters.mindflow_api import MindFlowApiClient

API = "https://api.example.test"
SUPABASE = "https://db.example.test"


def make_client(handler, **kwargs) -> MindFlowApiClient:
    return MindFlowApiClient(
        api_url=API + "/",
        supabase_url=SUPABASE,
        supabase_anon_key="anon-key",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_create_interaction_posts_payload():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"interaction": {"id": "srv-42"}})

    client = make_client(handler)
    payload = {"original_transcription": "hello", "transcription_api": "OpenAI"}

    backend_id = await client.create_interaction(payload, "tok")
    await client.close()

    assert backend_id == "srv-42"
    assert seen["url"] == f"{API}/api/mindflow-stt-interactions"
    assert seen["auth"] == "Bearer tok"
    assert seen["body"] == payload


@pytest.mark.asyncio
async def test_create_interaction_requires_created_status():
    client = make_client(lambda request: httpx.Response(200, json={"interaction": {"id": "x"}}))
    with pytest.raises(ServerError) as exc_info:
        await client.create_interaction({"original_transcription": "a"}, "tok")
    assert exc_info.value.status_code == 200


@pytest.mark.asyncio
async def test_missing_id_in_response():
    client = make_client(lambda request: httpx.Response(201, json={"interaction": {}}))
    with pytest.raises(ServerError):
        await client.create_interaction({"original_transcription": "a"}, "tok")


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [401, 403])
async def test_auth_failures(status):
    client = make_client(lambda request: httpx.Response(status, json={"error": "expired"}))
    with pytest.raises(AuthError):
        await client.create_interaction({"original_transcription": "a"}, "tok")


@pytest.mark.asyncio
async def test_validation_rejection_is_permanent():
    client = make_client(
        lambda request: httpx.Response(400, json={"error": "audio_duration must be a number"})
    )
    with pytest.raises(ServerError) as exc_info:
        await client.create_interaction({"original_transcription": "a"}, "tok")

    assert exc_info.value.status_code == 400
    assert not exc_info.value.retryable
    assert "audio_duration must be a number" in str(exc_info.value)


@pytest.mark.asyncio
async def test_server_error_is_retryable():
    client = make_client(lambda request: httpx.Response(503, text="unavailable"))
    with pytest.raises(ServerError) as exc_info:
        await client.create_interaction({"original_transcription": "a"}, "tok")
    assert exc_info.value.retryable


@pytest.mark.asyncio
async def test_timeout_maps_to_network_error():
    def handler(request):
        raise httpx.ReadTimeout("too slow", request=request)

    client = make_client(handler)
    with pytest.raises(NetworkError) as exc_info:
        await client.create_interaction({"original_transcription": "a"}, "tok")
    assert exc_info.value.retryable


@pytest.mark.asyncio
async def test_connection_error_maps_to_network_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    client = make_client(handler)
    with pytest.raises(NetworkError):
        await client.create_interaction({"original_transcription": "a"}, "tok")


@pytest.mark.asyncio
async def test_create_vocabulary_uses_rest_endpoint():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        return httpx.Response(201, json=[{"id": "row-7", "word": "run"}])

    client = make_client(handler)
    backend_id = await client.create_vocabulary({"word": "run"}, "tok")

    assert backend_id == "row-7"
    assert seen["url"] == f"{SUPABASE}/rest/v1/vocabulary"
    assert seen["headers"]["Prefer"] == "return=representation"
    assert seen["headers"]["apikey"] == "anon-key"
    assert seen["headers"]["Authorization"] == "Bearer tok"


@pytest.mark.asyncio
async def test_create_vocabulary_without_endpoint():
    client = MindFlowApiClient(api_url=API, transport=httpx.MockTransport(lambda r: None))
    with pytest.raises(SyncError):
        await client.create_vocabulary({"word": "run"}, "tok")


# --- Auth providers ---


def test_static_token_provider():
    assert StaticTokenAuthProvider("abc").access_token() == "abc"
    assert StaticTokenAuthProvider("abc").is_authenticated()
    assert not StaticTokenAuthProvider("").is_authenticated()
    assert StaticTokenAuthProvider(None).access_token() is None


def test_session_file_provider(tmp_path):
    path = tmp_path / "session.json"
    provider = SessionFileAuthProvider(path)
    assert not provider.is_authenticated()

    path.write_text(json.dumps({"access_token": "live", "expires_at": time.time() + 3600}))
    assert provider.access_token() == "live"

    path.write_text(json.dumps({"access_token": "old", "expires_at": time.time() - 1}))
    assert provider.access_token() is None

    path.write_text(json.dumps({"access_token": "forever"}))
    assert provider.is_authenticated()


def test_session_file_provider_ignores_garbage(tmp_path):
    path = tmp_path / "session.json"
    provider = SessionFileAuthProvider(path)

    path.write_text("{not json")
    assert provider.access_token() is None

    path.write_text(json.dumps({"access_token": "t", "expires_at": "soon"}))
    assert provider.access_token() is None
