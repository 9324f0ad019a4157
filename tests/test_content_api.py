import asyncio

import httpx
import pytest

from narrador.domain.models import RenderRequest
from narrador.errors import UpstreamAPIError
from narrador.infrastructure import ContentApiClient
from narrador.utils.backoff import BackoffPolicy

API_URL = "https://api.test/content"

PAYLOAD = {
    "videos": [
        {"videoUrl": "https://cdn.test/a.mp4", "segmentStart": 0, "segmentEnd": 2, "transcriptionPart": "hello world"},
        {"imageUrl": "https://cdn.test/b.png", "segmentStart": 2, "segmentEnd": 5, "transcriptionPart": "goodbye now friend"},
    ],
    "voiceoverUrl": "https://cdn.test/voice.mp3",
    "noOfWords": "less",
    "duration": "",
}


def fetch(handler, request=None, base_url=API_URL):
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            api = ContentApiClient(client, base_url, policy=BackoffPolicy(max_attempts=2, base_delay=0.0))
            return await api.fetch(request or RenderRequest(text="hello"))

    return asyncio.run(go())


def test_style_knobs_travel_as_query_params():
    seen = {}

    def handler(request):
        seen.update(request.url.params)
        return httpx.Response(200, json=PAYLOAD)

    request = RenderRequest(text="hello world", style="style_2", noOfWords="more", animation="false")
    content = fetch(handler, request)

    assert seen["text"] == "hello world"
    assert seen["style"] == "style_2"
    assert seen["noOfWords"] == "4"
    assert seen["animation"] == "false"
    assert "fontSize" not in seen
    assert content.voiceover_url == "https://cdn.test/voice.mp3"
    assert content.no_of_words == 2
    assert content.duration is None
    assert len(content.to_scenes()) == 2


def test_server_errors_are_retried_then_reported():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503, text="busy")

    with pytest.raises(UpstreamAPIError) as excinfo:
        fetch(handler)
    assert len(calls) == 2
    assert excinfo.value.status_code == 503


def test_client_errors_are_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(404, text="nope")

    with pytest.raises(UpstreamAPIError) as excinfo:
        fetch(handler)
    assert len(calls) == 1
    assert excinfo.value.status_code == 404


def test_invalid_json():
    with pytest.raises(UpstreamAPIError):
        fetch(lambda request: httpx.Response(200, text="<html>"))


def test_transport_failure():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(UpstreamAPIError):
        fetch(handler)


def test_missing_base_url():
    with pytest.raises(UpstreamAPIError):
        fetch(lambda request: httpx.Response(200, json=PAYLOAD), base_url="")
