import asyncio
import random
from pathlib import Path

import boto3
import httpx
import pytest
from botocore.stub import Stubber

from narrador.config import Settings
from narrador.domain.models import RenderRequest
from narrador.errors import EncodeError, NoAssetsError, UploadError, ValidationError
from narrador.orchestrator import RenderOrchestrator
from narrador.publisher.storage import S3Storage, Storage

API_URL = "https://api.test/content"

CONTENT = {
    "videos": [
        {"videoUrl": "https://cdn.test/a.mp4", "segmentStart": 0, "segmentEnd": 2, "transcriptionPart": "hello world"},
        {"imageUrl": "https://cdn.test/b.jpg", "segmentStart": 2, "segmentEnd": 5, "transcriptionPart": "goodbye now friend"},
    ],
    "voiceoverUrl": "https://cdn.test/voice.mp3",
    "noOfWords": 2,
}


def api_and_cdn(asset_status=200):
    def handler(request):
        if request.url.host == "api.test":
            return httpx.Response(200, json=CONTENT)
        if request.url.path == "/voice.mp3":
            return httpx.Response(200, content=b"mp3", headers={"content-type": "audio/mpeg"})
        return httpx.Response(asset_status, content=b"media", headers={"content-type": "application/octet-stream"})

    return handler


class FakeEncoder:
    def __init__(self, fail=False):
        self.fail = fail
        self.commands = []

    async def run(self, command, total_duration, progress=None, output_path=None):
        self.commands.append(list(command))
        Path(output_path).write_bytes(b"partial")
        if self.fail:
            raise EncodeError("FFmpeg terminó con código 1", returncode=1, stderr="boom")
        progress(0.5)
        progress(1.0)
        return output_path


class FakeAudio:
    async def prepare_track(self, voice_path, output_path, total_duration, music_path=None):
        Path(output_path).write_bytes(b"wav")
        return output_path


class FakeGate:
    def __init__(self):
        self.phases = []
        self.checks = []

    async def wait_for_capacity(self, phase):
        self.phases.append(phase)
        return True

    def check_now(self, phase):
        self.checks.append(phase)


class FakeStorage(Storage):
    def __init__(self, url=None, error=False):
        self.url = url
        self.error = error
        self.uploaded = []

    async def upload(self, local_path, key):
        self.uploaded.append((local_path, key))
        if self.error:
            raise UploadError("bucket inaccesible")
        return self.url


async def fake_probe(path, declared_duration=None, ffprobe_bin="ffprobe"):
    return 5.0


@pytest.fixture
def settings(tmp_path):
    return Settings(
        content_api_url=API_URL,
        content_api_attempts=1,
        temp_dir=str(tmp_path / "temp"),
        output_dir=str(tmp_path / "output"),
    )


def render(settings, storage, handler=None, encoder=None, gate=None, request=None, events=None):
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler or api_and_cdn())) as client:
            orchestrator = RenderOrchestrator(
                settings,
                client,
                storage,
                encoder=encoder or FakeEncoder(),
                audio_engine=FakeAudio(),
                resource_gate=gate or FakeGate(),
                rng=random.Random(7),
                probe=fake_probe,
            )
            callback = (lambda phase, fraction: events.append((phase, fraction))) if events is not None else None
            return await orchestrator.render(request or RenderRequest(text="hello world"), callback)

    return asyncio.run(go())


def leftover_jobs(settings):
    return list(Path(settings.temp_dir).iterdir())


def test_remote_success_cleans_up(settings):
    encoder = FakeEncoder()
    gate = FakeGate()
    events = []
    storage = FakeStorage(url="https://cdn.test/videos/out.mp4")

    result = render(settings, storage, encoder=encoder, gate=gate, events=events)

    assert result.is_remote
    assert result.location == "https://cdn.test/videos/out.mp4"
    assert result.duration == pytest.approx(5.5)
    assert storage.uploaded[0][1] == f"{result.job_id}.mp4"
    assert not (Path(settings.output_dir) / f"{result.job_id}.mp4").exists()
    assert leftover_jobs(settings) == []

    command = encoder.commands[0]
    assert command[command.index("-t", command.index("-filter_complex")) + 1] == "5.5"
    assert "ass=filename=" in command[command.index("-filter_complex") + 1]

    assert gate.phases == ["descarga", "encode", "subida"]
    assert gate.checks == ["encode"]
    assert [phase for phase, _ in events if phase != "encode"] == ["contenido", "descarga", "timeline", "composicion", "subida"]
    assert ("encode", 1.0) in events


def test_upload_failure_keeps_local_file(settings):
    result = render(settings, FakeStorage(error=True))
    assert not result.is_remote
    assert Path(result.location).exists()
    assert result.location.endswith(f"{result.job_id}.mp4")
    assert leftover_jobs(settings) == []


def test_s3_access_denied_falls_back_to_local_path(settings):
    client = boto3.client("s3", region_name="us-east-1", aws_access_key_id="testing", aws_secret_access_key="testing")
    with Stubber(client) as stubber:
        stubber.add_client_error("put_object", service_error_code="AccessDenied", http_status_code=403)
        result = render(settings, S3Storage("bucket", client=client))
    assert not result.is_remote
    assert Path(result.location).exists()
    assert leftover_jobs(settings) == []


def test_null_storage_returns_local_path(settings):
    result = render(settings, FakeStorage(url=None))
    assert not result.is_remote
    assert Path(result.location).exists()


def test_no_assets_is_fatal_and_leaves_nothing(settings):
    with pytest.raises(NoAssetsError):
        render(settings, FakeStorage(url="https://x"), handler=api_and_cdn(asset_status=404))
    assert list(Path(settings.output_dir).glob("*.mp4")) == []
    assert leftover_jobs(settings) == []


def test_encode_failure_removes_partial_output(settings):
    with pytest.raises(EncodeError):
        render(settings, FakeStorage(url="https://x"), encoder=FakeEncoder(fail=True))
    assert list(Path(settings.output_dir).glob("*.mp4")) == []
    assert leftover_jobs(settings) == []


def test_empty_text_is_rejected(settings):
    storage = FakeStorage(url="https://x")
    with pytest.raises(ValidationError):
        render(settings, storage, request=RenderRequest(text="   "))
    assert storage.uploaded == []
