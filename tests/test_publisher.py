import asyncio

import boto3
import pytest
from botocore.stub import Stubber

from narrador.config import Settings
from narrador.errors import UploadError
from narrador.publisher import NullStorage, RcloneStorage, S3Storage, Storage, create_storage
from narrador.publisher.cloud_uploader import RcloneResult, direct_download_url


@pytest.fixture
def s3_stubber():
    client = boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )
    with Stubber(client) as stubber:
        yield stubber


@pytest.fixture
def video(tmp_path):
    path = tmp_path / "abc.mp4"
    path.write_bytes(b"mp4")
    return path


class TestS3:
    def test_public_base_url(self, video, s3_stubber):
        sent = []
        s3_stubber.client.meta.events.register(
            "before-parameter-build.s3.PutObject", lambda params, **kwargs: sent.append(dict(params))
        )
        s3_stubber.add_response("put_object", {})
        storage = S3Storage("bucket", prefix="/videos/", public_base_url="https://cdn.test/", client=s3_stubber.client)
        url = asyncio.run(storage.upload(str(video), "abc.mp4"))
        assert url == "https://cdn.test/videos/abc.mp4"
        assert sent[0]["Bucket"] == "bucket"
        assert sent[0]["Key"] == "videos/abc.mp4"
        assert sent[0]["ContentType"] == "video/mp4"
        s3_stubber.assert_no_pending_responses()

    def test_presigned_url(self, video, s3_stubber):
        s3_stubber.add_response("put_object", {})
        storage = S3Storage("bucket", prefix="", client=s3_stubber.client, expiration=60)
        url = asyncio.run(storage.upload(str(video), "abc.mp4"))
        assert url.startswith("https://")
        assert "bucket" in url
        assert "abc.mp4" in url

    def test_access_denied_becomes_upload_error(self, video, s3_stubber):
        s3_stubber.add_client_error(
            "put_object", service_error_code="AccessDenied", http_status_code=403
        )
        storage = S3Storage("bucket", client=s3_stubber.client)
        with pytest.raises(UploadError, match="AccessDenied"):
            asyncio.run(storage.upload(str(video), "abc.mp4"))

    def test_missing_file(self, tmp_path, s3_stubber):
        storage = S3Storage("bucket", client=s3_stubber.client)
        with pytest.raises(UploadError):
            asyncio.run(storage.upload(str(tmp_path / "nope.mp4"), "nope.mp4"))

    def test_bucket_required(self, s3_stubber):
        with pytest.raises(ValueError):
            S3Storage("", client=s3_stubber.client)


class ScriptedRclone(RcloneStorage):
    def __init__(self, responses, **kwargs):
        super().__init__(**kwargs)
        self.responses = responses
        self.calls = []

    async def _run_rclone(self, args, timeout=300):
        self.calls.append(args)
        return self.responses.get(args[0], RcloneResult(0, "", ""))


class TestRclone:
    def test_direct_download_url(self):
        assert direct_download_url("https://drive.google.com/open?id=XYZ") == (
            "https://drive.google.com/uc?id=XYZ&export=download&confirm=t"
        )
        assert direct_download_url("https://www.dropbox.com/s/a/v.mp4?dl=0") == "https://www.dropbox.com/s/a/v.mp4?raw=1"
        assert direct_download_url("https://www.dropbox.com/s/a/v.mp4") == "https://www.dropbox.com/s/a/v.mp4?raw=1"
        assert direct_download_url("https://example.com/v.mp4") == "https://example.com/v.mp4"

    def test_upload_copies_and_links(self, video):
        storage = ScriptedRclone(
            {
                "listremotes": RcloneResult(0, "gdrive:\nbackup:\n", ""),
                "link": RcloneResult(0, "https://drive.google.com/open?id=XYZ\n", ""),
            },
            remote_name="gdrive",
            base_folder="Videos/Narrador",
        )
        url = asyncio.run(storage.upload(str(video), "abc.mp4"))
        assert url == "https://drive.google.com/uc?id=XYZ&export=download&confirm=t"
        assert [call[0] for call in storage.calls] == ["listremotes", "mkdir", "copyto", "link"]
        assert storage.calls[2][2].startswith("gdrive:Videos/Narrador/")
        assert storage.calls[2][2].endswith("/abc.mp4")

    def test_unknown_remote(self, video):
        storage = ScriptedRclone({"listremotes": RcloneResult(0, "backup:\n", "")}, remote_name="gdrive")
        with pytest.raises(UploadError):
            asyncio.run(storage.upload(str(video), "abc.mp4"))

    def test_failed_copy(self, video):
        storage = ScriptedRclone(
            {
                "listremotes": RcloneResult(0, "gdrive:\n", ""),
                "copyto": RcloneResult(1, "", "quota exceeded"),
            }
        )
        with pytest.raises(UploadError, match="quota"):
            asyncio.run(storage.upload(str(video), "abc.mp4"))

    def test_missing_binary(self, video, tmp_path):
        storage = RcloneStorage(rclone_bin=str(tmp_path / "no-rclone"))
        with pytest.raises(UploadError):
            asyncio.run(storage.upload(str(video), "abc.mp4"))


def test_create_storage(s3_stubber):
    assert isinstance(create_storage(Settings()), NullStorage)
    assert isinstance(create_storage(Settings(storage_backend="rclone")), RcloneStorage)
    s3 = create_storage(Settings(storage_backend="S3", s3_bucket="bucket"), client=s3_stubber.client)
    assert isinstance(s3, S3Storage)
    with pytest.raises(ValueError):
        create_storage(Settings(storage_backend="ftp"))


def test_storage_base_is_abstract():
    with pytest.raises(TypeError):
        Storage()
