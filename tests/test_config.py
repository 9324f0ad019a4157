import os

from narrador.config import ENV_FIELDS, Settings


def clear_env(monkeypatch):
    for name in ENV_FIELDS:
        monkeypatch.delenv(name, raising=False)


def test_defaults(monkeypatch, tmp_path):
    clear_env(monkeypatch)
    settings = Settings.load(config_path=str(tmp_path / "missing.yaml"), env_file=str(tmp_path / "none.env"))
    assert settings.trailing_buffer_seconds == 0.5
    assert settings.download_concurrency == 8
    assert settings.storage_backend == "none"
    assert settings.encode_policy.max_attempts == 1


def test_yaml_then_environment(monkeypatch, tmp_path):
    clear_env(monkeypatch)
    config = tmp_path / "config.yaml"
    config.write_text("port: 8080\ntrailing_buffer_seconds: 1.5\nstorage_backend: rclone\n", encoding="utf-8")
    monkeypatch.setenv("PORT", "9000")
    monkeypatch.setenv("KEEP_LOCAL_COPY", "true")

    settings = Settings.load(config_path=str(config), env_file=str(tmp_path / "none.env"))

    assert settings.port == 9000
    assert settings.trailing_buffer_seconds == 1.5
    assert settings.storage_backend == "rclone"
    assert settings.keep_local_copy is True


def test_env_file(monkeypatch, tmp_path):
    clear_env(monkeypatch)
    env_file = tmp_path / ".env"
    env_file.write_text("CONTENT_API_URL=https://api.test/content\nRESOURCE_ATTEMPTS=2\n", encoding="utf-8")

    try:
        settings = Settings.load(config_path=str(tmp_path / "missing.yaml"), env_file=str(env_file))
    finally:
        for name in ("CONTENT_API_URL", "RESOURCE_ATTEMPTS"):
            os.environ.pop(name, None)

    assert settings.content_api_url == "https://api.test/content"
    assert list(settings.resource_policy.delays()) == [1.0]
