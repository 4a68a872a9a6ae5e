"""Tests for configuration loading."""

import pytest

from podcast_transcribe.config import Config
from podcast_transcribe.workflow.config import PipelineConfig, _get_int_env


class TestConfig:
    """Tests for the environment-driven Config object."""

    def test_defaults(self, monkeypatch, tmp_path):
        for name in ("DATABASE_URL", "SPEECH_BASE_URL", "SPEECH_REGION", "AUDIO_DOWNLOAD_MAX_BYTES"):
            monkeypatch.delenv(name, raising=False)

        config = Config(env_file=str(tmp_path / "missing.env"))

        assert config.DATABASE_URL == "sqlite:///./podcast_transcribe.db"
        assert config.SPEECH_BASE_URL == (
            "https://eastus.api.cognitive.microsoft.com/speechtotext/v3.2"
        )
        assert config.AUDIO_DOWNLOAD_MAX_BYTES == 10 * 1024 * 1024
        assert config.AUDIO_DOWNLOAD_TIMEOUT == 1800
        assert config.S3_BUCKET_NAME == "processed-audio"

    def test_env_file(self, monkeypatch, tmp_path):
        # Registered so the value loaded from the file is removed afterwards
        monkeypatch.setenv("SPEECH_REGION", "unused")
        monkeypatch.delenv("SPEECH_REGION")
        monkeypatch.delenv("SPEECH_BASE_URL", raising=False)
        env_file = tmp_path / ".env"
        env_file.write_text("SPEECH_REGION=westeurope\n")

        config = Config(env_file=str(env_file))

        assert config.SPEECH_BASE_URL.startswith("https://westeurope.api.cognitive")

    def test_speech_base_url_override(self, monkeypatch, tmp_path):
        monkeypatch.setenv("SPEECH_BASE_URL", "http://localhost:9000/stt/")
        config = Config(env_file=str(tmp_path / "missing.env"))
        assert config.SPEECH_BASE_URL == "http://localhost:9000/stt"

    def test_invalid_speech_base_url(self, monkeypatch, tmp_path):
        monkeypatch.setenv("SPEECH_BASE_URL", "ftp://nope")
        with pytest.raises(ValueError):
            Config(env_file=str(tmp_path / "missing.env"))

    def test_download_cap_must_be_positive(self, monkeypatch, tmp_path):
        monkeypatch.setenv("AUDIO_DOWNLOAD_MAX_BYTES", "0")
        with pytest.raises(ValueError):
            Config(env_file=str(tmp_path / "missing.env"))

    def test_search_key_flag(self, monkeypatch, tmp_path):
        monkeypatch.setenv("LISTENNOTES_API_KEY", "abc")
        assert Config(env_file=str(tmp_path / "missing.env")).has_search_api_key


class TestPipelineConfig:
    """Tests for PipelineConfig."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("PIPELINE_WORKERS", raising=False)
        monkeypatch.delenv("PIPELINE_COMPLETED_HISTORY_SIZE", raising=False)

        config = PipelineConfig.from_env()

        assert config.workers == 4
        assert config.completed_history_size == 100

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("PIPELINE_WORKERS", "8")
        assert PipelineConfig.from_env().workers == 8

    @pytest.mark.parametrize("value", ["0", "abc", "65"])
    def test_invalid_workers(self, monkeypatch, value):
        monkeypatch.setenv("PIPELINE_WORKERS", value)
        with pytest.raises(ValueError):
            PipelineConfig.from_env()

    def test_get_int_env_default(self, monkeypatch):
        monkeypatch.delenv("SOME_UNSET_VALUE", raising=False)
        assert _get_int_env("SOME_UNSET_VALUE", 7) == 7
