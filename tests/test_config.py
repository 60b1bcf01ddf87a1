"""Tests for configuration loading and validation."""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from satela.config_loader import SatelaConfig, load_config_yaml


class TestSatelaConfig:
    def test_default_values(self):
        config = SatelaConfig()
        assert config.language == "ru"
        assert config.thinking_delay == 1.0
        assert config.speaking_delay == 2.0
        assert config.deactivation_delay == 2.0
        assert config.no_speech_policy == "keep_active"
        assert config.tts_provider == "log"

    def test_from_yaml_overrides(self):
        yaml_config = {
            "language": "en",
            "wake_word": {"keyword": "Jarvis"},
            "timing": {"thinking_delay": 0.5, "speaking_delay": 1, "deactivation_delay": 1.5},
            "recognition": {"source": "manual", "no_speech_policy": "deactivate"},
            "tts": {"provider": "pyttsx3", "rate": 1.2},
        }
        config = SatelaConfig.from_yaml(yaml_config)
        assert config.language == "en"
        assert config.wake_word_keyword == "Jarvis"
        assert config.thinking_delay == 0.5
        assert config.speaking_delay == 1.0
        assert config.deactivation_delay == 1.5
        assert config.transcript_source == "manual"
        assert config.no_speech_policy == "deactivate"
        assert config.tts_provider == "pyttsx3"
        assert config.tts_rate == 1.2

    def test_from_yaml_empty(self):
        config = SatelaConfig.from_yaml({})
        assert config.wake_word_keyword == ""
        assert config.api_enabled is True

    def test_from_yaml_none(self):
        config = SatelaConfig.from_yaml(None)
        assert config.language == "ru"

    def test_deactivation_clamped_after_thinking(self):
        config = SatelaConfig.from_yaml({"timing": {"thinking_delay": 3.0, "deactivation_delay": 2.0}})
        assert config.deactivation_delay > config.thinking_delay
        assert config.deactivation_delay == 3.5

    def test_unknown_values_fall_back(self):
        config = SatelaConfig.from_yaml({
            "recognition": {"source": "microphone", "no_speech_policy": "explode"},
            "tts": {"provider": "elevenlabs"},
        })
        assert config.transcript_source == "console"
        assert config.no_speech_policy == "keep_active"
        assert config.tts_provider == "log"

    def test_api_config(self):
        config = SatelaConfig.from_yaml({
            "api": {"enabled": "false", "port": 8080, "host": "0.0.0.0"}
        })
        assert config.api_enabled is False
        assert config.api_port == 8080
        assert config.api_host == "0.0.0.0"

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("SATELA_NO_SPEECH_POLICY", "deactivate")
        monkeypatch.setenv("SATELA_API_PORT", "9001")
        monkeypatch.setenv("SATELA_WAKE_WORD", "компьютер")
        config = SatelaConfig.from_yaml({"api": {"port": 8080}})
        assert config.no_speech_policy == "deactivate"
        assert config.api_port == 9001
        assert config.wake_word_keyword == "компьютер"

    def test_logging_level(self):
        assert SatelaConfig.from_yaml({"logging": {"level": "debug"}}).log_level == "DEBUG"
        assert SatelaConfig.from_yaml({"logging": {"level": "loud"}}).log_level == "INFO"


class TestLoadConfigYaml:
    def test_missing_file(self, tmp_path):
        assert load_config_yaml(str(tmp_path / "nope.yaml")) == {}

    def test_reads_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("language: en\ntiming:\n  thinking_delay: 0.2\n", encoding="utf-8")
        assert load_config_yaml(str(path)) == {"language": "en", "timing": {"thinking_delay": 0.2}}

    def test_non_mapping_ignored(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        assert load_config_yaml(str(path)) == {}
