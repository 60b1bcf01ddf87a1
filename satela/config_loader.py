#!/usr/bin/env python3
"""Configuration loader for Satela Voice."""

import os
from dataclasses import dataclass

import yaml

from satela.utils import LOG_LEVELS, satela_log

NO_SPEECH_POLICIES = ("keep_active", "deactivate")
TRANSCRIPT_SOURCES = ("console", "manual")
TTS_PROVIDERS = ("log", "pyttsx3")

# Deactivation must land after the farewell starts playing
_MIN_DEACTIVATION_MARGIN = 0.5


def load_config_yaml(config_path: str = "config.yaml") -> dict:
    """Load configuration from a YAML file; {} when missing or unreadable."""
    if os.path.exists(config_path):
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            satela_log("CONFIG", f"Warning: Failed to load {config_path}: {e}", level="WARNING")
            return {}
        if not isinstance(data, dict):
            satela_log("CONFIG", f"Warning: {config_path} is not a mapping, ignored", level="WARNING")
            return {}
        return data
    return {}


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


@dataclass
class SatelaConfig:
    """Satela service configuration."""

    # Language / i18n: keywords, responses and speech locale
    language: str = "ru"

    # Empty = take wake_word.keyword from the locale
    wake_word_keyword: str = ""

    # Timing (seconds)
    thinking_delay: float = 1.0        # listening→thinking until speaking
    speaking_delay: float = 2.0        # speaking until listening again
    deactivation_delay: float = 2.0    # farewell until the session closes

    # Recognition
    transcript_source: str = "console"
    no_speech_policy: str = "keep_active"

    # Speech output
    tts_provider: str = "log"
    tts_rate: float = 1.0
    tts_voice: str = ""

    # REST API server
    api_enabled: bool = True
    api_host: str = "127.0.0.1"
    api_port: int = 7790

    # Minimum level printed by satela_log
    log_level: str = "INFO"

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Clamp values that would break dialogue ordering."""
        self.thinking_delay = max(0.0, float(self.thinking_delay))
        self.speaking_delay = max(0.0, float(self.speaking_delay))
        self.deactivation_delay = float(self.deactivation_delay)
        if self.deactivation_delay <= self.thinking_delay:
            fixed = self.thinking_delay + _MIN_DEACTIVATION_MARGIN
            satela_log(
                "CONFIG",
                f"deactivation_delay={self.deactivation_delay}s must exceed thinking_delay="
                f"{self.thinking_delay}s, using {fixed}s",
                level="WARNING",
            )
            self.deactivation_delay = fixed

        if self.no_speech_policy not in NO_SPEECH_POLICIES:
            satela_log("CONFIG", f"Unknown no_speech_policy='{self.no_speech_policy}', fallback to keep_active", level="WARNING")
            self.no_speech_policy = "keep_active"
        if self.transcript_source not in TRANSCRIPT_SOURCES:
            satela_log("CONFIG", f"Unknown recognition.source='{self.transcript_source}', fallback to console", level="WARNING")
            self.transcript_source = "console"
        if self.tts_provider not in TTS_PROVIDERS:
            satela_log("CONFIG", f"Unknown tts.provider='{self.tts_provider}', fallback to log", level="WARNING")
            self.tts_provider = "log"
        if self.log_level not in LOG_LEVELS:
            satela_log("CONFIG", f"Unknown logging.level='{self.log_level}', fallback to INFO", level="WARNING")
            self.log_level = "INFO"

    @classmethod
    def from_yaml(cls, yaml_config: dict) -> "SatelaConfig":
        """Create config from YAML + env vars."""
        config = cls()
        yaml_config = yaml_config or {}

        config.language = str(yaml_config.get("language", config.language)).strip() or "ru"

        wake_cfg = yaml_config.get("wake_word", {})
        timing_cfg = yaml_config.get("timing", {})
        rec_cfg = yaml_config.get("recognition", {})
        tts_cfg = yaml_config.get("tts", {})
        api_cfg = yaml_config.get("api", {})
        log_cfg = yaml_config.get("logging", {})

        if isinstance(wake_cfg, dict):
            config.wake_word_keyword = str(wake_cfg.get("keyword", config.wake_word_keyword) or "").strip()

        if isinstance(timing_cfg, dict):
            config.thinking_delay = float(timing_cfg.get("thinking_delay", config.thinking_delay))
            config.speaking_delay = float(timing_cfg.get("speaking_delay", config.speaking_delay))
            config.deactivation_delay = float(timing_cfg.get("deactivation_delay", config.deactivation_delay))

        if isinstance(rec_cfg, dict):
            config.transcript_source = str(rec_cfg.get("source", config.transcript_source)).strip().lower()
            config.no_speech_policy = str(rec_cfg.get("no_speech_policy", config.no_speech_policy)).strip().lower()

        if isinstance(tts_cfg, dict):
            config.tts_provider = str(tts_cfg.get("provider", config.tts_provider)).strip().lower()
            config.tts_rate = float(tts_cfg.get("rate", config.tts_rate))
            config.tts_voice = str(tts_cfg.get("voice", config.tts_voice) or "").strip()

        if isinstance(api_cfg, dict):
            config.api_enabled = _as_bool(api_cfg.get("enabled", config.api_enabled))
            config.api_host = str(api_cfg.get("host", config.api_host)).strip()
            config.api_port = int(api_cfg.get("port", config.api_port))

        if isinstance(log_cfg, dict):
            config.log_level = str(log_cfg.get("level", config.log_level)).strip().upper()

        # Env var overrides
        if os.getenv("SATELA_LANGUAGE"):
            config.language = os.getenv("SATELA_LANGUAGE").strip() or "ru"
        if os.getenv("SATELA_WAKE_WORD"):
            config.wake_word_keyword = os.getenv("SATELA_WAKE_WORD").strip()
        if os.getenv("SATELA_THINKING_DELAY"):
            config.thinking_delay = float(os.getenv("SATELA_THINKING_DELAY"))
        if os.getenv("SATELA_SPEAKING_DELAY"):
            config.speaking_delay = float(os.getenv("SATELA_SPEAKING_DELAY"))
        if os.getenv("SATELA_DEACTIVATION_DELAY"):
            config.deactivation_delay = float(os.getenv("SATELA_DEACTIVATION_DELAY"))
        if os.getenv("SATELA_SOURCE"):
            config.transcript_source = os.getenv("SATELA_SOURCE").strip().lower()
        if os.getenv("SATELA_NO_SPEECH_POLICY"):
            config.no_speech_policy = os.getenv("SATELA_NO_SPEECH_POLICY").strip().lower()
        if os.getenv("SATELA_TTS_PROVIDER"):
            config.tts_provider = os.getenv("SATELA_TTS_PROVIDER").strip().lower()
        if os.getenv("SATELA_TTS_RATE"):
            config.tts_rate = float(os.getenv("SATELA_TTS_RATE"))
        if os.getenv("SATELA_API_ENABLED"):
            config.api_enabled = _as_bool(os.getenv("SATELA_API_ENABLED"))
        if os.getenv("SATELA_API_HOST"):
            config.api_host = os.getenv("SATELA_API_HOST").strip()
        if os.getenv("SATELA_API_PORT"):
            config.api_port = int(os.getenv("SATELA_API_PORT"))
        if os.getenv("SATELA_LOG_LEVEL"):
            config.log_level = os.getenv("SATELA_LOG_LEVEL").strip().upper()

        config.validate()
        return config

    def print_config_banner(self):
        """Print a startup summary with ASCII-safe formatting."""
        line = "=" * 58
        print("\n" + line)
        print("SATELA VOICE")
        print(line)
        print(f"Lang    : {self.language.upper()}")
        print(f"Wake    : {self.wake_word_keyword or '(locale default)'}")
        print(f"Source  : {self.transcript_source}")
        print(f"TTS     : {self.tts_provider} (rate x{self.tts_rate})")
        print(f"Timing  : think {self.thinking_delay}s / speak {self.speaking_delay}s / "
              f"off {self.deactivation_delay}s")
        print(f"NoSpeech: {self.no_speech_policy}")
        print(f"Log     : {self.log_level}")
        if self.api_enabled:
            print(f"API     : http://{self.api_host}:{self.api_port}")
        else:
            print("API     : disabled")
        print(line + "\n")
