"""
Configuration management for Mnemonic Maker.
Handles environment variables, configuration validation, and build snapshots.
"""

import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .exporter import collection_media
from .structures import (
    DEFAULT_AUDIO_INSTRUCTIONS,
    DEFAULT_GLOBAL_IMAGE_STYLE,
    DEFAULT_IMAGE_PROMPT_TEMPLATE,
    DEFAULT_MNEMONIC_INSTRUCTIONS,
    BuildConfiguration,
    Configuration,
    MediaPolicy,
)


def _env_bool(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_number(name: str, default, cast):
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw.strip())
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


class ConfigManager:
    """Manages application configuration and environment setup."""

    def __init__(self, load_env: bool = True):
        self._config: Optional[Configuration] = None
        if load_env:
            self._load_environment()

    def _load_environment(self):
        """Load environment variables from .env file."""
        env_files = [
            Path(".env"),
            Path("../.env"),
            Path("../../.env"),
        ]

        for env_file in env_files:
            if env_file.exists():
                load_dotenv(env_file)
                break

    def get_configuration(self) -> Configuration:
        """Get the application configuration."""
        if self._config is None:
            self._config = self._create_configuration()
        return self._config

    def _create_configuration(self) -> Configuration:
        """Create configuration from environment variables."""
        return Configuration(
            openai_api_key=os.environ.get("OPENAI_API_KEY", ""),
            openai_base_url=os.environ.get("OPENAI_BASE_URL") or None,
            export_dir=Path(os.environ.get("EXPORT_DIR", "anki_output")),
            image_size=os.environ.get("IMAGE_SIZE", "1024x1024"),
            image_quality=os.environ.get("IMAGE_QUALITY", "medium"),
            tts_voice=os.environ.get("TTS_VOICE", "alloy"),
            tts_model=os.environ.get("TTS_MODEL", "gpt-4o-mini-tts"),
            audio_format=os.environ.get("AUDIO_FORMAT", "mp3"),
            group_size=_env_number("GROUP_SIZE", 10, int),
            retry_count=_env_number("RETRY_COUNT", 3, int),
            retry_delay_seconds=_env_number("RETRY_DELAY_SECONDS", 2.0, float),
            media_policy=MediaPolicy(os.environ.get("MEDIA_POLICY", "skip").strip().lower()),
            realtime_model=os.environ.get("REALTIME_MODEL", "gpt-realtime"),
            mnemonic_voice=os.environ.get("MNEMONIC_VOICE", "shimmer"),
            image_prompt_template=os.environ.get("IMAGE_PROMPT_TEMPLATE", DEFAULT_IMAGE_PROMPT_TEMPLATE),
            global_image_style=os.environ.get("IMAGE_STYLE", DEFAULT_GLOBAL_IMAGE_STYLE),
            audio_instructions=os.environ.get("AUDIO_INSTRUCTIONS", DEFAULT_AUDIO_INSTRUCTIONS),
            mnemonic_instructions=os.environ.get("MNEMONIC_INSTRUCTIONS", DEFAULT_MNEMONIC_INSTRUCTIONS),
            anki_profile=os.environ.get("ANKI_PROFILE") or None,
            copy_to_anki=_env_bool("COPY_TO_ANKI"),
            debug_mode=_env_bool("DEBUG_MODE"),
        )

    def validate_configuration(self) -> List[str]:
        """Validate the current configuration."""
        config = self.get_configuration()
        return config.validate()

    def update_configuration(self, **kwargs):
        """Update configuration with new values."""
        config = self.get_configuration()

        for key, value in kwargs.items():
            if value is not None and hasattr(config, key):
                setattr(config, key, value)
        config.__post_init__()

    def get_build_configuration(self, **overrides) -> BuildConfiguration:
        """Take an immutable build snapshot of the current configuration.

        Keyword arguments override individual BuildConfiguration fields.
        """
        config = self.get_configuration()

        anki_media_path = None
        if config.copy_to_anki and config.anki_profile:
            anki_media_path = collection_media(config.anki_profile)

        settings = dict(
            image_prompt_template=config.image_prompt_template,
            global_image_style=config.global_image_style,
            image_size=config.image_size,
            image_quality=config.image_quality,
            voice=config.tts_voice,
            audio_format=config.audio_format,
            audio_instructions=config.audio_instructions or None,
            tts_model=config.tts_model,
            concurrency_group_size=config.group_size,
            retry_count=config.retry_count,
            retry_delay_seconds=config.retry_delay_seconds,
            mnemonic_instructions=config.mnemonic_instructions,
            mnemonic_voice=config.mnemonic_voice,
            media_policy=config.media_policy,
            anki_media_path=anki_media_path,
        )
        settings.update(overrides)
        return BuildConfiguration(**settings)


# Global configuration manager instance
config_manager = ConfigManager()


def get_config() -> Configuration:
    """Get the application configuration."""
    return config_manager.get_configuration()


def validate_config() -> List[str]:
    """Validate the current configuration."""
    return config_manager.validate_configuration()


def update_config(**kwargs):
    """Override configuration values, typically from command line arguments."""
    config_manager.update_configuration(**kwargs)


def get_build_configuration(**overrides) -> BuildConfiguration:
    """Get a build configuration snapshot."""
    return config_manager.get_build_configuration(**overrides)
