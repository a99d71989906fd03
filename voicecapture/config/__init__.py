"""Simple YAML configuration loader for voicecapture."""

import copy
import os
import yaml
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, Optional
import logging

logger = logging.getLogger(__name__)


DEFAULT_CONFIG: Dict[str, Any] = {
    "audio": {
        "sample_rate": 16000,
        "chunk_size": 1024,
        "channels": 1,
        "max_buffered_seconds": 30,
    },
    "detection": {
        "threshold": 1000,
        "silence_timeout_ms": 5000,
        "min_speech_frames": 1,
        "max_consecutive_read_errors": 5,
    },
    "preprocessing": {
        "noise_gate": True,
        "silence_trim": True,
        "normalize": True,
        "noise_threshold": 0.01,
        "silence_threshold": 0.02,
        "target_level": 0.8,
    },
    "gemini": {
        "api_key_env": "GEMINI_API_KEY",
        "model": "gemini-2.5-flash",
        "timeout_seconds": 90,
    },
    "logging": {
        "level": "INFO",
        "file_path": "logs/voicecapture.log",
        "console_output": True,
    },
}


@dataclass
class DetectionSettings:
    """Voice activity detection and buffering parameters."""
    threshold: float = 1000
    silence_timeout_ms: int = 5000
    min_speech_frames: int = 1
    max_buffered_seconds: float = 30
    max_consecutive_read_errors: int = 5


@dataclass
class PreprocessingSettings:
    """Toggles and thresholds for the preprocessing pipeline."""
    noise_gate: bool = True
    silence_trim: bool = True
    normalize: bool = True
    noise_threshold: float = 0.01
    silence_threshold: float = 0.02
    target_level: float = 0.8


@dataclass(frozen=True)
class ApiCredentials:
    """Credentials handed to a transcription backend at construction time."""
    api_key: Optional[str] = None

    @property
    def is_set(self) -> bool:
        return bool(self.api_key)

    @property
    def looks_valid(self) -> bool:
        """Google API keys start with "AIza" and are at least 39 characters."""
        return bool(self.api_key) and self.api_key.startswith("AIza") and len(self.api_key) >= 39

    def __repr__(self) -> str:
        # Never leak the key into logs
        return f"ApiCredentials(api_key={'***' if self.api_key else None})"


def _merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


class VoiceCaptureConfig:
    """voicecapture configuration loader."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file. If None, built-in defaults
                        are used.
        """
        self.config_file = Path(config_path) if config_path else None

        if self.config_file is None:
            logger.info("No configuration file given, using defaults")
            self.config = copy.deepcopy(DEFAULT_CONFIG)
            return

        if not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        logger.info(f"Loading configuration from: {self.config_file}")
        self.config = self._load_config()

    @classmethod
    def from_dict(cls, overrides: Dict[str, Any]) -> "VoiceCaptureConfig":
        """Build a configuration from defaults updated with ``overrides``."""
        config = cls()
        _merge(config.config, copy.deepcopy(overrides))
        return config

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}")

        if not loaded:
            raise ValueError("Configuration file is empty")
        if not isinstance(loaded, dict):
            raise ValueError("Configuration file must contain a mapping")

        config = _merge(copy.deepcopy(DEFAULT_CONFIG), loaded)
        self._resolve_paths(config)

        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent

        if 'logging' in config and 'file_path' in config['logging']:
            log_path = config['logging']['file_path']
            if log_path and not os.path.isabs(log_path):
                config['logging']['file_path'] = str(config_dir / log_path)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'detection.threshold').

        Args:
            key_path: Dot-separated key path
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split('.')
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key_path: Dot-separated path to config value (e.g., 'detection.threshold')
            value: Value to set
        """
        keys = key_path.split('.')
        config_dict = self.config

        # Navigate to the parent dictionary
        for key in keys[:-1]:
            if key not in config_dict:
                config_dict[key] = {}
            config_dict = config_dict[key]

        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' set to: {value}")

    def get_detection_settings(self) -> DetectionSettings:
        """Voice activity settings read at session start."""
        settings = DetectionSettings(
            threshold=float(self.get('detection.threshold', 1000)),
            silence_timeout_ms=int(self.get('detection.silence_timeout_ms', 5000)),
            min_speech_frames=int(self.get('detection.min_speech_frames', 1)),
            max_buffered_seconds=float(self.get('audio.max_buffered_seconds', 30)),
            max_consecutive_read_errors=int(self.get('detection.max_consecutive_read_errors', 5)),
        )
        if settings.threshold < 0:
            raise ValueError("detection.threshold must be non-negative")
        if settings.silence_timeout_ms < 0:
            raise ValueError("detection.silence_timeout_ms must be non-negative")
        if settings.max_buffered_seconds <= 0:
            raise ValueError("audio.max_buffered_seconds must be positive")
        return settings

    def get_preprocessing_settings(self) -> PreprocessingSettings:
        return PreprocessingSettings(
            noise_gate=bool(self.get('preprocessing.noise_gate', True)),
            silence_trim=bool(self.get('preprocessing.silence_trim', True)),
            normalize=bool(self.get('preprocessing.normalize', True)),
            noise_threshold=float(self.get('preprocessing.noise_threshold', 0.01)),
            silence_threshold=float(self.get('preprocessing.silence_threshold', 0.02)),
            target_level=float(self.get('preprocessing.target_level', 0.8)),
        )

    def get_credentials(self) -> ApiCredentials:
        """Get Gemini credentials from the config file or the environment.

        A missing key is not an error here; the transcription backend reports
        it as a failed result when it is asked to transcribe.
        """
        api_key = self.get('gemini.api_key')
        if not api_key:
            env_name = self.get('gemini.api_key_env', 'GEMINI_API_KEY')
            api_key = os.environ.get(env_name) if env_name else None
        credentials = ApiCredentials(api_key=api_key or None)
        if not credentials.is_set:
            logger.warning("No Gemini API key configured")
        elif not credentials.looks_valid:
            logger.warning("Gemini API key does not look like a Google API key")
        return credentials
