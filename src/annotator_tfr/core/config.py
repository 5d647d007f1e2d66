"""Configuration management for Annotator TFR."""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .image_source import ID_STRATEGIES

logger = logging.getLogger(__name__)

# Default configuration file path
DEFAULT_CONFIG_PATH = Path("config.yaml")


@dataclass
class AppConfig:
    """
    Application configuration settings.

    Stores directories, the label map location and export preferences.
    """

    data_directory: str = "data"  # Holds images/ and annotations/
    image_directory: str = ""  # Images awaiting labels
    label_map_path: str = ""  # .pbtxt class definitions
    split_ratio: Optional[float] = 0.8  # Train fraction, None for a single output
    train_record_name: str = "train.record"
    eval_record_name: str = "eval.record"
    single_record_name: str = "data.record"
    image_id_strategy: str = "atime"  # atime or content

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary for serialization."""
        return {
            "dataDirectory": self.data_directory,
            "imageDirectory": self.image_directory,
            "labelMapPath": self.label_map_path,
            "splitRatio": self.split_ratio,
            "trainRecordName": self.train_record_name,
            "evalRecordName": self.eval_record_name,
            "singleRecordName": self.single_record_name,
            "imageIdStrategy": self.image_id_strategy,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> AppConfig:
        """Create config from dictionary."""
        return cls(
            data_directory=data.get("dataDirectory", "data"),
            image_directory=data.get("imageDirectory", ""),
            label_map_path=data.get("labelMapPath", ""),
            split_ratio=data.get("splitRatio", 0.8),
            train_record_name=data.get("trainRecordName", "train.record"),
            eval_record_name=data.get("evalRecordName", "eval.record"),
            single_record_name=data.get("singleRecordName", "data.record"),
            image_id_strategy=data.get("imageIdStrategy", "atime"),
        )

    def validate(self) -> None:
        """
        Check values that would only fail later, mid-run.

        Raises:
            ValueError: If the split ratio or id strategy is out of range
        """
        if self.split_ratio is not None and not 0.0 < self.split_ratio < 1.0:
            raise ValueError(f"Split ratio must be between 0 and 1, got {self.split_ratio}")
        if self.image_id_strategy not in ID_STRATEGIES:
            raise ValueError(f"Unknown image id strategy: {self.image_id_strategy}")


class ConfigManager:
    """
    Manager for loading and saving application configuration.

    A missing or unreadable file yields the defaults; saving writes the
    camelCase YAML form of :class:`AppConfig`.
    """

    def __init__(self, config_path: Path = DEFAULT_CONFIG_PATH) -> None:
        """
        Initialize the configuration manager.

        Args:
            config_path: Path to the configuration file
        """
        self.config_path = Path(config_path)
        self._config: Optional[AppConfig] = None

    @property
    def config(self) -> AppConfig:
        """Get the current configuration, loading if necessary."""
        if self._config is None:
            self._config = self.load()
        return self._config

    def load(self) -> AppConfig:
        """
        Load configuration from file.

        Returns:
            AppConfig instance with loaded or default values
        """
        if not self.config_path.is_file():
            logger.info(f"Config file not found at {self.config_path}, using defaults")
            return AppConfig()

        try:
            data = yaml.safe_load(self.config_path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as e:
            logger.error(f"Error loading config {self.config_path}: {e}")
            return AppConfig()

        if data is None:
            data = {}
        if not isinstance(data, dict):
            logger.error(f"Config {self.config_path} is not a mapping, using defaults")
            return AppConfig()

        logger.info(f"Loaded configuration from {self.config_path}")
        return AppConfig.from_dict(data)

    def save(self, config: Optional[AppConfig] = None) -> bool:
        """
        Save configuration to file.

        Args:
            config: Configuration to save, or use current config

        Returns:
            True if save was successful
        """
        if config is not None:
            self._config = config

        if self._config is None:
            logger.warning("No configuration to save")
            return False

        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            self.config_path.write_text(
                yaml.safe_dump(self._config.to_dict(), sort_keys=False),
                encoding="utf-8",
            )
        except OSError as e:
            logger.error(f"Error saving config {self.config_path}: {e}")
            return False

        logger.info(f"Saved configuration to {self.config_path}")
        return True

    def update(self, **kwargs: Any) -> bool:
        """
        Change configuration values and save them.

        Nothing is changed when any key is unknown or any value invalid.

        Args:
            **kwargs: AppConfig field names and their new values

        Returns:
            True if the updated configuration was saved

        Raises:
            ValueError: If a key is not an AppConfig field or a value is invalid
        """
        field_names = {f.name for f in fields(AppConfig)}
        unknown = sorted(set(kwargs) - field_names)
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(unknown)}")

        updated = replace(self.config, **kwargs)
        updated.validate()
        return self.save(updated)
