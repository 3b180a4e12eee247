"""
Preset store backed by a JSON file.
"""

import json
import logging
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from .config import DefaultConfiguration
from .errors import ConfigError, FatalIOError, PresetNotFoundError
from .filter_engine import Preset

logger = logging.getLogger(__name__)


class PresetStore:
    """
    Ordered collection of presets persisted as a JSON array.

    Names are not unique on disk: add() appends unconditionally and find()
    returns the first preset with a matching name.
    """

    def __init__(self, path: str = DefaultConfiguration.PRESETS_FILE):
        self.path = Path(path)

    def load(self) -> list[Preset]:
        """Load all presets; a missing file is an empty store."""
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except FileNotFoundError:
            return []
        except json.JSONDecodeError as e:
            raise ConfigError(f"Preset file {self.path} is not valid JSON: {e}")
        except OSError as e:
            raise FatalIOError(f"Cannot read preset file {self.path}: {e}")

        if data is None:
            return []
        if not isinstance(data, list):
            raise ConfigError(f"Preset file {self.path} must contain a JSON array")

        try:
            return [Preset.model_validate(item) for item in data]
        except ValidationError as e:
            raise ConfigError(f"Invalid preset in {self.path}: {e}") from e

    def save(self, presets: list[Preset]) -> None:
        data: list[dict[str, Any]] = [preset.to_json_dict() for preset in presets]
        try:
            with open(self.path, "w") as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            raise FatalIOError(f"Cannot write preset file {self.path}: {e}")

    def names(self) -> list[str]:
        return [preset.name for preset in self.load()]

    def get(self, name: str) -> Optional[Preset]:
        return next((p for p in self.load() if p.name == name), None)

    def find(self, name: str) -> Preset:
        """First preset called name, or PresetNotFoundError."""
        if (preset := self.get(name)) is None:
            raise PresetNotFoundError(f"Preset '{name}' not found")
        return preset

    def add(self, preset: Preset) -> None:
        presets = self.load()
        presets.append(preset)
        self.save(presets)
        logger.info(f"Saved preset '{preset.name}' to {self.path}")

    def delete(self, name: str) -> int:
        """Remove every preset called name; returns how many were removed."""
        presets = self.load()
        kept = [p for p in presets if p.name != name]
        removed = len(presets) - len(kept)
        if removed:
            self.save(kept)
            logger.info(f"Deleted {removed} preset(s) named '{name}'")
        return removed
