"""
Preset persistence for visualizer settings.

A preset is the flat settings mapping stored as JSON.
"""

import json
import logging
from pathlib import Path
from typing import Union

from sonosphere.config import VisualizerSettings

logger = logging.getLogger(__name__)

PRESET_FILENAME = "visualizer_preset_v1.json"


class PresetStore:
    """Saves, loads and resets a single named preset file."""

    def __init__(self, path: Union[str, Path, None] = None):
        """
        Initialize the store.

        Args:
            path: Preset file; defaults to ~/.config/sonosphere/visualizer_preset_v1.json.
        """
        self.path = Path(path) if path is not None else self._get_preset_dir() / PRESET_FILENAME

    def _get_preset_dir(self) -> Path:
        """Return the directory for stored presets."""
        preset_dir = Path.home() / ".config" / "sonosphere"
        preset_dir.mkdir(parents=True, exist_ok=True)
        return preset_dir

    def exists(self) -> bool:
        return self.path.exists()

    def save(self, settings: VisualizerSettings) -> Path:
        """Write the settings mapping to the preset file."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(settings.to_mapping(), f, indent=2)
        logger.info("Preset saved to %s", self.path)
        return self.path

    def load(self, base: VisualizerSettings | None = None) -> VisualizerSettings | None:
        """
        Read the stored preset.

        Keys missing from the file keep their value from ``base``
        (defaults when None). A corrupt preset falls back to defaults.

        Returns:
            The loaded settings, or None when no preset has been saved.
        """
        if not self.path.exists():
            logger.info("No preset at %s, keeping current settings", self.path)
            return None

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                mapping = json.load(f)
            if not isinstance(mapping, dict):
                raise ValueError("preset is not a JSON object")
            settings = VisualizerSettings.from_mapping(mapping, base=base)
        except (OSError, ValueError) as e:
            logger.error("Failed to load preset %s: %s. Resetting to defaults.", self.path, e)
            return self.reset()

        logger.info("Preset loaded from %s", self.path)
        return settings

    def reset(self) -> VisualizerSettings:
        """Default settings; the stored file is left in place."""
        logger.info("Resetting settings to defaults")
        return VisualizerSettings()

    def clear(self):
        """Delete the stored preset, if any."""
        if self.path.exists():
            self.path.unlink()
            logger.info("Removed preset %s", self.path)
