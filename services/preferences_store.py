"""
Local persistence for display preferences (theme, font size, button style, fonts).

Preferences are per device, not per tenant, so they live in a JSON file instead
of the remote service.
"""

from __future__ import annotations

import json
import os
from typing import Any

from pydantic import ValidationError

from config import logger, PREFERENCES_PATH
from models.preferences import Preferences


class PreferencesStore:

    def __init__(self, path: str = PREFERENCES_PATH):
        self.path = path

    def load(self) -> Preferences:
        """Stored preferences, or the defaults when the file is missing or unreadable."""
        if not os.path.exists(self.path):
            return Preferences()
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return Preferences.model_validate(json.load(f))
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"[PREFS] Ignoring unreadable preferences at {self.path}: {e}")
            return Preferences()

    def save(self, preferences: Preferences) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(preferences.model_dump(mode="json"), f, indent=2)
        logger.debug(f"[PREFS] Saved preferences to {self.path}")

    def update(self, **changes: Any) -> Preferences:
        """Merge ``changes`` into the stored preferences, validate and persist."""
        current = self.load().model_dump()
        current.update(changes)
        preferences = Preferences.model_validate(current)
        self.save(preferences)
        return preferences
