"""
Preference persistence tests.
"""

import pytest
from pydantic import ValidationError

from models.preferences import DEFAULT_FONTS, Preferences
from services.preferences_store import PreferencesStore


class TestPreferencesStore:

    @pytest.fixture
    def store(self, tmp_path):
        return PreferencesStore(str(tmp_path / "prefs" / "preferences.json"))

    def test_defaults_when_nothing_saved(self, store):
        prefs = store.load()

        assert prefs == Preferences()
        assert prefs.fonts == DEFAULT_FONTS

    def test_update_survives_restart(self, store):
        store.update(theme="dark", font_size=120, fonts={**DEFAULT_FONTS, "body": "Montserrat"})

        reloaded = PreferencesStore(store.path).load()

        assert reloaded.theme == "dark"
        assert reloaded.font_size == 120
        assert reloaded.fonts["body"] == "Montserrat"
        assert reloaded.button_style == "rounded"

    def test_corrupt_file_falls_back_to_defaults(self, store, tmp_path):
        (tmp_path / "prefs").mkdir()
        (tmp_path / "prefs" / "preferences.json").write_text("{not json", encoding="utf-8")

        assert store.load() == Preferences()

    def test_invalid_values_are_rejected(self, store):
        with pytest.raises(ValidationError):
            store.update(font_size=400)
        assert store.load().font_size == 100
