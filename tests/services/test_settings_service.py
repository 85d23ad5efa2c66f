"""Tests for SettingsService key/value storage."""

import pytest

from collection_kernel.exceptions import InvalidInputError
from collection_kernel.services.settings_service import LAST_BACKUP_DATE


def test_missing_key_returns_default(settings_service):
    assert settings_service.get_setting("theme") is None
    assert settings_service.get_setting("theme", "dark") == "dark"


def test_set_then_overwrite(settings_service):
    settings_service.set_setting(LAST_BACKUP_DATE, "2024-03-01")
    settings_service.set_setting(LAST_BACKUP_DATE, "2024-03-15")

    assert settings_service.get_setting(LAST_BACKUP_DATE) == "2024-03-15"
    assert settings_service.get_all_settings() == {LAST_BACKUP_DATE: "2024-03-15"}


def test_rejects_empty_key(settings_service):
    with pytest.raises(InvalidInputError):
        settings_service.set_setting("  ", "x")
