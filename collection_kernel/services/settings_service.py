"""
Service layer for application settings.

A small key/value store kept next to the ledger for bookkeeping such as the
date of the last backup.  Values are stored as text.
"""

from sqlalchemy import select

from collection_kernel.exceptions import InvalidInputError
from collection_kernel.logging_config import get_logger
from collection_kernel.models.setting import Setting
from collection_kernel.services.base import BaseService

logger = get_logger("services.settings")

LAST_BACKUP_DATE = "last_backup_date"


class SettingsService(BaseService[Setting]):
    """Upsert and read settings by key."""

    def _find(self, key: str) -> Setting | None:
        stmt = select(Setting).where(Setting.key == key)
        return self.session.execute(stmt).scalar_one_or_none()

    def get_setting(self, key: str, default: str | None = None) -> str | None:
        setting = self._find(key)
        if setting is None:
            return default
        return setting.value

    def set_setting(self, key: str, value: str | None) -> str | None:
        """
        Create or replace a setting.

        Raises:
            InvalidInputError: key is empty.
        """
        if not key or not key.strip():
            raise InvalidInputError("key", key, "must not be empty")
        setting = self._find(key)
        if setting is None:
            setting = Setting(key=key, value=value)
            self.session.add(setting)
        else:
            setting.value = value
        self.session.flush()
        logger.debug("setting_saved", extra={"key": key})
        return setting.value

    def get_all_settings(self) -> dict[str, str | None]:
        stmt = select(Setting).order_by(Setting.key)
        return {s.key: s.value for s in self.session.execute(stmt).scalars()}
