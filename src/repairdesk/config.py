"""
Settings for repairdesk.

Settings come from an optional YAML file, with environment variables taking
precedence. The file holds things that rarely change per deployment:

    timezone: Asia/Seoul
    admin_ids: [ "3f1c..." ]
    admin_emails: [ "owner@example.com" ]
    presets:
      gross:
        material_cost: false
        daily_wage: false
        fixed_expense: false
        extra_expense: false

Environment variables (usually from .env via python-dotenv):
    REPAIRDESK_SETTINGS_PATH: Path of the YAML file (default: config/repairdesk.yaml)
    REPAIRDESK_TIMEZONE: Business timezone used to assign timestamps to days
    REPAIRDESK_ADMIN_IDS: Comma-separated user IDs treated as admins
    REPAIRDESK_ADMIN_EMAILS: Comma-separated e-mails treated as admins

Database settings stay in the DB_* variables read by repairdesk.database.
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from .records import CategoryToggleSet

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_PATH = os.path.join("config", "repairdesk.yaml")


def split_list(value: Optional[str]) -> List[str]:
    """Comma-separated string to a list of trimmed, non-empty items."""
    return [item.strip() for item in (value or "").split(",") if item.strip()]


@dataclass
class Settings:
    """Resolved settings."""
    timezone: Optional[str] = None
    admin_ids: List[str] = field(default_factory=list)
    admin_emails: List[str] = field(default_factory=list)
    presets: Dict[str, CategoryToggleSet] = field(default_factory=dict)

    @property
    def tz(self) -> Optional[tzinfo]:
        """Business timezone, or None to use each timestamp's own offset."""
        if not self.timezone:
            return None
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {self.timezone}")

    def preset(self, name: str) -> CategoryToggleSet:
        """Toggle set for a named preset."""
        if name not in self.presets:
            available = ", ".join(sorted(self.presets)) or "none configured"
            raise ValueError(f"Unknown toggle preset: {name} (available: {available})")
        return self.presets[name]


class SettingsStore:
    """
    Loads Settings from the YAML file and the environment.

    The file is re-read only when its modification time changes.
    """

    def __init__(self, settings_path: Optional[str] = None):
        self.settings_path = settings_path or os.environ.get(
            "REPAIRDESK_SETTINGS_PATH",
            DEFAULT_SETTINGS_PATH
        )
        self._data: Optional[Dict[str, Any]] = None
        self._load_time: Optional[datetime] = None

    def _load_file(self) -> Dict[str, Any]:
        """Load the YAML file, with caching."""
        if not os.path.exists(self.settings_path):
            logger.debug(f"Settings file not found, using defaults: {self.settings_path}")
            return {}

        # Check if we need to reload (file modified)
        file_mtime = datetime.fromtimestamp(os.path.getmtime(self.settings_path))
        if self._data is not None and self._load_time is not None:
            if file_mtime <= self._load_time:
                return self._data

        try:
            with open(self.settings_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid settings file {self.settings_path}: {e}")

        if not isinstance(data, dict):
            raise ValueError(f"Settings file {self.settings_path} must contain a mapping")

        self._data = data
        self._load_time = file_mtime
        logger.info(f"Loaded settings from {self.settings_path}")
        return self._data

    def load(self) -> Settings:
        """Current settings: file values overridden by environment variables."""
        data = self._load_file()

        raw_presets = data.get("presets") or {}
        if not isinstance(raw_presets, dict):
            raise ValueError(f"presets in {self.settings_path} must be a mapping of name to toggles")
        presets = {}
        for name, toggles in raw_presets.items():
            try:
                presets[str(name)] = CategoryToggleSet.from_dict(toggles if toggles is not None else {})
            except ValueError as e:
                raise ValueError(f"Invalid preset '{name}' in {self.settings_path}: {e}") from e

        admin_ids = [str(v) for v in data.get("admin_ids") or []]
        admin_emails = [str(v).lower() for v in data.get("admin_emails") or []]

        if os.environ.get("REPAIRDESK_ADMIN_IDS"):
            admin_ids = split_list(os.environ["REPAIRDESK_ADMIN_IDS"])
        if os.environ.get("REPAIRDESK_ADMIN_EMAILS"):
            admin_emails = [e.lower() for e in split_list(os.environ["REPAIRDESK_ADMIN_EMAILS"])]

        return Settings(
            timezone=os.environ.get("REPAIRDESK_TIMEZONE") or data.get("timezone"),
            admin_ids=admin_ids,
            admin_emails=admin_emails,
            presets=presets,
        )
