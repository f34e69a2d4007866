"""User configuration (synced tier) and the provider the engine reads it through."""

from __future__ import annotations

import logging
import math
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .domains import normalize_sites
from .store import SYNC, KeyValueStore

logger = logging.getLogger(__name__)

CLOSE_ACTION = "close"
DEFAULT_REDIRECT_PAGE = "blocked.html"
MAX_LIMIT_MINUTES = 24 * 60

DEFAULT_SITES = [
    "facebook.com",
    "instagram.com",
    "twitter.com",
    "x.com",
    "tiktok.com",
    "reddit.com",
    "youtube.com",
]


class EnforcementKind(str, Enum):
    REDIRECT = "redirect"
    CLOSE = "close"
    NONE = "none"


class EnforcementAction(BaseModel):
    """What happens to tracked tabs once the budget runs out."""

    kind: EnforcementKind
    url: Optional[str] = None

    @classmethod
    def from_storage(cls, redirect_to: Optional[str]) -> "EnforcementAction":
        # Stored as the extension did: a page URL, the literal "close", or null
        if not redirect_to:
            return cls(kind=EnforcementKind.NONE)
        if redirect_to == CLOSE_ACTION:
            return cls(kind=EnforcementKind.CLOSE)
        return cls(kind=EnforcementKind.REDIRECT, url=redirect_to)


class Settings(BaseModel):
    """Tracked sites, per-mode budgets, warning lead time and enforcement action.

    Field aliases are the storage keys, so a stored dict validates directly.
    """

    model_config = ConfigDict(populate_by_name=True)

    work_limit_minutes: float = Field(25.0, gt=0, le=MAX_LIMIT_MINUTES, allow_inf_nan=False, alias="limitMinutes")
    break_limit_minutes: float = Field(10.0, gt=0, le=MAX_LIMIT_MINUTES, allow_inf_nan=False, alias="breakLimitMinutes")
    tracked_sites: list[str] = Field(default_factory=lambda: list(DEFAULT_SITES), alias="sites")
    warning_lead_seconds: int = Field(10, ge=1, alias="warningSecondsBefore")
    redirect_to: Optional[str] = Field(DEFAULT_REDIRECT_PAGE, alias="redirectTo")

    @field_validator("tracked_sites", mode="before")
    @classmethod
    def _normalize_sites(cls, value):
        if isinstance(value, str):
            value = value.splitlines()
        if not isinstance(value, (list, tuple)):
            raise ValueError("sites must be a list of domains")
        if not all(isinstance(site, str) for site in value):
            raise ValueError("sites must be strings")
        return normalize_sites(value)

    @field_validator("redirect_to", mode="before")
    @classmethod
    def _blank_redirect_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def enforcement_action(self) -> EnforcementAction:
        return EnforcementAction.from_storage(self.redirect_to)

    def limit_minutes(self, break_mode: bool) -> float:
        return self.break_limit_minutes if break_mode else self.work_limit_minutes

    def budget_seconds(self, break_mode: bool) -> int:
        """Active budget in whole seconds, between one second and a day."""
        minutes = self.limit_minutes(break_mode)
        if not math.isfinite(minutes):
            field = "break_limit_minutes" if break_mode else "work_limit_minutes"
            minutes = Settings.model_fields[field].default
        return max(1, round(min(minutes, MAX_LIMIT_MINUTES) * 60))

    def to_storage(self) -> dict:
        return self.model_dump(by_alias=True)


FIELD_ALIASES = {name: field.alias for name, field in Settings.model_fields.items()}
STORAGE_KEYS = tuple(FIELD_ALIASES.values())


def parse_settings(raw: dict) -> Settings:
    """Validate stored settings, falling back to the default for each bad field."""
    data = {key: value for key, value in raw.items() if key in STORAGE_KEYS}
    while True:
        try:
            return Settings.model_validate(data)
        except ValidationError as e:
            bad_keys = {err["loc"][0] for err in e.errors() if err["loc"]} & set(data)
            if not bad_keys:
                logger.warning(f"Settings invalid, using defaults: {e}")
                return Settings()
            for key in bad_keys:
                logger.warning(f"Setting '{key}' invalid ({data[key]!r}), using default")
                data.pop(key)


class SettingsProvider:
    """Reads and writes user configuration in the synced storage tier."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def load(self) -> Settings:
        try:
            raw = await self.store.get_all(SYNC)
        except Exception as e:
            logger.warning(f"Could not read settings, using defaults: {e}")
            return Settings()
        return parse_settings(raw)

    async def update(self, changes: dict) -> Settings:
        """Merge `changes` (storage keys or field names) into the stored settings.

        Raises ValidationError if the merged result is invalid.
        """
        current = await self.load()
        data = current.to_storage()
        for key, value in changes.items():
            data[FIELD_ALIASES.get(key, key)] = value
        settings = Settings.model_validate(data)
        await self.store.set(SYNC, settings.to_storage())
        logger.info(f"Settings updated: {sorted(changes)}")
        return settings

    async def ensure_defaults(self) -> None:
        """Seed the synced tier on first run."""
        existing = await self.store.get_all(SYNC)
        if "limitMinutes" not in existing:
            await self.store.set(SYNC, Settings().to_storage())
            logger.info("Seeded default settings")
