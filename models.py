"""
Models
Typed records for the persisted config document, the bundled addon
catalog and the remote catalog responses.
"""

import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from pathlib import Path
from typing import Optional


SKIN_ADDON_NAME = 'ElvUI'
SKIN_ADDON_FOLDERS = ['ElvUI', 'ElvUI_Libraries', 'ElvUI_Options']

NOT_INSTALLED = 'Not installed'
DETECTED_VERSION = 'Detected'
DETECTED_PLACEHOLDER_DATE = '2010-01-01 00:00:00'
NO_COMPATIBLE_VERSION = 'No compatible version available'

TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'

_TZ_SUFFIX = re.compile(r'(?:Z|[+-]\d{2}(?::?\d{2})?)$')


def parse_timestamp(value):
    """Parse a stored or remote timestamp into a naive datetime.

    Sub-second precision (everything after the first '.') and any
    timezone suffix are dropped before parsing.

    Returns:
        datetime or None if the value is empty or unparseable
    """
    if not value:
        return None
    text = str(value).strip().split('.')[0]
    if 'T' in text or ' ' in text:
        text = _TZ_SUFFIX.sub('', text)
    try:
        return datetime.fromisoformat(text).replace(tzinfo=None)
    except ValueError:
        pass
    for fmt in ('%Y/%m/%d %H:%M:%S', '%m/%d/%Y %H:%M:%S', '%m/%d/%Y'):
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def now_timestamp():
    return datetime.now().strftime(TIMESTAMP_FORMAT)


class AddonSortMode(IntEnum):
    NAME = 0
    INSTALLATION = 1
    LAST_UPDATED = 2

    @classmethod
    def coerce(cls, value):
        """Map a persisted value (int or name) onto a sort mode, defaulting to NAME."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().upper().replace(' ', '_')
            if key == 'LASTUPDATED':
                key = 'LAST_UPDATED'
            if key in cls.__members__:
                return cls[key]
            if key.isdigit():
                value = int(key)
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            return cls.NAME


def _str_or_none(value):
    return None if value is None else str(value)


def _int_or_zero(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


@dataclass
class AddonState:
    """Persisted state of one addon inside an installation."""

    id: int = 0
    modified_date: Optional[str] = None
    online_modified_date: Optional[str] = None
    update_available: bool = False
    last_checked: Optional[str] = None
    online_version: Optional[str] = None
    local_version: Optional[str] = None

    @classmethod
    def from_dict(cls, data):
        data = data or {}
        return cls(
            id=_int_or_zero(data.get('id', 0)),
            modified_date=_str_or_none(data.get('modified_date')),
            online_modified_date=_str_or_none(data.get('online_modified_date')),
            update_available=bool(data.get('update_available', False)),
            last_checked=_str_or_none(data.get('last_checked')),
            online_version=_str_or_none(data.get('online_version')),
            local_version=_str_or_none(data.get('local_version')),
        )

    def to_dict(self):
        return {
            'id': self.id,
            'modified_date': self.modified_date,
            'online_modified_date': self.online_modified_date,
            'update_available': self.update_available,
            'last_checked': self.last_checked,
            'online_version': self.online_version,
            'local_version': self.local_version,
        }


def _addons_from_dict(data):
    return {name: AddonState.from_dict(state) for name, state in (data or {}).items()}


def _mapping_from_dict(data):
    return {name: list(folders or []) for name, folders in (data or {}).items()}


@dataclass
class Installation:
    """One tracked game copy with its own AddOns folder and compatibility id."""

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ''
    addon_path: str = ''
    game_version_id: int = 0
    include_elvui: bool = False
    color_hex: str = ''
    addons: dict = field(default_factory=dict)
    folder_mapping: dict = field(default_factory=dict)

    def is_scan_eligible(self):
        return (
            bool(self.name)
            and bool(self.addon_path)
            and Path(self.addon_path).is_dir()
            and self.game_version_id > 0
        )

    def folders_for(self, addon_name):
        return self.folder_mapping.get(addon_name)

    @classmethod
    def from_dict(cls, data):
        data = data or {}
        return cls(
            id=str(data.get('id') or uuid.uuid4()),
            name=data.get('name') or '',
            addon_path=data.get('addon_path') or '',
            game_version_id=_int_or_zero(data.get('game_version_id', 0)),
            include_elvui=bool(data.get('include_elvui', False)),
            color_hex=data.get('color_hex') or '',
            addons=_addons_from_dict(data.get('addons')),
            folder_mapping=_mapping_from_dict(data.get('folder_mapping')),
        )

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'addon_path': self.addon_path,
            'game_version_id': self.game_version_id,
            'include_elvui': self.include_elvui,
            'color_hex': self.color_hex,
            'addons': {name: state.to_dict() for name, state in self.addons.items()},
            'folder_mapping': {name: list(folders) for name, folders in self.folder_mapping.items()},
        }

    def __str__(self):
        return self.name


@dataclass
class Settings:
    """Global preferences. addon_path/include_elvui/game_version_id are legacy fields."""

    minimize_to_tray: bool = False
    start_with_windows: bool = False
    start_minimized: bool = False
    auto_scan_enabled: bool = False
    auto_scan_interval_minutes: int = 360
    auto_update_after_scan: bool = False
    addon_sort_mode: AddonSortMode = AddonSortMode.NAME
    addon_path: str = ''
    include_elvui: bool = False
    game_version_id: int = 0
    use_custom_user_agent: bool = False
    custom_user_agent: str = ''

    @classmethod
    def from_dict(cls, data):
        data = data or {}
        return cls(
            minimize_to_tray=bool(data.get('minimize_to_tray', False)),
            start_with_windows=bool(data.get('start_with_windows', False)),
            start_minimized=bool(data.get('start_minimized', False)),
            auto_scan_enabled=bool(data.get('auto_scan_enabled', False)),
            auto_scan_interval_minutes=_int_or_zero(data.get('auto_scan_interval_minutes', 360)) or 360,
            auto_update_after_scan=bool(data.get('auto_update_after_scan', False)),
            addon_sort_mode=AddonSortMode.coerce(data.get('addon_sort_mode', 0)),
            addon_path=data.get('addon_path') or '',
            include_elvui=bool(data.get('include_elvui', False)),
            game_version_id=_int_or_zero(data.get('game_version_id', 0)),
            use_custom_user_agent=bool(data.get('use_custom_user_agent', False)),
            custom_user_agent=data.get('custom_user_agent') or '',
        )

    def to_dict(self):
        return {
            'minimize_to_tray': self.minimize_to_tray,
            'start_with_windows': self.start_with_windows,
            'start_minimized': self.start_minimized,
            'auto_scan_enabled': self.auto_scan_enabled,
            'auto_scan_interval_minutes': self.auto_scan_interval_minutes,
            'auto_update_after_scan': self.auto_update_after_scan,
            'addon_sort_mode': int(self.addon_sort_mode),
            'addon_path': self.addon_path,
            'include_elvui': self.include_elvui,
            'game_version_id': self.game_version_id,
            'use_custom_user_agent': self.use_custom_user_agent,
            'custom_user_agent': self.custom_user_agent,
        }


@dataclass
class ConfigDocument:
    """Root of config.json."""

    settings: Settings = field(default_factory=Settings)
    installations: dict = field(default_factory=dict)
    active_installation_id: str = ''
    # Legacy single-installation fields, emptied by migration
    addons: dict = field(default_factory=dict)
    folder_mapping: dict = field(default_factory=dict)

    def has_legacy_data(self):
        return bool(self.settings.addon_path) or bool(self.addons) or bool(self.folder_mapping)

    def get_active_installation(self):
        if self.active_installation_id and self.active_installation_id in self.installations:
            return self.installations[self.active_installation_id]
        return next(iter(self.installations.values()), None)

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            raise ValueError('Config document must be a JSON object')
        installations = {}
        for key, raw in (data.get('installations') or {}).items():
            installation = Installation.from_dict(raw)
            if not raw or not raw.get('id'):
                installation.id = key
            installations[installation.id] = installation
        active_id = data.get('active_installation_id') or ''
        if active_id not in installations:
            active_id = ''
        return cls(
            settings=Settings.from_dict(data.get('settings')),
            installations=installations,
            active_installation_id=active_id,
            addons=_addons_from_dict(data.get('addons')),
            folder_mapping=_mapping_from_dict(data.get('folder_mapping')),
        )

    def to_dict(self):
        return {
            'settings': self.settings.to_dict(),
            'installations': {key: inst.to_dict() for key, inst in self.installations.items()},
            'active_installation_id': self.active_installation_id,
            'addons': {name: state.to_dict() for name, state in self.addons.items()},
            'folder_mapping': {name: list(folders) for name, folders in self.folder_mapping.items()},
        }


@dataclass
class Addon:
    """UI-facing projection of an AddonState; rebuilt on every scan or load."""

    name: str
    local_version: Optional[str] = None
    online_version: Optional[str] = None
    needs_update: bool = False
    last_updated: Optional[datetime] = None
    id: Optional[int] = None
    file_id: Optional[int] = None
    folders: list = field(default_factory=list)
    installation_id: Optional[str] = None
    installation_name: Optional[str] = None

    @property
    def status(self):
        if self.needs_update:
            return f"{self.local_version} → {self.online_version}"
        return self.local_version

    @property
    def last_updated_text(self):
        return self.last_updated.strftime('%Y-%m-%d %H:%M') if self.last_updated else 'Never'


# --- Remote catalog responses ---

@dataclass
class Release:
    id: int
    display_name: str = ''
    file_name: str = ''
    date_modified: str = ''
    game_version_ids: list = field(default_factory=list)

    def is_compatible(self, game_version_id):
        return game_version_id in self.game_version_ids


@dataclass
class AddonSummary:
    id: int
    name: str
    summary: str = ''
    authors: list = field(default_factory=list)
    download_count: int = 0


@dataclass
class SkinAddonInfo:
    version: str = 'Unknown'
    last_update: str = ''
    download_url: str = ''


# --- Bundled detection catalog ---

@dataclass
class CatalogVersion:
    folders: list = field(default_factory=list)
    upload_date: Optional[str] = None


@dataclass
class CatalogEntry:
    id: int
    name: str
    versions: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data):
        versions = {}
        for key, raw in (data.get('versions') or {}).items():
            raw = raw or {}
            versions[str(key)] = CatalogVersion(
                folders=list(raw.get('folders') or []),
                upload_date=_str_or_none(raw.get('upload_date')),
            )
        return cls(id=int(data['id']), name=str(data.get('name') or ''), versions=versions)


@dataclass
class DetectedAddon:
    id: int
    name: str
    folders: list = field(default_factory=list)
    upload_date: Optional[datetime] = None
