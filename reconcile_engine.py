"""
Reconcile Engine
Checks every tracked addon of every scan-eligible installation against the
catalog, records the online state and decides which addons are stale
"""

import asyncio
import logging
import re
from datetime import datetime

from catalog_client import select_compatible_release
from config_store import ConfigSaveError
from models import (
    Addon,
    AddonSortMode,
    AddonState,
    NOT_INSTALLED,
    NO_COMPATIBLE_VERSION,
    SKIN_ADDON_FOLDERS,
    SKIN_ADDON_NAME,
    now_timestamp,
    parse_timestamp,
)
from toc_parser import find_addon_folders, read_version_tag

logger = logging.getLogger(__name__)

SCAN_DELAY = 0.1
_ARCHIVE_SUFFIX = re.compile(r'\.zip$', re.IGNORECASE)


def clean_version_string(version):
    """Strip a trailing .zip from a release display name."""
    if not version:
        return version
    return _ARCHIVE_SUFFIX.sub('', version.strip())


def needs_update(local_modified, online_modified, local_version, online_version):
    """Decide whether an addon is stale.

    Compares the stored install timestamp with the release timestamp when
    both parse. Otherwise falls back to the version strings: stale when
    the local version is empty or differs from the online one.
    """
    local_date = parse_timestamp(local_modified)
    online_date = parse_timestamp(online_modified) if online_modified else None
    if local_date is not None and online_date is not None:
        return local_date < online_date
    return not local_version or local_version != online_version


def sort_addons(addons, mode):
    """Sort scan or load results.

    Args:
        addons: list[Addon] - Rows to sort
        mode: AddonSortMode/int/str - Unknown values sort by name

    Returns:
        list[Addon] - Sorted copy
    """
    mode = AddonSortMode.coerce(mode)

    if mode == AddonSortMode.INSTALLATION:
        return sorted(addons, key=lambda a: ((a.installation_name or '').lower(), a.name.lower()))

    if mode == AddonSortMode.LAST_UPDATED:
        by_name = sorted(addons, key=lambda a: a.name.lower())
        # reverse keeps stability, so names stay ascending within equal dates
        return sorted(by_name, key=lambda a: a.last_updated or datetime.min, reverse=True)

    return sorted(addons, key=lambda a: a.name.lower())


class ReconcileEngine:
    def __init__(self, config_store, registry, catalog_client, delay=SCAN_DELAY):
        """Initialize the reconcile engine.

        Args:
            config_store: ConfigStore - Saved once at the end of a scan
            registry: InstallationRegistry - Source of scan-eligible installations
            catalog_client: CatalogClient - Release lists and skin addon info
            delay: float - Seconds to wait after each addon
        """
        self.config_store = config_store
        self.registry = registry
        self.catalog = catalog_client
        self.delay = delay
        self.last_errors = []

    async def scan_for_updates(self, progress=None):
        """Scan every eligible installation and return one row per addon.

        Per-addon failures are logged and collected in self.last_errors;
        the addon keeps its previous state and the scan moves on.

        Args:
            progress: Optional callable(current, total, name)

        Returns:
            list[Addon] - Sorted per the configured sort mode
        """
        self.last_errors = []
        results = []
        scan_time = now_timestamp()

        installations = self.registry.eligible()
        total = sum(
            len([n for n in i.addons if n != SKIN_ADDON_NAME]) + (1 if i.include_elvui else 0)
            for i in installations
        )
        current = 0

        for installation in installations:
            logger.info(f"Scanning {installation.name} ({installation.addon_path})")

            for addon_name, state in list(installation.addons.items()):
                if addon_name == SKIN_ADDON_NAME:
                    continue
                current += 1
                if progress:
                    progress(current, total, addon_name)

                try:
                    row = await self._check_addon(installation, addon_name, state, scan_time)
                    results.append(row)
                except Exception as e:
                    message = f"Error checking {addon_name} in {installation.name}: {e}"
                    logger.error(message)
                    self.last_errors.append(message)

                await asyncio.sleep(self.delay)

            if installation.include_elvui:
                current += 1
                if progress:
                    progress(current, total, SKIN_ADDON_NAME)
                try:
                    results.append(await self._check_skin_addon(installation, scan_time))
                except Exception as e:
                    message = f"Error checking {SKIN_ADDON_NAME} in {installation.name}: {e}"
                    logger.error(message)
                    self.last_errors.append(message)

        try:
            self.config_store.save()
        except ConfigSaveError as e:
            logger.error(f"Scan results not persisted: {e}")

        logger.info(f"Scan finished: {len(results)} addons, {len(self.last_errors)} errors")
        return sort_addons(results, self.config_store.settings.addon_sort_mode)

    async def _folders_for(self, installation, addon_name):
        folders = installation.folders_for(addon_name)
        if folders:
            return list(folders)
        return await asyncio.to_thread(find_addon_folders, addon_name, installation.addon_path)

    async def _check_addon(self, installation, addon_name, state, scan_time):
        releases = await self.catalog.get_releases(state.id)
        release = select_compatible_release(releases, installation.game_version_id)
        folders = await self._folders_for(installation, addon_name)
        local_version = state.local_version or NOT_INSTALLED

        if release is None:
            state.update_available = False
            state.online_version = NO_COMPATIBLE_VERSION
            state.last_checked = scan_time
            return Addon(
                name=addon_name,
                local_version=local_version,
                online_version=NO_COMPATIBLE_VERSION,
                needs_update=False,
                last_updated=None,
                id=state.id,
                folders=folders,
                installation_id=installation.id,
                installation_name=installation.name,
            )

        online_version = clean_version_string(release.display_name)
        online_modified = release.date_modified

        last_updated = parse_timestamp(state.modified_date)
        if state.modified_date and last_updated is None:
            logger.warning(f"Unparseable modified date for {addon_name}: {state.modified_date!r}")

        stale = needs_update(state.modified_date, online_modified, state.local_version, online_version)

        state.online_modified_date = online_modified
        state.update_available = stale
        state.last_checked = scan_time
        state.online_version = online_version

        return Addon(
            name=addon_name,
            local_version=local_version,
            online_version=online_version,
            needs_update=stale,
            last_updated=last_updated,
            id=state.id,
            file_id=release.id,
            folders=folders,
            installation_id=installation.id,
            installation_name=installation.name,
        )

    async def _check_skin_addon(self, installation, scan_time):
        info = await self.catalog.get_skin_addon_info()
        folders = list(installation.folders_for(SKIN_ADDON_NAME) or SKIN_ADDON_FOLDERS)
        local_tag = await asyncio.to_thread(read_version_tag, installation.addon_path, folders)
        stale = local_tag != info.version

        state = installation.addons.get(SKIN_ADDON_NAME)
        if state is None:
            state = AddonState(id=0)
            installation.addons[SKIN_ADDON_NAME] = state
        state.modified_date = info.last_update
        state.online_modified_date = info.last_update
        state.update_available = stale
        state.last_checked = scan_time
        state.online_version = info.version
        state.local_version = local_tag or NOT_INSTALLED

        return Addon(
            name=SKIN_ADDON_NAME,
            local_version=local_tag or NOT_INSTALLED,
            online_version=info.version,
            needs_update=stale,
            last_updated=parse_timestamp(info.last_update),
            folders=folders,
            installation_id=installation.id,
            installation_name=installation.name,
        )
