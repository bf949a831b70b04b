"""
Skin Addon Service
Install, uninstall and register the ElvUI skin addon, which is distributed
outside the catalog and tracked per installation through include_elvui
"""

import asyncio
import logging
from pathlib import Path

from config_store import ConfigSaveError
from install_pipeline import DownloadError, remove_directory_safe
from models import AddonState, DETECTED_VERSION, SKIN_ADDON_FOLDERS, SKIN_ADDON_NAME
from toc_parser import find_addon_folders, read_version_tag

logger = logging.getLogger(__name__)

UNKNOWN_VERSION = 'Unknown'


class SkinAddonService:
    def __init__(self, config_store, install_pipeline):
        self.config_store = config_store
        self.pipeline = install_pipeline

    def _persist(self, installation):
        try:
            self.config_store.save()
            return True
        except ConfigSaveError as e:
            logger.error(f"Skin addon change for {installation.name} not persisted: {e}")
            return False

    async def install(self, installation):
        """Download the skin addon into an installation and start tracking it.

        Returns:
            bool - True if the addon was extracted and recorded
        """
        try:
            version, last_update, folders = await self.pipeline.download_skin_addon(installation.addon_path)
        except DownloadError as e:
            logger.error(f"Error installing {SKIN_ADDON_NAME} to {installation.name}: {e}")
            return False

        if not folders:
            folders = await asyncio.to_thread(find_addon_folders, SKIN_ADDON_NAME, installation.addon_path)

        installation.folder_mapping[SKIN_ADDON_NAME] = list(folders)
        installation.include_elvui = True

        state = installation.addons.get(SKIN_ADDON_NAME)
        if state is None:
            state = AddonState(id=0)
            installation.addons[SKIN_ADDON_NAME] = state
        state.modified_date = last_update
        state.local_version = version

        logger.info(f"Installed {SKIN_ADDON_NAME} {version} to {installation.name}")
        return self._persist(installation)

    async def uninstall(self, installation):
        """Remove the skin addon's folders and stop tracking it.

        Returns:
            bool - False if a folder could not be removed
        """
        folders = installation.folder_mapping.get(SKIN_ADDON_NAME) or SKIN_ADDON_FOLDERS

        try:
            for folder in folders:
                folder_path = Path(installation.addon_path) / folder
                if folder_path.is_dir():
                    await asyncio.to_thread(remove_directory_safe, folder_path)
        except OSError as e:
            logger.error(f"Error uninstalling {SKIN_ADDON_NAME} from {installation.name}: {e}")
            return False

        installation.folder_mapping.pop(SKIN_ADDON_NAME, None)
        installation.addons.pop(SKIN_ADDON_NAME, None)
        installation.include_elvui = False

        logger.info(f"Uninstalled {SKIN_ADDON_NAME} from {installation.name}")
        return self._persist(installation)

    def initialize_in_config(self, installation):
        """Create or refresh the skin addon record from the version on disk.

        The caller is responsible for saving.
        """
        state = installation.addons.get(SKIN_ADDON_NAME)

        if state is None:
            version = read_version_tag(installation.addon_path, SKIN_ADDON_FOLDERS)
            installation.addons[SKIN_ADDON_NAME] = AddonState(
                id=0,
                modified_date='',
                online_modified_date='',
                update_available=False,
                last_checked='',
                online_version='',
                local_version=version or UNKNOWN_VERSION,
            )
        elif not state.local_version or state.local_version == DETECTED_VERSION:
            version = read_version_tag(installation.addon_path, SKIN_ADDON_FOLDERS)
            state.local_version = version or UNKNOWN_VERSION

        installation.folder_mapping[SKIN_ADDON_NAME] = list(SKIN_ADDON_FOLDERS)
