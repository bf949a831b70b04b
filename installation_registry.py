"""
Installation Registry
Add, remove and select the game installations stored in the config
"""

import logging
import uuid
from pathlib import Path

from config_store import ConfigSaveError
from game_versions import get_game_version_name
from models import Installation

logger = logging.getLogger(__name__)


class InstallationRegistry:
    def __init__(self, config_store):
        """Initialize the registry.

        Args:
            config_store: ConfigStore - Owner of the in-memory document
        """
        self.config_store = config_store

    @property
    def _doc(self):
        return self.config_store.document

    def _persist(self):
        try:
            self.config_store.save()
            return True
        except ConfigSaveError as e:
            logger.error(f"Installation change not persisted: {e}")
            return False

    def all(self):
        return list(self._doc.installations.values())

    def get(self, installation_id):
        return self._doc.installations.get(installation_id)

    def eligible(self):
        """Installations that can be scanned (name, existing path, game version set)"""
        return [i for i in self.all() if i.is_scan_eligible()]

    def add(self, name, path, game_version_id):
        """Create a new installation; the first one added becomes active.

        Args:
            name: str - Display name
            path: str - AddOns directory
            game_version_id: int - Compatibility id from game_versions

        Returns:
            Installation - The created installation
        """
        installation = Installation(
            id=str(uuid.uuid4()),
            name=name,
            addon_path=str(path),
            game_version_id=int(game_version_id),
        )
        self._doc.installations[installation.id] = installation

        if len(self._doc.installations) == 1:
            self._doc.active_installation_id = installation.id

        logger.info(f"Added installation '{name}' for {get_game_version_name(installation.game_version_id)} ({installation.id})")
        self._persist()
        return installation

    def remove(self, installation_id):
        """Remove an installation from the config. Addon files are left on disk.

        Returns:
            bool - False if the id is unknown
        """
        if installation_id not in self._doc.installations:
            return False

        removed = self._doc.installations.pop(installation_id)
        if self._doc.active_installation_id == installation_id:
            self._doc.active_installation_id = next(iter(self._doc.installations), '')

        logger.info(f"Removed installation '{removed.name}' ({installation_id})")
        self._persist()
        return True

    def update(self, installation):
        """Replace the stored installation with the same id.

        Returns:
            bool - False if the id is unknown
        """
        if installation.id not in self._doc.installations:
            return False
        self._doc.installations[installation.id] = installation
        self._persist()
        return True

    def set_active(self, installation_id):
        if installation_id not in self._doc.installations:
            return
        self._doc.active_installation_id = installation_id
        self._persist()

    def get_active(self):
        return self._doc.get_active_installation()

    @staticmethod
    def validate_addon_path(path, create=True):
        """Check an AddOns path, optionally creating it when missing.

        Returns:
            bool - True if the directory exists (or was created)
        """
        if not path or not str(path).strip():
            logger.warning("An AddOns path must be specified")
            return False

        target = Path(path)
        if target.is_dir():
            return True
        if not create:
            logger.warning(f"AddOns path does not exist: {target}")
            return False
        try:
            target.mkdir(parents=True, exist_ok=True)
            return True
        except OSError as e:
            logger.error(f"Failed to create AddOns directory '{target}': {e}")
            return False
