"""
Config Store
Manages config.json: loading, saving and the one-time migration from the
single-installation layout
"""

import json
import logging
import uuid
from pathlib import Path

from models import ConfigDocument, Installation

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = 'config.json'
DEFAULT_INSTALLATION_NAME = 'Default'


class ConfigSaveError(IOError):
    pass


class ConfigStore:
    def __init__(self, config_path=CONFIG_FILE_NAME):
        self.config_path = Path(config_path)
        self.document = ConfigDocument()

    def load(self):
        """Load config.json and migrate legacy data.

        Never raises: a missing or unreadable file yields an empty document.

        Returns:
            ConfigDocument - The loaded document (also kept on self.document)
        """
        if not self.config_path.exists():
            logger.info(f"No config at '{self.config_path}', starting with an empty one")
            self.document = ConfigDocument()
            return self.document

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                self.document = ConfigDocument.from_dict(json.load(f))
        except Exception as e:
            logger.warning(f"Could not read config '{self.config_path}': {e}. Using an empty config.")
            self.document = ConfigDocument()
            return self.document

        try:
            self.migrate_legacy(self.document)
        except ConfigSaveError as e:
            logger.error(f"Migrated config could not be written: {e}")
        return self.document

    def migrate_legacy(self, doc):
        """Move legacy top-level addons/settings into a 'Default' installation.

        Only runs when legacy fields carry data and no installation exists
        yet. Legacy fields are zeroed afterwards and the result is saved.

        Args:
            doc: ConfigDocument - Document to migrate in place

        Returns:
            bool - True if a migration happened
        """
        if not doc.has_legacy_data() or doc.installations:
            return False

        installation = Installation(
            id=str(uuid.uuid4()),
            name=DEFAULT_INSTALLATION_NAME,
            addon_path=doc.settings.addon_path,
            game_version_id=doc.settings.game_version_id,
            include_elvui=doc.settings.include_elvui,
            addons=dict(doc.addons),
            folder_mapping={name: list(folders) for name, folders in doc.folder_mapping.items()},
        )
        doc.installations[installation.id] = installation
        doc.active_installation_id = installation.id

        doc.settings.addon_path = ''
        doc.settings.game_version_id = 0
        doc.settings.include_elvui = False
        doc.addons.clear()
        doc.folder_mapping.clear()

        logger.info(
            f"Migrated legacy config into installation '{installation.name}' "
            f"({len(installation.addons)} addons)"
        )
        self.save(doc)
        return True

    def save(self, doc=None):
        """Write the whole document to config.json.

        Raises:
            ConfigSaveError - If the file cannot be written or serialized
        """
        if doc is not None:
            self.document = doc
        try:
            payload = self.document.to_dict()
            with open(self.config_path, 'w', encoding='utf-8') as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Error saving config to '{self.config_path}': {e}")
            raise ConfigSaveError(f"Failed to write config file: {e}") from e

    @property
    def settings(self):
        return self.document.settings
