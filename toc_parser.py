import logging
import re
from pathlib import Path

logger = logging.getLogger(__name__)

DIRECTIVE_PATTERN = re.compile(r'^##\s*([\w-]+)\s*:\s*(.*)$')
VERSION_PREFIX = re.compile(r'^[vV#]')
VERSION_FLAVOR_SUFFIX = re.compile(r'-(?:Retail|Cata|Era)\s*$')


class TocParser:
    def __init__(self, toc_path):
        self.toc_path = Path(toc_path)
        self.directives = {}
        self.files = []

    def parse(self):
        if not self.toc_path.is_file():
            return False

        with open(self.toc_path, 'r', encoding='utf-8-sig', errors='replace') as f:
            lines = f.readlines()

        for line in lines:
            stripped = line.strip()
            if not stripped:
                continue

            match = DIRECTIVE_PATTERN.match(stripped)
            if match:
                key = match.group(1).lower()
                # First declaration wins, localized variants like Title-deDE keep their own key
                self.directives.setdefault(key, match.group(2).strip())
            elif not stripped.startswith('#'):
                self.files.append(stripped)

        return True

    @property
    def title(self):
        return self.directives.get('title', '')

    @property
    def notes(self):
        return self.directives.get('notes', '')

    @property
    def version(self):
        return self.directives.get('version')


def normalize_version(version):
    """Strip a leading v/V/# and a trailing -Retail/-Cata/-Era flavor tag."""
    if not version:
        return None
    version = VERSION_PREFIX.sub('', version.strip()).strip()
    version = VERSION_FLAVOR_SUFFIX.sub('', version)
    return version.strip() or None


def _first_toc(folder_path):
    tocs = sorted(folder_path.glob('*.toc'))
    return tocs[0] if tocs else None


def read_version_tag(addon_path, folders):
    """Read the version declared in the first TOC of the given addon folders.

    Args:
        addon_path: str/Path - AddOns directory
        folders: list - Folder names to inspect, in order

    Returns:
        str - Normalized version, or None if no folder declares one
    """
    if not folders:
        return None

    for folder in folders:
        folder_path = Path(addon_path) / folder
        try:
            if not folder_path.is_dir():
                continue
            toc_file = _first_toc(folder_path)
            if toc_file is None:
                continue
            parser = TocParser(toc_file)
            parser.parse()
            if parser.version:
                return normalize_version(parser.version)
        except OSError as e:
            logger.warning(f"Error reading TOC for {folder}: {e}")

    return None


def find_addon_folders(addon_name, addon_path):
    """Find folders whose TOC title or notes mention the addon name.

    Returns:
        list - Matching folder names (empty if the path cannot be read)
    """
    folders = []
    needle = addon_name.lower()
    root = Path(addon_path)

    try:
        subdirs = sorted(d for d in root.iterdir() if d.is_dir())
    except OSError as e:
        logger.warning(f"Error accessing AddOns path '{root}': {e}")
        return folders

    for folder in subdirs:
        for toc_file in sorted(folder.glob('*.toc')):
            try:
                parser = TocParser(toc_file)
                parser.parse()
            except OSError as e:
                logger.warning(f"Error reading TOC file {toc_file}: {e}")
                continue
            if needle in parser.title.lower() or needle in parser.notes.lower():
                folders.append(folder.name)
                break

    return folders
