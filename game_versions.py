"""
Game Versions
Static lookup tables: game flavors and their CurseForge compatibility ids,
and the auto-scan interval choices
"""

from collections import namedtuple

GameVersion = namedtuple('GameVersion', ['name', 'id'])
AutoScanInterval = namedtuple('AutoScanInterval', ['name', 'minutes'])

RETAIL_ID = 517

GAME_VERSIONS = [
    GameVersion('Classic Era', 67408),
    GameVersion('Classic TBC', 73246),
    GameVersion('Classic WOTLK', 73713),
    GameVersion('Classic Cata', 77522),
    GameVersion('Classic MOP', 79434),
    GameVersion('Retail', RETAIL_ID),
]

PLACEHOLDER_VERSION = GameVersion('Please select your WoW version...', 0)

AUTO_SCAN_INTERVALS = [
    AutoScanInterval('1 hour', 60),
    AutoScanInterval('2 hours', 120),
    AutoScanInterval('4 hours', 240),
    AutoScanInterval('6 hours', 360),
    AutoScanInterval('12 hours', 720),
    AutoScanInterval('24 hours', 1440),
]


def get_game_versions(with_placeholder=False):
    versions = list(GAME_VERSIONS)
    if with_placeholder:
        versions.insert(0, PLACEHOLDER_VERSION)
    return versions


def get_game_version_name(game_version_id):
    for version in GAME_VERSIONS:
        if version.id == game_version_id:
            return version.name
    return None
