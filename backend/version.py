"""
Version for the Project Pilot teams backend
Reads version from the repository root VERSION file
"""

from pathlib import Path

FALLBACK_VERSION = "0.1.0"


def get_version() -> str:
    """Get version from root VERSION file"""
    # The root directory is the parent of backend/
    version_file = Path(__file__).parent.parent / "VERSION"

    if version_file.exists():
        return version_file.read_text().strip() or FALLBACK_VERSION
    return FALLBACK_VERSION


__version__ = get_version()
