"""Fingerprint and address quota guard package."""

import logging
import tomllib
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

logger = logging.getLogger(__name__)

DISTRIBUTION = "quota-guard"


def get_version() -> str:
    """Version of the installed distribution, or of the source checkout."""
    try:
        return version(DISTRIBUTION)
    except PackageNotFoundError:
        pass

    pyproject_path = Path(__file__).parent.parent / "pyproject.toml"
    if not pyproject_path.exists():
        logger.debug("No distribution metadata and no %s", pyproject_path)
        return "0.0.0"

    with open(pyproject_path, "rb") as f:
        return str(tomllib.load(f).get("project", {}).get("version", "0.0.0"))


__version__: str = get_version()
