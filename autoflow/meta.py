"""Installed package metadata."""

from functools import lru_cache
from importlib import metadata

DISTRIBUTION_NAME = 'autoflow'


@lru_cache(maxsize=1)
def get_version() -> str | None:
	"""Return the installed version as ``v<version>``, or None when running from an uninstalled checkout."""
	try:
		return f'v{metadata.version(DISTRIBUTION_NAME)}'
	except metadata.PackageNotFoundError:
		return None
