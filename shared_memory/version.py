"""Version information for shared-memory.

Reads the package version from the installed distribution metadata
(pyproject.toml).
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("shared-agent-memory")
except PackageNotFoundError:
    __version__ = "0.0.0"
