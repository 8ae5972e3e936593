"""almig: object index and cross-reference maintenance for AL migrations."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("almig")
except PackageNotFoundError:
    __version__ = "dev"
