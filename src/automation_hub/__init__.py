"""Task orchestration hub with admission control and a self-healing overseer."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("automation-hub")
except PackageNotFoundError:  # pragma: no cover - running from a source checkout
    __version__ = "0.0.0"
