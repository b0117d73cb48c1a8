"""copyflow-intake: tabular export ingestion and platform resolution."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("copyflow-intake")
except PackageNotFoundError:
    __version__ = "0.0.0"
