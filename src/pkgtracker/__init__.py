"""pkgtracker: package assignment tracker with chat notifications."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pkgtracker")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from pkgtracker.core import Mark, PackageDB, Packager, PackageStatus
from pkgtracker.workflow import Outcome, TrackerContext, complete_package

__all__ = [
    "Mark",
    "Outcome",
    "PackageDB",
    "PackageStatus",
    "Packager",
    "TrackerContext",
    "__version__",
    "complete_package",
]
