"""
Local source packaging - file filtering, archiving and fingerprints.
"""

from .packager import SourcePackager, build_source_filter, remove_archive
from .path_filter import PathFilter


__all__ = [
    "SourcePackager",
    "PathFilter",
    "build_source_filter",
    "remove_archive",
]
