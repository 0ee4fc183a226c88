"""
Source Packager - Turns a local directory into an uploadable archive.

The archive lives at a unique temporary path. Ownership passes to the caller
on success; on any failure (including "nothing to scan") it is removed here.
"""

import os
import tempfile
from pathlib import Path
from typing import Optional

import structlog

from ..core.errors import ConfigurationError, TaskSkippedError
from ..core.models import LocalDirectorySource
from .archive import ArchiveBuilder
from .fingerprints import (
    FINGERPRINTS_ARCHIVE_NAME,
    collect_fingerprints,
    render_fingerprints,
    save_fingerprints,
)
from .path_filter import PathFilter


# Dependency manifests and lock files recognised by the service
DEFAULT_MANIFEST_PATTERNS = ", ".join([
    "package.json", "package-lock.json", "npm-shrinkwrap.json", "yarn.lock", "pnpm-lock.yaml",
    "bower.json", "requirements.txt", "setup.py", "Pipfile", "Pipfile.lock",
    "pyproject.toml", "poetry.lock", "pom.xml", "build.gradle", "build.gradle.kts",
    "settings.gradle", "go.mod", "go.sum", "Gemfile", "Gemfile.lock", "composer.json",
    "composer.lock", "packages.config", "*.csproj", "Cargo.toml", "Cargo.lock",
])

DEFAULT_FOLDER_EXCLUSION = ".git, node_modules"

ARCHIVE_PREFIX = "scasrc-"
ARCHIVE_SUFFIX = ".zip"


def build_source_filter(
    dependency_file_extension: str = "",
    dependency_folder_exclusion: str = "",
    include_source: bool = False,
) -> PathFilter:
    """
    Filter deciding which files are archived.

    With ``include_source`` every file is a candidate unless the user narrows
    it; otherwise only dependency manifests are. The default manifest list
    stays the include set unless the user names include patterns of their
    own, so exclusion-only patterns narrow it rather than replace it.
    """
    patterns = dependency_file_extension
    if not include_source and not PathFilter(patterns).has_include_patterns:
        patterns = ", ".join(p for p in (DEFAULT_MANIFEST_PATTERNS, patterns.strip()) if p)
    exclusion = dependency_folder_exclusion or DEFAULT_FOLDER_EXCLUSION
    return PathFilter(patterns, exclusion)


class SourcePackager:
    """
    Packages a local source directory for upload.

    Example:
        >>> packager = SourcePackager()
        >>> source = packager.package(Path("repo"), build_source_filter())
        >>> source.file_count
        4
    """

    def __init__(
        self,
        archive_builder: Optional[ArchiveBuilder] = None,
        temp_dir: Optional[str] = None,
    ):
        self.archive_builder = archive_builder or ArchiveBuilder()
        self.temp_dir = temp_dir
        self.logger = structlog.get_logger(__name__)

    def package(
        self,
        root: Path,
        path_filter: PathFilter,
        include_source: bool = False,
        fingerprints_file_path: str = "",
        fingerprints_write_required: bool = False,
    ) -> LocalDirectorySource:
        """
        Archive the files under root that path_filter includes.

        Args:
            root: Source directory
            path_filter: Inclusion filter for archived files
            include_source: Archive source files instead of fingerprinting them
            fingerprints_file_path: Directory for a copy of the fingerprints file
            fingerprints_write_required: Fail if that copy cannot be written

        Returns:
            LocalDirectorySource pointing at the temporary archive

        Raises:
            ConfigurationError: If root is not a directory
            TaskSkippedError: If no file matched the filter
            FingerprintWriteError: If a required fingerprints copy failed
        """
        root = Path(root)
        if not root.is_dir():
            raise ConfigurationError(f"Source location is not a directory: {root}")

        fd, name = tempfile.mkstemp(prefix=ARCHIVE_PREFIX, suffix=ARCHIVE_SUFFIX, dir=self.temp_dir)
        os.close(fd)
        archive_path = Path(name)
        self.logger.info("packaging_source", root=str(root), archive=str(archive_path))

        try:
            extra_entries = {}
            content = None
            if not include_source:
                fingerprints = collect_fingerprints(root, path_filter)
                content = render_fingerprints(fingerprints)
                extra_entries[FINGERPRINTS_ARCHIVE_NAME] = content
                self.logger.info("fingerprints_collected", files=len(fingerprints))

            result = self.archive_builder.build(root, path_filter, archive_path, extra_entries)
            if result.file_count == 0:
                raise TaskSkippedError("Zip file is empty: no source to scan")

            if content is not None and fingerprints_file_path:
                save_fingerprints(
                    fingerprints_file_path,
                    content,
                    required=fingerprints_write_required,
                )

        except BaseException:
            remove_archive(archive_path)
            raise

        return LocalDirectorySource(archive_path=result.path, file_count=result.file_count)


def remove_archive(path: Path) -> None:
    """Delete a temporary archive, ignoring a file that is already gone"""
    try:
        Path(path).unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        structlog.get_logger(__name__).warning("archive_cleanup_failed", path=str(path), error=str(e))
