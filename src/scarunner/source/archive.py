"""Zip archive creation for local source uploads."""

import os
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Mapping, Optional

import structlog

from .path_filter import PathFilter


@dataclass(frozen=True)
class SourceFile:
    """A file found under the scanned root"""
    relative: str  # POSIX separators
    absolute: Path


@dataclass(frozen=True)
class ArchiveResult:
    path: Path
    file_count: int


def walk_source(root: Path, path_filter: PathFilter) -> Iterator[SourceFile]:
    """
    Yield every file under root outside excluded folders, in sorted order.

    Symlinked directories are not followed.
    """
    root = Path(root)
    for dirpath, dirnames, filenames in os.walk(root):
        rel_dir = Path(dirpath).relative_to(root).as_posix()
        dirnames[:] = sorted(
            d for d in dirnames
            if not path_filter.is_excluded_folder(d)
        )
        for name in sorted(filenames):
            relative = name if rel_dir == "." else f"{rel_dir}/{name}"
            yield SourceFile(relative=relative, absolute=Path(dirpath) / name)


class ArchiveBuilder:
    """
    Zips the files a PathFilter includes.

    Example:
        >>> builder = ArchiveBuilder()
        >>> result = builder.build(Path("repo"), PathFilter("*.json"), Path("/tmp/src.zip"))
        >>> result.file_count
        3
    """

    def __init__(self, compression: int = zipfile.ZIP_DEFLATED):
        self.compression = compression
        self.logger = structlog.get_logger(__name__)

    def build(
        self,
        root: Path,
        path_filter: PathFilter,
        destination: Path,
        extra_entries: Optional[Mapping[str, bytes]] = None,
    ) -> ArchiveResult:
        """
        Write the archive.

        Args:
            root: Directory to archive
            path_filter: Decides which files go in
            destination: Zip file path (overwritten)
            extra_entries: Generated entries (name -> content) added as-is;
                they do not count toward file_count

        Returns:
            ArchiveResult with the number of source files archived
        """
        file_count = 0
        with zipfile.ZipFile(destination, "w", compression=self.compression) as zf:
            for source_file in walk_source(root, path_filter):
                if not path_filter.includes(source_file.relative):
                    continue
                zf.write(source_file.absolute, arcname=source_file.relative)
                file_count += 1
                self.logger.debug("file_archived", path=source_file.relative)

            for name, content in (extra_entries or {}).items():
                zf.writestr(name, content)

        self.logger.info(
            "archive_created",
            path=str(destination),
            files=file_count,
            generated_entries=len(extra_entries or {}),
        )
        return ArchiveResult(path=Path(destination), file_count=file_count)
