"""
Fingerprints - File digests sent instead of source code.

When source upload is disabled only dependency manifests are archived. The
other files are described by their SHA-1 and size so the service can still
match them against known packages.
"""

import hashlib
import json
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence

import structlog

from ..core.errors import FingerprintWriteError
from .archive import walk_source
from .path_filter import PathFilter


FINGERPRINTS_ARCHIVE_NAME = ".cxsca.sig"
FINGERPRINTS_FILE_NAME = "CxSCAFingerprints.json"
FORMAT_VERSION = "1.0.0"

_CHUNK_SIZE = 1024 * 1024

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class FileFingerprint:
    path: str
    size: int
    sha1: str


def _sha1(path: Path) -> str:
    digest = hashlib.sha1()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def collect_fingerprints(root: Path, path_filter: PathFilter) -> List[FileFingerprint]:
    """Fingerprint files that are neither archived nor excluded"""
    fingerprints = []
    for source_file in walk_source(root, path_filter):
        if path_filter.excludes(source_file.relative) or path_filter.includes(source_file.relative):
            continue
        try:
            fingerprints.append(
                FileFingerprint(
                    path=source_file.relative,
                    size=source_file.absolute.stat().st_size,
                    sha1=_sha1(source_file.absolute),
                )
            )
        except OSError as e:
            logger.warning("fingerprint_skipped", path=source_file.relative, error=str(e))
    return fingerprints


def render_fingerprints(fingerprints: Sequence[FileFingerprint]) -> bytes:
    document = {
        "version": FORMAT_VERSION,
        "time": datetime.now(timezone.utc).isoformat(),
        "files": [asdict(fp) for fp in fingerprints],
    }
    return json.dumps(document, indent=2).encode("utf-8")


def save_fingerprints(
    directory: str,
    content: bytes,
    required: bool = False,
) -> Optional[Path]:
    """
    Persist a copy of the fingerprints document for the user.

    Args:
        directory: Target directory (created if missing)
        content: Rendered fingerprints document
        required: Raise instead of warning when the write fails

    Returns:
        Path written, or None if the write failed and was not required

    Raises:
        FingerprintWriteError: If the write failed and ``required`` is set
    """
    target = Path(directory) / FINGERPRINTS_FILE_NAME
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
    except OSError as e:
        if required:
            raise FingerprintWriteError(f"Unable to write fingerprints file {target}: {e}") from e
        logger.warning("fingerprints_write_failed", path=str(target), error=str(e))
        return None

    logger.info("fingerprints_saved", path=str(target))
    return target
