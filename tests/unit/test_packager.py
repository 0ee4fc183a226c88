"""
Unit tests for SourcePackager.

Run with: pytest tests/unit/test_packager.py -v
"""

import json
import zipfile

import pytest

from scarunner.core.errors import ConfigurationError, FingerprintWriteError, TaskSkippedError
from scarunner.core.models import SourceLocationType
from scarunner.source.fingerprints import FINGERPRINTS_ARCHIVE_NAME, FINGERPRINTS_FILE_NAME
from scarunner.source.packager import SourcePackager, build_source_filter, remove_archive


@pytest.fixture
def temp_dir(tmp_path):
    path = tmp_path / "tmp"
    path.mkdir()
    return path


class TestSourcePackager:
    """Test suite for SourcePackager"""

    def test_manifests_only(self, dependency_tree, temp_dir):
        """Test only manifests are archived and other files are fingerprinted"""
        packager = SourcePackager(temp_dir=str(temp_dir))

        source = packager.package(dependency_tree, build_source_filter())

        assert source.kind is SourceLocationType.LOCAL_DIRECTORY
        assert source.file_count == 2
        with zipfile.ZipFile(source.archive_path) as zf:
            names = sorted(zf.namelist())
            fingerprints = json.loads(zf.read(FINGERPRINTS_ARCHIVE_NAME))

        assert names == sorted([FINGERPRINTS_ARCHIVE_NAME, "api/requirements.txt", "web/package.json"])
        assert sorted(f["path"] for f in fingerprints["files"]) == ["api/app.py", "web/index.js"]
        assert all(len(f["sha1"]) == 40 for f in fingerprints["files"])

    def test_include_source(self, dependency_tree, temp_dir):
        """Test include_source archives all files and no fingerprints"""
        packager = SourcePackager(temp_dir=str(temp_dir))
        path_filter = build_source_filter(include_source=True)

        source = packager.package(dependency_tree, path_filter, include_source=True)

        with zipfile.ZipFile(source.archive_path) as zf:
            names = sorted(zf.namelist())
        assert source.file_count == 4
        assert FINGERPRINTS_ARCHIVE_NAME not in names
        assert not any(name.startswith(("node_modules/", ".git/")) for name in names)

    def test_custom_patterns(self, dependency_tree, temp_dir):
        """Test user patterns replace the default manifest list"""
        packager = SourcePackager(temp_dir=str(temp_dir))

        source = packager.package(dependency_tree, build_source_filter("requirements.txt"))

        assert source.file_count == 1

    def test_exclusion_only_patterns_keep_manifest_list(self, dependency_tree, temp_dir):
        """Test exclusions narrow the manifest list instead of archiving source"""
        packager = SourcePackager(temp_dir=str(temp_dir))

        source = packager.package(dependency_tree, build_source_filter("!**/test/**"))

        with zipfile.ZipFile(source.archive_path) as zf:
            names = sorted(zf.namelist())
            fingerprints = json.loads(zf.read(FINGERPRINTS_ARCHIVE_NAME))
        assert names == sorted([FINGERPRINTS_ARCHIVE_NAME, "api/requirements.txt", "web/package.json"])
        assert "web/index.js" not in names
        assert sorted(f["path"] for f in fingerprints["files"]) == ["api/app.py", "web/index.js"]

    def test_exclusion_patterns_apply_to_manifests(self, dependency_tree, temp_dir):
        """Test an exclusion also removes matching manifests and their siblings"""
        packager = SourcePackager(temp_dir=str(temp_dir))

        source = packager.package(dependency_tree, build_source_filter("!api/**"))

        with zipfile.ZipFile(source.archive_path) as zf:
            names = sorted(zf.namelist())
            fingerprints = json.loads(zf.read(FINGERPRINTS_ARCHIVE_NAME))
        assert source.file_count == 1
        assert names == sorted([FINGERPRINTS_ARCHIVE_NAME, "web/package.json"])
        assert [f["path"] for f in fingerprints["files"]] == ["web/index.js"]

    def test_nothing_to_scan(self, tmp_path, temp_dir):
        """Test a tree without manifests is skipped and leaves no archive"""
        root = tmp_path / "empty"
        root.mkdir()
        (root / "main.c").write_text("int main(void) { return 0; }\n")
        packager = SourcePackager(temp_dir=str(temp_dir))

        with pytest.raises(TaskSkippedError):
            packager.package(root, build_source_filter())

        assert list(temp_dir.iterdir()) == []

    def test_skipped_run_writes_no_fingerprints_copy(self, tmp_path, temp_dir):
        """Test the fingerprints copy is only written when something is archived"""
        root = tmp_path / "empty"
        root.mkdir()
        (root / "main.c").write_text("int main(void) { return 0; }\n")
        target = tmp_path / "prints"
        packager = SourcePackager(temp_dir=str(temp_dir))

        with pytest.raises(TaskSkippedError):
            packager.package(root, build_source_filter(), fingerprints_file_path=str(target))

        assert not (target / FINGERPRINTS_FILE_NAME).exists()
        assert list(temp_dir.iterdir()) == []

    def test_missing_root(self, tmp_path, temp_dir):
        """Test a missing source directory is a configuration error"""
        packager = SourcePackager(temp_dir=str(temp_dir))

        with pytest.raises(ConfigurationError):
            packager.package(tmp_path / "missing", build_source_filter())

    def test_fingerprints_copy(self, dependency_tree, tmp_path, temp_dir):
        """Test a copy of the fingerprints file is written when asked"""
        packager = SourcePackager(temp_dir=str(temp_dir))
        target = tmp_path / "out" / "prints"

        packager.package(dependency_tree, build_source_filter(), fingerprints_file_path=str(target))

        document = json.loads((target / FINGERPRINTS_FILE_NAME).read_text())
        assert len(document["files"]) == 2

    def test_fingerprints_copy_failure_is_best_effort(self, dependency_tree, tmp_path, temp_dir):
        """Test an unwritable fingerprints path only warns by default"""
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        packager = SourcePackager(temp_dir=str(temp_dir))

        source = packager.package(
            dependency_tree,
            build_source_filter(),
            fingerprints_file_path=str(blocker / "prints"),
        )

        assert source.file_count == 2

    def test_fingerprints_copy_failure_when_required(self, dependency_tree, tmp_path, temp_dir):
        """Test a required fingerprints copy fails packaging and cleans up"""
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        packager = SourcePackager(temp_dir=str(temp_dir))

        with pytest.raises(FingerprintWriteError):
            packager.package(
                dependency_tree,
                build_source_filter(),
                fingerprints_file_path=str(blocker / "prints"),
                fingerprints_write_required=True,
            )

        assert list(temp_dir.iterdir()) == []

    def test_remove_archive(self, dependency_tree, temp_dir):
        """Test archives can be removed more than once"""
        source = SourcePackager(temp_dir=str(temp_dir)).package(dependency_tree, build_source_filter())

        remove_archive(source.archive_path)
        remove_archive(source.archive_path)

        assert not source.archive_path.exists()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
