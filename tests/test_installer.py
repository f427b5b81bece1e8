"""Tests for staged ZXP installation."""

from __future__ import annotations

import os
import stat
import zipfile

import pytest

from conftest import manifest_xml
from zxpman.core import installer
from zxpman.core.installer import install_archive
from zxpman.core.scanner import scan_extensions
from zxpman.models.extension import Scope
from zxpman.models.results import InstallStatus


def _tree(path):
    if not path.exists():
        return None
    return sorted(str(p.relative_to(path)) for p in path.rglob("*"))


class TestInstallArchive:
    def test_install_then_scan(self, cep_roots, make_zxp):
        archive = make_zxp("com.example.panel", version="1.2.3")
        before = scan_extensions(cep_roots)

        result = install_archive(archive, cep_roots.user, Scope.USER)

        assert result.ok
        assert result.extension_id == "com.example.panel"
        assert result.path == cep_roots.user / "com.example.panel"
        assert (result.path / "CSXS" / "manifest.xml").is_file()
        assert (result.path / "js" / "main.js").read_text() == "console.log('hi');"

        after = scan_extensions(cep_roots)
        new = [e for e in after if e not in before]
        assert len(new) == 1
        assert new[0].id == "com.example.panel"
        assert new[0].version == "1.2.3"
        assert new[0].scope is Scope.USER

    def test_creates_missing_root(self, cep_roots, make_zxp):
        assert not cep_roots.system.exists()
        result = install_archive(make_zxp(), cep_roots.system, Scope.SYSTEM)
        assert result.ok
        assert cep_roots.system.is_dir()

    def test_no_staging_left_behind(self, cep_roots, make_zxp):
        install_archive(make_zxp(), cep_roots.user, Scope.USER)
        assert [p.name for p in cep_roots.user.iterdir()] == ["com.example.panel"]

    def test_corrupt_archive_leaves_tree_unchanged(self, cep_roots, tmp_path, make_extension):
        make_extension(cep_roots.user, "existing", "com.example.existing")
        before = _tree(cep_roots.user)
        archive = tmp_path / "broken.zxp"
        archive.write_bytes(b"PK\x03\x04 definitely not a zip")

        result = install_archive(archive, cep_roots.user, Scope.USER)

        assert result.status is InstallStatus.CORRUPT_ARCHIVE
        assert _tree(cep_roots.user) == before

    def test_corrupt_archive_does_not_create_root(self, cep_roots, tmp_path):
        archive = tmp_path / "broken.zxp"
        archive.write_bytes(b"garbage")
        result = install_archive(archive, cep_roots.user, Scope.USER)
        assert result.status is InstallStatus.CORRUPT_ARCHIVE
        assert not cep_roots.user.exists()

    def test_archive_without_manifest(self, cep_roots, tmp_path):
        archive = tmp_path / "nomanifest.zxp"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("index.html", "<html></html>")
        result = install_archive(archive, cep_roots.user, Scope.USER)
        assert result.status is InstallStatus.CORRUPT_ARCHIVE
        assert "manifest" in result.message

    def test_archive_with_bad_manifest(self, cep_roots, make_zxp):
        archive = make_zxp(manifest="<ExtensionManifest")
        result = install_archive(archive, cep_roots.user, Scope.USER)
        assert result.status is InstallStatus.CORRUPT_ARCHIVE

    @pytest.mark.parametrize("bundle_id", ["..", "../escape", "com/example", ".hidden"])
    def test_unusable_extension_id(self, cep_roots, make_zxp, bundle_id):
        result = install_archive(make_zxp(manifest=manifest_xml(bundle_id)), cep_roots.user, Scope.USER)
        assert result.status is InstallStatus.CORRUPT_ARCHIVE
        assert not cep_roots.user.exists()

    @pytest.mark.parametrize("member", ["../evil.txt", "/abs/evil.txt", "js/../../evil.txt"])
    def test_path_traversal_rejected(self, cep_roots, make_zxp, tmp_path, member):
        archive = make_zxp(extra={member: b"evil"})
        result = install_archive(archive, cep_roots.user, Scope.USER)
        assert result.status is InstallStatus.CORRUPT_ARCHIVE
        assert not (tmp_path / "evil.txt").exists()
        assert not cep_roots.user.exists()

    def test_missing_archive(self, cep_roots, tmp_path):
        result = install_archive(tmp_path / "nope.zxp", cep_roots.user, Scope.USER)
        assert result.status is InstallStatus.ARCHIVE_NOT_FOUND

    def test_wrong_extension(self, cep_roots, make_zxp):
        archive = make_zxp(name="panel.tar")
        result = install_archive(archive, cep_roots.user, Scope.USER)
        assert result.status is InstallStatus.UNSUPPORTED_FORMAT

    def test_uppercase_extension_accepted(self, cep_roots, make_zxp):
        assert install_archive(make_zxp(name="PANEL.ZXP"), cep_roots.user, Scope.USER).ok

    def test_overwrites_existing(self, cep_roots, make_zxp, make_extension):
        old = make_extension(cep_roots.user, "com.example.panel", "com.example.panel", version="0.9")
        (old / "stale.txt").write_text("old")

        result = install_archive(make_zxp(version="2.0"), cep_roots.user, Scope.USER)

        assert result.ok
        assert not (old / "stale.txt").exists()
        (entry,) = scan_extensions(cep_roots)
        assert entry.version == "2.0"
        assert [p.name for p in cep_roots.user.iterdir()] == ["com.example.panel"]

    def test_root_creation_failure(self, cep_roots, make_zxp):
        cep_roots.user.parent.mkdir(parents=True)
        cep_roots.user.write_text("a file where the root should be")
        result = install_archive(make_zxp(), cep_roots.user / "sub", Scope.USER)
        assert result.status is InstallStatus.DIRECTORY_CREATION_FAILED
        assert result.extension_id == "com.example.panel"

    def test_extraction_failure_cleans_staging(self, cep_roots, make_zxp, monkeypatch):
        def failing_extract(archive, members, staging):
            (staging / "partial.txt").write_text("half")
            raise OSError(28, "No space left on device")

        monkeypatch.setattr(installer, "_extract", failing_extract)
        result = install_archive(make_zxp(), cep_roots.user, Scope.USER)

        assert result.status is InstallStatus.EXTRACTION_FAILED
        assert "No space left" in result.message
        assert not cep_roots.user.exists()

    def test_extraction_failure_keeps_existing_root(self, cep_roots, make_zxp, monkeypatch):
        cep_roots.user.mkdir(parents=True)

        def failing_extract(archive, members, staging):
            raise OSError(28, "No space left on device")

        monkeypatch.setattr(installer, "_extract", failing_extract)
        result = install_archive(make_zxp(), cep_roots.user, Scope.USER)

        assert result.status is InstallStatus.EXTRACTION_FAILED
        assert cep_roots.user.is_dir()
        assert list(cep_roots.user.iterdir()) == []

    def test_failed_overwrite_keeps_previous_copy(self, cep_roots, make_zxp, make_extension, monkeypatch):
        make_extension(cep_roots.user, "com.example.panel", "com.example.panel", version="0.9")

        def failing_extract(archive, members, staging):
            raise OSError(5, "Input/output error")

        monkeypatch.setattr(installer, "_extract", failing_extract)
        result = install_archive(make_zxp(version="2.0"), cep_roots.user, Scope.USER)

        assert result.status is InstallStatus.EXTRACTION_FAILED
        (entry,) = scan_extensions(cep_roots)
        assert entry.version == "0.9"

    def test_cleanup_failure_is_logged_not_raised(self, cep_roots, make_zxp, monkeypatch, caplog):
        def failing_extract(archive, members, staging):
            raise OSError(5, "Input/output error")

        def failing_rmtree(path, *args, **kwargs):
            raise OSError(16, "Device or resource busy")

        monkeypatch.setattr(installer, "_extract", failing_extract)
        monkeypatch.setattr(installer.shutil, "rmtree", failing_rmtree)
        result = install_archive(make_zxp(), cep_roots.user, Scope.USER)

        assert result.status is InstallStatus.EXTRACTION_FAILED
        assert "Could not clean up" in caplog.text

    def test_unknown_manifest_encoding(self, cep_roots, make_zxp):
        bogus = '<?xml version="1.0" encoding="bogus"?><ExtensionManifest ExtensionBundleId="com.example.x"/>'
        result = install_archive(make_zxp(manifest=bogus), cep_roots.user, Scope.USER)
        assert result.status is InstallStatus.CORRUPT_ARCHIVE
        assert not cep_roots.user.exists()

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permission bits")
    def test_installed_directory_follows_umask(self, cep_roots, make_zxp):
        old_umask = os.umask(0o022)
        try:
            result = install_archive(make_zxp(), cep_roots.system, Scope.SYSTEM)
            sibling = cep_roots.system / "plain"
            sibling.mkdir()
        finally:
            os.umask(old_umask)

        assert result.ok
        mode = stat.S_IMODE(result.path.stat().st_mode)
        assert mode == stat.S_IMODE(sibling.stat().st_mode) == 0o755
        assert mode & stat.S_IROTH
