"""Shared test fixtures."""

from __future__ import annotations

import zipfile
from pathlib import Path

import pytest

from zxpman.core.paths import ScopeRoots
from zxpman.settings import Settings

MANIFEST_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<ExtensionManifest Version="7.0" ExtensionBundleId="{bundle_id}" ExtensionBundleVersion="{version}"{name_attr}>
  <ExtensionList>
    <Extension Id="{bundle_id}.panel" Version="{version}"/>
  </ExtensionList>
  <ExecutionEnvironment>
    <HostList>
      <Host Name="PHXS" Version="[20.0,99.9]"/>
      <Host Name="AEFT" Version="[17.0,99.9]"/>
    </HostList>
  </ExecutionEnvironment>
</ExtensionManifest>
"""


def manifest_xml(bundle_id: str, version: str = "1.0.0", name: str | None = None) -> str:
    name_attr = f' ExtensionBundleName="{name}"' if name else ""
    return MANIFEST_TEMPLATE.format(bundle_id=bundle_id, version=version, name_attr=name_attr)


@pytest.fixture(autouse=True)
def isolate_settings(tmp_path, monkeypatch):
    """Point the settings file at a temp directory and drop the singleton."""
    config_home = tmp_path / "config"
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_home))
    monkeypatch.setattr(Settings, "_instance", None)
    return config_home


@pytest.fixture
def cep_roots(tmp_path) -> ScopeRoots:
    """System and user roots under tmp_path (not created)."""
    return ScopeRoots(system=tmp_path / "system" / "extensions", user=tmp_path / "user" / "extensions")


@pytest.fixture
def make_extension():
    """Factory creating an extension directory with an optional manifest."""

    def _make(root: Path, dirname: str, bundle_id: str | None = None, *, manifest: str | None = None,
              version: str = "1.0.0", name: str | None = None) -> Path:
        ext_dir = root / dirname
        (ext_dir / "CSXS").mkdir(parents=True)
        (ext_dir / "index.html").write_text("<html></html>")
        if manifest is not None:
            (ext_dir / "CSXS" / "manifest.xml").write_text(manifest)
        elif bundle_id is not None:
            (ext_dir / "CSXS" / "manifest.xml").write_text(manifest_xml(bundle_id, version, name))
        return ext_dir

    return _make


@pytest.fixture
def make_zxp(tmp_path):
    """Factory creating a ZXP archive whose root holds CSXS/manifest.xml."""

    def _make(bundle_id: str = "com.example.panel", *, name: str = "panel.zxp", version: str = "1.0.0",
              extra: dict[str, bytes] | None = None, manifest: str | None = None) -> Path:
        archive = tmp_path / "packages" / name
        archive.parent.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("CSXS/manifest.xml", manifest if manifest is not None else manifest_xml(bundle_id, version))
            zf.writestr("index.html", "<html>panel</html>")
            zf.writestr("js/main.js", "console.log('hi');")
            for member, data in (extra or {}).items():
                zf.writestr(member, data)
        return archive

    return _make
