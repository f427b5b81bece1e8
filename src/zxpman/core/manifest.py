"""CEP manifest (CSXS/manifest.xml) parsing.

Manifests come from third-party packages, so they are parsed with
defusedxml: entity declarations and external references are rejected
rather than expanded.
"""

from __future__ import annotations

import logging
from pathlib import Path
from xml.etree.ElementTree import Element, ParseError

from defusedxml import DefusedXmlException
from defusedxml.ElementTree import fromstring

from zxpman.errors import ManifestMissing, ManifestParseError
from zxpman.models.extension import HostApp, ManifestInfo

log = logging.getLogger(__name__)

MANIFEST_RELPATH = "CSXS/manifest.xml"

DEFAULT_VERSION = "0.0.0"


def manifest_path(extension_dir: Path) -> Path:
    """Return the manifest location for an extension directory."""
    return extension_dir.joinpath(*MANIFEST_RELPATH.split("/"))


def read_manifest(extension_dir: Path) -> ManifestInfo:
    """Read and parse the manifest of *extension_dir*.

    Raises:
        ManifestMissing: No manifest file exists.
        ManifestParseError: The file is unreadable, malformed, or has no bundle id.
    """
    path = manifest_path(extension_dir)
    if not path.is_file():
        raise ManifestMissing(f"No {MANIFEST_RELPATH} in {extension_dir}")
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise ManifestParseError(f"Cannot read {path}: {exc.strerror or exc}") from exc
    return parse_manifest(data, source=str(path))


def parse_manifest(data: bytes, source: str = "manifest") -> ManifestInfo:
    """Extract bundle identity, version, display name and hosts from manifest XML."""
    try:
        root = fromstring(data)
    except DefusedXmlException as exc:
        raise ManifestParseError(f"{source}: forbidden XML construct ({exc})") from exc
    except ParseError as exc:
        raise ManifestParseError(f"{source}: malformed XML ({exc})") from exc
    except (LookupError, ValueError) as exc:
        raise ManifestParseError(f"{source}: unreadable XML ({exc})") from exc

    if _local(root.tag) != "ExtensionManifest":
        raise ManifestParseError(f"{source}: root element is <{_local(root.tag)}>, expected <ExtensionManifest>")

    attrs = _local_attrs(root)
    bundle_id = attrs.get("ExtensionBundleId", "").strip()
    if not bundle_id:
        raise ManifestParseError(f"{source}: missing ExtensionBundleId")

    version = attrs.get("ExtensionBundleVersion", "").strip() or DEFAULT_VERSION
    name = attrs.get("ExtensionBundleName", "").strip() or _menu_name(root) or bundle_id

    return ManifestInfo(
        bundle_id=bundle_id,
        name=name,
        version=version,
        hosts=_hosts(root),
        extension_ids=_extension_ids(root),
    )


def _local(tag: str) -> str:
    """Strip an ``{namespace}`` prefix from a tag or attribute name."""
    return tag.rsplit("}", 1)[-1] if isinstance(tag, str) else ""


def _local_attrs(element: Element) -> dict[str, str]:
    return {_local(k): v for k, v in element.attrib.items()}


def _children(element: Element, name: str) -> list[Element]:
    return [child for child in element if _local(child.tag) == name]


def _descendants(element: Element, name: str) -> list[Element]:
    return [node for node in element.iter() if _local(node.tag) == name]


def _menu_name(root: Element) -> str:
    for menu in _descendants(root, "Menu"):
        text = (menu.text or "").strip()
        if text:
            return text
    return ""


def _hosts(root: Element) -> tuple[HostApp, ...]:
    hosts: list[HostApp] = []
    seen: set[tuple[str, str]] = set()
    for host_list in _descendants(root, "HostList"):
        for host in _children(host_list, "Host"):
            attrs = _local_attrs(host)
            name = attrs.get("Name", "").strip()
            if not name:
                continue
            key = (name, attrs.get("Version", "").strip())
            if key not in seen:
                seen.add(key)
                hosts.append(HostApp(name=key[0], version=key[1]))
    return tuple(hosts)


def _extension_ids(root: Element) -> tuple[str, ...]:
    ids: list[str] = []
    for ext_list in _children(root, "ExtensionList"):
        for ext in _children(ext_list, "Extension"):
            ext_id = _local_attrs(ext).get("Id", "").strip()
            if ext_id and ext_id not in ids:
                ids.append(ext_id)
    return tuple(ids)
