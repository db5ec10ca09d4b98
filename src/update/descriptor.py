"""Parsing of remote version descriptors."""

from dataclasses import dataclass
from typing import Any

from common.constants import PACKAGE_SUFFIX


@dataclass(frozen=True)
class VersionDescriptor:
    """An advertised version and where to download it."""

    version: str
    url: str


def parse_descriptor(payload: Any, package_suffix: str = PACKAGE_SUFFIX) -> VersionDescriptor | None:
    """Extract a VersionDescriptor from a remote payload.

    Accepted shapes:
        {"version": "2.1", "url": "https://..."}
        {"path": "/", "data": {"version": ..., "url": ...}}   (stream event)
        {"tag_name": "v2.1", "assets": [{"name": "x.apk", "browser_download_url": ...}]}

    Args:
        payload: Decoded JSON payload (None for an absent descriptor)
        package_suffix: File suffix identifying the package asset of a release

    Returns:
        The descriptor, or None if the payload does not carry both a version
        and a URL
    """
    if not isinstance(payload, dict):
        return None

    if "data" in payload and "version" not in payload:
        return parse_descriptor(payload["data"], package_suffix)

    version = payload.get("version")
    url = payload.get("url")

    if version is None and "tag_name" in payload:
        version = str(payload.get("tag_name") or "").removeprefix("v")
        for asset in payload.get("assets") or []:
            if isinstance(asset, dict) and str(asset.get("name", "")).endswith(package_suffix):
                url = asset.get("browser_download_url")
                break

    if not version or not url:
        return None
    return VersionDescriptor(version=str(version).strip(), url=str(url).strip())
