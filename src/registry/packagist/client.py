"""Packagist registry client: package list, metadata, change feed, advisories.

Every payload is cached on disk through LocalFileStorage and revalidated with
If-Modified-Since, so repeated discovery of an unchanged package costs a 304.
"""
from __future__ import annotations

import gzip
import json
import logging
import time
from email.utils import formatdate, parsedate_to_datetime
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from constants import Constants
from common.errors import FormatError, NotFoundError, TransientIOError
from common.logging_utils import extra_context, is_debug_enabled, safe_url

import registry.packagist as packagist_pkg
from .minifier import MINIFIED_FORMAT, expand
from .storage import LocalFileStorage

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"
DEV_SUFFIX = "~dev"


def strip_dev_suffix(package_name: str) -> str:
    """Drop the ``~dev`` marker used for the branch view of a package."""
    if package_name.endswith(DEV_SUFFIX):
        return package_name[: -len(DEV_SUFFIX)]
    return package_name


def extract_stats(metadata: Dict[str, Any]) -> Dict[str, int]:
    """Popularity counters from a v1 metadata record."""
    downloads = metadata.get("downloads") or {}
    return {
        "github_stars": int(metadata.get("github_stars") or 0),
        "github_watchers": int(metadata.get("github_watchers") or 0),
        "github_forks": int(metadata.get("github_forks") or 0),
        "dependents": int(metadata.get("dependents") or 0),
        "suggesters": int(metadata.get("suggesters") or 0),
        "favers": int(metadata.get("favers") or 0),
        "total_downloads": int(downloads.get("total") or 0),
        "monthly_downloads": int(downloads.get("monthly") or 0),
        "daily_downloads": int(downloads.get("daily") or 0),
    }


class PackagistClient:
    """Fetches registry documents with file-backed freshness caching.

    Args:
        storage: Blob cache for fetched payloads.
        offline: Serve strictly from cache, never touching the network.
        session: Optional requests session (shared connection pool).
    """

    def __init__(
        self,
        storage: LocalFileStorage,
        offline: bool = False,
        session: Optional[requests.Session] = None,
    ):
        self._storage = storage
        self._offline = offline
        self._session = session

    @property
    def offline(self) -> bool:
        return self._offline

    def _update_file_content(self, key: str, url: str) -> bytes:
        """Return the freshest content for url, revalidating the cached copy."""
        cached = self._storage.exists(key)
        if self._offline:
            if cached:
                return self._storage.read_content(key)
            raise NotFoundError(f'No cached copy of "{key}" available in offline mode')

        headers = {"User-Agent": Constants.USER_AGENT}
        if cached:
            mtime = self._storage.get_modification_time(key)
            if mtime > 0:
                headers["If-Modified-Since"] = formatdate(mtime, usegmt=True)

        response = packagist_pkg.robust_get(url, headers=headers, session=self._session)

        if response.status_code == 304 and cached:
            if is_debug_enabled(logger):
                logger.debug(
                    "Cached copy is fresh",
                    extra=extra_context(
                        event="cache_hit",
                        component="packagist",
                        action="revalidate",
                        target=safe_url(url),
                        key=key,
                    ),
                )
            return self._storage.read_content(key)
        if response.status_code == 404:
            raise NotFoundError(f'Request to "{safe_url(url)}" returned status code 404')
        if response.status_code >= 400:
            raise TransientIOError(
                f'Request to "{safe_url(url)}" returned status code {response.status_code}'
            )

        content = response.content
        self._storage.write_content(key, content)
        last_modified = response.headers.get("Last-Modified")
        if last_modified:
            try:
                stamp = int(parsedate_to_datetime(last_modified).timestamp())
            except (TypeError, ValueError, IndexError):
                logger.debug("Ignoring unparseable Last-Modified header: %s", last_modified)
            else:
                self._storage.set_modification_time(key, stamp)
        return content

    @staticmethod
    def _decode(content: bytes, source: str) -> Any:
        """Decompress (when gzipped) and parse a JSON payload."""
        if content[:2] == GZIP_MAGIC:
            try:
                content = gzip.decompress(content)
            except (OSError, EOFError) as exc:
                raise FormatError(f"Corrupt gzip payload from {source}: {exc}", source=source) from exc
        try:
            text = content.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise FormatError(f"Payload from {source} is not UTF-8", source=source) from exc
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise FormatError(f"Invalid JSON from {source}: {exc}", payload=text, source=source) from exc

    def _fetch_json(self, key: str, url: str) -> Any:
        return self._decode(self._update_file_content(key, url), safe_url(url))

    def get_package_list(self, mirror: Optional[str] = None) -> List[str]:
        """Return every package name known to the mirror."""
        mirror = (mirror or Constants.MIRROR_URL).rstrip("/")
        url = f"{mirror}/packages/list.json"
        data = self._fetch_json("packagist/list.json", url)
        if not isinstance(data, dict) or not isinstance(data.get("packageNames"), list):
            raise FormatError("Invalid package list format", payload=json.dumps(data)[:2048], source=url)
        return data["packageNames"]

    def get_metadata_v1(self, package_name: str, mirror: Optional[str] = None) -> Dict[str, Any]:
        """Return the v1 (full) metadata record of a package."""
        mirror = (mirror or Constants.MIRROR_URL).rstrip("/")
        url = f"{mirror}/packages/{package_name}.json"
        data = self._fetch_json(f"packagist/{package_name}-v1.json", url)
        if not isinstance(data, dict) or not isinstance(data.get("package"), dict):
            raise FormatError("Invalid package metadata v1 format", payload=json.dumps(data)[:2048], source=url)
        return data["package"]

    def get_metadata_v2(self, package_name: str, mirror: Optional[str] = None) -> List[Dict[str, Any]]:
        """Return expanded v2 release records, newest first.

        Args:
            package_name: "vendor/project" for tagged releases, or
                "vendor/project~dev" for development branches.
        """
        mirror = (mirror or Constants.REPO_MIRROR_URL).rstrip("/")
        url = f"{mirror}/p2/{package_name}.json"
        data = self._fetch_json(f"packagist/{package_name}-v2.json", url)
        name = strip_dev_suffix(package_name)
        packages = data.get("packages") if isinstance(data, dict) else None
        if not isinstance(packages, dict) or not isinstance(packages.get(name), list):
            raise FormatError("Invalid package metadata v2 format", payload=json.dumps(data)[:2048], source=url)
        releases = packages[name]
        if data.get("minified") == MINIFIED_FORMAT:
            releases = expand(releases)
        return releases

    def get_changes(self, since: int, mirror: Optional[str] = None) -> Dict[str, Any]:
        """Return the change feed since cursor.

        Returns:
            Mapping with ``actions`` (list of {type, package, time}) and
            ``timestamp`` (the next cursor).
        """
        mirror = (mirror or Constants.MIRROR_URL).rstrip("/")
        url = f"{mirror}/metadata/changes.json?since={int(since)}"
        data = self._fetch_json("packagist/updates.json", url)
        if not isinstance(data, dict) or "actions" not in data or "timestamp" not in data:
            raise FormatError("Invalid package updates format", payload=json.dumps(data)[:2048], source=url)
        return {"actions": data["actions"], "timestamp": int(data["timestamp"])}

    def get_security_advisories(self, package_name: str, mirror: Optional[str] = None) -> List[Dict[str, Any]]:
        """Return the advisories filed against a package."""
        mirror = (mirror or Constants.MIRROR_URL).rstrip("/")
        url = f"{mirror}/api/security-advisories/?packages[]={quote(package_name, safe='/')}"
        data = self._fetch_json(f"packagist/{package_name}-security-advisories.json", url)
        advisories = data.get("advisories") if isinstance(data, dict) else None
        if not isinstance(advisories, dict) or package_name not in advisories:
            raise FormatError("Invalid security advisories format", payload=json.dumps(data)[:2048], source=url)
        return advisories[package_name]

    @staticmethod
    def initial_cursor() -> int:
        """Change feed cursor for the current instant (1/10000 s resolution)."""
        return int(time.time() * 10000)
