"""manifests.py — Read, validate and canonicalize the Next.js build manifests.

Two files produced by ``next build`` drive the origin-request router:

    .next/routes-manifest.json         {"dynamicRoutes": [...], "staticRoutes": [...], ...}
    .next/server/pages-manifest.json   {"/about": "pages/about.html", ...}

Both are read before any AWS call is made; any problem is a
``ManifestReadError``.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Tuple

from .config import PAGES_MANIFEST_PATH, ROUTES_MANIFEST_PATH
from .errors import ManifestReadError

logger = logging.getLogger(__name__)

ROUTE_GROUPS = ("dynamicRoutes", "staticRoutes")

# JS named groups "(?<name>" → Python "(?P<name>"; lookbehinds "(?<=" / "(?<!" are left alone.
_JS_NAMED_GROUP_RE = re.compile(r"\(\?<(?![=!])")


def canonicalize(value: Any) -> Any:
    """Return ``value`` with every dict's keys sorted, recursively. List order is kept."""
    if isinstance(value, dict):
        return {key: canonicalize(value[key]) for key in sorted(value)}
    if isinstance(value, list):
        return [canonicalize(item) for item in value]
    return value


def canonical_json(value: Any) -> str:
    return json.dumps(canonicalize(value), sort_keys=True, separators=(",", ":"), ensure_ascii=True)


def translate_regex(pattern: str) -> str:
    return _JS_NAMED_GROUP_RE.sub("(?P<", pattern)


def _load_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ManifestReadError(f"Error reading {path}. Did you run `next build`?") from exc


def validate_routes_manifest(manifest: Any, source: str = "routes manifest") -> Dict[str, Any]:
    if not isinstance(manifest, dict):
        raise ManifestReadError(f"{source} must be a JSON object")
    for group in ROUTE_GROUPS:
        routes = manifest.get(group)
        if routes is None:
            continue
        if not isinstance(routes, list):
            raise ManifestReadError(f"{source}: '{group}' must be a list")
        for index, route in enumerate(routes):
            where = f"{source}: {group}[{index}]"
            if not isinstance(route, dict) or not isinstance(route.get("page"), str):
                raise ManifestReadError(f"{where} must be an object with a string 'page'")
            regex = route.get("regex")
            if regex is None:
                continue
            if not isinstance(regex, str):
                raise ManifestReadError(f"{where}: 'regex' must be a string")
            try:
                re.compile(translate_regex(regex))
            except re.error as exc:
                raise ManifestReadError(f"{where}: invalid regex {regex!r}") from exc
    return manifest


def validate_pages_manifest(manifest: Any, source: str = "pages manifest") -> Dict[str, str]:
    if not isinstance(manifest, dict):
        raise ManifestReadError(f"{source} must be a JSON object")
    for page, file_path in manifest.items():
        if not isinstance(file_path, str):
            raise ManifestReadError(f"{source}: entry {page!r} must map to a file path string")
    return manifest


def read_manifests(working_directory: str) -> Tuple[Dict[str, Any], Dict[str, str]]:
    """Read both manifests below ``working_directory``. Returns (routes, pages)."""
    root = Path(working_directory).expanduser()
    routes_path = root / ROUTES_MANIFEST_PATH
    pages_path = root / PAGES_MANIFEST_PATH

    routes_manifest = validate_routes_manifest(_load_json(routes_path), str(routes_path))
    pages_manifest = validate_pages_manifest(_load_json(pages_path), str(pages_path))

    logger.info(
        "[INFO] Read manifests: %d dynamic route(s), %d static route(s), %d page(s)",
        len(routes_manifest.get("dynamicRoutes") or []),
        len(routes_manifest.get("staticRoutes") or []),
        len(pages_manifest),
    )
    logger.debug("Routes Manifest:\n%s", canonical_json(routes_manifest))
    logger.debug("Pages Manifest:\n%s", canonical_json(pages_manifest))
    return routes_manifest, pages_manifest
