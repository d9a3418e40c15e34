"""Lambda@Edge origin-request handler for a statically exported Next.js app.

This file is shipped as ``index.py``. The two manifest assignments below are
replaced with the build's manifests when the deployment package is
synthesized; nothing else in it changes between builds. It must stay free of
imports outside the standard library.
"""

import json
import re

# PAGES MANIFEST
PAGES_MANIFEST = json.loads("{}")

# ROUTES MANIFEST
ROUTES_MANIFEST = json.loads("{}")

PAGES_PREFIX = "pages/"

_JS_NAMED_GROUP_RE = re.compile(r"\(\?<(?![=!])")


def compile_routes(routes_manifest):
    """Dynamic routes before static routes; routes without a regex never match."""
    combined = list(routes_manifest.get("dynamicRoutes") or [])
    combined += list(routes_manifest.get("staticRoutes") or [])
    compiled = []
    for route in combined:
        regex = route.get("regex")
        if not regex:
            continue
        compiled.append((re.compile(_JS_NAMED_GROUP_RE.sub("(?P<", regex)), route.get("page")))
    return compiled


def strip_pages_prefix(path):
    return path.replace(PAGES_PREFIX, "/", 1)


def resolve_uri(uri, routes, pages_manifest):
    """Return the rewritten URI for the first matching route, or None."""
    for pattern, page in routes:
        if pattern.search(uri) and pages_manifest.get(page):
            return strip_pages_prefix(pages_manifest[page])
    return None


COMBINED_ROUTES = compile_routes(ROUTES_MANIFEST)


def handler(event, context):
    request = event["Records"][0]["cf"]["request"]
    rewritten = resolve_uri(request["uri"], COMBINED_ROUTES, PAGES_MANIFEST)
    if rewritten is not None:
        request["uri"] = rewritten
    return request
