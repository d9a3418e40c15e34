"""payload.py — Synthesize the Lambda@Edge deployment package.

The package is a zip holding a single ``index.py``: the routing template from
``origin_request.py`` with both manifests inlined as canonical JSON. The
archive bytes are a pure function of the canonicalized manifests, so the
SHA-256 digest of the archive identifies the routing logic across runs and
machines and can be compared with Lambda's ``CodeSha256``.
"""

from __future__ import annotations

import base64
import hashlib
import io
import logging
import tempfile
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from . import __version__
from .config import RUNTIME
from .errors import PackageWriteError
from .manifests import canonical_json, validate_pages_manifest, validate_routes_manifest

logger = logging.getLogger(__name__)

TEMPLATE_PATH = Path(__file__).with_name("origin_request.py")
SCRIPT_NAME = "index.py"
ARCHIVE_NAME = "lambda.zip"

PAGES_PLACEHOLDER = 'PAGES_MANIFEST = json.loads("{}")'
ROUTES_PLACEHOLDER = 'ROUTES_MANIFEST = json.loads("{}")'

# Earliest timestamp a zip entry can carry; keeps archives byte-identical.
ZIP_TIMESTAMP = (1980, 1, 1, 0, 0, 0)
ZIP_FILE_MODE = 0o644
ZIP_CREATE_SYSTEM_UNIX = 3


@dataclass(frozen=True)
class DeployablePayload:
    script: str
    data: bytes
    digest: str
    path: Optional[Path] = None

    @property
    def size(self) -> int:
        return len(self.data)


def sha256_digest(data: bytes) -> str:
    """Base64 SHA-256, the encoding Lambda uses for ``CodeSha256``."""
    return base64.b64encode(hashlib.sha256(data).digest()).decode("ascii")


def _header() -> str:
    return "\n".join(
        [
            "#",
            f"# This script is managed by cloudfront-nextjs {__version__}.",
            "#",
            f"#     Runtime: {RUNTIME}",
            "#     Purpose: CloudFront Origin Request for Next.js",
            "#",
            "",
        ]
    )


def _replace_once(text: str, placeholder: str, replacement: str) -> str:
    if text.count(placeholder) != 1:
        raise RuntimeError(f"Routing template must contain exactly one {placeholder!r}")
    return text.replace(placeholder, replacement)


def render_script(routes_manifest: Dict[str, Any], pages_manifest: Dict[str, str]) -> str:
    template = TEMPLATE_PATH.read_text(encoding="utf-8")
    script = _replace_once(
        template,
        PAGES_PLACEHOLDER,
        f"PAGES_MANIFEST = json.loads({canonical_json(pages_manifest)!r})",
    )
    script = _replace_once(
        script,
        ROUTES_PLACEHOLDER,
        f"ROUTES_MANIFEST = json.loads({canonical_json(routes_manifest)!r})",
    )
    return _header() + script


def build_archive(script: str) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        info = zipfile.ZipInfo(SCRIPT_NAME, date_time=ZIP_TIMESTAMP)
        info.compress_type = zipfile.ZIP_DEFLATED
        info.create_system = ZIP_CREATE_SYSTEM_UNIX
        info.external_attr = ZIP_FILE_MODE << 16
        archive.writestr(info, script.encode("utf-8"))
    return buffer.getvalue()


def make_scratch_dir(distribution_id: str) -> Path:
    """Fresh private directory for this run; never reused, never cleaned up here."""
    try:
        return Path(tempfile.mkdtemp(prefix=f"{distribution_id}-lambda-"))
    except OSError as exc:
        raise PackageWriteError("Error creating a scratch directory for the Lambda package") from exc


def synthesize(
    routes_manifest: Dict[str, Any],
    pages_manifest: Dict[str, str],
    scratch_dir: Optional[Path] = None,
) -> DeployablePayload:
    """Build the deployment package; write it to ``scratch_dir`` when given."""
    logger.info("[INFO] Bundling Lambda Function...")
    validate_routes_manifest(routes_manifest)
    validate_pages_manifest(pages_manifest)

    script = render_script(routes_manifest, pages_manifest)
    data = build_archive(script)
    digest = sha256_digest(data)

    archive_path: Optional[Path] = None
    if scratch_dir is not None:
        scratch_dir = Path(scratch_dir)
        archive_path = scratch_dir / ARCHIVE_NAME
        try:
            (scratch_dir / SCRIPT_NAME).write_text(script, encoding="utf-8")
            archive_path.write_bytes(data)
        except OSError as exc:
            raise PackageWriteError(f"Error writing Lambda deployment package to {scratch_dir}") from exc
        logger.debug(f"Wrote deployment package to {archive_path}")

    payload = DeployablePayload(script=script, data=data, digest=digest, path=archive_path)
    logger.info(f"[INFO] Lambda Function has been bundled. ({payload.size} bytes)")
    logger.info(f"[INFO] Local Function SHA: {digest}")
    return payload
