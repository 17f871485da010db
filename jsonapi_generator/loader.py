"""Load and parse an OpenAPI document.

Reads the document from a URL or a file path, parses JSON or YAML and
provides raw accessors (paths, schemas, $ref resolution).
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import httpx
import yaml

from .config import DEFAULT_HTTP_TIMEOUT
from .errors import SchemaLoadError, UnresolvedReferenceError

logger = logging.getLogger(__name__)

_URL_PREFIXES = ("http://", "https://")


def is_url(source: str) -> bool:
    """Return True when the source should be fetched over HTTP."""
    return source.startswith(_URL_PREFIXES)


def fetch_bytes(
    url: str,
    timeout: float = DEFAULT_HTTP_TIMEOUT,
    client: httpx.Client | None = None,
) -> bytes:
    """Fetch the raw document from a URL."""
    try:
        if client is not None:
            resp = client.get(url, timeout=timeout)
        else:
            resp = httpx.get(url, timeout=timeout, follow_redirects=True)
        resp.raise_for_status()
    except httpx.HTTPError as err:
        raise SchemaLoadError(f"Failed to fetch {url}: {err}") from err
    logger.debug("Fetched %d bytes from %s", len(resp.content), url)
    return resp.content


def read_bytes(path: str | Path) -> bytes:
    """Read the raw document from disk."""
    try:
        return Path(path).read_bytes()
    except OSError as err:
        raise SchemaLoadError(f"Failed to read {path}: {err}") from err


def parse_bytes(data: bytes, origin: str = "<bytes>") -> dict[str, Any]:
    """Parse JSON or YAML bytes into the raw document mapping."""
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as err:
        raise SchemaLoadError(f"{origin} is not UTF-8 text") from err

    try:
        if text.lstrip().startswith(("{", "[")):
            spec = json.loads(text)
        else:
            spec = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as err:
        raise SchemaLoadError(f"{origin} is not well-formed JSON or YAML: {err}") from err

    if not isinstance(spec, dict):
        raise SchemaLoadError(f"{origin} does not contain an OpenAPI document object")
    return spec


def load_spec(
    source: str | Path,
    timeout: float = DEFAULT_HTTP_TIMEOUT,
    client: httpx.Client | None = None,
) -> dict[str, Any]:
    """Load the OpenAPI document from a URL or a file path."""
    source = str(source)
    if is_url(source):
        data = fetch_bytes(source, timeout=timeout, client=client)
    else:
        data = read_bytes(source)
    return parse_bytes(data, origin=source)


def get_paths(spec: dict[str, Any]) -> dict[str, Any]:
    """Extract paths from the spec."""
    paths = spec.get("paths") or {}
    if not isinstance(paths, dict):
        raise SchemaLoadError("'paths' must be an object")
    return paths


def get_schemas(spec: dict[str, Any]) -> dict[str, Any]:
    """Extract component schemas from the spec."""
    components = spec.get("components") or {}
    if not isinstance(components, dict):
        raise SchemaLoadError("'components' must be an object")
    schemas = components.get("schemas") or {}
    if not isinstance(schemas, dict):
        raise SchemaLoadError("'components.schemas' must be an object")
    return schemas


def resolve_ref(spec: dict[str, Any], ref: str) -> dict[str, Any]:
    """Resolve a local $ref pointer in the spec."""
    if not ref.startswith("#/"):
        raise UnresolvedReferenceError(ref)
    node: Any = spec
    for part in ref[2:].split("/"):
        # JSON pointer escapes
        part = part.replace("~1", "/").replace("~0", "~")
        if not isinstance(node, dict) or part not in node:
            raise UnresolvedReferenceError(ref)
        node = node[part]
    if not isinstance(node, dict):
        raise UnresolvedReferenceError(ref)
    return node
