"""/openapi.json: the SCIM Users API description, served from the packaged YAML."""
from __future__ import annotations
import copy
import logging
from pathlib import Path
from typing import Any

import yaml
from flask import Blueprint, Response, current_app, jsonify

bp = Blueprint("docs", __name__)

logger = logging.getLogger(__name__)

OPENAPI_CACHE_KEY = "scim_openapi_document"


def _document_path() -> Path:
    override = current_app.config.get("OPENAPI_SPEC_PATH")
    if override:
        return Path(override)
    return Path(current_app.root_path) / "openapi" / "scim_openapi.yaml"


def _read_document(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def _openapi_document() -> dict[str, Any]:
    """Parsed document, cached per app and per source path.

    ``servers`` always reflects the configured SCIM base path so generated
    clients call the right prefix.
    """
    path = _document_path()
    cached = current_app.extensions.get(OPENAPI_CACHE_KEY)
    if cached is None or cached[0] != path:
        cached = (path, _read_document(path))
        current_app.extensions[OPENAPI_CACHE_KEY] = cached

    document = copy.deepcopy(cached[1])
    cfg = current_app.config.get("APP_CONFIG")
    if cfg:
        document["servers"] = [{"url": cfg.scim_base_path}]
    return document


@bp.route("/openapi.json", methods=["GET"])
def openapi_document() -> Response:
    try:
        document = _openapi_document()
    except FileNotFoundError:
        logger.error("OpenAPI document missing at %s", _document_path())
        return jsonify({"error": "Not Found", "message": "OpenAPI document not available"}), 404
    return jsonify(document)
