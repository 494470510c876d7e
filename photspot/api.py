import base64
import binascii
import json
import logging
import os
from datetime import datetime, timezone

from aiohttp import web

from .constants import APP_NAME, DEFAULT_HOST, DEFAULT_PORT
from .db import PhotSpotCatalog
from .errors import (
    CapacityExceeded,
    CatalogError,
    DuplicateItem,
    EncodingFailure,
    NotFound,
)

logger = logging.getLogger("PhotSpot")

CATALOG_KEY = web.AppKey("catalog", PhotSpotCatalog)

_ERROR_STATUS = {
    NotFound: 404,
    DuplicateItem: 409,
    EncodingFailure: 400,
    CapacityExceeded: 507,
}


def _json_response(obj, status=200):
    return web.Response(
        status=status,
        text=json.dumps(obj, ensure_ascii=False),
        content_type="application/json",
    )


def _bad_request(msg):
    return _json_response({"error": msg, "code": "bad_request"}, status=400)


def _error_response(exc):
    status = 500
    for cls, code in _ERROR_STATUS.items():
        if isinstance(exc, cls):
            status = code
            break
    if status == 500:
        logger.error("catalog failure: %s: %s", type(exc).__name__, exc)
    return _json_response({"error": str(exc), "code": exc.code}, status=status)


def _decode_thumbnail_b64(payload):
    b64 = (payload or {}).pop("thumbnail_b64", None)
    if not b64:
        return None
    if not isinstance(b64, str):
        raise ValueError("thumbnail_b64 must be a string")
    raw = b64.split(",", 1)[-1]
    try:
        return base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"invalid thumbnail_b64: {exc}") from exc


def _download_name():
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return f"photspot-export-{stamp}.json"


async def _read_json(request):
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return payload if isinstance(payload, dict) else None


routes = web.RouteTableDef()


@routes.get("/photspot/health")
async def health(request):
    catalog = request.app[CATALOG_KEY]
    try:
        count = catalog.count_items()
    except CatalogError as exc:
        return _error_response(exc)
    return _json_response(
        {
            "ok": True,
            "db_path": catalog.db_path,
            "items": count,
            "capacity": catalog.capacity,
        }
    )


@routes.get("/photspot/items")
async def list_items(request):
    catalog = request.app[CATALOG_KEY]
    try:
        items = list(catalog.scan_items())
    except CatalogError as exc:
        return _error_response(exc)
    return _json_response({"items": items, "total": len(items)})


@routes.post("/photspot/items")
async def add_item(request):
    catalog = request.app[CATALOG_KEY]
    payload = await _read_json(request)
    if payload is None:
        return _bad_request("request body must be a JSON object")
    try:
        thumbnail = _decode_thumbnail_b64(payload)
        item_id = catalog.add_item(payload, thumbnail)
        item = catalog.get_item(item_id)
    except ValueError as exc:
        return _bad_request(str(exc))
    except CatalogError as exc:
        return _error_response(exc)
    return _json_response(item, status=201)


@routes.delete("/photspot/items")
async def purge_items(request):
    catalog = request.app[CATALOG_KEY]
    try:
        result = catalog.purge_all()
    except CatalogError as exc:
        return _error_response(exc)
    return _json_response(result)


@routes.get(r"/photspot/items/{item_id:\d+}")
async def get_item(request):
    catalog = request.app[CATALOG_KEY]
    item_id = int(request.match_info["item_id"])
    try:
        item = catalog.get_item(item_id)
        item["label"] = catalog.get_display_label(item_id)
    except CatalogError as exc:
        return _error_response(exc)
    return _json_response(item)


@routes.get(r"/photspot/items/{item_id:\d+}/thumbnail")
async def get_thumbnail(request):
    catalog = request.app[CATALOG_KEY]
    try:
        data = catalog.get_thumbnail(int(request.match_info["item_id"]))
    except CatalogError as exc:
        return _error_response(exc)
    if not data:
        return _json_response({"error": "item has no thumbnail", "code": "not_found"}, status=404)
    return web.Response(
        body=data,
        content_type="image/jpeg",
        headers={"Cache-Control": "public, max-age=3600"},
    )


@routes.get(r"/photspot/items/{item_id:\d+}/label")
async def get_label(request):
    catalog = request.app[CATALOG_KEY]
    item_id = int(request.match_info["item_id"])
    try:
        label = catalog.get_display_label(item_id)
    except CatalogError as exc:
        return _error_response(exc)
    return _json_response({"id": item_id, "label": label})


@routes.put(r"/photspot/items/{item_id:\d+}/label")
async def retag_item(request):
    catalog = request.app[CATALOG_KEY]
    item_id = int(request.match_info["item_id"])
    payload = await _read_json(request)
    if payload is None:
        return _bad_request("request body must be a JSON object")
    try:
        label_id = catalog.retag_item(item_id, payload.get("label", ""))
        label = catalog.get_display_label(item_id)
    except ValueError as exc:
        return _bad_request(str(exc))
    except CatalogError as exc:
        return _error_response(exc)
    return _json_response({"id": item_id, "label_id": label_id, "label": label})


@routes.delete(r"/photspot/items/{item_id:\d+}")
async def delete_item(request):
    catalog = request.app[CATALOG_KEY]
    item_id = int(request.match_info["item_id"])
    try:
        catalog.delete_item(item_id)
    except CatalogError as exc:
        return _error_response(exc)
    return _json_response({"id": item_id, "deleted": True})


@routes.get("/photspot/labels")
async def list_labels(request):
    catalog = request.app[CATALOG_KEY]
    try:
        labels = catalog.scan_labels()
    except CatalogError as exc:
        return _error_response(exc)
    return _json_response({"labels": labels})


@routes.post("/photspot/labels/reconcile")
async def reconcile_labels(request):
    catalog = request.app[CATALOG_KEY]
    try:
        result = catalog.reconcile_labels()
    except CatalogError as exc:
        return _error_response(exc)
    return _json_response(result)


@routes.get("/photspot/export")
async def export_catalog(request):
    catalog = request.app[CATALOG_KEY]
    try:
        bundle = catalog.export_bundle()
    except CatalogError as exc:
        return _error_response(exc)
    text = json.dumps(bundle, ensure_ascii=False, indent=2)
    return web.Response(
        text=text,
        content_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{_download_name()}"'},
    )


def create_app(catalog=None):
    app = web.Application()
    app[CATALOG_KEY] = catalog or PhotSpotCatalog.get()
    app.add_routes(routes)
    return app


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    host = os.environ.get("PHOTSPOT_HOST", DEFAULT_HOST)
    port = int(os.environ.get("PHOTSPOT_PORT", DEFAULT_PORT))
    app = create_app()
    logger.info("%s serving %s on http://%s:%d", APP_NAME, app[CATALOG_KEY].db_path, host, port)
    web.run_app(app, host=host, port=port)


if __name__ == "__main__":
    main()
