#routes.py

import asyncio
import logging

from flask import Blueprint, current_app, jsonify, request

from ptel_engine.coordinate_normalizer import normalize_coordinate
from ptel_engine.file_processor import process_rows
from ptel_engine.types import CoordinateInput, GeocodingRequest

LOG = logging.getLogger(__name__)

# Define a Blueprint for the JSON API
api_bp = Blueprint('api', __name__, url_prefix='/api')


def _ptel(name):
    return current_app.extensions["ptel"][name]


def _json_body():
    if not request.is_json:
        return None
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else None


@api_bp.route('/health', methods=['GET'])
def health():
    return jsonify({"status": "ok"})


@api_bp.route('/normalize', methods=['POST'])
def normalize():
    """Normalize one raw coordinate pair."""
    body = _json_body()
    if body is None:
        return jsonify({"error": "Invalid request format. Must be JSON."}), 400
    if "x" not in body or "y" not in body:
        return jsonify({"error": "Both x and y are required"}), 400

    result = normalize_coordinate(CoordinateInput(
        x=body.get("x"),
        y=body.get("y"),
        municipality=body.get("municipality"),
        province=body.get("province"),
    ))
    return jsonify(result.to_dict())


@api_bp.route('/process', methods=['POST'])
def process():
    """Two-pass processing of a whole table: {headers, rows, name?}."""
    body = _json_body()
    if body is None:
        return jsonify({"error": "Invalid request format. Must be JSON."}), 400
    headers = body.get("headers")
    rows = body.get("rows")
    if not isinstance(headers, list) or not isinstance(rows, list):
        return jsonify({"error": "headers and rows must be lists"}), 400
    if not all(isinstance(h, str) for h in headers) or not all(isinstance(row, dict) for row in rows):
        return jsonify({"error": "headers must be strings and every row an object keyed by header"}), 400

    settings = _ptel("settings")
    # NoCoordinateColumnsError / NoNumericValuesError become 400 via the app error handler
    result = process_rows(headers, rows, name=body.get("name", ""),
                          max_distance=settings.geo_max_distance_m)
    payload = result.to_dict()
    payload["aggregate"] = result.aggregate()
    return jsonify(payload)


@api_bp.route('/geocode', methods=['POST'])
def geocode():
    """Run one infrastructure through the geocoding cascade."""
    body = _json_body()
    if body is None:
        return jsonify({"error": "Invalid request format. Must be JSON."}), 400
    if not body.get("name") or not body.get("municipality"):
        return jsonify({"error": "name and municipality are required"}), 400
    text_fields = ("name", "municipality", "infrastructure_type", "province", "address", "postal_code")
    if any(body.get(f) is not None and not isinstance(body[f], str) for f in text_fields):
        return jsonify({"error": "geocoding fields must be strings"}), 400

    geo_request = GeocodingRequest(
        name=body["name"],
        municipality=body["municipality"],
        infrastructure_type=body.get("infrastructure_type") or "GENERICO",
        province=body.get("province"),
        address=body.get("address"),
        postal_code=body.get("postal_code"),
    )
    result = asyncio.run(_ptel("cascade").geocode(geo_request))
    return jsonify(result.to_dict())


@api_bp.route('/cascade/stats', methods=['GET'])
def cascade_stats():
    return jsonify(_ptel("cascade").get_stats().to_dict())
