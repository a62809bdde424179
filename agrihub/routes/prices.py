"""
Commodity price endpoints backed by data.gov.in.

Endpoints:
- GET /api/compare?crop1=&market1=&crop2=&market2=   7-day daily averages for two crop/market pairs
- GET /api/heatmap?crop=                             average price per Maharashtra district
"""

from __future__ import annotations
from flask import Blueprint, request, jsonify, current_app
from agrihub.utils.errors import sanitize_error
from agrihub.services import market_prices
from agrihub.extensions import limiter

prices_bp = Blueprint("prices", __name__, url_prefix="/api")


def _price_limit() -> str:
    return current_app.config["PRICE_RATE_LIMIT"]


@prices_bp.route("/compare", methods=["GET"])
@limiter.limit(_price_limit)
def compare():
    params = {name: (request.args.get(name) or "").strip() for name in ("crop1", "market1", "crop2", "market2")}
    missing = [name for name, value in params.items() if not value]
    if missing:
        return jsonify({"success": False, "error": f"Missing parameters: {', '.join(missing)}"}), 400

    try:
        data = market_prices.compare(**params)
    except Exception as e:
        sanitize_error(e, "upstream", "Price comparison failed")
        return jsonify({"success": False}), 500

    return jsonify({"success": True, "data": data})


@prices_bp.route("/heatmap", methods=["GET"])
@limiter.limit(_price_limit)
def heatmap():
    crop = (request.args.get("crop") or "").strip() or None

    try:
        data = market_prices.district_heatmap(crop)
    except Exception as e:
        sanitize_error(e, "upstream", "Price heatmap failed")
        return jsonify({"success": False}), 500

    return jsonify({"success": True, "data": data})
