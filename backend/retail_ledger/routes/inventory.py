# Overview: Flask API routes for the stock ledger; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..errors import LedgerError
from ..services import stock_service
from ..validation import pick


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/movements")
def list_movements_route():
    """Query: product_id, movement_type, start_date, end_date, sort (asc|desc), page, per_page."""
    try:
        result = stock_service.list_movements(
            product_id=request.args.get("product_id", type=int),
            movement_type=request.args.get("movement_type"),
            start_date=request.args.get("start_date"),
            end_date=request.args.get("end_date"),
            sort=request.args.get("sort", "desc"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list inventory movements")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/adjust")
def adjust_inventory_route():
    """Body: product_id, quantity (signed), movement_type (adjustment|restock|damage), reason?, reference?"""
    try:
        data = request.get_json(silent=True) or {}
        movement = stock_service.adjust_inventory(
            pick(data, "product_id", "productId"),
            data.get("quantity"),
            pick(data, "movement_type", "movementType", "adjustment"),
            reason=data.get("reason"),
            reference=data.get("reference"),
        )
        return jsonify({"movement": movement}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust inventory")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/verify")
def verify_ledger_route():
    try:
        report = stock_service.verify_ledger(request.args.get("product_id", type=int))
        return jsonify(report), 200
    except Exception:
        current_app.logger.exception("Ledger verification failed")
        return jsonify({"error": "Internal server error"}), 500
