# Overview: Flask API routes for purchase orders; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..errors import LedgerError
from ..services import purchase_order_service
from ..validation import pick


purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


@purchase_orders_bp.post("")
def create_purchase_order_route():
    try:
        data = request.get_json(silent=True) or {}
        po = purchase_order_service.create_purchase_order(
            supplier_id=pick(data, "supplier_id", "supplierId"),
            items=data.get("items"),
            expected_delivery=pick(data, "expected_delivery", "expectedDelivery"),
            notes=data.get("notes"),
        )
        return jsonify({"purchase_order": po.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create purchase order")
        return jsonify({"error": "Internal server error"}), 500


@purchase_orders_bp.get("")
def list_purchase_orders_route():
    try:
        result = purchase_order_service.list_purchase_orders(
            supplier_id=request.args.get("supplier_id"),
            status=request.args.get("status"),
            start_date=request.args.get("start_date"),
            end_date=request.args.get("end_date"),
            search=request.args.get("search"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list purchase orders")
        return jsonify({"error": "Internal server error"}), 500


@purchase_orders_bp.get("/<int:po_id>")
def get_purchase_order_route(po_id: int):
    try:
        return jsonify({"purchase_order": purchase_order_service.get_purchase_order(po_id)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@purchase_orders_bp.put("/<int:po_id>")
def update_purchase_order_route(po_id: int):
    """Partial update; only keys present in the body are applied."""
    try:
        data = request.get_json(silent=True) or {}
        kwargs = {
            "supplier_id": pick(data, "supplier_id", "supplierId"),
            "items": data.get("items"),
            "status": data.get("status"),
        }
        if "expected_delivery" in data or "expectedDelivery" in data:
            kwargs["expected_delivery"] = pick(data, "expected_delivery", "expectedDelivery")
        if "notes" in data:
            kwargs["notes"] = data["notes"]

        po = purchase_order_service.update_purchase_order(po_id, **kwargs)
        return jsonify({"purchase_order": po.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update purchase order")
        return jsonify({"error": "Internal server error"}), 500


@purchase_orders_bp.delete("/<int:po_id>")
def delete_purchase_order_route(po_id: int):
    try:
        purchase_order_service.delete_purchase_order(po_id)
        return jsonify({"deleted": True, "id": po_id}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete purchase order")
        return jsonify({"error": "Internal server error"}), 500


@purchase_orders_bp.post("/<int:po_id>/receive")
def receive_purchase_order_route(po_id: int):
    """Body: items[{product_id, quantity_received, condition}], notes?"""
    try:
        data = request.get_json(silent=True) or {}
        po = purchase_order_service.receive_purchase_order(
            po_id,
            items=data.get("items"),
            notes=data.get("notes"),
        )
        return jsonify({"purchase_order": po.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to receive purchase order")
        return jsonify({"error": "Internal server error"}), 500
