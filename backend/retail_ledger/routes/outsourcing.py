# Overview: Flask API routes for outsourcing orders; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..errors import LedgerError
from ..services import outsourcing_service
from ..validation import pick


outsourcing_bp = Blueprint("outsourcing", __name__, url_prefix="/api/outsourcing")


@outsourcing_bp.post("")
def create_outsourcing_order_route():
    try:
        data = request.get_json(silent=True) or {}
        order = outsourcing_service.create_outsourcing_order(
            product_id=pick(data, "product_id", "productId"),
            supplier_id=pick(data, "supplier_id", "supplierId"),
            quantity=data.get("quantity"),
            cost_per_unit=pick(data, "cost_per_unit", "costPerUnit"),
            sale_id=pick(data, "sale_id", "saleId"),
            sale_item_id=pick(data, "sale_item_id", "saleItemId"),
            notes=data.get("notes"),
        )
        return jsonify({"order": order.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create outsourcing order")
        return jsonify({"error": "Internal server error"}), 500


@outsourcing_bp.get("")
def list_outsourcing_orders_route():
    try:
        result = outsourcing_service.list_outsourcing_orders(
            status=request.args.get("status"),
            supplier_id=request.args.get("supplier_id"),
            start_date=request.args.get("start_date"),
            end_date=request.args.get("end_date"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list outsourcing orders")
        return jsonify({"error": "Internal server error"}), 500


@outsourcing_bp.get("/<int:order_id>")
def get_outsourcing_order_route(order_id: int):
    try:
        return jsonify({"order": outsourcing_service.get_outsourcing_order(order_id)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@outsourcing_bp.patch("/<int:order_id>/status")
def update_outsourcing_status_route(order_id: int):
    """Body: status (pending | ordered | delivered | cancelled), notes?"""
    try:
        data = request.get_json(silent=True) or {}
        order = outsourcing_service.update_outsourcing_status(
            order_id,
            data.get("status"),
            notes=data.get("notes"),
        )
        return jsonify({"order": order.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update outsourcing order status")
        return jsonify({"error": "Internal server error"}), 500


@outsourcing_bp.get("/supplier/<int:supplier_id>")
def list_supplier_outsourcing_orders_route(supplier_id: int):
    try:
        result = outsourcing_service.list_outsourcing_orders(
            supplier_id=supplier_id,
            status=request.args.get("status"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list supplier outsourcing orders")
        return jsonify({"error": "Internal server error"}), 500
