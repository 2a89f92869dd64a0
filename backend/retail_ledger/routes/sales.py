# Overview: Flask API routes for sales, returns and reversals; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..errors import LedgerError
from ..services import sales_service, return_service
from ..validation import pick


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
def create_sale_route():
    """
    Create a completed sale.

    Body: items[{product_id, quantity, unit_price, outsourcing?}],
    customer_id?, payment_method?, discount?, notes?
    """
    try:
        data = request.get_json(silent=True) or {}
        sale = sales_service.create_sale(
            items=data.get("items"),
            customer_id=pick(data, "customer_id", "customerId"),
            payment_method=pick(data, "payment_method", "paymentMethod"),
            discount=data.get("discount", 0),
            notes=data.get("notes"),
        )
        return jsonify({"sale": sale.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
def list_sales_route():
    try:
        result = sales_service.list_sales(
            status=request.args.get("status"),
            customer_id=request.args.get("customer_id"),
            start_date=request.args.get("start_date"),
            end_date=request.args.get("end_date"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    try:
        return jsonify({"sale": sales_service.get_sale(sale_id)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@sales_bp.patch("/<int:sale_id>/status")
def update_status_route(sale_id: int):
    try:
        data = request.get_json(silent=True) or {}
        sale = sales_service.update_order_status(sale_id, data.get("status"))
        return jsonify({"sale": sale.to_dict(include_items=False)}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update sale status")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.patch("/<int:sale_id>")
def update_details_route(sale_id: int):
    """Change payment method, customer and/or notes."""
    try:
        data = request.get_json(silent=True) or {}
        kwargs = {
            "payment_method": pick(data, "payment_method", "paymentMethod"),
            "customer_id": pick(data, "customer_id", "customerId"),
        }
        if "notes" in data:
            kwargs["notes"] = data["notes"]
        sale = sales_service.update_order_details(sale_id, **kwargs)
        body = sale.to_dict(include_items=False)
        body["current_balance"] = float(sale.customer.current_balance) if sale.customer else None
        return jsonify({"sale": body}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update sale details")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/returns")
def return_items_route(sale_id: int):
    """
    Partial return.

    Body: items[{product_id, quantity, reason}], refund_amount,
    restock_items, adjustment_reason?
    """
    try:
        data = request.get_json(silent=True) or {}
        result = return_service.return_items(
            sale_id,
            items=data.get("items"),
            refund_amount=pick(data, "refund_amount", "refundAmount", 0),
            restock_items=bool(pick(data, "restock_items", "restockItems", False)),
            adjustment_reason=pick(data, "adjustment_reason", "adjustmentReason"),
        )
        return jsonify(result), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to process return")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/revert")
def revert_order_route(sale_id: int):
    """Body: reason, restore_inventory (default true), process_refund (default false)."""
    try:
        data = request.get_json(silent=True) or {}
        result = return_service.revert_order(
            sale_id,
            reason=data.get("reason"),
            restore_inventory=bool(pick(data, "restore_inventory", "restoreInventory", True)),
            process_refund=bool(pick(data, "process_refund", "processRefund", False)),
        )
        return jsonify(result), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to revert sale")
        return jsonify({"error": "Internal server error"}), 500
