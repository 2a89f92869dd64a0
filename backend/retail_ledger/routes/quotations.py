# Overview: Flask API routes for quotations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..errors import LedgerError
from ..services import quotation_service
from ..validation import pick


quotations_bp = Blueprint("quotations", __name__, url_prefix="/api/quotations")


@quotations_bp.post("")
def create_quotation_route():
    try:
        data = request.get_json(silent=True) or {}
        quotation = quotation_service.create_quotation(
            customer_id=pick(data, "customer_id", "customerId"),
            items=data.get("items"),
            discount=data.get("discount", 0),
            valid_until=pick(data, "valid_until", "validUntil"),
            notes=data.get("notes"),
        )
        return jsonify({"quotation": quotation.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create quotation")
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.get("")
def list_quotations_route():
    try:
        result = quotation_service.list_quotations(
            status=request.args.get("status"),
            customer_id=request.args.get("customer_id"),
            search=request.args.get("search"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list quotations")
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.get("/<int:quotation_id>")
def get_quotation_route(quotation_id: int):
    try:
        return jsonify({"quotation": quotation_service.get_quotation(quotation_id)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@quotations_bp.put("/<int:quotation_id>")
def update_quotation_route(quotation_id: int):
    try:
        data = request.get_json(silent=True) or {}
        kwargs = {
            "customer_id": pick(data, "customer_id", "customerId"),
            "items": data.get("items"),
            "discount": data.get("discount"),
        }
        if "valid_until" in data or "validUntil" in data:
            kwargs["valid_until"] = pick(data, "valid_until", "validUntil")
        if "notes" in data:
            kwargs["notes"] = data["notes"]

        quotation = quotation_service.update_quotation(quotation_id, **kwargs)
        return jsonify({"quotation": quotation.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update quotation")
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.delete("/<int:quotation_id>")
def delete_quotation_route(quotation_id: int):
    try:
        quotation_service.delete_quotation(quotation_id)
        return jsonify({"deleted": True, "id": quotation_id}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete quotation")
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.post("/<int:quotation_id>/send")
def send_quotation_route(quotation_id: int):
    try:
        quotation = quotation_service.send_quotation(quotation_id)
        return jsonify({"quotation": quotation.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to send quotation")
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.patch("/<int:quotation_id>/status")
def update_quotation_status_route(quotation_id: int):
    """Body: status (accepted | rejected)."""
    try:
        data = request.get_json(silent=True) or {}
        quotation = quotation_service.update_quotation_status(quotation_id, data.get("status"))
        return jsonify({"quotation": quotation.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update quotation status")
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.post("/<int:quotation_id>/convert")
def convert_quotation_route(quotation_id: int):
    try:
        sale = quotation_service.convert_quotation_to_sale(quotation_id)
        return jsonify({"sale": sale.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to convert quotation")
        return jsonify({"error": "Internal server error"}), 500
