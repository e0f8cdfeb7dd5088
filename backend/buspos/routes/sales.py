# Overview: Flask API routes for counter ticket sales; parses input and returns JSON responses.

"""Counter sale API routes"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import POSError, ValidationError
from ..services import sale_service
from ..decorators import require_capability, CAP_SELL
from ..validation import get_json_body, require_int, optional_int, optional_list, amount_cents, optional_str


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_capability(CAP_SELL)
def process_sale_route():
    """
    Sell one seat at a terminal.

    Request body:
    {
        "trip_id": 1,
        "seat_id": 12,
        "terminal_id": 3,
        "session_id": 40,
        "passenger_name": "Ana Pérez",
        "destination_stop_id": 7,
        "payment_method": "cash",
        "amount_cents": 1500,
        "received_amount_cents": 2000,  (required for cash)
        "boarding_stop_id": 1,  (optional)
        "passenger_phone", "passenger_email",
        "passenger_document_id", "passenger_document_type",  (optional)
        "holder_id": "agent-7"  (optional, defaults to the acting user)
    }

    Returns 201 with ticket, payment and transaction.
    """
    try:
        data = get_json_body(request)

        ticket, payment, transaction = sale_service.process_sale(
            trip_id=require_int(data, "trip_id"),
            seat_id=require_int(data, "seat_id"),
            terminal_id=require_int(data, "terminal_id"),
            session_id=require_int(data, "session_id"),
            passenger_name=optional_str(data, "passenger_name", max_length=128),
            destination_stop_id=optional_int(data, "destination_stop_id"),
            boarding_stop_id=optional_int(data, "boarding_stop_id"),
            payment_method=optional_str(data, "payment_method", max_length=32),
            amount_cents=amount_cents(data, "amount_cents"),
            received_amount_cents=amount_cents(data, "received_amount_cents", required=False),
            passenger_phone=optional_str(data, "passenger_phone", max_length=32),
            passenger_email=optional_str(data, "passenger_email", max_length=128),
            passenger_document_id=optional_str(data, "passenger_document_id", max_length=64),
            passenger_document_type=optional_str(data, "passenger_document_type", max_length=16),
            holder_id=optional_str(data, "holder_id", max_length=64),
            provider_transaction_id=optional_str(data, "provider_transaction_id", max_length=128),
            processed_by_user_id=g.actor_id,
        )

        return jsonify({
            "ticket": ticket.to_dict(),
            "payment": payment.to_dict(),
            "transaction": transaction.to_dict(),
        }), 201

    except POSError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to process sale")
        return jsonify({"error": "Internal server error"}), 500


def _bulk_ticket(item) -> dict:
    if not isinstance(item, dict):
        raise ValidationError("Each ticket must be a JSON object")
    return {
        "trip_id": require_int(item, "trip_id"),
        "seat_id": require_int(item, "seat_id"),
        "passenger_name": optional_str(item, "passenger_name", max_length=128),
        "destination_stop_id": optional_int(item, "destination_stop_id"),
        "boarding_stop_id": optional_int(item, "boarding_stop_id"),
        "amount_cents": amount_cents(item, "amount_cents"),
        "passenger_phone": optional_str(item, "passenger_phone", max_length=32),
        "passenger_email": optional_str(item, "passenger_email", max_length=128),
        "passenger_document_id": optional_str(item, "passenger_document_id", max_length=64),
        "passenger_document_type": optional_str(item, "passenger_document_type", max_length=16),
    }


@sales_bp.post("/bulk")
@require_capability(CAP_SELL)
def process_bulk_sale_route():
    """
    Sell several seats at a terminal with one payment.

    Request body:
    {
        "terminal_id": 3,
        "session_id": 40,
        "payment_method": "cash",
        "received_amount_cents": 5000,  (required for cash, covers all seats)
        "tickets": [
            {"trip_id": 1, "seat_id": 12, "passenger_name": "Ana Pérez",
             "destination_stop_id": 7, "amount_cents": 1500},
            ...
        ]
    }

    Returns 201 when every seat sold, 207 when some failed, or the first
    failure's status when none sold.
    """
    try:
        data = get_json_body(request)

        terminal_id = require_int(data, "terminal_id")
        items = optional_list(data, "tickets")
        if not items:
            raise ValidationError("tickets must be a non-empty list")

        result = sale_service.process_bulk_sale(
            tickets=[_bulk_ticket(item) for item in items],
            terminal_id=terminal_id,
            session_id=require_int(data, "session_id"),
            payment_method=optional_str(data, "payment_method", max_length=32),
            received_amount_cents=amount_cents(data, "received_amount_cents", required=False),
            holder_id=optional_str(data, "holder_id", max_length=64),
            provider_transaction_id=optional_str(data, "provider_transaction_id", max_length=128),
            processed_by_user_id=g.actor_id,
        )

        sold = result["sold"]
        failed = result["failed"]
        payload = {
            "sold": [
                {
                    "ticket": ticket.to_dict(),
                    "payment": payment.to_dict(),
                    "transaction": transaction.to_dict(),
                }
                for ticket, payment, transaction in sold
            ],
            "failed": failed,
            "received_amount_cents": result["received_amount_cents"],
            "change_amount_cents": result["change_amount_cents"],
        }

        if not failed:
            return jsonify(payload), 201

        current_app.logger.warning(
            "Bulk sale at terminal %s: %d sold, %d failed",
            terminal_id, len(sold), len(failed),
        )
        if sold:
            return jsonify(payload), 207
        payload["error"] = "No seats were sold"
        return jsonify(payload), failed[0]["status_code"]

    except POSError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to process bulk sale")
        return jsonify({"error": "Internal server error"}), 500
