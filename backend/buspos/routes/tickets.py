# Overview: Flask API routes for ticket lookup and status transitions.

from flask import Blueprint, request, jsonify

from ..errors import POSError
from ..services import ticket_service
from ..decorators import require_capability, CAP_SELL
from ..validation import get_json_body, optional_str


tickets_bp = Blueprint("tickets", __name__, url_prefix="/api/tickets")


@tickets_bp.get("/<int:ticket_id>")
@require_capability(CAP_SELL)
def get_ticket_route(ticket_id: int):
    try:
        ticket = ticket_service.get_ticket(ticket_id)
        return jsonify({"ticket": ticket.to_dict()}), 200
    except POSError as e:
        return jsonify(e.to_dict()), e.status_code


@tickets_bp.get("/qr/<string:qr_code>")
@require_capability(CAP_SELL)
def get_ticket_by_qr_route(qr_code: str):
    try:
        ticket = ticket_service.get_ticket_by_qr(qr_code)
        return jsonify({"ticket": ticket.to_dict()}), 200
    except POSError as e:
        return jsonify(e.to_dict()), e.status_code


@tickets_bp.post("/<int:ticket_id>/status")
@require_capability(CAP_SELL)
def transition_ticket_route(ticket_id: int):
    """
    Move a ticket through its lifecycle.

    Request body:
    {
        "status": "boarded"
    }
    """
    try:
        data = get_json_body(request)
        ticket = ticket_service.transition_ticket(ticket_id, optional_str(data, "status", max_length=20))
        return jsonify({"ticket": ticket.to_dict()}), 200
    except POSError as e:
        return jsonify(e.to_dict()), e.status_code
