# Overview: Flask API routes for seat availability and seat leases.

"""
Seat lock API routes

A lock is a short lease held while an agent picks a seat. The holder is
the acting user unless the body names another holder (e.g. an online
checkout id).
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import POSError
from ..services import seat_lock_service
from ..decorators import require_capability, CAP_LOCK_SEATS
from ..validation import get_json_body, optional_int, optional_str
from ..time_utils import to_utc_z


seats_bp = Blueprint("seats", __name__, url_prefix="/api/trips")


def _holder(data: dict) -> str:
    return optional_str(data, "holder_id", max_length=64) or str(g.actor_id)


@seats_bp.get("/<int:trip_id>/seats")
@require_capability(CAP_LOCK_SEATS)
def seat_availability_route(trip_id: int):
    seats = seat_lock_service.get_seat_availability(trip_id)
    return jsonify({"trip_id": trip_id, "seats": seats}), 200


@seats_bp.post("/<int:trip_id>/seats/<int:seat_id>/lock")
@require_capability(CAP_LOCK_SEATS)
def lock_seat_route(trip_id: int, seat_id: int):
    """
    Acquire or refresh a seat lease.

    Request body (optional):
    {
        "holder_id": "agent-7",
        "duration_ms": 300000
    }

    Returns 409 if another holder has the seat or it is sold.
    """
    try:
        data = get_json_body(request)

        lock = seat_lock_service.lock_seat(
            trip_id,
            seat_id,
            _holder(data),
            optional_int(data, "duration_ms"),
        )

        return jsonify({"lock": lock.to_dict(), "expires_at": to_utc_z(lock.expires_at)}), 200

    except POSError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to lock seat %s on trip %s", seat_id, trip_id)
        return jsonify({"error": "Internal server error"}), 500


@seats_bp.delete("/<int:trip_id>/seats/<int:seat_id>/lock")
@require_capability(CAP_LOCK_SEATS)
def unlock_seat_route(trip_id: int, seat_id: int):
    """Release a lease. Always 200; "released" says whether a lock was removed."""
    try:
        data = get_json_body(request)
        released = seat_lock_service.unlock_seat(trip_id, seat_id, _holder(data))
        return jsonify({"released": released}), 200

    except POSError as e:
        return jsonify(e.to_dict()), e.status_code
