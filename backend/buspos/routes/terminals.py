# Overview: Flask API routes for terminal cash-register operations; parses input and returns JSON responses.

"""
Terminal Cash Register API Routes

DESIGN:
- Open: starting float, optional denomination count and declared total
- Close: X (interim) or Z (end of period) with counted cash
- Cash discrepancies come back as fields (difference_cents,
  discrepancy_notes), never as errors
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import POSError
from ..services import register_service, reporting_service
from ..decorators import require_capability, CAP_OPERATE_REGISTER, CAP_VIEW_REPORTS
from ..validation import get_json_body, amount_cents, optional_str, optional_list


terminals_bp = Blueprint("terminals", __name__, url_prefix="/api/terminals")


@terminals_bp.get("/<int:terminal_id>")
@require_capability(CAP_OPERATE_REGISTER)
def get_terminal_route(terminal_id: int):
    """Terminal details including the current session, if any."""
    try:
        terminal = register_service.get_terminal(terminal_id)
        session = register_service.get_active_session(terminal_id)

        result = terminal.to_dict()
        result["current_session"] = session.to_dict() if session else None
        return jsonify(result), 200

    except POSError as e:
        return jsonify(e.to_dict()), e.status_code


@terminals_bp.get("/<int:terminal_id>/session")
@require_capability(CAP_OPERATE_REGISTER)
def get_active_session_route(terminal_id: int):
    try:
        register_service.get_terminal(terminal_id)
        session = register_service.get_active_session(terminal_id)
        if not session:
            return jsonify({"error": "No active session"}), 404
        return jsonify({"session": session.to_dict()}), 200

    except POSError as e:
        return jsonify(e.to_dict()), e.status_code


@terminals_bp.post("/<int:terminal_id>/open")
@require_capability(CAP_OPERATE_REGISTER)
def open_terminal_route(terminal_id: int):
    """
    Open the cash register and start a session.

    Request body:
    {
        "initial_cash_cents": 10000,
        "cash_breakdown": [{"denomination": 20, "count": 5, "kind": "bill"}],  (optional)
        "manual_total_cents": 10000,  (optional)
        "discrepancy_notes": "..."  (optional)
    }

    Returns 409 if the terminal is already open.
    """
    try:
        data = get_json_body(request)

        terminal, session = register_service.open_cash_register(
            terminal_id=terminal_id,
            user_id=g.actor_id,
            initial_cash_cents=amount_cents(data, "initial_cash_cents"),
            cash_breakdown=optional_list(data, "cash_breakdown"),
            manual_total_cents=amount_cents(data, "manual_total_cents", required=False),
            discrepancy_notes=optional_str(data, "discrepancy_notes"),
        )

        return jsonify({"terminal": terminal.to_dict(), "session": session.to_dict()}), 201

    except POSError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to open terminal %s", terminal_id)
        return jsonify({"error": "Internal server error"}), 500


@terminals_bp.post("/<int:terminal_id>/close")
@require_capability(CAP_OPERATE_REGISTER)
def close_terminal_route(terminal_id: int):
    """
    Close the active session with an X or Z closure.

    Request body:
    {
        "closure_type": "Z",
        "actual_cash_cents": 12500,
        "cash_breakdown": [...],  (optional)
        "manual_total_cents": 12500,  (optional)
        "notes": "...",  (optional)
        "discrepancy_notes": "..."  (optional)
    }
    """
    try:
        data = get_json_body(request)

        terminal, session = register_service.close_cash_register(
            terminal_id=terminal_id,
            user_id=g.actor_id,
            closure_type=optional_str(data, "closure_type", max_length=1),
            actual_cash_cents=amount_cents(data, "actual_cash_cents"),
            cash_breakdown=optional_list(data, "cash_breakdown"),
            manual_total_cents=amount_cents(data, "manual_total_cents", required=False),
            notes=optional_str(data, "notes"),
            discrepancy_notes=optional_str(data, "discrepancy_notes"),
        )

        if session.difference_cents:
            current_app.logger.warning(
                "Terminal %s closed with cash difference %s cents (session %s)",
                terminal_id, session.difference_cents, session.id,
            )

        return jsonify({"terminal": terminal.to_dict(), "session": session.to_dict()}), 200

    except POSError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to close terminal %s", terminal_id)
        return jsonify({"error": "Internal server error"}), 500


@terminals_bp.get("/<int:terminal_id>/sessions")
@require_capability(CAP_VIEW_REPORTS)
def list_sessions_route(terminal_id: int):
    """
    List sessions for a terminal, newest first.

    Query params:
    - limit: Max number of sessions to return (default: 50)
    - status: "open" or "closed" (default: both)
    """
    limit = request.args.get("limit", 50, type=int)
    status = request.args.get("status") or None
    try:
        register_service.get_terminal(terminal_id)
        sessions = register_service.list_sessions(terminal_id, status=status, limit=limit)
        return jsonify({"sessions": [s.to_dict() for s in sessions]}), 200

    except POSError as e:
        return jsonify(e.to_dict()), e.status_code


@terminals_bp.get("/<int:terminal_id>/report")
@require_capability(CAP_VIEW_REPORTS)
def terminal_report_route(terminal_id: int):
    """
    Totals across sessions opened in a period.

    Query params:
    - start, end: ISO-8601 datetimes (inclusive, optional)
    """
    try:
        report = reporting_service.get_terminal_report(
            terminal_id,
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
        return jsonify(report), 200

    except POSError as e:
        return jsonify(e.to_dict()), e.status_code
    except ValueError:
        return jsonify({"error": "start and end must be ISO-8601 datetimes"}), 400
