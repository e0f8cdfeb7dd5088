# Overview: Flask API routes for cash sessions and closure reports.

from flask import Blueprint, request, jsonify

from ..errors import POSError
from ..services import register_service, reporting_service
from ..decorators import require_capability, CAP_VIEW_REPORTS


sessions_bp = Blueprint("sessions", __name__, url_prefix="/api/sessions")


@sessions_bp.get("/<int:session_id>")
@require_capability(CAP_VIEW_REPORTS)
def get_session_route(session_id: int):
    try:
        session = register_service.get_session(session_id)
        return jsonify({"session": session.to_dict()}), 200
    except POSError as e:
        return jsonify(e.to_dict()), e.status_code


@sessions_bp.get("/<int:session_id>/report")
@require_capability(CAP_VIEW_REPORTS)
def session_report_route(session_id: int):
    """
    Closure report: session, transactions and summary totals.

    Query params:
    - closure_type: X or Z (optional; requires the session to be closed
      with that type)
    """
    closure_type = request.args.get("closure_type")
    try:
        if closure_type:
            report = reporting_service.generate_closure_report(session_id, closure_type.upper())
        else:
            report = register_service.get_session_report(session_id)
        return jsonify(report), 200
    except POSError as e:
        return jsonify(e.to_dict()), e.status_code
