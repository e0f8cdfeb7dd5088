# Overview: Request decorators for API routes; the single authorization capability check.

"""
Authorization seam.

The POS services never look at roles. Routes declare the capability they
need and an app-scoped authorizer decides: it resolves the acting user and
answers whether that user holds the capability. Deployments plug their own
authorizer in through the POS_AUTHORIZER config key (a dotted path to a
factory taking the app).
"""

from functools import wraps

from flask import request, jsonify, g, current_app
from werkzeug.utils import import_string

CAP_OPERATE_REGISTER = "pos.register.operate"
CAP_SELL = "pos.sell"
CAP_LOCK_SEATS = "pos.seats.lock"
CAP_VIEW_REPORTS = "pos.reports.view"


class HeaderAuthorizer:
    """
    Development authorizer: trusts the X-Actor-Id header and grants every
    capability. Real deployments replace it with one backed by their
    identity provider.
    """

    header = "X-Actor-Id"

    def resolve_actor(self, req):
        raw = req.headers.get(self.header)
        if not raw:
            return None
        try:
            return int(raw)
        except ValueError:
            return None

    def has_capability(self, actor_id: int, capability: str) -> bool:
        return True


def init_authorizer(app) -> None:
    path = app.config.get("POS_AUTHORIZER")
    if path:
        factory = import_string(path)
        authorizer = factory(app)
    else:
        authorizer = HeaderAuthorizer()
    app.extensions["pos_authorizer"] = authorizer


def require_capability(capability: str):
    """
    Require an authenticated actor holding a capability.

    Sets g.actor_id for the route.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            authorizer = current_app.extensions["pos_authorizer"]

            actor_id = authorizer.resolve_actor(request)
            if actor_id is None:
                return jsonify({"error": "Authentication required"}), 401

            if not authorizer.has_capability(actor_id, capability):
                return jsonify({
                    "error": "Permission denied",
                    "required_capability": capability,
                }), 403

            g.actor_id = actor_id
            return f(*args, **kwargs)

        return decorated_function
    return decorator
