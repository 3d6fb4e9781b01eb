# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import tenant_service


def require_auth(f):
    """
    Require a bearer API token and establish tenant context.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.org_id: The organization ID (tenant context)
    - g.actor: Token label, recorded on ledger entries
    - g.token_id: The API token row id

    Routes pass g.org_id and g.actor explicitly into the services; nothing
    below the route layer reads g.

    SECURITY: Returns 401 if:
    - No Authorization header
    - Unknown or revoked token
    - Organization deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1].strip()

        context = tenant_service.resolve_token(token)
        if not context:
            return jsonify({"error": "Invalid or revoked token"}), 401

        g.org_id = context.org_id
        g.actor = context.actor
        g.token_id = context.token_id

        return f(*args, **kwargs)

    return decorated_function
