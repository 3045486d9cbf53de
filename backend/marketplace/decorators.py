# Overview: Request decorators establishing tenant context for shop API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import Shop, User


def _header_id(name: str) -> int | None:
    raw = (request.headers.get(name) or "").strip()
    if not raw.isdecimal():
        return None
    return int(raw)


def require_shop(f):
    """
    Require shop (tenant) context for the request.

    Authentication happens upstream; the gateway forwards the resolved
    identity as headers.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.shop_id: The shop the request acts on - REQUIRED
    - g.user_id: The acting user, a member of that shop - REQUIRED

    SECURITY: Returns 401 if either header is missing or malformed.
    Returns 403 if the shop is unknown or inactive, or the user does not
    belong to it.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        shop_id = _header_id("X-Shop-Id")
        user_id = _header_id("X-User-Id")
        if shop_id is None or user_id is None:
            return jsonify({"error": "Shop context required"}), 401

        shop = db.session.get(Shop, shop_id)
        if not shop or not shop.is_active:
            return jsonify({"error": "Shop not found or inactive"}), 403

        user = db.session.get(User, user_id)
        if not user or user.shop_id != shop.id:
            return jsonify({"error": "User does not belong to this shop"}), 403

        g.shop_id = shop.id
        g.user_id = user.id
        return f(*args, **kwargs)

    return decorated_function
