from functools import wraps
from flask import g
from flask_jwt_extended import verify_jwt_in_request, get_jwt_identity
from aftersales import get_db
from aftersales.errors import ForbiddenError
from aftersales.services.policy import Actor, load_actor


def require_roles(*roles):
    """Authenticate the bearer token and load the acting user.

    With no roles any active user passes; otherwise the user's role must be listed.
    """
    allowed = {getattr(r, 'value', r) for r in roles}

    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            actor = load_actor(get_db(), get_jwt_identity())
            if allowed and actor.role.value not in allowed:
                raise ForbiddenError('Role not permitted for this action')
            g.actor = actor
            return fn(*args, **kwargs)
        return wrapper
    return outer


def current_actor() -> Actor:
    return g.actor
