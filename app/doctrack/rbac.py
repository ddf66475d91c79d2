"""
Actor resolution for the JSON API.

The caller names itself with the X-User-Email header; the users table maps
that email to a role. This is identification only, there is no credential
check.
"""
from __future__ import annotations

import uuid
from collections.abc import Callable, Iterable
from functools import wraps
from typing import Any

from flask import current_app, g, jsonify, request
from sqlalchemy import select

from app.doctrack.db import db_session
from app.doctrack.models import User
from app.doctrack.modules.routing.domain import Actor, Role
from app.doctrack.utils import normalize_email

ACTOR_HEADER = "X-User-Email"


def load_current_actor() -> None:
    """
    Loads g.current_actor from the request header.
    Also assigns a per-request request_id for log correlation.
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_actor = None
    if request.path.startswith(("/health", "/healthz")):
        return

    email = normalize_email(request.headers.get(ACTOR_HEADER))
    if not email:
        return
    s = db_session()
    user = s.scalars(select(User).where(User.email == email)).one_or_none()
    if not user or not user.is_active:
        current_app.logger.info("Unknown or inactive actor: %s request_id=%s", email, g.request_id)
        return
    g.current_actor = Actor(email=user.email, role=Role(user.role))


def require_actor(*roles: Role) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            actor: Actor | None = getattr(g, "current_actor", None)
            if actor is None:
                return jsonify({"ok": False, "error": "unidentified", "message": f"{ACTOR_HEADER} header does not name a known user."}), 401
            if roles and actor.role not in roles:
                current_app.logger.warning(
                    "Forbidden: role=%s needs=%s request_id=%s",
                    actor.role.value,
                    ",".join(r.value for r in roles),
                    getattr(g, "request_id", None),
                )
                return jsonify({"ok": False, "error": "forbidden", "message": f"Role {actor.role.value} cannot do this."}), 403
            return fn(*args, **kwargs)

        return wrapped

    return decorator


def drop_off_locations(emails: Iterable[str | None]) -> dict[str, str]:
    """Drop-off location per lowercased email, for active users that have one."""
    wanted = {normalize_email(e) for e in emails if e}
    if not wanted:
        return {}
    rows = db_session().scalars(
        select(User).where(User.email.in_(wanted), User.is_active.is_(True), User.drop_off_location.is_not(None))
    )
    return {u.email: u.drop_off_location for u in rows if u.drop_off_location}
