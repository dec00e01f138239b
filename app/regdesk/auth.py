"""
Staff session login.

Customers never authenticate; only merchant staff (User rows) sign in here.
Failed and successful logins are written to the audit trail.
"""

from __future__ import annotations

import threading
import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, flash, g, redirect, render_template, request, session, url_for
from werkzeug.security import check_password_hash

from app.regdesk.audit import record_event
from app.regdesk.db import db_session
from app.regdesk.models import User

bp = Blueprint("auth", __name__)

_UNAUTHENTICATED_PREFIXES = ("/static/", "/health", "/healthz")


class LoginThrottle:
    """
    Per-IP sliding window of login attempts, in process memory.

    An IP whose window has emptied is dropped from the map, so idle clients
    don't accumulate for the life of the process.
    """

    def __init__(self, limit: int, window_seconds: int) -> None:
        self.limit = limit
        self.window = timedelta(seconds=window_seconds)
        self._attempts: dict[str, list[datetime]] = defaultdict(list)
        self._lock = threading.Lock()

    def _prune(self, ip: str, now: datetime) -> list[datetime]:
        cutoff = now - self.window
        recent = [t for t in self._attempts.get(ip, ()) if t > cutoff]
        if recent:
            self._attempts[ip] = recent
        else:
            self._attempts.pop(ip, None)
        return recent

    def is_locked(self, ip: str, *, now: datetime | None = None) -> bool:
        with self._lock:
            return len(self._prune(ip, now or datetime.utcnow())) >= self.limit

    def record(self, ip: str, *, now: datetime | None = None) -> None:
        with self._lock:
            self._attempts[ip].append(now or datetime.utcnow())

    def reset(self, ip: str) -> None:
        with self._lock:
            self._attempts.pop(ip, None)

    def tracked_ips(self) -> set[str]:
        with self._lock:
            return set(self._attempts)


def init_login_throttle(app) -> LoginThrottle:
    throttle = LoginThrottle(app.config["LOGIN_RATE_LIMIT"], app.config["LOGIN_RATE_WINDOW_SECONDS"])
    app.extensions["login_throttle"] = throttle
    return throttle


def _throttle() -> LoginThrottle:
    return current_app.extensions["login_throttle"]


def load_current_user() -> None:
    """
    Resolve g.current_user from the signed session cookie and give every
    request a request_id for audit/log correlation.
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_user = None
    if request.path.startswith(_UNAUTHENTICATED_PREFIXES):
        return

    user_id = session.get("user_id")
    if not user_id:
        return

    try:
        user = db_session().get(User, int(user_id))
    except Exception as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        session.pop("user_id", None)
        return
    if not user or not user.is_active:
        session.pop("user_id", None)
        return
    g.current_user = user


def _authenticate(s, email: str, password: str) -> User | None:
    user = s.query(User).filter(User.email == email).one_or_none()
    if not user or not user.is_active or not check_password_hash(user.password_hash, password):
        return None
    return user


def _local_redirect_target(nxt: str) -> str:
    # Local paths only; "//host" would be an open redirect.
    if nxt.startswith("/") and not nxt.startswith("//"):
        return nxt
    return url_for("customers.dashboard")


@bp.get("/login")
def login_get():
    return render_template("auth/login.html", next=(request.args.get("next") or "").strip())


@bp.post("/login")
def login_post():
    email = (request.form.get("email") or "").strip().lower()
    password = request.form.get("password") or ""
    nxt = (request.form.get("next") or "").strip()
    ip = request.remote_addr or "unknown"
    throttle = _throttle()

    if throttle.is_locked(ip):
        current_app.logger.warning("Login throttled ip=%s email=%s", ip, email)
        flash("Too many login attempts. Please wait a few minutes.", "danger")
        return redirect(url_for("auth.login_get"))
    throttle.record(ip)

    s = db_session()
    user = _authenticate(s, email, password)
    if user is None:
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=email,
            reason="Invalid credentials",
            metadata={"email": email},
        )
        s.commit()
        flash("Invalid credentials.", "danger")
        return redirect(url_for("auth.login_get", next=nxt or None))

    session["user_id"] = user.id
    throttle.reset(ip)
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()
    current_app.logger.info("Staff login user=%s", user.email)
    return redirect(_local_redirect_target(nxt))


@bp.get("/logout")
def logout():
    user = getattr(g, "current_user", None)
    if user:
        s = db_session()
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.pop("user_id", None)
    flash("Signed out.", "success")
    return redirect(url_for("routes.register_get"))
