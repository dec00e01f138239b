from flask import Blueprint, current_app, g, jsonify, redirect, render_template, request, url_for

from app.regdesk.db import db_session
from app.regdesk.errors import DuplicateEmail, ValidationError
from app.regdesk.modules.customers.service import create_customer, registration_payload

bp = Blueprint("routes", __name__)

REGISTER_SUCCESS = "Registration submitted successfully! Your account will be reviewed by our team."
REGISTER_FAILED = "An error occurred. Please try again later."


@bp.get("/")
def index():
    return redirect(url_for("routes.register_get"))


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for probes. No DB access, minimal overhead.
    """
    return "ok", 200


def _register_response(status: int, *, success: bool, message: str, form: dict | None = None):
    if request.is_json or request.accept_mimetypes.best == "application/json":
        body = {"success": success, "message" if success else "error": message}
        return jsonify(body), status
    return (
        render_template(
            "public/register.html",
            success=success,
            message=message if success else None,
            error=None if success else message,
            form=form or {},
        ),
        status,
    )


@bp.get("/register")
def register_get():
    return render_template("public/register.html", success=False, message=None, error=None, form={})


@bp.post("/register")
def register_post():
    """Public, unauthenticated self-registration. Always lands as `pending`."""
    payload = registration_payload(request.get_json(silent=True) if request.is_json else request.form)
    s = db_session()
    try:
        c = create_customer(s, payload, user=None)
        s.commit()
    except DuplicateEmail:
        s.rollback()
        return _register_response(409, success=False, message="This email is already registered", form=payload)
    except ValidationError as e:
        s.rollback()
        return _register_response(400, success=False, message=e.message, form=payload)
    except Exception:
        s.rollback()
        current_app.logger.exception("Registration error (request_id=%s)", getattr(g, "request_id", None))
        return _register_response(500, success=False, message=REGISTER_FAILED, form=payload)

    current_app.logger.info("Registration received customer=%s", c.id)
    return _register_response(200, success=True, message=REGISTER_SUCCESS)
