from flask import Blueprint, current_app, flash, g, redirect, render_template, request, url_for
from marshmallow import ValidationError

from api_client import ApiError
from schemas import form_errors, sign_in_schema, sign_up_schema

auth_bp = Blueprint("auth", __name__)


def _form_payload():
    return request.get_json(silent=True) or request.form.to_dict()


def _error_status(exc):
    if exc.status_code is None or exc.status_code >= 500:
        return 502
    if exc.status_code < 400:
        return 401
    return exc.status_code


def _safe_next(target):
    # Only local paths, never an absolute URL
    if target and target.startswith("/") and not target.startswith("//"):
        return target
    return url_for("home")


@auth_bp.route("/login", methods=["GET", "POST"])
def login():
    next_url = request.args.get("next") or request.form.get("next")
    if request.method == "GET":
        if g.auth.authenticated:
            return redirect(_safe_next(next_url))
        return render_template("login.html", next_url=next_url)

    try:
        payload = sign_in_schema.load(_form_payload())
    except ValidationError as exc:
        return render_template("login.html", errors=form_errors(exc), next_url=next_url), 400

    try:
        g.auth.login(payload["email"], payload["password"])
    except ApiError as exc:
        current_app.logger.error("Login failed: %s", exc.message)
        return render_template(
            "login.html", error=exc.message or "Sign in failed", next_url=next_url
        ), _error_status(exc)

    if not g.auth.authenticated:
        return render_template("login.html", error="Sign in failed", next_url=next_url), 401

    flash("Signed in successfully.", "success")
    return redirect(_safe_next(next_url))


@auth_bp.route("/register", methods=["GET", "POST"])
def register():
    if request.method == "GET":
        return render_template("register.html")

    form = _form_payload()
    try:
        payload = sign_up_schema.load(form)
    except ValidationError as exc:
        return render_template("register.html", errors=form_errors(exc), form=form), 400

    try:
        body = g.api.sign_up(
            payload["full_name"], payload["email"], payload["phone"], payload["password"], cancel=g.cancel
        )
    except ApiError as exc:
        current_app.logger.error("Registration failed: %s", exc.message)
        return render_template("register.html", error=exc.message or "Sign up failed", form=form), 400

    return render_template("register.html", success=body.get("message") or "Account created."), 201


@auth_bp.route("/logout", methods=["POST"])
def logout():
    g.auth.logout()
    flash("Signed out.", "info")
    return redirect(url_for("home"))
