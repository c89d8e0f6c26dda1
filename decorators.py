from functools import wraps

from flask import flash, g, redirect, request, url_for


def login_required_view(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        auth = g.get("auth")
        if auth is None or not auth.authenticated:
            flash("Please sign in first.", "warning")
            return redirect(url_for("auth.login", next=request.path))
        return fn(*args, **kwargs)

    return wrapper


def page_arg(name="page"):
    return request.args.get(name, 1, type=int) or 1
