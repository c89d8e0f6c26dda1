from flask import Blueprint, current_app, g, render_template

from decorators import login_required_view, page_arg
from listing import fetch_collection, paginate
from schemas import admin_movie_schema, admin_user_schema, theater_schema

admin_bp = Blueprint("admin", __name__)

DASHBOARD_SECTIONS = (
    ("users", "/api/admin/get-all-users", admin_user_schema),
    ("theaters", "/api/theater/get-all-theaters", theater_schema),
    ("movies", "/api/movie/get-all-movies", admin_movie_schema),
)


@admin_bp.route("/admin")
@login_required_view
def dashboard():
    # Each table pages independently: /admin?users=2&movies=3
    per_page = current_app.config["PAGE_SIZE"]
    pages = {}
    for name, path, schema in DASHBOARD_SECTIONS:
        records = fetch_collection(g.api, path, schema, cancel=g.cancel)
        pages[name] = paginate(records, page_arg(name), per_page)
    return render_template("admin.html", pages=pages)
