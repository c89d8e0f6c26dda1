from datetime import datetime

from flask import Blueprint, current_app, g, render_template

from decorators import page_arg
from listing import fetch_collection, paginate
from schemas import promotion_schema, theater_schema

listing_bp = Blueprint("listing", __name__)


def format_date(value):
    """Render an ISO date as dd/mm/YYYY; leave anything else untouched."""
    if not value:
        return ""
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).strftime("%d/%m/%Y")
    except ValueError:
        return value


@listing_bp.app_template_filter("dmy")
def dmy_filter(value):
    return format_date(value)


@listing_bp.app_template_filter("vnd")
def vnd_filter(value):
    return f"{value:,.0f} VND"


@listing_bp.route("/theaters")
def theaters():
    records = fetch_collection(g.api, "/api/theaters", theater_schema, cancel=g.cancel)
    page = paginate(records, page_arg(), current_app.config["PAGE_SIZE"])
    return render_template("theaters.html", page=page)


@listing_bp.route("/promotions")
def promotions():
    records = fetch_collection(g.api, "/api/promotions", promotion_schema, cancel=g.cancel)
    page = paginate(records, page_arg(), current_app.config["PAGE_SIZE"])
    return render_template("promotions.html", page=page)
