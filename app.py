import os

from dotenv import load_dotenv
from flask import Flask, g, render_template, request, session

from api_client import ApiClient, CancellationToken
from auth_state import AuthState
from decorators import page_arg
from listing import DEFAULT_PAGE_SIZE, fetch_collection, paginate
from routes.admin_routes import admin_bp
from routes.auth_routes import auth_bp
from routes.booking_routes import booking_bp
from routes.listing_routes import listing_bp
from routes.movie_routes import movie_bp
from schemas import movie_schema

load_dotenv()


def _env_flag(name, default="0"):
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


app = Flask(__name__)
app.config["SECRET_KEY"] = os.getenv("SECRET_KEY", "dev-secret")
app.config["API_BASE_URL"] = os.getenv("API_BASE_URL", "http://localhost:8000")
app.config["API_TIMEOUT"] = float(os.getenv("API_TIMEOUT", "10"))
app.config["DEMO_MODE"] = _env_flag("DEMO_MODE")
try:
    app.config["PAGE_SIZE"] = int(os.getenv("PAGE_SIZE", str(DEFAULT_PAGE_SIZE)))
except ValueError:
    app.config["PAGE_SIZE"] = DEFAULT_PAGE_SIZE
# Idle booking wizards are dropped after this many seconds
app.config["BOOKING_WIZARD_TTL"] = float(os.getenv("BOOKING_WIZARD_TTL", "1800"))
app.config["BOOKING_WIZARD_MAX"] = int(os.getenv("BOOKING_WIZARD_MAX", "1000"))
# Tests swap in a fake transport; None means a real requests.Session
app.config["API_TRANSPORT"] = None


def make_api_client(token=None):
    return ApiClient(
        app.config["API_BASE_URL"],
        token=token,
        timeout=app.config["API_TIMEOUT"],
        http=app.config.get("API_TRANSPORT"),
    )


@app.before_request
def open_session_context():
    if request.endpoint == "static":
        return
    g.cancel = CancellationToken()
    g.api = make_api_client()
    g.auth = AuthState(g.api, session, cancel=g.cancel).init()
    g.api.token = g.auth.token if g.auth.authenticated else None


@app.teardown_request
def close_session_context(exc):
    cancel = g.pop("cancel", None)
    if cancel is not None:
        cancel.cancel()
    auth = g.pop("auth", None)
    if auth is not None:
        auth.teardown()


@app.context_processor
def inject_user_context():
    auth = g.get("auth")
    return {
        "authenticated": bool(auth and auth.authenticated),
        "current_user": auth.user if auth else None,
    }


app.register_blueprint(auth_bp)
app.register_blueprint(booking_bp)
app.register_blueprint(listing_bp)
app.register_blueprint(movie_bp)
app.register_blueprint(admin_bp)


# -----------------------
# Routes
# -----------------------
@app.route("/")
def home():
    movies = fetch_collection(g.api, "/api/movie/get-all-movies", movie_schema, cancel=g.cancel)
    page = paginate(movies, page_arg(), app.config["PAGE_SIZE"])
    return render_template("home.html", page=page)


@app.errorhandler(404)
def not_found(error):
    return render_template("error.html", message="Page not found."), 404


@app.errorhandler(502)
def bad_gateway(error):
    message = getattr(error, "description", None) or "The server could not be reached."
    return render_template("error.html", message=message), 502


if __name__ == '__main__':
    app.run(debug=True)
