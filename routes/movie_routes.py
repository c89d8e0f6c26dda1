from flask import Blueprint, abort, current_app, flash, g, render_template, request, session
from marshmallow import ValidationError

from movie_details import MovieUnavailable, add_comment, load_movie_details, star_count

movie_bp = Blueprint("movie", __name__)

COMMENTS_SESSION_KEY = "page_comments"


def _render_movie(movie, comments, is_placeholder, status=200):
    return render_template(
        "movie.html",
        movie=movie,
        comments=comments,
        is_placeholder=is_placeholder,
        stars=star_count(movie.get("rating")),
    ), status


@movie_bp.route("/movie/<movie_id>")
def movie_detail(movie_id):
    try:
        movie, comments, is_placeholder = load_movie_details(
            g.api, movie_id, demo_mode=current_app.config["DEMO_MODE"], cancel=g.cancel
        )
    except MovieUnavailable:
        abort(502, description="Could not load the movie.")

    # A fresh visit starts from the fetched comments; local ones are dropped
    session[COMMENTS_SESSION_KEY] = {"movie_id": movie_id, "comments": comments}
    return _render_movie(movie, comments, is_placeholder)


@movie_bp.route("/movie/<movie_id>/comments", methods=["POST"])
def post_comment(movie_id):
    state = session.get(COMMENTS_SESSION_KEY) or {}
    try:
        movie, _, is_placeholder = load_movie_details(
            g.api, movie_id, demo_mode=current_app.config["DEMO_MODE"], cancel=g.cancel
        )
    except MovieUnavailable:
        abort(502, description="Could not load the movie.")

    comments = state.get("comments", []) if state.get("movie_id") == movie_id else []
    author = g.auth.user["email"] if g.auth.authenticated and g.auth.user else "You"
    try:
        comments = add_comment(comments, request.form.to_dict(), user=author)
    except ValidationError as exc:
        for messages in exc.messages.values():
            for message in messages:
                flash(message, "warning")
        return _render_movie(movie, comments, is_placeholder, status=400)

    session[COMMENTS_SESSION_KEY] = {"movie_id": movie_id, "comments": comments}
    return _render_movie(movie, comments, is_placeholder)
