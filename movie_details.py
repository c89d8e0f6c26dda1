import logging
from datetime import datetime
from typing import List, Optional

from marshmallow import ValidationError

from api_client import ApiClient, ApiError, CancellationToken
from schemas import comment_schema, movie_schema

logger = logging.getLogger(__name__)


def placeholder_movie(movie_id: Optional[str]):
    return {
        "id": movie_id or "1",
        "title": "Sample Movie",
        "description": "This is a sample movie description.",
        "poster": "https://via.placeholder.com/300x450",
        "release_date": "2025-01-01",
        "director": "Sample Director",
        "cast": ["Actor 1", "Actor 2"],
        "duration": 120,
        "genre": ["Action", "Drama"],
        "rating": 8.5,
        "trailer_url": "https://www.youtube.com/embed/sample-trailer",
        "showtimes": [],
    }


def placeholder_comments():
    return [
        {"user": "Nguyen Van A", "content": "A great movie!", "rating": 5, "date": "2025-04-01"},
        {"user": "Tran Thi B", "content": "Gripping story.", "rating": 4, "date": "2025-04-02"},
    ]


class MovieUnavailable(Exception):
    pass


def load_movie_details(api: ApiClient, movie_id: str, demo_mode: bool = False,
                       cancel: Optional[CancellationToken] = None):
    """Return ``(movie, comments, is_placeholder)``.

    Outside demo mode a failed fetch raises MovieUnavailable instead of
    falling back to sample data.
    """
    try:
        movie = movie_schema.load(api.get_movie(movie_id, cancel=cancel))
        return movie, [], False
    except (ApiError, ValidationError) as exc:
        logger.error("Error fetching movie details for %s: %s", movie_id, exc)
        if not demo_mode:
            raise MovieUnavailable(f"Movie {movie_id} could not be loaded") from exc
    return placeholder_movie(movie_id), placeholder_comments(), True


def add_comment(comments: List[dict], form: dict, user: str = "You") -> List[dict]:
    """Prepend a new comment; raises ValidationError on empty content."""
    data = comment_schema.load(form)
    comment = {
        "user": user,
        "content": data["content"],
        "rating": data["rating"],
        "date": datetime.now().strftime("%Y-%m-%d"),
    }
    return [comment] + list(comments)


def star_count(rating: Optional[float]) -> int:
    # Ratings are out of 10, stars out of 5
    if not rating:
        return 0
    return min(5, int(round(rating / 2)))
