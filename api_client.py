import threading
from typing import Any, Dict, List, Optional

import requests


class ApiError(Exception):
    """Raised when the backend reports a failure or cannot be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class TransportError(ApiError):
    pass


class RequestCancelled(Exception):
    """The view that issued the request is gone; the response was dropped."""


class CancellationToken:
    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def extract_collection(body: Any) -> List[Dict[str, Any]]:
    # Collection endpoints answer either {"data": [...]} or a bare list
    if isinstance(body, dict):
        data = body.get("data")
        return list(data) if isinstance(data, list) else []
    if isinstance(body, list):
        return body
    return []


class ApiClient:
    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = 10, http=None):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.http = http or requests.Session()

    def request(self, method: str, path: str, json=None, token: Optional[str] = None,
                cancel: Optional[CancellationToken] = None):
        headers = {"Accept": "application/json"}
        bearer = token or self.token
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"

        if cancel is not None and cancel.cancelled:
            raise RequestCancelled(f"{method} {path} cancelled before sending")

        try:
            response = self.http.request(
                method,
                f"{self.base_url}{path}",
                json=json,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise TransportError(f"Could not reach the server: {exc}") from exc

        if cancel is not None and cancel.cancelled:
            raise RequestCancelled(f"{method} {path} cancelled while in flight")

        try:
            body = response.json()
        except ValueError:
            body = None

        message = body.get("message") if isinstance(body, dict) else None
        if not response.ok:
            raise ApiError(message or f"Request failed with status {response.status_code}", response.status_code)
        if isinstance(body, dict) and body.get("success") is False:
            raise ApiError(message or "The server rejected the request", response.status_code)
        if body is None:
            raise TransportError("The server returned an invalid response", response.status_code)
        return body

    def get(self, path: str, **kwargs):
        return self.request("GET", path, **kwargs)

    def post(self, path: str, json=None, **kwargs):
        return self.request("POST", path, json=json, **kwargs)

    # -----------------------
    # Auth
    # -----------------------
    def verify_token(self, token: str, cancel=None):
        return self.get("/api/auth/verify-token", token=token, cancel=cancel)

    def sign_in(self, email: str, password: str, cancel=None):
        return self.post("/api/auth/sign-in", json={"email": email, "password": password}, cancel=cancel)

    def sign_out(self, token: Optional[str], cancel=None):
        return self.post("/api/auth/sign-out", json={}, token=token, cancel=cancel)

    def sign_up(self, full_name: str, email: str, phone: str, password: str, cancel=None):
        payload = {"full_name": full_name, "email": email, "phone": phone, "password": password}
        return self.post("/api/auth/sign-up", json=payload, cancel=cancel)

    # -----------------------
    # Movies and booking
    # -----------------------
    def get_movie(self, movie_id: str, cancel=None):
        return self.get(f"/api/movie/{movie_id}", cancel=cancel)

    def get_seats(self, showtime_id: str, cancel=None):
        return self.get(f"/api/seats/{showtime_id}", cancel=cancel)

    def create_booking(self, movie_id: str, showtime_id: str, seat_ids: List[str], cancel=None):
        payload = {"movieId": movie_id, "showtimeId": showtime_id, "seats": list(seat_ids)}
        return self.post("/api/booking", json=payload, cancel=cancel)

    def get_collection(self, path: str, cancel=None) -> List[Dict[str, Any]]:
        return extract_collection(self.get(path, cancel=cancel))
