import logging
from typing import MutableMapping, Optional

from marshmallow import ValidationError

from api_client import ApiClient, ApiError, CancellationToken
from schemas import session_user_schema

TOKEN_KEY = "token"

logger = logging.getLogger(__name__)


class AuthState:
    """Session state derived from the bearer token in ``store``.

    ``store`` is the persistent client-side storage (the Flask session in
    the app). The object lives for one request: ``init`` re-checks the token
    against the backend, ``teardown`` drops everything held in memory.
    """

    def __init__(self, api: ApiClient, store: MutableMapping, cancel: Optional[CancellationToken] = None):
        self.api = api
        self.store = store
        self.cancel = cancel
        self.authenticated = False
        self.user = None
        self.loading = True

    @property
    def token(self) -> Optional[str]:
        return self.store.get(TOKEN_KEY)

    def init(self):
        token = self.token
        if not token:
            self._clear_state()
            self.loading = False
            return self

        try:
            body = self.api.verify_token(token, cancel=self.cancel)
            if body.get("success"):
                self.authenticated = True
                self.user = _load_user(body.get("user"))
            else:
                self._clear_state()
        except ApiError as exc:
            # Expired tokens and an unreachable server are treated alike
            logger.warning("Authentication check failed: %s", exc.message)
            self._clear_state()
        finally:
            self.loading = False
        return self

    def login(self, email: str, password: str):
        body = self.api.sign_in(email, password, cancel=self.cancel)
        token = body.get("access_token")
        if not token:
            raise ApiError(body.get("message") or "Sign in failed", status_code=401)
        if body.get("success"):
            self.store[TOKEN_KEY] = token
            self.authenticated = True
            self.user = _load_user(body.get("user"))
        return self.user

    def logout(self):
        try:
            self.api.sign_out(self.token, cancel=self.cancel)
        except ApiError as exc:
            logger.warning("Sign-out notification failed: %s", exc.message)
        finally:
            self.store.pop(TOKEN_KEY, None)
            self._clear_state()

    def teardown(self):
        self._clear_state()
        self.loading = True

    def as_dict(self):
        return {"authenticated": self.authenticated, "user": self.user, "loading": self.loading}

    def _clear_state(self):
        self.authenticated = False
        self.user = None


def _load_user(payload):
    if not payload:
        return None
    try:
        return session_user_schema.load(payload)
    except ValidationError:
        return None
