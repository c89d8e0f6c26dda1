import logging
import threading
import time
import uuid
from collections import OrderedDict
from enum import IntEnum
from typing import Dict, List, Optional, Tuple

from marshmallow import ValidationError

from api_client import ApiClient, ApiError, CancellationToken, extract_collection
from schemas import load_many, movie_schema, seat_schema

logger = logging.getLogger(__name__)


class Step(IntEnum):
    SHOWTIME_SELECTION = 0
    SEAT_SELECTION = 1
    PAYMENT_CONFIRMATION = 2


STEP_TITLES = {
    Step.SHOWTIME_SELECTION: "Choose a showtime",
    Step.SEAT_SELECTION: "Choose seats",
    Step.PAYMENT_CONFIRMATION: "Payment",
}


class BookingFlowError(Exception):
    pass


class SelectionRequired(BookingFlowError):
    """Raised when leaving seat selection with no seat chosen."""


class WrongStep(BookingFlowError):
    pass


class BookingWizard:
    def __init__(self, movie_id: str, movie: Optional[dict] = None, error: Optional[str] = None):
        self.id = uuid.uuid4().hex
        self.movie_id = movie_id
        self.movie = movie
        self.error = error
        self.step = Step.SHOWTIME_SELECTION
        self.showtimes: List[dict] = list(movie.get("showtimes", [])) if movie else []
        self.showtime: Optional[dict] = None
        self.seats: List[dict] = []
        self.seats_loaded = False
        self.selection: List[str] = []
        self.completed = False
        # Held by the routes while a request changes this wizard
        self.lock = threading.RLock()

    @classmethod
    def start(cls, api: ApiClient, movie_id: str, cancel: Optional[CancellationToken] = None):
        try:
            movie = movie_schema.load(api.get_movie(movie_id, cancel=cancel))
        except ApiError as exc:
            logger.error("Error fetching movie %s: %s", movie_id, exc.message)
            return cls(movie_id, error="Could not load the movie.")
        except ValidationError as exc:
            logger.error("Unexpected movie payload for %s: %s", movie_id, exc.messages)
            return cls(movie_id, error="Could not load the movie.")
        return cls(movie_id, movie=movie)

    @property
    def failed(self) -> bool:
        return self.movie is None

    # -----------------------
    # Step 0: showtime
    # -----------------------
    def select_showtime(self, api: ApiClient, showtime_id: str, cancel: Optional[CancellationToken] = None):
        self._require_step(Step.SHOWTIME_SELECTION)
        showtime = next((s for s in self.showtimes if s["id"] == showtime_id), None)
        if showtime is None:
            raise BookingFlowError("Unknown showtime.")

        if self.seats_loaded and self.showtime is not None and self.showtime["id"] == showtime_id:
            self.step = Step.SEAT_SELECTION
            return self

        self.showtime = showtime
        self.seats = []
        self.seats_loaded = False
        self.selection = []
        self.step = Step.SEAT_SELECTION
        try:
            self.seats = load_many(seat_schema, extract_collection(api.get_seats(showtime_id, cancel=cancel)))
            self.seats_loaded = True
        except ApiError as exc:
            logger.error("Error fetching seats for showtime %s: %s", showtime_id, exc.message)
            raise
        return self

    # -----------------------
    # Step 1: seats
    # -----------------------
    def seat(self, seat_id: str) -> Optional[dict]:
        return next((s for s in self.seats if s["id"] == seat_id), None)

    def toggle_seat(self, seat_id: str) -> bool:
        """Flip a seat between available and selected.

        Returns False when nothing changed: the seat is unknown or already
        booked on the server.
        """
        self._require_step(Step.SEAT_SELECTION)
        seat = self.seat(seat_id)
        if seat is None or seat["status"] == "booked":
            return False

        if seat_id in self.selection:
            self.selection.remove(seat_id)
            seat["status"] = "available"
        else:
            self.selection.append(seat_id)
            seat["status"] = "selected"
        return True

    @property
    def selected_seats(self) -> List[dict]:
        seats = {s["id"]: s for s in self.seats}
        return [seats[seat_id] for seat_id in self.selection if seat_id in seats]

    @property
    def total_price(self):
        return sum(seat["price"] for seat in self.selected_seats)

    def proceed_to_payment(self):
        self._require_step(Step.SEAT_SELECTION)
        if not self.selection:
            raise SelectionRequired("Please choose at least one seat.")
        self.step = Step.PAYMENT_CONFIRMATION
        return self

    def back(self):
        if self.step > Step.SHOWTIME_SELECTION:
            self.step = Step(self.step - 1)
        return self

    # -----------------------
    # Step 2: payment
    # -----------------------
    def booking_payload(self) -> Dict[str, object]:
        return {
            "movieId": self.movie["id"] if self.movie else self.movie_id,
            "showtimeId": self.showtime["id"] if self.showtime else None,
            "seats": list(self.selection),
        }

    def submit(self, api: ApiClient, cancel: Optional[CancellationToken] = None):
        self._require_step(Step.PAYMENT_CONFIRMATION)
        payload = self.booking_payload()
        body = api.create_booking(payload["movieId"], payload["showtimeId"], payload["seats"], cancel=cancel)
        self.completed = True
        return body

    def _require_step(self, step: Step):
        if self.failed:
            raise WrongStep("The booking could not be started.")
        if self.completed:
            raise WrongStep("This booking has already been completed.")
        if self.step != step:
            raise WrongStep(f"Not available during '{STEP_TITLES[self.step]}'.")


class WizardStore:
    """In-memory wizards, one per browser session.

    Wizards idle for longer than ``ttl`` seconds are evicted, and the store
    never holds more than ``max_size`` of them (least recently used go first).
    """

    def __init__(self, ttl: float = 30 * 60, max_size: int = 1000, clock=time.monotonic):
        self.ttl = ttl
        self.max_size = max_size
        self.clock = clock
        self._wizards: "OrderedDict[str, Tuple[BookingWizard, float]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, wizard_id: Optional[str]) -> Optional[BookingWizard]:
        if not wizard_id:
            return None
        with self._lock:
            now = self.clock()
            self._evict_stale(now)
            entry = self._wizards.get(wizard_id)
            if entry is None:
                return None
            self._wizards[wizard_id] = (entry[0], now)
            self._wizards.move_to_end(wizard_id)
            return entry[0]

    def put(self, wizard: BookingWizard, replaces: Optional[str] = None) -> BookingWizard:
        with self._lock:
            now = self.clock()
            self._evict_stale(now)
            if replaces:
                self._wizards.pop(replaces, None)
            self._wizards[wizard.id] = (wizard, now)
            self._wizards.move_to_end(wizard.id)
            while len(self._wizards) > self.max_size:
                self._wizards.popitem(last=False)
        return wizard

    def discard(self, wizard_id: Optional[str]):
        if not wizard_id:
            return
        with self._lock:
            self._wizards.pop(wizard_id, None)

    def clear(self):
        with self._lock:
            self._wizards.clear()

    def _evict_stale(self, now: float):
        # Entries are kept in last-access order, oldest first
        while self._wizards:
            wizard_id, (_, last_access) = next(iter(self._wizards.items()))
            if now - last_access <= self.ttl:
                break
            del self._wizards[wizard_id]

    def __len__(self):
        with self._lock:
            return len(self._wizards)
