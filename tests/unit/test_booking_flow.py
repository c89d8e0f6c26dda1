import threading

import pytest
import requests

from api_client import ApiError
from booking_flow import BookingWizard, SelectionRequired, Step, WizardStore, WrongStep

MOVIE = {
    "_id": "m1",
    "title": "Dune: Part Two",
    "description": "Paul joins the Fremen.",
    "poster": "https://img.test/dune.jpg",
    "release_date": "2025-05-30",
    "showtimes": [
        {"id": "s1", "date": "2025-06-01", "time": "18:00"},
        {"id": "s2", "date": "2025-06-01", "time": "21:00"},
    ],
}

SEATS = [
    {"id": "A1", "name": "A1", "price": 90000, "type": "standard", "status": "available"},
    {"id": "A2", "name": "A2", "price": 90000, "type": "standard", "status": "booked"},
    {"id": "B1", "name": "B1", "price": 150000, "type": "vip", "status": "available"},
    {"id": "C1", "name": "C1", "price": 200000, "type": "couple", "status": "available"},
]


@pytest.fixture()
def movie_backend(backend):
    backend.add("GET", "/api/movie/m1", body=MOVIE)
    backend.add("GET", "/api/seats/s1", body=[dict(seat) for seat in SEATS])
    backend.add("GET", "/api/seats/s2", body=[{"id": "Z9", "price": 50000, "status": "available"}])
    return backend


@pytest.fixture()
def wizard(api, movie_backend):
    return BookingWizard.start(api, "m1")


@pytest.fixture()
def seat_step(api, wizard):
    return wizard.select_showtime(api, "s1")


def statuses(wizard):
    return {seat["id"]: seat["status"] for seat in wizard.seats}


def test_start_loads_movie_and_showtimes(wizard):
    assert wizard.failed is False
    assert wizard.movie["id"] == "m1"
    assert [s["id"] for s in wizard.showtimes] == ["s1", "s2"]
    assert wizard.step == Step.SHOWTIME_SELECTION
    assert wizard.selection == []


def test_start_failure_is_terminal(api, backend):
    backend.add("GET", "/api/movie/m1", error=requests.ConnectionError("refused"))

    wizard = BookingWizard.start(api, "m1")

    assert wizard.failed is True
    assert wizard.error
    with pytest.raises(WrongStep):
        wizard.select_showtime(api, "s1")


def test_booked_seat_scenario(seat_step):
    # showtime s1 -> A2 is booked, A1 is available
    assert seat_step.step == Step.SEAT_SELECTION
    assert seat_step.showtime == {"id": "s1", "date": "2025-06-01", "time": "18:00"}

    assert seat_step.toggle_seat("A2") is False
    assert statuses(seat_step)["A2"] == "booked"
    assert seat_step.selection == []

    assert seat_step.toggle_seat("A1") is True
    assert statuses(seat_step)["A1"] == "selected"
    assert seat_step.total_price == 90000


@pytest.mark.parametrize("seat_id", ["A1", "B1", "C1"])
def test_toggling_twice_restores_prior_state(seat_step, seat_id):
    seat_step.toggle_seat("B1" if seat_id != "B1" else "A1")
    before_selection = list(seat_step.selection)
    before_statuses = statuses(seat_step)

    seat_step.toggle_seat(seat_id)
    seat_step.toggle_seat(seat_id)

    assert seat_step.selection == before_selection
    assert statuses(seat_step) == before_statuses


def test_booked_seat_is_never_overwritten(seat_step):
    for _ in range(3):
        seat_step.toggle_seat("A2")
    assert statuses(seat_step)["A2"] == "booked"
    assert "A2" not in seat_step.selection


def test_unknown_seat_is_a_no_op(seat_step):
    assert seat_step.toggle_seat("Q99") is False
    assert seat_step.selection == []


def test_selection_keeps_click_order(seat_step):
    for seat_id in ("C1", "A1", "B1"):
        seat_step.toggle_seat(seat_id)
    assert seat_step.selection == ["C1", "A1", "B1"]
    assert [s["id"] for s in seat_step.selected_seats] == ["C1", "A1", "B1"]


def test_total_price_tracks_selection(seat_step):
    assert seat_step.total_price == 0
    seat_step.toggle_seat("A1")
    seat_step.toggle_seat("B1")
    assert seat_step.total_price == 240000
    seat_step.toggle_seat("A1")
    assert seat_step.total_price == 150000
    seat_step.toggle_seat("C1")
    assert seat_step.total_price == sum(s["price"] for s in seat_step.selected_seats)


def test_proceed_blocked_when_selection_empty(seat_step):
    with pytest.raises(SelectionRequired):
        seat_step.proceed_to_payment()
    assert seat_step.step == Step.SEAT_SELECTION


def test_proceed_allowed_with_a_seat(seat_step):
    seat_step.toggle_seat("A1")
    seat_step.proceed_to_payment()
    assert seat_step.step == Step.PAYMENT_CONFIRMATION


def test_back_steps_down_without_clearing(api, seat_step):
    seat_step.toggle_seat("A1")
    seat_step.proceed_to_payment()

    seat_step.back()
    assert seat_step.step == Step.SEAT_SELECTION
    assert seat_step.selection == ["A1"]

    seat_step.back()
    assert seat_step.step == Step.SHOWTIME_SELECTION
    assert seat_step.showtime["id"] == "s1"
    assert seat_step.selection == ["A1"]

    seat_step.back()
    assert seat_step.step == Step.SHOWTIME_SELECTION


def test_reselecting_same_showtime_keeps_selection(api, movie_backend, seat_step):
    seat_step.toggle_seat("A1")
    seat_step.back()
    seats_fetches = movie_backend.paths("GET").count("/api/seats/s1")

    seat_step.select_showtime(api, "s1")

    assert seat_step.step == Step.SEAT_SELECTION
    assert seat_step.selection == ["A1"]
    assert movie_backend.paths("GET").count("/api/seats/s1") == seats_fetches


def test_picking_another_showtime_starts_fresh_selection(api, seat_step):
    seat_step.toggle_seat("A1")
    seat_step.back()

    seat_step.select_showtime(api, "s2")

    assert seat_step.showtime["id"] == "s2"
    assert seat_step.selection == []
    assert [s["id"] for s in seat_step.seats] == ["Z9"]


def test_seat_fetch_failure_moves_on_with_no_seats(api, backend, wizard):
    backend.add("GET", "/api/seats/s1", status=500, body={"message": "boom"})

    with pytest.raises(ApiError):
        wizard.select_showtime(api, "s1")

    assert wizard.step == Step.SEAT_SELECTION
    assert wizard.seats == []


def test_same_showtime_refetches_after_failed_seat_load(api, backend, wizard):
    backend.add("GET", "/api/seats/s1", status=500, body={"message": "boom"})
    with pytest.raises(ApiError):
        wizard.select_showtime(api, "s1")
    wizard.back()
    backend.add("GET", "/api/seats/s1", body=[dict(seat) for seat in SEATS])

    wizard.select_showtime(api, "s1")

    assert [s["id"] for s in wizard.seats] == ["A1", "A2", "B1", "C1"]
    assert backend.paths("GET").count("/api/seats/s1") == 2


def test_toggle_outside_seat_step_is_rejected(wizard):
    with pytest.raises(WrongStep):
        wizard.toggle_seat("A1")


def test_submit_sends_full_selection(api, movie_backend, seat_step):
    movie_backend.add("POST", "/api/booking", body={"success": True})
    seat_step.toggle_seat("B1")
    seat_step.toggle_seat("A1")
    seat_step.proceed_to_payment()

    seat_step.submit(api)

    post = [c for c in movie_backend.calls if c["method"] == "POST"][0]
    assert post["json"] == {"movieId": "m1", "showtimeId": "s1", "seats": ["B1", "A1"]}


def test_submit_failure_stays_in_payment(api, movie_backend, seat_step):
    movie_backend.add("POST", "/api/booking", status=409, body={"success": False, "message": "Seat taken"})
    seat_step.toggle_seat("A1")
    seat_step.proceed_to_payment()

    with pytest.raises(ApiError):
        seat_step.submit(api)

    assert seat_step.step == Step.PAYMENT_CONFIRMATION
    assert seat_step.selection == ["A1"]


def test_wizard_store_replaces_and_discards(wizard, api):
    store = WizardStore()
    store.put(wizard)
    replacement = BookingWizard.start(api, "m1")

    store.put(replacement, replaces=wizard.id)

    assert store.get(wizard.id) is None
    assert store.get(replacement.id) is replacement
    store.discard(replacement.id)
    assert len(store) == 0


def test_completed_wizard_cannot_submit_twice(api, movie_backend, seat_step):
    movie_backend.add("POST", "/api/booking", body={"success": True})
    seat_step.toggle_seat("A1")
    seat_step.proceed_to_payment()
    seat_step.submit(api)

    with pytest.raises(WrongStep):
        seat_step.submit(api)

    assert movie_backend.paths("POST") == ["/api/booking"]


def test_concurrent_submits_under_the_wizard_lock_book_once(api, movie_backend, seat_step):
    in_flight = threading.Event()
    release = threading.Event()

    def slow_booking():
        in_flight.set()
        release.wait(5)

    movie_backend.add("POST", "/api/booking", body={"success": True}, hook=slow_booking)
    seat_step.toggle_seat("A1")
    seat_step.proceed_to_payment()
    outcomes = []

    def submit():
        with seat_step.lock:
            try:
                seat_step.submit(api)
                outcomes.append("booked")
            except WrongStep:
                outcomes.append("rejected")

    first = threading.Thread(target=submit)
    first.start()
    assert in_flight.wait(5)
    second = threading.Thread(target=submit)
    second.start()
    release.set()
    first.join(5)
    second.join(5)

    assert outcomes == ["booked", "rejected"]
    assert movie_backend.paths("POST") == ["/api/booking"]


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_wizard_store_evicts_idle_wizards(api, movie_backend):
    clock = FakeClock()
    store = WizardStore(ttl=60, clock=clock)
    idle = store.put(BookingWizard.start(api, "m1"))
    clock.now = 30
    active = store.put(BookingWizard.start(api, "m1"))

    clock.now = 70
    assert store.get(active.id) is active
    assert store.get(idle.id) is None
    assert len(store) == 1


def test_wizard_store_access_keeps_wizard_alive(api, movie_backend):
    clock = FakeClock()
    store = WizardStore(ttl=60, clock=clock)
    wizard = store.put(BookingWizard.start(api, "m1"))

    for now in (50, 100, 150):
        clock.now = now
        assert store.get(wizard.id) is wizard


def test_wizard_store_drops_least_recently_used_when_full(api, movie_backend):
    store = WizardStore(max_size=2)
    first = store.put(BookingWizard.start(api, "m1"))
    second = store.put(BookingWizard.start(api, "m1"))
    store.get(first.id)

    third = store.put(BookingWizard.start(api, "m1"))

    assert store.get(second.id) is None
    assert store.get(first.id) is first
    assert store.get(third.id) is third
    assert len(store) == 2
