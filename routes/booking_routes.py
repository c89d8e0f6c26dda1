from flask import Blueprint, current_app, flash, g, redirect, render_template, request, session, url_for

from api_client import ApiError
from booking_flow import STEP_TITLES, BookingFlowError, BookingWizard, Step, WizardStore
from decorators import login_required_view

booking_bp = Blueprint("booking", __name__)

WIZARD_SESSION_KEY = "booking_wizard"

wizard_store = WizardStore()


@booking_bp.record_once
def configure_wizard_store(state):
    wizard_store.ttl = state.app.config.get("BOOKING_WIZARD_TTL", wizard_store.ttl)
    wizard_store.max_size = state.app.config.get("BOOKING_WIZARD_MAX", wizard_store.max_size)


def current_wizard(movie_id):
    wizard = wizard_store.get(session.get(WIZARD_SESSION_KEY))
    if wizard is None or wizard.movie_id != movie_id:
        return None
    return wizard


def start_wizard(movie_id):
    wizard = BookingWizard.start(g.api, movie_id, cancel=g.cancel)
    previous = session.pop(WIZARD_SESSION_KEY, None)
    if wizard.failed:
        # A failed load ends this wizard; visiting the page again starts over
        wizard_store.discard(previous)
        return wizard
    wizard_store.put(wizard, replaces=previous)
    session[WIZARD_SESSION_KEY] = wizard.id
    return wizard


def discard_wizard():
    wizard_store.discard(session.pop(WIZARD_SESSION_KEY, None))


def back_to_wizard(movie_id):
    return redirect(url_for("booking.booking_page", movie_id=movie_id))


@booking_bp.route("/booking/<movie_id>")
@login_required_view
def booking_page(movie_id):
    wizard = current_wizard(movie_id) or start_wizard(movie_id)
    if wizard.failed:
        return render_template("error.html", message=wizard.error, back_url=url_for("home")), 502
    return render_template(
        "booking.html",
        wizard=wizard,
        steps=STEP_TITLES,
        Step=Step,
    )


@booking_bp.route("/booking/<movie_id>/showtime", methods=["POST"])
@login_required_view
def select_showtime(movie_id):
    wizard = current_wizard(movie_id)
    if wizard is None:
        return back_to_wizard(movie_id)

    showtime_id = request.form.get("showtime_id", "")
    with wizard.lock:
        try:
            wizard.select_showtime(g.api, showtime_id, cancel=g.cancel)
        except ApiError as exc:
            current_app.logger.error("Error fetching seats: %s", exc.message)
            flash("Could not load seats for this showtime.", "error")
        except BookingFlowError as exc:
            flash(str(exc), "warning")
    return back_to_wizard(movie_id)


@booking_bp.route("/booking/<movie_id>/seats/<seat_id>", methods=["POST"])
@login_required_view
def toggle_seat(movie_id, seat_id):
    wizard = current_wizard(movie_id)
    if wizard is None:
        return back_to_wizard(movie_id)

    with wizard.lock:
        try:
            wizard.toggle_seat(seat_id)
        except BookingFlowError as exc:
            flash(str(exc), "warning")
    return back_to_wizard(movie_id)


@booking_bp.route("/booking/<movie_id>/proceed", methods=["POST"])
@login_required_view
def proceed_to_payment(movie_id):
    wizard = current_wizard(movie_id)
    if wizard is None:
        return back_to_wizard(movie_id)

    with wizard.lock:
        try:
            wizard.proceed_to_payment()
        except BookingFlowError as exc:
            flash(str(exc), "warning")
    return back_to_wizard(movie_id)


@booking_bp.route("/booking/<movie_id>/back", methods=["POST"])
@login_required_view
def step_back(movie_id):
    wizard = current_wizard(movie_id)
    if wizard is not None:
        with wizard.lock:
            wizard.back()
    return back_to_wizard(movie_id)


@booking_bp.route("/booking/<movie_id>/submit", methods=["POST"])
@login_required_view
def submit_booking(movie_id):
    wizard = current_wizard(movie_id)
    if wizard is None:
        return back_to_wizard(movie_id)

    # A double-clicked submit waits here and then finds the wizard completed
    with wizard.lock:
        try:
            wizard.submit(g.api, cancel=g.cancel)
        except ApiError as exc:
            current_app.logger.error("Error completing booking: %s", exc.message)
            flash("Something went wrong while booking. Please try again.", "error")
            return back_to_wizard(movie_id)
        except BookingFlowError as exc:
            flash(str(exc), "warning")
            return back_to_wizard(movie_id)

    discard_wizard()
    flash("Booking completed!", "success")
    return redirect(url_for("home"))
