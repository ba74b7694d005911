"""Flask application exposing the cleaning system as a JSON API."""

from __future__ import annotations

import datetime as dt
import logging
import time
from typing import Any, Callable

from flask import Flask, Response, g, jsonify, request

from primeclean.cleaning.config import AppConfig, load_config
from primeclean.cleaning.dates import month_bounds, parse_date, parse_range
from primeclean.cleaning.errors import (
    CleaningError,
    Conflict,
    InvalidTransition,
    NotEligible,
    NotFound,
    ValidationError,
)
from primeclean.cleaning.filters import BookingFilter, InvoiceFilter, ReportFilter
from primeclean.cleaning.system import CleaningSystem, GuestPayer, MemberPayer

logger = logging.getLogger(__name__)

TRUTHY = {"1", "true", "yes", "on"}
FALSY = {"0", "false", "no", "off", ""}


def _json_body(*, required: bool = True) -> dict:
    body = request.get_json(silent=True)
    if body is None and not required and not request.get_data():
        return {}
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def _as_int(value: Any, field: str) -> int:
    if value is None or value == "":
        raise ValidationError(f"{field} is required")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a whole number") from None


def _as_flag(value: Any, field: str) -> bool:
    if value is None or isinstance(value, bool):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in TRUTHY:
            return True
        if text in FALSY:
            return False
    raise ValidationError(f"{field} must be true or false")


def _booking_fields(body: dict) -> dict:
    return {
        "service_id": _as_int(body.get("service_id"), "service_id"),
        "scheduled_date": body.get("scheduled_date"),
        "scheduled_time": body.get("scheduled_time"),
        "address": body.get("address"),
        "square_meters": body.get("square_meters"),
        "special_instructions": body.get("special_instructions"),
    }


def create_app(
    database_path: str | None = None,
    settings: AppConfig | None = None,
    *,
    clock: Callable[[], dt.datetime] | None = None,
) -> Flask:
    """Create and configure the Flask application."""

    settings = settings or load_config()
    app = Flask(__name__)
    app.config["SECRET_KEY"] = settings.secret_key

    system = CleaningSystem(
        database_path or settings.database_path,
        business=settings.business,
        billing=settings.billing,
        clock=clock,
    )
    app.extensions["cleaning_system"] = system

    # ------------------------------------------------------------------
    # Request logging & errors
    # ------------------------------------------------------------------
    @app.before_request
    def start_timer() -> None:
        g.started = time.perf_counter()

    @app.after_request
    def log_request(response: Response) -> Response:
        elapsed = (time.perf_counter() - g.get("started", time.perf_counter())) * 1000
        logger.info(
            "%s %s -> %s (%.1f ms)", request.method, request.path, response.status_code, elapsed
        )
        return response

    def error_response(exc: CleaningError, status: int, **extra: Any) -> tuple[Response, int]:
        return jsonify({"error": str(exc), "code": exc.code, **extra}), status

    @app.errorhandler(ValidationError)
    def handle_validation(exc: ValidationError) -> Any:
        return error_response(exc, 400)

    @app.errorhandler(NotFound)
    def handle_not_found(exc: NotFound) -> Any:
        return error_response(exc, 404)

    @app.errorhandler(InvalidTransition)
    def handle_invalid_transition(exc: InvalidTransition) -> Any:
        return error_response(exc, 409)

    @app.errorhandler(NotEligible)
    def handle_not_eligible(exc: NotEligible) -> Any:
        return error_response(exc, 422)

    @app.errorhandler(Conflict)
    def handle_conflict(exc: Conflict) -> Any:
        return error_response(exc, 409, invoice_id=exc.invoice_id)

    # ------------------------------------------------------------------
    # Public
    # ------------------------------------------------------------------
    @app.get("/services")
    def services() -> Any:
        return jsonify({"services": system.list_services()})

    @app.get("/quote/estimate")
    def quote_estimate() -> Any:
        service_id = _as_int(request.args.get("service_id"), "service_id")
        return jsonify(system.estimate_price(service_id, request.args.get("square_meters")))

    @app.post("/bookings")
    def create_member_booking() -> Any:
        body = _json_body()
        payer = MemberPayer(user_id=_as_int(body.get("user_id"), "user_id"))
        booking = system.create_booking(payer=payer, **_booking_fields(body))
        return jsonify({"booking": booking}), 201

    @app.get("/bookings/<int:booking_id>")
    def booking_detail(booking_id: int) -> Any:
        return jsonify({"booking": system.get_booking(booking_id)})

    @app.post("/guest/booking")
    def create_guest_booking() -> Any:
        body = _json_body()
        payer = GuestPayer(
            name=body.get("guest_name"),
            email=body.get("guest_email"),
            phone=body.get("guest_phone"),
            billing_address=body.get("billing_address"),
            billing_city=body.get("billing_city"),
            billing_state=body.get("billing_state"),
            billing_zip_code=body.get("billing_zip_code"),
            billing_country=body.get("billing_country") or settings.business.country,
        )
        booking = system.create_booking(payer=payer, **_booking_fields(body))
        return jsonify({"booking": booking}), 201

    @app.get("/available-slots")
    def available_slots() -> Any:
        raw = request.args.get("date")
        day = parse_date(raw) if raw else system.today() + dt.timedelta(days=1)
        return jsonify({"date": day.isoformat(), "available_slots": system.available_slots(day)})

    # ------------------------------------------------------------------
    # Admin: bookings
    # ------------------------------------------------------------------
    @app.get("/admin/bookings")
    def admin_bookings() -> Any:
        filters = BookingFilter(
            status=request.args.get("status") or None,
            recent=request.args.get("recent", "").lower() in TRUTHY,
            order_by=request.args.get("order") or None,
        )
        return jsonify({"bookings": system.list_bookings(filters)})

    @app.put("/admin/bookings/<int:booking_id>")
    def admin_update_booking(booking_id: int) -> Any:
        body = _json_body()
        status = body.get("status")
        if not status:
            raise ValidationError("status is required")
        return jsonify({"booking": system.update_status(booking_id, status)})

    # ------------------------------------------------------------------
    # Admin: invoices
    # ------------------------------------------------------------------
    @app.post("/admin/invoices/from-booking/<int:booking_id>")
    def admin_invoice_from_booking(booking_id: int) -> Any:
        body = _json_body(required=False)
        invoice = system.generate_from_booking(
            booking_id,
            tax_exempt=_as_flag(body.get("tax_exempt"), "tax_exempt"),
            tax_exempt_reason=body.get("tax_exempt_reason"),
            notes=body.get("notes"),
        )
        return (
            jsonify(
                {
                    "invoice_id": invoice["id"],
                    "invoice_number": invoice["invoice_number"],
                    "invoice": invoice,
                }
            ),
            201,
        )

    @app.post("/admin/invoices/custom")
    def admin_custom_invoice() -> Any:
        body = _json_body()
        invoice = system.generate_custom(
            customer_name=body.get("customer_name"),
            customer_email=body.get("customer_email"),
            customer_phone=body.get("customer_phone"),
            billing_address=body.get("billing_address"),
            service_address=body.get("service_address"),
            service_name=body.get("service_name"),
            service_date=body.get("service_date"),
            service_time=body.get("service_time"),
            total_amount=body.get("total_amount"),
            tax_exempt=_as_flag(body.get("tax_exempt"), "tax_exempt"),
            tax_exempt_reason=body.get("tax_exempt_reason"),
            due_days=body.get("due_days"),
            notes=body.get("notes"),
        )
        return (
            jsonify(
                {
                    "invoice_id": invoice["id"],
                    "invoice_number": invoice["invoice_number"],
                    "invoice": invoice,
                }
            ),
            201,
        )

    @app.get("/admin/invoices")
    def admin_invoices() -> Any:
        filters = InvoiceFilter(status=request.args.get("status") or None)
        return jsonify({"invoices": system.list_invoices(filters)})

    @app.get("/admin/invoices/<int:invoice_id>")
    def admin_invoice_detail(invoice_id: int) -> Any:
        return jsonify({"invoice": system.get_invoice(invoice_id)})

    @app.put("/admin/invoices/<int:invoice_id>/mark-paid")
    def admin_mark_paid(invoice_id: int) -> Any:
        body = _json_body()
        invoice = system.mark_paid(
            invoice_id,
            payment_method=body.get("payment_method"),
            payment_reference=body.get("payment_reference"),
        )
        return jsonify({"invoice": invoice})

    @app.put("/admin/invoices/<int:invoice_id>/cancel")
    def admin_cancel_invoice(invoice_id: int) -> Any:
        return jsonify({"invoice": system.cancel_invoice(invoice_id)})

    # ------------------------------------------------------------------
    # Admin: calendar & reports
    # ------------------------------------------------------------------
    def requested_range(start_key: str, end_key: str) -> tuple[dt.date, dt.date]:
        start = request.args.get(start_key)
        end = request.args.get(end_key)
        if not start and not end:
            return month_bounds(system.today())
        return parse_range(start, end)

    @app.get("/admin/calendar/events")
    def admin_calendar_events() -> Any:
        start, end = requested_range("start", "end")
        return jsonify({"events": system.events_in_range(start, end)})

    @app.get("/admin/calendar/day/<day>")
    def admin_calendar_day(day: str) -> Any:
        return jsonify({"schedule": system.day_detail(day)})

    @app.get("/admin/calendar/stats")
    def admin_calendar_stats() -> Any:
        return jsonify({"stats": system.range_stats(request.args.get("period") or None)})

    @app.get("/admin/reports")
    def admin_reports() -> Any:
        start, end = requested_range("start_date", "end_date")
        filters = ReportFilter(
            start_date=start,
            end_date=end,
            client=request.args.get("client") or None,
        )
        return jsonify(system.report(filters))

    return app
