"""Core orchestration logic for the PrimeClean booking platform."""

from __future__ import annotations

import datetime as dt
import logging
import sqlite3
import threading
from collections import Counter, defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Iterator

from . import money
from .config import BillingConfig, BusinessConfig
from .database import get_connection, initialize_database, next_sequence, seed_default_services
from .dates import combine, parse_date, parse_range, parse_time, period_bounds
from .errors import CleaningError, Conflict, InvalidTransition, NotEligible, NotFound, ValidationError
from .filters import BOOKING_ORDERINGS, BookingFilter, InvoiceFilter, ReportFilter

__all__ = [
    "BOOKING_STATUSES",
    "BOOKING_TRANSITIONS",
    "CleaningError",
    "CleaningSystem",
    "Conflict",
    "GuestPayer",
    "INVOICE_STATUSES",
    "InvalidTransition",
    "MemberPayer",
    "NotEligible",
    "NotFound",
    "PAYMENT_METHODS",
    "ValidationError",
    "derive_overdue",
    "effective_status",
]

logger = logging.getLogger(__name__)

BOOKING_STATUSES = ("pending", "confirmed", "in_progress", "completed", "cancelled")

BOOKING_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"confirmed", "cancelled"}),
    "confirmed": frozenset({"in_progress", "cancelled"}),
    "in_progress": frozenset({"completed", "cancelled"}),
    "completed": frozenset(),
    "cancelled": frozenset(),
}

INVOICE_STATUSES = ("pending", "paid", "overdue", "cancelled")
OPEN_INVOICE_STATUSES = ("pending", "overdue")
PAYMENT_METHODS = ("cash", "check", "credit_card", "bank_transfer")

STATUS_COLORS = {
    "pending": "#FFA500",
    "confirmed": "#4CAF50",
    "in_progress": "#2196F3",
    "completed": "#8BC34A",
    "cancelled": "#F44336",
}
DEFAULT_STATUS_COLOR = "#9E9E9E"

BUSINESS_HOURS = range(9, 18)
RECENT_WINDOW = dt.timedelta(hours=24)

BOOKING_SELECT = """
    SELECT bookings.*,
           services.name AS service_name,
           services.duration_hours AS duration_hours,
           COALESCE(bookings.guest_name, users.first_name || ' ' || users.last_name) AS customer_name,
           COALESCE(bookings.guest_email, users.email) AS customer_email,
           COALESCE(bookings.guest_phone, users.phone) AS customer_phone
    FROM bookings
    JOIN services ON services.id = bookings.service_id
    LEFT JOIN users ON users.id = bookings.user_id
"""


@dataclass(frozen=True)
class MemberPayer:
    """A registered customer paying for their own booking."""

    user_id: int


@dataclass(frozen=True)
class GuestPayer:
    """Contact and billing details for a booking made without an account."""

    name: str
    email: str
    phone: str
    billing_address: str
    billing_city: str
    billing_state: str
    billing_zip_code: str
    billing_country: str = "United States"


def derive_overdue(invoice: dict, as_of: dt.date) -> bool:
    """Return True when an unpaid invoice is past its due date on ``as_of``."""

    if invoice["status"] == "overdue":
        return True
    return invoice["status"] == "pending" and as_of > dt.date.fromisoformat(invoice["due_date"])


def effective_status(invoice: dict, as_of: dt.date) -> str:
    return "overdue" if derive_overdue(invoice, as_of) else invoice["status"]


def _required(value: Any, field: str) -> str:
    text = str(value).strip() if value is not None else ""
    if not text:
        raise ValidationError(f"{field} is required")
    return text


def _optional(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _area(value: Any) -> float:
    try:
        area = float(value)
    except (TypeError, ValueError):
        raise ValidationError("Square meters must be a number") from None
    if not area > 0 or area == float("inf"):
        raise ValidationError("Square meters must be greater than zero")
    if area > money.MAX_SQUARE_METERS:
        raise ValidationError(f"Square meters must not exceed {money.MAX_SQUARE_METERS}")
    return area


def _billing_block(booking: dict) -> str:
    if not booking.get("billing_address"):
        return booking["address"]
    region = " ".join(
        part for part in (booking.get("billing_state"), booking.get("billing_zip_code")) if part
    )
    parts = (
        booking["billing_address"],
        booking.get("billing_city"),
        region,
        booking.get("billing_country"),
    )
    return ", ".join(part for part in parts if part)


class CleaningSystem:
    """High level façade that exposes booking, billing and reporting behaviours.

    A single SQLite connection is shared by every caller. Writes go through
    :meth:`_transaction`, which serialises them with a re-entrant lock and an
    immediate SQLite transaction; reads take the same lock so they never see
    another thread's uncommitted work.
    """

    def __init__(
        self,
        db_path: str = ":memory:",
        *,
        business: BusinessConfig | None = None,
        billing: BillingConfig | None = None,
        clock: Callable[[], dt.datetime] | None = None,
        seed_catalog: bool = True,
    ) -> None:
        self.business = business or BusinessConfig()
        self.billing = billing or BillingConfig()
        self._clock = clock or dt.datetime.now
        self._lock = threading.RLock()
        self.conn = get_connection(db_path)
        initialize_database(self.conn)
        if seed_catalog:
            seed_default_services(self.conn)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            self.conn.execute("BEGIN IMMEDIATE")
            try:
                yield self.conn
            except BaseException:
                self.conn.execute("ROLLBACK")
                raise
            self.conn.execute("COMMIT")

    def _query(self, sql: str, params: tuple | list = ()) -> list[dict]:
        with self._lock:
            return self.conn.execute(sql, params).fetchall()

    def _query_one(self, sql: str, params: tuple | list = ()) -> dict | None:
        with self._lock:
            return self.conn.execute(sql, params).fetchone()

    def _now(self) -> dt.datetime:
        return self._clock()

    def today(self) -> dt.date:
        return self._now().date()

    def _timestamp(self) -> str:
        return self._now().isoformat(timespec="seconds")

    def _generate_invoice_number(self, conn: sqlite3.Connection, issue_date: dt.date) -> str:
        sequence = next_sequence(conn, f"invoice_{issue_date.year}")
        return f"{self.billing.invoice_prefix}-{issue_date.year}-{sequence:05d}"

    def _default_terms(self) -> str:
        return (
            f"Payment Terms: Net {self.billing.due_days} days\n"
            "Late Payment: 1.5% per month on past due amounts\n"
            "Florida Sales Tax included where applicable\n\n"
            f"{self.business.name}\n"
            "Thank you for your business!"
        )

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------
    def register_customer(
        self,
        *,
        email: str,
        first_name: str,
        last_name: str,
        phone: str | None = None,
        role: str = "client",
    ) -> dict:
        email = _required(email, "Email").lower()
        if "@" not in email:
            raise ValidationError("Email address is not valid")
        try:
            with self._transaction() as conn:
                cur = conn.execute(
                    """
                    INSERT INTO users(email, first_name, last_name, phone, role, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        email,
                        _required(first_name, "First name"),
                        _required(last_name, "Last name"),
                        _optional(phone),
                        role,
                        self._timestamp(),
                    ),
                )
        except sqlite3.IntegrityError as exc:
            raise ValidationError(f"A customer with email {email} already exists") from exc
        return self.get_customer(cur.lastrowid)

    def get_customer(self, user_id: int) -> dict:
        row = self._query_one("SELECT * FROM users WHERE id = ?", (user_id,))
        if not row:
            raise NotFound(f"Customer {user_id} not found")
        return row

    # ------------------------------------------------------------------
    # Service catalog
    # ------------------------------------------------------------------
    def list_services(self) -> list[dict]:
        return self._query("SELECT * FROM services ORDER BY name, id")

    def get_service(self, service_id: int) -> dict:
        row = self._query_one("SELECT * FROM services WHERE id = ?", (service_id,))
        if not row:
            raise NotFound(f"Service {service_id} not found")
        return row

    def _price(self, service: dict, square_meters: float) -> Decimal:
        return money.price_for(
            service["base_price"], square_meters, base_area_sqm=self.billing.base_area_sqm
        )

    def estimate_price(self, service_id: int, square_meters: Any) -> dict:
        """Preview the price of a job without booking it."""

        area = _area(square_meters)
        service = self.get_service(service_id)
        return {
            "service_id": service["id"],
            "service_name": service["name"],
            "square_meters": area,
            "estimate": money.as_float(self._price(service, area)),
        }

    # ------------------------------------------------------------------
    # Booking lifecycle
    # ------------------------------------------------------------------
    def _guest_columns(self, payer: GuestPayer) -> dict:
        email = _required(payer.email, "Guest email")
        if "@" not in email:
            raise ValidationError("Guest email address is not valid")
        return {
            "user_id": None,
            "guest_name": _required(payer.name, "Guest name"),
            "guest_email": email,
            "guest_phone": _required(payer.phone, "Guest phone"),
            "is_guest_booking": 1,
            "billing_address": _required(payer.billing_address, "Billing address"),
            "billing_city": _required(payer.billing_city, "Billing city"),
            "billing_state": _required(payer.billing_state, "Billing state"),
            "billing_zip_code": _required(payer.billing_zip_code, "Billing ZIP code"),
            "billing_country": _optional(payer.billing_country) or self.business.country,
        }

    def create_booking(
        self,
        *,
        service_id: int,
        scheduled_date: str | dt.date,
        scheduled_time: str | dt.time,
        address: str,
        square_meters: Any,
        payer: MemberPayer | GuestPayer,
        special_instructions: str | None = None,
    ) -> dict:
        service = self.get_service(service_id)
        day = parse_date(scheduled_date, field="scheduled date")
        if day < self.today():
            raise ValidationError("Scheduled date cannot be in the past")
        start = parse_time(scheduled_time, field="scheduled time")
        area = _area(square_meters)

        if isinstance(payer, MemberPayer):
            self.get_customer(payer.user_id)
            columns: dict[str, Any] = {"user_id": payer.user_id, "is_guest_booking": 0}
        elif isinstance(payer, GuestPayer):
            columns = self._guest_columns(payer)
        else:
            raise ValidationError("A booking needs either a registered customer or guest details")

        now = self._timestamp()
        columns.update(
            service_id=service["id"],
            scheduled_date=day.isoformat(),
            scheduled_time=start,
            address=_required(address, "Address"),
            square_meters=area,
            special_instructions=_optional(special_instructions),
            total_price=money.as_float(self._price(service, area)),
            status="pending",
            created_at=now,
            updated_at=now,
        )
        names = ", ".join(columns)
        placeholders = ", ".join("?" for _ in columns)
        with self._transaction() as conn:
            cur = conn.execute(
                f"INSERT INTO bookings({names}) VALUES ({placeholders})",
                list(columns.values()),
            )
        booking = self.get_booking(cur.lastrowid)
        logger.info(
            "Created booking %s for %s on %s at %s",
            booking["id"],
            booking["service_name"],
            booking["scheduled_date"],
            booking["scheduled_time"],
        )
        return booking

    def get_booking(self, booking_id: int) -> dict:
        row = self._query_one(BOOKING_SELECT + " WHERE bookings.id = ?", (booking_id,))
        if not row:
            raise NotFound(f"Booking {booking_id} not found")
        return row

    def update_status(self, booking_id: int, new_status: str) -> dict:
        if new_status not in BOOKING_STATUSES:
            raise ValidationError(
                f"Invalid status {new_status!r}. Use one of: {', '.join(BOOKING_STATUSES)}"
            )
        with self._transaction() as conn:
            row = conn.execute("SELECT status FROM bookings WHERE id = ?", (booking_id,)).fetchone()
            if not row:
                raise NotFound(f"Booking {booking_id} not found")
            current = row["status"]
            if new_status not in BOOKING_TRANSITIONS[current]:
                raise InvalidTransition(f"Cannot move booking from {current} to {new_status}")
            cur = conn.execute(
                "UPDATE bookings SET status = ?, updated_at = ? WHERE id = ? AND status = ?",
                (new_status, self._timestamp(), booking_id, current),
            )
            if cur.rowcount != 1:
                raise InvalidTransition(f"Booking {booking_id} changed status concurrently")
        logger.info("Booking %s moved from %s to %s", booking_id, current, new_status)
        return self.get_booking(booking_id)

    def list_bookings(self, filters: BookingFilter | None = None) -> list[dict]:
        filters = filters or BookingFilter()
        params: list[Any] = []
        conditions: list[str] = []
        if filters.status:
            if filters.status not in BOOKING_STATUSES:
                raise ValidationError(f"Invalid status filter {filters.status!r}")
            conditions.append("bookings.status = ?")
            params.append(filters.status)
        if filters.recent:
            cutoff = self._now() - RECENT_WINDOW
            conditions.append("bookings.created_at >= ?")
            params.append(cutoff.isoformat(timespec="seconds"))
        if filters.user_id is not None:
            conditions.append("bookings.user_id = ?")
            params.append(filters.user_id)

        if filters.order_by is None:
            order = "bookings.id"
        elif filters.order_by == "scheduled":
            order = "bookings.scheduled_date, bookings.scheduled_time, bookings.id"
        elif filters.order_by == "created_desc":
            order = "bookings.created_at DESC, bookings.id DESC"
        else:
            raise ValidationError(
                f"Invalid ordering {filters.order_by!r}. Use one of: {', '.join(BOOKING_ORDERINGS)}"
            )

        where = ""
        if conditions:
            where = " WHERE " + " AND ".join(conditions)
        return self._query(BOOKING_SELECT + where + " ORDER BY " + order, params)

    # ------------------------------------------------------------------
    # Billing
    # ------------------------------------------------------------------
    @staticmethod
    def _exempt_reason(tax_exempt: bool, reason: str | None) -> str | None:
        if not tax_exempt:
            return None
        reason = _optional(reason)
        if not reason:
            raise ValidationError("A tax exemption reason is required for tax exempt invoices")
        return reason

    def _insert_invoice(self, conn: sqlite3.Connection, columns: dict) -> int:
        names = ", ".join(columns)
        placeholders = ", ".join("?" for _ in columns)
        cur = conn.execute(
            f"INSERT INTO invoices({names}) VALUES ({placeholders})", list(columns.values())
        )
        return cur.lastrowid

    def _amount_columns(self, breakdown: money.TaxBreakdown, reason: str | None) -> dict:
        return {
            "subtotal": money.as_float(breakdown.subtotal),
            "tax_rate": float(breakdown.tax_rate),
            "tax_exempt": int(reason is not None),
            "tax_exempt_reason": reason,
            "tax_amount": money.as_float(breakdown.tax_amount),
            "total_amount": money.as_float(breakdown.total_amount),
        }

    def _create_invoice_for_booking(
        self, booking_id: int, *, reason: str | None, notes: str | None
    ) -> int:
        issue_date = self.today()
        now = self._timestamp()
        with self._transaction() as conn:
            booking = conn.execute(
                BOOKING_SELECT + " WHERE bookings.id = ?", (booking_id,)
            ).fetchone()
            if not booking:
                raise NotFound(f"Booking {booking_id} not found")
            if booking["status"] != "completed":
                raise NotEligible(
                    f"Only completed bookings can be invoiced; booking {booking_id} is {booking['status']}"
                )
            if booking["invoice_id"] is not None:
                raise Conflict(
                    f"Booking {booking_id} already has an invoice",
                    invoice_id=booking["invoice_id"],
                )

            if reason is None:
                breakdown = money.forward_tax(booking["total_price"])
            else:
                breakdown = money.exempt(booking["total_price"])
            columns = {
                "invoice_number": self._generate_invoice_number(conn, issue_date),
                "booking_id": booking_id,
                "status": "pending",
                "customer_name": booking["customer_name"],
                "customer_email": booking["customer_email"],
                "customer_phone": booking["customer_phone"],
                "billing_address": _billing_block(booking),
                "service_address": booking["address"],
                "service_name": booking["service_name"],
                "service_date": booking["scheduled_date"],
                "service_time": booking["scheduled_time"],
                "service_duration": booking["duration_hours"],
                "square_meters": booking["square_meters"],
                **self._amount_columns(breakdown, reason),
                "issue_date": issue_date.isoformat(),
                "due_date": (issue_date + dt.timedelta(days=self.billing.due_days)).isoformat(),
                "tax_id": self.business.tax_id,
                "notes": _optional(notes),
                "terms": self._default_terms(),
                "created_at": now,
                "updated_at": now,
            }
            invoice_id = self._insert_invoice(conn, columns)
            cur = conn.execute(
                "UPDATE bookings SET invoice_id = ?, updated_at = ? WHERE id = ? AND invoice_id IS NULL",
                (invoice_id, now, booking_id),
            )
            if cur.rowcount != 1:
                raise Conflict(f"Booking {booking_id} already has an invoice")
        return invoice_id

    def generate_from_booking(
        self,
        booking_id: int,
        *,
        tax_exempt: bool = False,
        tax_exempt_reason: str | None = None,
        notes: str | None = None,
    ) -> dict:
        """Issue the invoice for a completed booking.

        A booking is invoiced at most once. A repeated request raises
        :class:`Conflict` carrying the id of the invoice that already exists.
        """

        reason = self._exempt_reason(tax_exempt, tax_exempt_reason)
        try:
            invoice_id = self._create_invoice_for_booking(booking_id, reason=reason, notes=notes)
        except Conflict as exc:
            logger.warning(
                "Rejected duplicate invoice for booking %s (existing invoice %s)",
                booking_id,
                exc.invoice_id,
            )
            raise
        except sqlite3.IntegrityError as exc:
            existing = self._query_one(
                "SELECT id FROM invoices WHERE booking_id = ?", (booking_id,)
            )
            if not existing:
                raise
            logger.warning(
                "Rejected duplicate invoice for booking %s (existing invoice %s)",
                booking_id,
                existing["id"],
            )
            raise Conflict(
                f"Booking {booking_id} already has an invoice", invoice_id=existing["id"]
            ) from exc
        invoice = self.get_invoice(invoice_id)
        logger.info(
            "Generated invoice %s for booking %s: total %.2f",
            invoice["invoice_number"],
            booking_id,
            invoice["total_amount"],
        )
        return invoice

    def generate_custom(
        self,
        *,
        customer_name: str,
        service_name: str,
        service_date: str | dt.date,
        total_amount: Any,
        customer_email: str | None = None,
        customer_phone: str | None = None,
        billing_address: str | None = None,
        service_address: str | None = None,
        service_time: str | None = None,
        tax_exempt: bool = False,
        tax_exempt_reason: str | None = None,
        due_days: int | None = None,
        notes: str | None = None,
    ) -> dict:
        """Issue a standalone invoice from a tax-inclusive total."""

        total = money.to_money(total_amount)
        if total <= 0:
            raise ValidationError("Total amount must be greater than zero")
        if due_days is None:
            due_days = self.billing.due_days
        try:
            due_days = int(due_days)
        except (TypeError, ValueError):
            raise ValidationError("Due days must be a whole number") from None
        if due_days < 0:
            raise ValidationError("Due days cannot be negative")
        reason = self._exempt_reason(tax_exempt, tax_exempt_reason)
        breakdown = money.exempt(total) if reason else money.reverse_tax(total)

        service_day = parse_date(service_date, field="service date")
        issue_date = self.today()
        now = self._timestamp()
        columns = {
            "booking_id": None,
            "status": "pending",
            "customer_name": _required(customer_name, "Customer name"),
            "customer_email": _optional(customer_email),
            "customer_phone": _optional(customer_phone),
            "billing_address": _optional(billing_address),
            "service_address": _optional(service_address),
            "service_name": _required(service_name, "Service name"),
            "service_date": service_day.isoformat(),
            "service_time": parse_time(service_time, field="service time") if service_time else None,
            **self._amount_columns(breakdown, reason),
            "issue_date": issue_date.isoformat(),
            "due_date": (issue_date + dt.timedelta(days=due_days)).isoformat(),
            "tax_id": self.business.tax_id,
            "notes": _optional(notes),
            "terms": self._default_terms(),
            "created_at": now,
            "updated_at": now,
        }
        with self._transaction() as conn:
            columns["invoice_number"] = self._generate_invoice_number(conn, issue_date)
            invoice_id = self._insert_invoice(conn, columns)
        logger.info(
            "Generated custom invoice %s for %s: total %.2f",
            columns["invoice_number"],
            columns["customer_name"],
            columns["total_amount"],
        )
        return self.get_invoice(invoice_id)

    def _present(self, invoice: dict, as_of: dt.date | None) -> dict:
        as_of = as_of or self.today()
        invoice["stored_status"] = invoice["status"]
        invoice["status"] = effective_status(invoice, as_of)
        invoice["tax_exempt"] = bool(invoice["tax_exempt"])
        return invoice

    def get_invoice(self, invoice_id: int, *, as_of: dt.date | None = None) -> dict:
        row = self._query_one("SELECT * FROM invoices WHERE id = ?", (invoice_id,))
        if not row:
            raise NotFound(f"Invoice {invoice_id} not found")
        return self._present(row, as_of)

    def list_invoices(
        self, filters: InvoiceFilter | None = None, *, as_of: dt.date | None = None
    ) -> list[dict]:
        """Return invoices newest first; the status filter sees derived overdue."""

        filters = filters or InvoiceFilter()
        if filters.status and filters.status not in INVOICE_STATUSES:
            raise ValidationError(f"Invalid status filter {filters.status!r}")
        params: list[Any] = []
        where = ""
        if filters.booking_id is not None:
            where = " WHERE booking_id = ?"
            params.append(filters.booking_id)
        rows = self._query(
            "SELECT * FROM invoices" + where + " ORDER BY issue_date DESC, id DESC", params
        )
        invoices = [self._present(row, as_of) for row in rows]
        if filters.status:
            invoices = [row for row in invoices if row["status"] == filters.status]
        return invoices

    def _close_invoice(self, invoice_id: int, new_status: str, **fields: Any) -> None:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT invoice_number, status FROM invoices WHERE id = ?", (invoice_id,)
            ).fetchone()
            if not row:
                raise NotFound(f"Invoice {invoice_id} not found")
            if row["status"] not in OPEN_INVOICE_STATUSES:
                raise InvalidTransition(
                    f"Invoice {row['invoice_number']} is already {row['status']}"
                )
            fields.update(status=new_status, updated_at=self._timestamp())
            assignments = ", ".join(f"{name} = ?" for name in fields)
            conn.execute(
                f"UPDATE invoices SET {assignments} WHERE id = ? AND status = ?",
                [*fields.values(), invoice_id, row["status"]],
            )

    def mark_paid(
        self,
        invoice_id: int,
        *,
        payment_method: str,
        payment_reference: str | None = None,
    ) -> dict:
        if payment_method not in PAYMENT_METHODS:
            raise ValidationError(
                f"Invalid payment method {payment_method!r}. Use one of: {', '.join(PAYMENT_METHODS)}"
            )
        self._close_invoice(
            invoice_id,
            "paid",
            payment_date=self._timestamp(),
            payment_method=payment_method,
            payment_reference=_optional(payment_reference),
        )
        logger.info("Invoice %s marked paid by %s", invoice_id, payment_method)
        return self.get_invoice(invoice_id)

    def cancel_invoice(self, invoice_id: int) -> dict:
        self._close_invoice(invoice_id, "cancelled")
        logger.info("Invoice %s cancelled", invoice_id)
        return self.get_invoice(invoice_id)

    # ------------------------------------------------------------------
    # Calendar
    # ------------------------------------------------------------------
    def _bookings_between(self, start: dt.date, end: dt.date) -> list[dict]:
        return self._query(
            BOOKING_SELECT
            + """
            WHERE bookings.scheduled_date BETWEEN ? AND ?
            ORDER BY bookings.scheduled_date, bookings.scheduled_time, bookings.id
            """,
            (start.isoformat(), end.isoformat()),
        )

    @staticmethod
    def _to_event(booking: dict) -> dict:
        start = combine(booking["scheduled_date"], booking["scheduled_time"])
        end = start + dt.timedelta(hours=booking["duration_hours"] or 0)
        return {
            "id": booking["id"],
            "title": f"{booking['service_name']} - {booking['customer_name']}",
            "date": booking["scheduled_date"],
            "start": start.isoformat(timespec="seconds"),
            "end": end.isoformat(timespec="seconds"),
            "status": booking["status"],
            "color": STATUS_COLORS.get(booking["status"], DEFAULT_STATUS_COLOR),
            "service_name": booking["service_name"],
            "customer_name": booking["customer_name"],
            "customer_email": booking["customer_email"],
            "customer_phone": booking["customer_phone"],
            "address": booking["address"],
            "square_meters": booking["square_meters"],
            "total_price": booking["total_price"],
            "special_instructions": booking["special_instructions"],
            "is_guest_booking": bool(booking["is_guest_booking"]),
            "invoice_id": booking["invoice_id"],
        }

    def events_in_range(self, start_date: str | dt.date, end_date: str | dt.date) -> list[dict]:
        """Return calendar events for bookings scheduled within the inclusive range."""

        start, end = parse_range(start_date, end_date)
        return [self._to_event(row) for row in self._bookings_between(start, end)]

    def day_detail(self, date: str | dt.date) -> dict:
        day = parse_date(date)
        bookings = self._bookings_between(day, day)
        durations = [Decimal(str(row["duration_hours"] or 0)) for row in bookings]
        avg_duration = Decimal("0")
        if durations:
            avg_duration = (sum(durations) / len(durations)).quantize(
                money.CENT, rounding=ROUND_HALF_UP
            )
        return {
            "date": day.isoformat(),
            "events": [self._to_event(row) for row in bookings],
            "stats": {
                "total_bookings": len(bookings),
                "revenue": money.as_float(money.money_sum(row["total_price"] for row in bookings)),
                "avg_duration": float(avg_duration),
            },
        }

    def range_stats(self, period: str | None = None) -> dict:
        period = period or "monthly"
        start, end = period_bounds(period, self.today())
        bookings = self._bookings_between(start, end)
        revenue = money.money_sum(row["total_price"] for row in bookings)
        completed = money.money_sum(
            row["total_price"] for row in bookings if row["status"] == "completed"
        )
        average = Decimal("0")
        if bookings:
            average = revenue / len(bookings)
        return {
            "period": period,
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "total_bookings": len(bookings),
            "revenue": money.as_float(revenue),
            "completed_revenue": money.as_float(completed),
            "avg_booking_value": money.as_float(average),
            "bookings_by_status": dict(Counter(row["status"] for row in bookings)),
            "bookings_by_service": dict(Counter(row["service_name"] for row in bookings)),
        }

    def available_slots(self, date: str | dt.date) -> list[dict]:
        """Return the hourly business slots of a day and whether each is free."""

        day = parse_date(date)
        busy = [
            event
            for event in (self._to_event(row) for row in self._bookings_between(day, day))
            if event["status"] != "cancelled"
        ]
        slots = []
        for hour in BUSINESS_HOURS:
            slot_start = dt.datetime.combine(day, dt.time(hour))
            slot_end = slot_start + dt.timedelta(hours=1)
            available = not any(
                slot_start < dt.datetime.fromisoformat(event["end"])
                and slot_end > dt.datetime.fromisoformat(event["start"])
                for event in busy
            )
            slots.append({"time": slot_start.strftime("%H:%M"), "available": available, "duration": 60})
        return slots

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------
    def report(self, filters: ReportFilter, *, as_of: dt.date | None = None) -> dict:
        """Aggregate bookings and invoices for a date range.

        Figures are recomputed from the stored rows on every call.
        """

        start, end = parse_range(filters.start_date, filters.end_date)
        as_of = as_of or self.today()
        needle = (filters.client or "").strip().lower()

        def matches(name: str | None) -> bool:
            return not needle or needle in (name or "").lower()

        bookings = [row for row in self._bookings_between(start, end) if matches(row["customer_name"])]
        invoices = [
            row
            for row in self._query(
                """
                SELECT * FROM invoices
                WHERE service_date BETWEEN ? AND ?
                ORDER BY service_date, id
                """,
                (start.isoformat(), end.isoformat()),
            )
            if matches(row["customer_name"])
        ]

        paid = [row for row in invoices if row["status"] == "paid"]
        unpaid = [row for row in invoices if row["status"] in OPEN_INVOICE_STATUSES]
        overdue = [row for row in unpaid if derive_overdue(row, as_of)]
        pending = [row for row in unpaid if not derive_overdue(row, as_of)]
        billed = [row for row in invoices if row["status"] != "cancelled"]
        total = money.money_sum(row["total_amount"] for row in paid)
        invoiced = money.money_sum(row["total_amount"] for row in billed)
        average = total / len(paid) if paid else Decimal("0")
        collection_rate = Decimal("0")
        if invoiced:
            collection_rate = total / invoiced * 100
        revenue = {
            "total": money.as_float(total),
            "pending": money.as_float(money.money_sum(row["total_amount"] for row in pending)),
            "tax": money.as_float(money.money_sum(row["tax_amount"] for row in paid)),
            "average": money.as_float(average),
            "overdue": money.as_float(money.money_sum(row["total_amount"] for row in overdue)),
            "invoiced": money.as_float(invoiced),
            "paid_count": len(paid),
            "collection_rate": money.as_float(collection_rate),
        }

        services: dict[str, dict] = defaultdict(lambda: {"count": 0, "revenue": Decimal("0.00")})
        clients: dict[str, dict] = defaultdict(
            lambda: {"booking_count": 0, "revenue": Decimal("0.00"), "last_service_date": None}
        )
        for row in bookings:
            amount = money.to_money(row["total_price"])
            service = services[row["service_name"]]
            service["count"] += 1
            service["revenue"] += amount
            client = clients[row["customer_name"]]
            client["booking_count"] += 1
            client["revenue"] += amount
            if client["last_service_date"] is None or row["scheduled_date"] > client["last_service_date"]:
                client["last_service_date"] = row["scheduled_date"]
        for summary in (*services.values(), *clients.values()):
            summary["revenue"] = money.as_float(summary["revenue"])

        return {
            "revenue": revenue,
            "services": dict(services),
            "clients": dict(clients),
            "bookings": bookings,
            "invoices": [self._present(row, as_of) for row in invoices],
            "filters": {
                "start_date": start.isoformat(),
                "end_date": end.isoformat(),
                "client": filters.client,
            },
        }

    def close(self) -> None:
        self.conn.close()
