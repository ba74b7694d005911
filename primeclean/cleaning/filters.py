"""Query filters accepted by the listing, invoice and reporting operations."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass

BOOKING_ORDERINGS = ("scheduled", "created_desc")


@dataclass(frozen=True)
class BookingFilter:
    status: str | None = None
    recent: bool = False
    user_id: int | None = None
    order_by: str | None = None


@dataclass(frozen=True)
class InvoiceFilter:
    status: str | None = None
    booking_id: int | None = None


@dataclass(frozen=True)
class ReportFilter:
    start_date: dt.date
    end_date: dt.date
    client: str | None = None
