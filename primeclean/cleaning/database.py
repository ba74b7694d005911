"""Database utilities for the PrimeClean booking platform."""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Iterable


SCHEMA_VERSION = 1

DEFAULT_SERVICES = (
    {
        "name": "Basic House Cleaning",
        "description": "Dusting, vacuuming, kitchen and bathroom wipe-down",
        "base_price": 120.0,
        "duration_hours": 2.0,
        "service_type": "residential",
    },
    {
        "name": "Deep House Cleaning",
        "description": "Top-to-bottom clean including appliances and baseboards",
        "base_price": 150.0,
        "duration_hours": 4.0,
        "service_type": "residential",
    },
    {
        "name": "Office Cleaning",
        "description": "Workstations, common areas and restrooms",
        "base_price": 200.0,
        "duration_hours": 3.0,
        "service_type": "commercial",
    },
)


def dict_factory(cursor: sqlite3.Cursor, row: sqlite3.Row) -> dict:
    """Return rows as dictionaries rather than tuples."""

    return {description[0]: row[idx] for idx, description in enumerate(cursor.description)}


def get_connection(path: str | Path) -> sqlite3.Connection:
    """Return a SQLite connection with sensible defaults.

    The connection runs in autocommit mode; callers open explicit
    transactions for anything that writes.
    """

    conn = sqlite3.connect(path, check_same_thread=False, isolation_level=None)
    conn.row_factory = dict_factory
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA busy_timeout = 5000")
    return conn


def initialize_database(conn: sqlite3.Connection) -> None:
    """Create the database schema if it does not yet exist."""

    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS metadata (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            email TEXT UNIQUE NOT NULL,
            first_name TEXT NOT NULL,
            last_name TEXT NOT NULL,
            phone TEXT,
            role TEXT NOT NULL DEFAULT 'client',
            created_at TEXT DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS services (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            description TEXT,
            base_price REAL NOT NULL CHECK (base_price >= 0),
            duration_hours REAL NOT NULL DEFAULT 0 CHECK (duration_hours >= 0),
            service_type TEXT NOT NULL DEFAULT 'residential',
            created_at TEXT DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS bookings (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER,
            service_id INTEGER NOT NULL,
            scheduled_date TEXT NOT NULL,
            scheduled_time TEXT NOT NULL,
            address TEXT NOT NULL,
            square_meters REAL NOT NULL CHECK (square_meters > 0),
            special_instructions TEXT,
            total_price REAL NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending' CHECK (
                status IN ('pending', 'confirmed', 'in_progress', 'completed', 'cancelled')
            ),
            invoice_id INTEGER,
            guest_name TEXT,
            guest_email TEXT,
            guest_phone TEXT,
            is_guest_booking INTEGER NOT NULL DEFAULT 0,
            billing_address TEXT,
            billing_city TEXT,
            billing_state TEXT,
            billing_zip_code TEXT,
            billing_country TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            CHECK ((user_id IS NULL) <> (guest_name IS NULL)),
            FOREIGN KEY(user_id) REFERENCES users(id),
            FOREIGN KEY(service_id) REFERENCES services(id),
            FOREIGN KEY(invoice_id) REFERENCES invoices(id)
        );

        CREATE INDEX IF NOT EXISTS idx_bookings_scheduled_date ON bookings(scheduled_date);

        CREATE TABLE IF NOT EXISTS invoices (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            invoice_number TEXT UNIQUE NOT NULL,
            booking_id INTEGER,
            status TEXT NOT NULL DEFAULT 'pending' CHECK (
                status IN ('pending', 'paid', 'overdue', 'cancelled')
            ),
            customer_name TEXT NOT NULL,
            customer_email TEXT,
            customer_phone TEXT,
            billing_address TEXT,
            service_address TEXT,
            service_name TEXT NOT NULL,
            service_date TEXT NOT NULL,
            service_time TEXT,
            service_duration REAL,
            square_meters REAL,
            subtotal REAL NOT NULL,
            tax_rate REAL NOT NULL,
            tax_exempt INTEGER NOT NULL DEFAULT 0,
            tax_exempt_reason TEXT,
            tax_amount REAL NOT NULL,
            total_amount REAL NOT NULL,
            issue_date TEXT NOT NULL,
            due_date TEXT NOT NULL,
            payment_date TEXT,
            payment_method TEXT,
            payment_reference TEXT,
            tax_id TEXT,
            notes TEXT,
            terms TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            CHECK (tax_exempt = 0 OR tax_amount = 0),
            FOREIGN KEY(booking_id) REFERENCES bookings(id)
        );

        CREATE UNIQUE INDEX IF NOT EXISTS idx_invoices_booking_id ON invoices(booking_id);
        """
    )

    set_metadata(conn, "schema_version", SCHEMA_VERSION)


def set_metadata(conn: sqlite3.Connection, key: str, value: int | str | dict | list) -> None:
    if isinstance(value, (dict, list)):
        value = json.dumps(value)
    conn.execute(
        "INSERT INTO metadata(key, value) VALUES (?, ?)\n         ON CONFLICT(key) DO UPDATE SET value = excluded.value",
        (key, str(value)),
    )


def get_metadata(conn: sqlite3.Connection, key: str, default: str | None = None) -> str | None:
    row = conn.execute("SELECT value FROM metadata WHERE key = ?", (key,)).fetchone()
    return row["value"] if row else default


def next_sequence(conn: sqlite3.Connection, name: str) -> int:
    """Increment and return a named counter.

    Must run inside the caller's write transaction so that the number and the
    row that uses it are committed together.
    """

    current = int(get_metadata(conn, f"seq_{name}", "0"))
    set_metadata(conn, f"seq_{name}", current + 1)
    return current + 1


def import_services(conn: sqlite3.Connection, services: Iterable[dict]) -> int:
    """Load catalog rows maintained outside the booking engine."""

    rows = [
        (
            service["name"],
            service.get("description"),
            service["base_price"],
            service.get("duration_hours", 0),
            service.get("service_type", "residential"),
        )
        for service in services
    ]
    conn.execute("BEGIN")
    try:
        conn.executemany(
            """
            INSERT INTO services(name, description, base_price, duration_hours, service_type)
            VALUES (?, ?, ?, ?, ?)
            """,
            rows,
        )
    except sqlite3.Error:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")
    return len(rows)


def seed_default_services(conn: sqlite3.Connection) -> None:
    """Install the default catalog into an empty database."""

    row = conn.execute("SELECT COUNT(*) AS total FROM services").fetchone()
    if row["total"] == 0:
        import_services(conn, DEFAULT_SERVICES)
