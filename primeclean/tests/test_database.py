import sqlite3
import unittest

from primeclean.cleaning import database


class DatabaseTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.conn = database.get_connection(":memory:")
        database.initialize_database(self.conn)

    def tearDown(self) -> None:
        self.conn.close()

    def test_schema_version_recorded(self) -> None:
        self.assertEqual(database.get_metadata(self.conn, "schema_version"), str(database.SCHEMA_VERSION))
        self.assertIsNone(database.get_metadata(self.conn, "missing"))

    def test_sequences_increment(self) -> None:
        self.assertEqual(database.next_sequence(self.conn, "invoice_2025"), 1)
        self.assertEqual(database.next_sequence(self.conn, "invoice_2025"), 2)
        self.assertEqual(database.next_sequence(self.conn, "invoice_2026"), 1)

    def test_seed_and_import_services(self) -> None:
        database.seed_default_services(self.conn)
        database.seed_default_services(self.conn)
        count = self.conn.execute("SELECT COUNT(*) AS total FROM services").fetchone()["total"]
        self.assertEqual(count, len(database.DEFAULT_SERVICES))

        added = database.import_services(
            self.conn,
            [{"name": "Move-out Cleaning", "base_price": 220, "duration_hours": 5}],
        )
        self.assertEqual(added, 1)
        row = self.conn.execute(
            "SELECT * FROM services WHERE name = 'Move-out Cleaning'"
        ).fetchone()
        self.assertEqual(row["service_type"], "residential")

    def test_invalid_import_rolls_back(self) -> None:
        with self.assertRaises(sqlite3.IntegrityError):
            database.import_services(
                self.conn,
                [
                    {"name": "Window Cleaning", "base_price": 80},
                    {"name": "Broken", "base_price": -1},
                ],
            )
        count = self.conn.execute("SELECT COUNT(*) AS total FROM services").fetchone()["total"]
        self.assertEqual(count, 0)

    def test_booking_must_have_member_or_guest(self) -> None:
        database.seed_default_services(self.conn)
        with self.assertRaises(sqlite3.IntegrityError):
            self.conn.execute(
                """
                INSERT INTO bookings(service_id, scheduled_date, scheduled_time, address,
                                     square_meters, total_price, created_at, updated_at)
                VALUES (1, '2025-10-03', '09:00', '12 Ocean Drive', 100, 150, 'now', 'now')
                """
            )

    def test_one_invoice_per_booking(self) -> None:
        database.seed_default_services(self.conn)
        self.conn.execute(
            """
            INSERT INTO bookings(service_id, scheduled_date, scheduled_time, address, square_meters,
                                 total_price, status, guest_name, created_at, updated_at)
            VALUES (1, '2025-10-03', '09:00', '12 Ocean Drive', 100, 150, 'completed', 'Alex', 'now', 'now')
            """
        )
        insert = """
            INSERT INTO invoices(invoice_number, booking_id, customer_name, service_name, service_date,
                                 subtotal, tax_rate, tax_amount, total_amount, issue_date, due_date,
                                 created_at, updated_at)
            VALUES (?, ?, 'Alex', 'Basic', '2025-10-03', 150, 0.07, 10.5, 160.5,
                    '2025-10-03', '2025-11-02', 'now', 'now')
        """
        self.conn.execute(insert, ("PP-2025-00001", 1))
        with self.assertRaises(sqlite3.IntegrityError):
            self.conn.execute(insert, ("PP-2025-00002", 1))
        self.conn.execute(insert, ("PP-2025-00003", None))
        self.conn.execute(insert, ("PP-2025-00004", None))


if __name__ == "__main__":
    unittest.main()
