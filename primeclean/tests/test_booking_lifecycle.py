import datetime as dt
import unittest

from primeclean.cleaning.filters import BookingFilter
from primeclean.cleaning.system import (
    CleaningSystem,
    GuestPayer,
    InvalidTransition,
    MemberPayer,
    NotFound,
    ValidationError,
)


class BookingLifecycleTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.now = dt.datetime(2025, 10, 1, 10, 0)
        self.system = CleaningSystem(clock=lambda: self.now)
        self.services = {service["name"]: service for service in self.system.list_services()}
        self.deep = self.services["Deep House Cleaning"]
        self.customer = self.system.register_customer(
            email="Jordan@example.com",
            first_name="Jordan",
            last_name="River",
            phone="305-555-0100",
        )

    def tearDown(self) -> None:
        self.system.close()

    def book(self, **overrides):
        fields = {
            "service_id": self.deep["id"],
            "scheduled_date": "2025-10-03",
            "scheduled_time": "09:00",
            "address": "12 Ocean Drive, Miami",
            "square_meters": 100,
            "payer": MemberPayer(self.customer["id"]),
        }
        fields.update(overrides)
        return self.system.create_booking(**fields)

    def guest(self, **overrides) -> GuestPayer:
        fields = {
            "name": "Alex Guest",
            "email": "alex@example.com",
            "phone": "305-555-0199",
            "billing_address": "1 Bay St",
            "billing_city": "Miami",
            "billing_state": "FL",
            "billing_zip_code": "33101",
        }
        fields.update(overrides)
        return GuestPayer(**fields)

    def test_member_booking_is_pending_and_priced(self) -> None:
        booking = self.book()
        self.assertEqual(booking["status"], "pending")
        self.assertEqual(booking["total_price"], 150.0)
        self.assertEqual(booking["scheduled_date"], "2025-10-03")
        self.assertEqual(booking["customer_name"], "Jordan River")
        self.assertEqual(booking["customer_email"], "jordan@example.com")
        self.assertIsNone(booking["invoice_id"])
        self.assertEqual(booking["is_guest_booking"], 0)

    def test_larger_area_scales_price(self) -> None:
        booking = self.book(square_meters=150)
        self.assertEqual(booking["total_price"], 225.0)

    def test_guest_booking_records_contact_and_billing(self) -> None:
        booking = self.book(payer=self.guest(), scheduled_time="14:30:00")
        self.assertIsNone(booking["user_id"])
        self.assertEqual(booking["customer_name"], "Alex Guest")
        self.assertEqual(booking["billing_city"], "Miami")
        self.assertEqual(booking["billing_country"], "United States")
        self.assertEqual(booking["scheduled_time"], "14:30")
        self.assertEqual(booking["is_guest_booking"], 1)

    def test_guest_booking_requires_billing_details(self) -> None:
        with self.assertRaises(ValidationError):
            self.book(payer=self.guest(billing_city=" "))
        with self.assertRaises(ValidationError):
            self.book(payer=self.guest(email="not-an-email"))

    def test_booking_validation(self) -> None:
        with self.assertRaises(ValidationError):
            self.book(scheduled_date="2025-09-30")
        with self.assertRaises(ValidationError):
            self.book(scheduled_date="03/10/2025")
        with self.assertRaises(ValidationError):
            self.book(scheduled_time="9am")
        with self.assertRaises(ValidationError):
            self.book(square_meters=0)
        with self.assertRaises(ValidationError):
            self.book(square_meters="lots")
        with self.assertRaises(ValidationError):
            self.book(address="")
        with self.assertRaises(NotFound):
            self.book(service_id=999)
        with self.assertRaises(NotFound):
            self.book(payer=MemberPayer(999))
        self.assertEqual(self.system.list_bookings(), [])

    def test_same_day_booking_is_allowed(self) -> None:
        booking = self.book(scheduled_date="2025-10-01")
        self.assertEqual(booking["scheduled_date"], "2025-10-01")

    def test_happy_path_to_completed(self) -> None:
        booking = self.book()
        for status in ("confirmed", "in_progress", "completed"):
            booking = self.system.update_status(booking["id"], status)
            self.assertEqual(booking["status"], status)

    def test_cancel_from_each_active_status(self) -> None:
        for path in ((), ("confirmed",), ("confirmed", "in_progress")):
            booking = self.book()
            for status in path:
                self.system.update_status(booking["id"], status)
            cancelled = self.system.update_status(booking["id"], "cancelled")
            self.assertEqual(cancelled["status"], "cancelled")

    def test_illegal_transition_leaves_booking_unchanged(self) -> None:
        booking = self.book()
        with self.assertRaises(InvalidTransition):
            self.system.update_status(booking["id"], "completed")
        with self.assertRaises(InvalidTransition):
            self.system.update_status(booking["id"], "pending")
        self.assertEqual(self.system.get_booking(booking["id"])["status"], "pending")

    def test_terminal_statuses_reject_changes(self) -> None:
        booking = self.book()
        self.system.update_status(booking["id"], "cancelled")
        with self.assertRaises(InvalidTransition):
            self.system.update_status(booking["id"], "confirmed")

    def test_unknown_status_and_booking(self) -> None:
        booking = self.book()
        with self.assertRaises(ValidationError):
            self.system.update_status(booking["id"], "done")
        with self.assertRaises(NotFound):
            self.system.update_status(999, "confirmed")
        with self.assertRaises(NotFound):
            self.system.get_booking(999)

    def test_list_bookings_filters(self) -> None:
        older = self.book(scheduled_date="2025-10-09")
        self.now = self.now + dt.timedelta(days=2)
        newer = self.book(scheduled_date="2025-10-05", payer=self.guest())
        self.system.update_status(newer["id"], "confirmed")

        self.assertEqual([row["id"] for row in self.system.list_bookings()], [older["id"], newer["id"]])
        recent = self.system.list_bookings(BookingFilter(recent=True))
        self.assertEqual([row["id"] for row in recent], [newer["id"]])
        confirmed = self.system.list_bookings(BookingFilter(status="confirmed"))
        self.assertEqual([row["id"] for row in confirmed], [newer["id"]])
        scheduled = self.system.list_bookings(BookingFilter(order_by="scheduled"))
        self.assertEqual([row["id"] for row in scheduled], [newer["id"], older["id"]])
        mine = self.system.list_bookings(BookingFilter(user_id=self.customer["id"]))
        self.assertEqual([row["id"] for row in mine], [older["id"]])
        with self.assertRaises(ValidationError):
            self.system.list_bookings(BookingFilter(status="archived"))
        with self.assertRaises(ValidationError):
            self.system.list_bookings(BookingFilter(order_by="price"))

    def test_estimate_price_does_not_persist(self) -> None:
        estimate = self.system.estimate_price(self.deep["id"], "150")
        self.assertEqual(estimate["estimate"], 225.0)
        self.assertEqual(estimate["service_name"], "Deep House Cleaning")
        self.assertEqual(self.system.list_bookings(), [])
        with self.assertRaises(ValidationError):
            self.system.estimate_price(self.deep["id"], -5)
        with self.assertRaises(ValidationError):
            self.system.estimate_price(self.deep["id"], 1e30)
        with self.assertRaises(ValidationError):
            self.book(square_meters=1e30)
        self.assertEqual(self.system.list_bookings(), [])

    def test_duplicate_customer_email_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            self.system.register_customer(
                email="jordan@example.com", first_name="J", last_name="R"
            )


if __name__ == "__main__":
    unittest.main()
