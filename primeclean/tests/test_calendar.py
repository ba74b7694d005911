import datetime as dt
import os
import time
import unittest

from primeclean.cleaning.system import CleaningSystem, MemberPayer, ValidationError


class ScheduleTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.now = dt.datetime(2025, 10, 1, 10, 0)
        self.system = CleaningSystem(clock=lambda: self.now)
        self.services = {service["name"]: service for service in self.system.list_services()}
        self.customer = self.system.register_customer(
            email="jordan@example.com", first_name="Jordan", last_name="River"
        )

    def tearDown(self) -> None:
        self.system.close()

    def book(self, day: str, at: str, service: str = "Deep House Cleaning", **extra) -> dict:
        return self.system.create_booking(
            service_id=self.services[service]["id"],
            scheduled_date=day,
            scheduled_time=at,
            address="12 Ocean Drive, Miami",
            square_meters=extra.pop("square_meters", 100),
            payer=MemberPayer(self.customer["id"]),
            **extra,
        )

    def test_late_booking_stays_on_its_date(self) -> None:
        booking = self.book("2025-10-03", "23:30")

        events = self.system.events_in_range("2025-10-03", "2025-10-03")
        self.assertEqual([event["id"] for event in events], [booking["id"]])
        event = events[0]
        self.assertEqual(event["date"], "2025-10-03")
        self.assertEqual(event["start"], "2025-10-03T23:30:00")
        self.assertEqual(event["end"], "2025-10-04T03:30:00")
        self.assertEqual(event["title"], "Deep House Cleaning - Jordan River")
        self.assertEqual(event["color"], "#FFA500")
        self.assertEqual(self.system.events_in_range("2025-10-04", "2025-10-04"), [])
        self.assertEqual(self.system.events_in_range("2025-10-02", "2025-10-02"), [])

    @unittest.skipUnless(hasattr(time, "tzset"), "requires time.tzset")
    def test_bucketing_ignores_process_time_zone(self) -> None:
        early = self.book("2025-10-03", "00:15")
        late = self.book("2025-10-03", "23:45")
        original = os.environ.get("TZ")
        try:
            for zone in ("UTC", "Pacific/Kiritimati", "America/Los_Angeles", "Pacific/Pago_Pago"):
                os.environ["TZ"] = zone
                time.tzset()
                events = self.system.events_in_range("2025-10-03", "2025-10-03")
                self.assertEqual([event["id"] for event in events], [early["id"], late["id"]], zone)
                self.assertEqual({event["date"] for event in events}, {"2025-10-03"})
                self.assertEqual(self.system.day_detail("2025-10-03")["stats"]["total_bookings"], 2)
        finally:
            if original is None:
                os.environ.pop("TZ", None)
            else:
                os.environ["TZ"] = original
            time.tzset()

    def test_range_is_inclusive(self) -> None:
        first = self.book("2025-10-01", "09:00")
        last = self.book("2025-10-31", "17:00")
        self.book("2025-11-01", "09:00")
        events = self.system.events_in_range(dt.date(2025, 10, 1), "2025-10-31")
        self.assertEqual([event["id"] for event in events], [first["id"], last["id"]])

    def test_invalid_ranges(self) -> None:
        with self.assertRaises(ValidationError):
            self.system.events_in_range("2025-10-05", "2025-10-01")
        with self.assertRaises(ValidationError):
            self.system.events_in_range("2025-13-01", "2025-10-01")
        with self.assertRaises(ValidationError):
            self.system.events_in_range(None, "2025-10-01")

    def test_status_colour_follows_booking(self) -> None:
        booking = self.book("2025-10-03", "09:00")
        self.system.update_status(booking["id"], "confirmed")
        event = self.system.events_in_range("2025-10-03", "2025-10-03")[0]
        self.assertEqual(event["status"], "confirmed")
        self.assertEqual(event["color"], "#4CAF50")

    def test_day_detail(self) -> None:
        self.book("2025-10-03", "13:00")
        self.book("2025-10-03", "09:00", service="Basic House Cleaning")
        self.book("2025-10-04", "09:00")

        detail = self.system.day_detail("2025-10-03")
        self.assertEqual(detail["date"], "2025-10-03")
        events = detail["events"]
        self.assertEqual(
            [event["start"] for event in events], ["2025-10-03T09:00:00", "2025-10-03T13:00:00"]
        )
        self.assertEqual(events[0]["end"], "2025-10-03T11:00:00")
        self.assertEqual(events[0]["title"], "Basic House Cleaning - Jordan River")
        self.assertEqual(events[0]["color"], "#FFA500")
        self.assertEqual(detail["stats"], {"total_bookings": 2, "revenue": 270.0, "avg_duration": 3.0})

        empty = self.system.day_detail("2025-10-10")
        self.assertEqual(empty["events"], [])
        self.assertEqual(empty["stats"], {"total_bookings": 0, "revenue": 0.0, "avg_duration": 0.0})

    def test_monthly_stats(self) -> None:
        done = self.book("2025-10-03", "09:00")
        self.book("2025-10-20", "09:00", service="Office Cleaning")
        self.book("2025-11-02", "09:00")
        for status in ("confirmed", "in_progress", "completed"):
            self.system.update_status(done["id"], status)

        stats = self.system.range_stats()
        self.assertEqual(stats["period"], "monthly")
        self.assertEqual(stats["start_date"], "2025-10-01")
        self.assertEqual(stats["end_date"], "2025-10-31")
        self.assertEqual(stats["total_bookings"], 2)
        self.assertEqual(stats["revenue"], 350.0)
        self.assertEqual(stats["completed_revenue"], 150.0)
        self.assertEqual(stats["avg_booking_value"], 175.0)
        self.assertEqual(stats["bookings_by_status"], {"completed": 1, "pending": 1})
        self.assertEqual(
            stats["bookings_by_service"], {"Deep House Cleaning": 1, "Office Cleaning": 1}
        )

    def test_period_bounds(self) -> None:
        weekly = self.system.range_stats("weekly")
        self.assertEqual((weekly["start_date"], weekly["end_date"]), ("2025-09-29", "2025-10-05"))
        daily = self.system.range_stats("daily")
        self.assertEqual((daily["start_date"], daily["end_date"]), ("2025-10-01", "2025-10-01"))
        yearly = self.system.range_stats("yearly")
        self.assertEqual((yearly["start_date"], yearly["end_date"]), ("2025-01-01", "2025-12-31"))
        self.assertEqual(yearly["avg_booking_value"], 0.0)
        with self.assertRaises(ValidationError):
            self.system.range_stats("fortnightly")

    def test_available_slots(self) -> None:
        self.book("2025-10-03", "10:00", service="Basic House Cleaning")
        cancelled = self.book("2025-10-03", "14:00", service="Basic House Cleaning")
        self.system.update_status(cancelled["id"], "cancelled")

        slots = {slot["time"]: slot["available"] for slot in self.system.available_slots("2025-10-03")}
        self.assertEqual(list(slots), [f"{hour:02d}:00" for hour in range(9, 18)])
        self.assertTrue(slots["09:00"])
        self.assertFalse(slots["10:00"])
        self.assertFalse(slots["11:00"])
        self.assertTrue(slots["12:00"])
        self.assertTrue(slots["14:00"])


if __name__ == "__main__":
    unittest.main()
