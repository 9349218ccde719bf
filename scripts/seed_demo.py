#!/usr/bin/env python3
"""Seed the database with a demo staff member, services and a weekly schedule."""
import sys
from pathlib import Path

# Add the parent directory to the path so we can import the app
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

from salonbook import create_app
from salonbook.models import Service, Staff

SAMPLE_SERVICES = [
    {"name": "Haircut", "description": "Cut and blow-dry", "price_cents": 3000, "duration_minutes": 30},
    {"name": "Colour", "description": "Full colour treatment", "price_cents": 7500, "duration_minutes": 90},
    {"name": "Consultation", "description": "Style consultation", "price_cents": 1000, "duration_minutes": 15},
]

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday")


def seed_demo():
    """Create the demo data unless a staff member already exists."""
    load_dotenv()
    app = create_app()
    core = app.extensions["salonbook"]

    with app.app_context():
        if Staff.query.first():
            print("Staff already present, nothing to seed")
            return

        staff_id = core.store.create(
            "staff",
            {
                "first_name": "Alex",
                "last_name": "Demo",
                "email": "alex@example.com",
                "employment_type": "employee",
            },
        )
        for data in SAMPLE_SERVICES:
            core.store.create("services", data)
        print(f"Added staff {staff_id} and {Service.query.count()} services")

        for day in WEEKDAYS:
            core.availability.create_window(
                {"staff_id": staff_id, "day_of_week": day, "start_time": "09:00", "end_time": "13:00"}
            )
            core.availability.create_window(
                {"staff_id": staff_id, "day_of_week": day, "start_time": "14:00", "end_time": "18:00"}
            )
        print(f"Added weekly availability for {len(WEEKDAYS)} days")


if __name__ == "__main__":
    seed_demo()
