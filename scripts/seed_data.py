#!/usr/bin/env python
"""
Seed Data
Script to seed the database with a demo patient, medications, schedules and event history
"""

import sys
import os
import argparse
import asyncio
import logging
import random
from datetime import timedelta
from typing import List

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import SessionLocal, init_db, drop_db
from models import Patient, Medication, Schedule, MedicationLogEvent, LogStatus
from services.schedule_service import schedule_service
from services.event_log_service import event_log_service
from services.adherence_service import adherence_service
from tools.clock import utcnow, get_zone, to_local, local_to_utc
from tools.time_slots import parse_time, mask_includes


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEMO_PHONE = "+15551234567"


def seed_demo_patient(db) -> Patient:
    """Create the demo patient"""
    existing = db.query(Patient).filter(Patient.phone == DEMO_PHONE).first()
    if existing:
        logger.info("Demo patient already exists")
        return existing

    patient = Patient(
        first_name="John",
        last_name="Doe",
        phone=DEMO_PHONE,
        phone_verified=True,
        timezone="America/New_York",
        morning_time="08:00:00",
        evening_time="19:00:00",
        preferred_reminder_minutes=15,
        is_active=True
    )
    db.add(patient)
    db.flush()

    logger.info(f"Created patient: {patient.full_name} (ID: {patient.id})")
    return patient


def seed_medications(db, patient_id: int) -> List[Medication]:
    """Add medications with a mix of frequency labels"""
    medications_data = [
        {"name": "Metformin", "dosage": "1000mg", "time_of_day": "morning, evening"},
        {"name": "Lisinopril", "dosage": "20mg", "time_of_day": "morning"},
        {"name": "Atorvastatin", "dosage": "40mg", "time_of_day": "bedtime"},
        {"name": "Vitamin D", "dosage": "2000 IU", "time_of_day": "custom (13:30:00)", "days_of_week_mask": 0b0100010},
    ]

    medications = []
    for data in medications_data:
        medication = Medication(patient_id=patient_id, active=True, **data)
        db.add(medication)
        medications.append(medication)
    db.flush()

    logger.info(f"Added {len(medications)} medications")
    return medications


def seed_event_history(db, patient: Patient, days: int, taken_rate: float) -> int:
    """Record TAKEN/MISSED events for each scheduled dose of the past days"""
    zone = get_zone(patient.timezone)
    today = to_local(utcnow(), zone).date()
    schedules = db.query(Schedule).filter(Schedule.patient_id == patient.id).all()

    created = 0
    for offset in range(days, 0, -1):
        day = today - timedelta(days=offset)
        for schedule in schedules:
            if not mask_includes(schedule.days_of_week_mask, day):
                continue
            scheduled = local_to_utc(day, parse_time(schedule.time_of_day), zone)
            status = LogStatus.TAKEN if random.random() < taken_rate else LogStatus.MISSED
            event_log_service.record_event(
                db,
                patient_id=patient.id,
                medication_id=schedule.medication_id,
                schedule_id=schedule.id,
                event_time=scheduled,
                status=status,
                source="seed",
                raw_evidence={"seeded": True},
                recorded_at=scheduled
            )
            created += 1
        # commit per day to avoid one huge transaction
        db.commit()
    return created


def seed_all(clear_existing: bool = False, days: int = 30, taken_rate: float = 0.85):
    """Seed all demo data"""
    if clear_existing:
        drop_db()
    init_db()

    db = SessionLocal()
    try:
        patient = seed_demo_patient(db)
        medications = seed_medications(db, patient.id)
        for medication in medications:
            schedule_service._replace_schedules(db, medication)
        db.commit()

        events = seed_event_history(db, patient, days, taken_rate)
        score = asyncio.run(adherence_service.refresh_compliance_score(patient.id, db=db))

        print("\n" + "=" * 60)
        print("Seeding Complete!")
        print("=" * 60)
        print(f"  Patients: {db.query(Patient).count()}")
        print(f"  Medications: {db.query(Medication).count()}")
        print(f"  Schedules: {db.query(Schedule).count()}")
        print(f"  Events: {db.query(MedicationLogEvent).count()} ({events} new)")
        print(f"\nDemo Patient ID: {patient.id}")
        print(f"Demo Patient Adherence: {score.score}% ({score.taken_doses}/{score.expected_doses})")

    except Exception as e:
        db.rollback()
        logger.error(f"Error during seeding: {e}")
        raise
    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(
        description="Seed the database with demo data"
    )
    parser.add_argument(
        "--clear",
        action="store_true",
        help="Drop all tables before seeding"
    )
    parser.add_argument(
        "--days",
        type=int,
        default=30,
        help="Days of event history to generate"
    )
    parser.add_argument(
        "--taken-rate",
        type=float,
        default=0.85,
        help="Probability that a seeded dose is TAKEN"
    )

    args = parser.parse_args()

    seed_all(clear_existing=args.clear, days=args.days, taken_rate=args.taken_rate)


if __name__ == "__main__":
    main()
