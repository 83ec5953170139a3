"""
Generate synthetic patients, doctors and clinical history for local dashboards.
Run with: python -m scripts.generate_patients
Run with: python -m scripts.generate_patients --patients 50 --score  (also compute today's risk scores)
"""

import argparse
import asyncio
import random
from datetime import date, datetime, timedelta, timezone
from sqlalchemy import select, func
from app.database import engine, async_session, Base
from app.models import Appointment, DiseaseHistory, Doctor, Patient, Prescription, User
from app.services.health_intelligence_service import health_intelligence_service

FIRST_NAMES = [
    "Emily", "Sarah", "Maria", "Priya", "Fatima", "Yuki", "Elena", "Zara",
    "James", "Robert", "Wei", "Mohammed", "Raj", "Carlos", "Hiroshi", "Kwame",
]

LAST_NAMES = [
    "Johnson", "Garcia", "Chen", "Kim", "Patel", "Nguyen", "Singh", "Ali",
    "Okonkwo", "Tanaka", "Schmidt", "Ivanov", "Santos", "Kowalski", "Park", "Lee",
]

DOCTORS = [
    ("Dr. Smith", "Cardiology"),
    ("Dr. Rao", "Endocrinology"),
    ("Dr. Alvarez", "General Medicine"),
    ("Dr. Okafor", "Pulmonology"),
]

BLOOD_GROUPS = ["A+", "A-", "B+", "B-", "O+", "O-", "AB+", "AB-"]

# Each archetype biases which diseases recur and which medicines get repeated
ARCHETYPES = [
    {"diseases": ["Type 2 Diabetes", "Hypertension"], "medicines": ["Metformin", "Lisinopril"]},
    {"diseases": ["Asthma", "Bronchitis"], "medicines": ["Salbutamol", "Amoxicillin"]},
    {"diseases": ["Migraine"], "medicines": ["Ibuprofen", "Paracetamol"]},
    {"diseases": ["Common Cold"], "medicines": ["Paracetamol"]},
    {"diseases": [], "medicines": []},
]


def generate_name() -> str:
    return f"{random.choice(FIRST_NAMES)} {random.choice(LAST_NAMES)}"


async def generate(patient_count: int, score: bool = False):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as db:
        count = await db.scalar(select(func.count(Patient.id)))
        if count and count >= patient_count:
            print(f"Database already has {count} patients. Skipping generation.")
            return

        doctors = []
        for i, (name, specialization) in enumerate(DOCTORS):
            doctor = Doctor(
                name=name,
                specialization=specialization,
                email=f"doctor{i + 1}@medisync.local",
                is_verified=True,
            )
            db.add(doctor)
            doctors.append(doctor)
        await db.flush()
        for doctor in doctors:
            username = doctor.name.lower().replace(" ", "")
            db.add(User(username=username, display_name=doctor.name, role="doctor", doctor_id=doctor.id))

        print(f"Generating {patient_count} synthetic patients...")
        patient_ids = []
        now = datetime.now(timezone.utc)
        for i in range(patient_count):
            archetype = random.choice(ARCHETYPES)
            patient = Patient(
                name=generate_name(),
                email=f"patient{i + 1}@medisync.local",
                age=random.randint(18, 85),
                gender=random.choice(["Male", "Female"]),
                blood_group=random.choice(BLOOD_GROUPS),
            )
            db.add(patient)
            await db.flush()
            patient_ids.append(patient.id)
            db.add(User(
                username=f"patient{i + 1}",
                display_name=patient.name,
                role="patient",
                patient_id=patient.id,
            ))

            for disease in archetype["diseases"]:
                for _ in range(random.randint(1, 4)):
                    db.add(DiseaseHistory(
                        patient_id=patient.id,
                        disease_name=disease,
                        diagnosed_date=date.today() - timedelta(days=random.randint(1, 240)),
                    ))

            for visit in range(random.randint(0, 6)):
                start = now - timedelta(days=random.randint(1, 120), hours=random.randint(0, 8))
                appointment = Appointment(
                    patient_id=patient.id,
                    doctor_id=random.choice(doctors).id,
                    start_time=start,
                    end_time=start + timedelta(minutes=30),
                    reason="Follow-up" if visit else "Initial consultation",
                    status="completed",
                )
                db.add(appointment)
                await db.flush()
                for medicine in archetype["medicines"]:
                    db.add(Prescription(
                        appointment_id=appointment.id,
                        medicine_name=medicine,
                        dosage=random.choice(["250mg", "500mg", "10mg"]),
                        duration=random.choice(["5 days", "2 weeks", "1 month"]),
                        reported_allergy=random.random() < 0.05,
                    ))

        if not await db.scalar(select(User).where(User.username == "admin")):
            db.add(User(username="admin", display_name="Admin", role="admin"))
        await db.commit()
        print(f"Created {patient_count} patients and {len(doctors)} doctors.")

    if score:
        print("Computing today's risk scores...")
        for patient_id in patient_ids:
            risk = await health_intelligence_service.calculate_risk_score(patient_id)
            print(f"  Patient {patient_id}: {risk.score} ({risk.level})")

    await engine.dispose()
    print("Synthetic data generation complete!")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Generate synthetic Medisync data")
    parser.add_argument("--patients", type=int, default=50, help="Number of patients to generate")
    parser.add_argument("--score", action="store_true", help="Compute today's risk score for every patient")
    args = parser.parse_args()

    asyncio.run(generate(args.patients, score=args.score))
