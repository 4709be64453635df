"""
FILE: seed.py
Database seeder: demo clinic, one user per role, services, medications
Run: python seed.py
"""

import sys
import os
sys.path.append(os.path.dirname(__file__))

from decimal import Decimal
from typing import Optional

from sqlmodel import Session, select
from src.core.config import settings
from src.core.database import Backend
from src.core.security import generate_salt, hash_password
from src.shared.models import (
    Medication,
    Patient,
    Profile,
    Role,
    Service,
    Tenant,
    User,
)
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEMO_PASSWORD = os.getenv("SEED_PASSWORD", "Password123!")

DEMO_USERS = [
    {"email": "admin@democlinic.com", "full_name": "Clinic Admin", "role": Role.ADMIN},
    {"email": "doctor@democlinic.com", "full_name": "Dr. Amina Otieno", "role": Role.DOCTOR},
    {"email": "pharmacist@democlinic.com", "full_name": "Peter Kamau", "role": Role.PHARMACIST},
    {"email": "patient@democlinic.com", "full_name": "Grace Wanjiru", "role": Role.PATIENT},
]

SERVICES = [
    {"name": "General consultation", "price": Decimal("1500.00"), "duration": 30},
    {"name": "Follow-up visit", "price": Decimal("800.00"), "duration": 15},
    {"name": "Laboratory tests", "price": Decimal("2500.00"), "duration": 45},
]

MEDICATIONS = [
    {"name": "Amoxicillin", "dosage_form": "Capsule", "strength": "500mg", "category": "Antibiotic",
     "unit_price": Decimal("20.00"), "cost_price": Decimal("12.00"), "stock_quantity": 200},
    {"name": "Paracetamol", "dosage_form": "Tablet", "strength": "500mg", "category": "Analgesic",
     "unit_price": Decimal("5.00"), "cost_price": Decimal("2.50"), "stock_quantity": 500},
    {"name": "Metformin", "dosage_form": "Tablet", "strength": "850mg", "category": "Antidiabetic",
     "unit_price": Decimal("15.00"), "cost_price": Decimal("9.00"), "stock_quantity": 8},
]


def seed_demo_tenant(session: Session) -> Tenant:
    existing = session.exec(select(Tenant).where(Tenant.slug == "demo-clinic")).first()
    if existing:
        return existing
    tenant = Tenant(name="Demo Clinic", slug="demo-clinic", email="info@democlinic.com")
    session.add(tenant)
    session.flush()
    logger.info(f"  ✓ Tenant: {tenant.name}")
    return tenant


def seed_user(session: Session, tenant: Tenant, email: str, full_name: str, role: Role) -> User:
    user = session.exec(select(User).where(User.email == email)).first()
    if user:
        return user
    salt = generate_salt()
    user = User(email=email, password_hash=hash_password(DEMO_PASSWORD, salt), salt=salt)
    session.add(user)
    session.flush()
    session.add(Profile(id=user.id, tenant_id=tenant.id, email=email, full_name=full_name, role=role))
    session.flush()
    logger.info(f"  ✓ {role.value}: {email}")
    return user


def seed_patient_record(session: Session, tenant: Tenant, profile_id: Optional[object], full_name: str) -> None:
    if session.exec(select(Patient).where(Patient.profile_id == profile_id)).first():
        return
    session.add(Patient(tenant_id=tenant.id, profile_id=profile_id, full_name=full_name))


def seed_catalogue(session: Session, tenant: Tenant) -> None:
    for data in SERVICES:
        if not session.exec(select(Service).where(Service.tenant_id == tenant.id, Service.name == data["name"])).first():
            session.add(Service(tenant_id=tenant.id, **data))
            logger.info(f"  ✓ Service: {data['name']}")
    for data in MEDICATIONS:
        if not session.exec(select(Medication).where(Medication.tenant_id == tenant.id, Medication.name == data["name"])).first():
            session.add(Medication(tenant_id=tenant.id, **data))
            logger.info(f"  ✓ Medication: {data['name']}")


def main():
    logger.info("🌱 Starting database seeding...")
    backend = Backend(settings)
    backend.start()

    try:
        with backend.session() as session:
            logger.info("\n🏥 Seeding demo clinic...")
            tenant = seed_demo_tenant(session)
            session.commit()

            logger.info("\n👥 Seeding demo users...")
            for data in DEMO_USERS:
                user = seed_user(session, tenant, **data)
                if data["role"] == Role.PATIENT:
                    seed_patient_record(session, tenant, user.id, data["full_name"])
            session.commit()

            logger.info("\n💊 Seeding services & medications...")
            seed_catalogue(session, tenant)
            session.commit()
    finally:
        backend.stop()

    logger.info("\n✅ Seeding complete!")
    logger.info("─" * 50)
    logger.info("Demo credentials (password from SEED_PASSWORD):")
    for data in DEMO_USERS:
        logger.info(f"  {data['role'].value:<11}: {data['email']}")


if __name__ == "__main__":
    main()
