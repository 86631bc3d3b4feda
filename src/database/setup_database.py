"""
Database Setup Script
Creates all tables and seeds entities plus one user per role
"""

import sys
from pathlib import Path
from datetime import datetime

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from src.config.database import Base, SessionLocal, engine
from src.config.permissions import get_role_label
from src.models.finance_request import FinanceRequest  # noqa: F401
from src.models.sla_log import SLALog  # noqa: F401
from src.models.user import User, UserRole, Entity
from src.utils.security import get_password_hash


SEED_ENTITIES = [
    ("HQ", "Head Office"),
    ("OPS", "Operations Subsidiary"),
]

# username, full name, role, department, password
SEED_USERS = [
    ("admin", "System Administrator", UserRole.ADMIN, "IT", "admin123"),
    ("md", "Managing Director", UserRole.MD, "Management", "md123"),
    ("director", "Finance Director", UserRole.DIRECTOR, "Finance", "director123"),
    ("controller", "Finance Controller", UserRole.FINANCE_CONTROLLER, "Finance", "controller123"),
    ("finance", "Finance Executive", UserRole.FINANCE_TEAM, "Finance", "finance123"),
    ("employee", "Priya Sharma", UserRole.EMPLOYEE, "Sales", "employee123"),
]


def create_tables():
    """Create all database tables"""
    print("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    print("✓ Database tables created successfully")


def create_entities():
    """Create the legal entities requests are raised against"""
    print("\nCreating entities...")
    db = SessionLocal()

    try:
        if db.query(Entity).first():
            print("✓ Entities already exist, skipping...")
            return

        for code, name in SEED_ENTITIES:
            db.add(Entity(code=code, name=name, is_active=True))

        db.commit()
        print(f"✓ Entities created successfully ({len(SEED_ENTITIES)} entities)")

    except Exception as e:
        db.rollback()
        print(f"✗ Error creating entities: {str(e)}")
        raise
    finally:
        db.close()


def create_initial_users():
    """Create one user per role, assigned to the head office entity"""
    print("\nCreating initial users...")
    db = SessionLocal()

    try:
        if db.query(User).first():
            print("✓ Users already exist, skipping...")
            return

        now = datetime.utcnow()
        head_office = db.query(Entity).filter(Entity.code == "HQ").first()

        for index, (username, full_name, role, department, password) in enumerate(SEED_USERS, start=1):
            db.add(User(
                email=f"{username}@finance.example.com",
                username=username,
                full_name=full_name,
                employee_id=f"EMP{index:03d}",
                hashed_password=get_password_hash(password),
                role=role,
                department=department,
                is_active=True,
                created_at=now,
                entities=[head_office] if head_office else [],
            ))

        db.commit()
        print(f"✓ Initial users created successfully ({len(SEED_USERS)} users)")

    except Exception as e:
        db.rollback()
        print(f"✗ Error creating initial users: {str(e)}")
        raise
    finally:
        db.close()


def print_setup_summary():
    """Print setup summary and credentials"""
    print("\n" + "=" * 70)
    print("✓ DATABASE SETUP COMPLETED SUCCESSFULLY!")
    print("=" * 70)

    print("\n🔐 TEST USER CREDENTIALS (entity HQ):")
    for username, _, role, _, password in SEED_USERS:
        print(f"  • {get_role_label(role):<20} {username}@finance.example.com / {password}")

    print("\n🚀 NEXT STEPS:")
    print("  1. Start the application: uvicorn src.main:app --reload")
    print("  2. Access API Documentation: http://localhost:8000/api/docs")
    print("  3. Schedule the SLA sweep: finance-sla-sweep (or POST /api/cron/check-sla)")
    print("\n" + "=" * 70 + "\n")


def main():
    """Main setup function"""
    print("=" * 70)
    print("FINANCE APPROVAL WORKFLOW - DATABASE SETUP")
    print("=" * 70)

    try:
        create_tables()
        create_entities()
        create_initial_users()
        print_setup_summary()

    except Exception as e:
        print(f"\n✗ Database setup failed: {str(e)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
