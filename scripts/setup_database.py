#!/usr/bin/env python3
# scripts/setup_database.py
"""
Database setup script
- Verifies database connection
- Creates all tables
- Prints a fresh ENCRYPTION_KEY when asked (--generate-key)
"""
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from cryptography.fernet import Fernet
from sqlalchemy import inspect

from app.core.config import DATABASE_URL
from app.db.session import engine, init_db, test_db_connection

EXPECTED_TABLES = [
    'users',
    'gmail_credentials',
    'email_campaigns',
    'email_logs',
]


def setup():
    print("=" * 70)
    print("🚀 BULK EMAIL PLATFORM DATABASE SETUP")
    print("=" * 70)

    if "--generate-key" in sys.argv:
        print("\n🔑 New ENCRYPTION_KEY (add to .env):")
        print(f"   ENCRYPTION_KEY={Fernet.generate_key().decode()}")

    # Step 1: Test connection
    print("\n1️⃣  Testing database connection...")
    print(f"   Database: {DATABASE_URL.split('@')[1] if '@' in DATABASE_URL else DATABASE_URL}")

    if not test_db_connection():
        print("   ❌ Database connection failed!")
        print("   Please check:")
        print("   - PostgreSQL is running")
        print("   - Database exists")
        print("   - .env configuration is correct")
        return 1
    print("   ✅ Database connected successfully")

    # Step 2: Create tables
    print("\n2️⃣  Creating tables...")
    init_db()
    print("   ✅ Tables created")

    # Step 3: Verify tables
    print("\n3️⃣  Verifying database tables...")
    tables = inspect(engine).get_table_names()
    missing = [t for t in EXPECTED_TABLES if t not in tables]

    if missing:
        print(f"   ⚠️  Missing tables: {', '.join(missing)}")
        return 1

    print(f"   ✅ All {len(EXPECTED_TABLES)} tables created")
    for table in EXPECTED_TABLES:
        print(f"      ✓ {table}")

    print("\n" + "=" * 70)
    print("✅ DATABASE SETUP COMPLETE!")
    print("=" * 70)
    print("\n🚀 Start Application:")
    print("   python -m uvicorn app.main:app --reload --host 0.0.0.0 --port 8000")
    print("   Visit: http://localhost:8000/docs")
    print("\n" + "=" * 70)

    return 0


if __name__ == "__main__":
    sys.exit(setup())
