#!/usr/bin/env python3
"""
VTRIA Database Initialization Script
Creates database tables, seeds reference data and the first director account
"""
import argparse
import sys
from pathlib import Path

# Add project root to path to import vtria_erp
sys.path.append(str(Path(__file__).parent.parent))

from vtria_erp.core.database import SessionLocal, check_db_connection, init_db
from vtria_erp.core.exceptions import VTRIAException
from vtria_erp.core.logging import get_logger, setup_logging
from vtria_erp.services.auth_service import AuthService
from vtria_erp.services.reference_data import seed_reference_data

logger = get_logger("database")


def create_admin_user(db, username: str, email: str, password: str, full_name: str):
    """Create the initial director account unless the username already exists"""
    service = AuthService(db)
    if service.get_user_by_username(username):
        logger.info(f"User {username} already exists")
        return None
    return service.create_user({
        "username": username,
        "email": email,
        "password": password,
        "full_name": full_name,
        "role": "director",
    })


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Initialize the VTRIA ERP database")
    parser.add_argument("--skip-seed", action="store_true", help="Only create tables")
    parser.add_argument("--admin-username", default="director")
    parser.add_argument("--admin-email", default="director@vtria.local")
    parser.add_argument("--admin-password", help="Password for the director account; no account without it")
    parser.add_argument("--admin-name", default="VTRIA Director")
    args = parser.parse_args(argv)

    setup_logging(log_to_file=False)

    connection = check_db_connection()
    if not connection["connected"]:
        logger.error(f"Database connection failed: {connection.get('error')}")
        return 1

    init_db()
    if args.skip_seed:
        return 0

    db = SessionLocal()
    try:
        created = seed_reference_data(db)
        logger.info(f"Reference data: {created}")
        if args.admin_password:
            user = create_admin_user(
                db, args.admin_username, args.admin_email, args.admin_password, args.admin_name
            )
            if user:
                logger.info(f"Created director account {user.username}")
    except VTRIAException as e:
        logger.error(f"Initialization failed: {e.message}")
        return 1
    finally:
        db.close()

    logger.info("Database initialization completed")
    return 0


if __name__ == "__main__":
    sys.exit(main())
