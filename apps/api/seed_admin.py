#!/usr/bin/env python3
"""
Create the first admin account

Usage:
    ADMIN_USERNAME=admin ADMIN_PASSWORD=... python seed_admin.py
"""

import logging
import os
import sys

from dotenv import load_dotenv
from sqlmodel import Session, select

from auth import get_password_hash
from models import User, UserRole

logger = logging.getLogger(__name__)


def seed_admin(session: Session, username: str, password: str, email: str, full_name: str) -> User:
    """Create the admin user if the username is free; returns the existing user otherwise"""
    existing = session.exec(select(User).where(User.username == username)).first()
    if existing:
        logger.info(f"User '{username}' already exists")
        return existing

    admin = User(
        username=username,
        password_hash=get_password_hash(password),
        email=email,
        full_name=full_name,
        role=UserRole.ADMIN,
        is_active=True,
    )
    session.add(admin)
    session.commit()
    session.refresh(admin)
    logger.info(f"Admin user '{username}' created")
    return admin


def main() -> int:
    load_dotenv()
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    username = os.getenv("ADMIN_USERNAME")
    password = os.getenv("ADMIN_PASSWORD")
    if not username or not password:
        logger.error("ADMIN_USERNAME and ADMIN_PASSWORD must be set")
        return 1

    from database import create_db_and_tables, engine

    create_db_and_tables()
    with Session(engine) as session:
        seed_admin(
            session,
            username,
            password,
            os.getenv("ADMIN_EMAIL", f"{username}@localhost"),
            os.getenv("ADMIN_FULL_NAME", "Administrator"),
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
