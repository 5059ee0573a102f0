from typing import Optional
import logging

import bcrypt

from config import get_settings

logger = logging.getLogger(__name__)

# bcrypt work factor below this is too cheap against offline brute force
MIN_BCRYPT_ROUNDS = 10
MAX_PASSWORD_BYTES = 72


def _rounds() -> int:
    return max(MIN_BCRYPT_ROUNDS, get_settings().BCRYPT_ROUNDS)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify a password against a bcrypt hash; accounts without a local password never match"""
    if not hashed_password:
        return False
    password_bytes = plain_password.encode('utf-8')
    # no stored hash can match a password bcrypt refuses to hash
    if len(password_bytes) > MAX_PASSWORD_BYTES:
        return False
    try:
        return bcrypt.checkpw(
            password_bytes,
            hashed_password.encode('utf-8')
        )
    except ValueError:
        logger.warning("Stored password hash is malformed")
        return False


def get_password_hash(password: str) -> str:
    """Generate a salted bcrypt hash"""
    return bcrypt.hashpw(
        password.encode('utf-8'),
        bcrypt.gensalt(rounds=_rounds())
    ).decode('utf-8')
