"""Append-only log of authentication attempts"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from fastapi import Request
from sqlmodel import Session, select

from models import LoginStatus, User, UserLoginLog

logger = logging.getLogger(__name__)


@dataclass
class ClientMeta:
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @classmethod
    def from_request(cls, request: Request) -> "ClientMeta":
        client_host = request.client.host if request.client else None
        forwarded_for = request.headers.get("X-Forwarded-For")
        ip_address = forwarded_for.split(",")[0].strip() if forwarded_for else client_host
        return cls(ip_address=ip_address, user_agent=request.headers.get("User-Agent"))


def record_login(
    session: Session,
    user_id: int,
    login_status: LoginStatus,
    client: ClientMeta,
    session_id: Optional[str] = None,
) -> int:
    """Write one audit row and commit it before returning its id"""
    now = datetime.utcnow()
    entry = UserLoginLog(
        user_id=user_id,
        login_time=now,
        ip_address=client.ip_address,
        user_agent=client.user_agent,
        # best-effort; no geolocation lookup is performed
        location={"ip": client.ip_address, "timestamp": now.isoformat()},
        session_id=session_id,
        login_status=login_status,
    )
    session.add(entry)
    session.commit()
    session.refresh(entry)
    logger.info(f"Login {login_status.value} for user {user_id} from {client.ip_address}")
    return entry.id


def _serialize(entry: UserLoginLog, user: Optional[User]) -> dict:
    return {
        "id": entry.id,
        "user_id": entry.user_id,
        "login_time": entry.login_time,
        "ip_address": entry.ip_address,
        "user_agent": entry.user_agent,
        "location": entry.location,
        "session_id": entry.session_id,
        "login_status": entry.login_status,
        "user": {
            "id": user.id,
            "username": user.username,
            "email": user.email,
            "full_name": user.full_name,
            "role": user.role,
        } if user else None,
    }


def query_login_logs(
    session: Session,
    login_status: Optional[LoginStatus] = None,
    user_id: Optional[int] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[dict]:
    """Newest entries first, each joined with the user it belongs to"""
    statement = select(UserLoginLog, User).join(User, User.id == UserLoginLog.user_id, isouter=True)
    if login_status:
        statement = statement.where(UserLoginLog.login_status == login_status)
    if user_id:
        statement = statement.where(UserLoginLog.user_id == user_id)

    statement = statement.order_by(UserLoginLog.login_time.desc(), UserLoginLog.id.desc())
    statement = statement.offset(offset).limit(limit)
    return [_serialize(entry, user) for entry, user in session.exec(statement).all()]
