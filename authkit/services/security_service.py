"""Failed-login tracking and the request audit log."""

import logging
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from authkit.core.config import settings
from authkit.db.base import utcnow
from authkit.models.security_log import FailedLogin, RequestLog

logger = logging.getLogger("authkit.audit")

SUSPICIOUS_ACTIVITY_PATH = "/security/suspicious-activity"

EscalationHook = Callable[[Session, FailedLogin], None]


def record_suspicious_activity(db: Session, record: FailedLogin) -> None:
    """Default escalation: warn and append a SECURITY row to the request log."""
    logger.warning(
        "Repeated failed logins from %s (%d attempts, last username %r)",
        record.ip, record.attempts, record.username,
    )
    db.add(RequestLog(
        ip=record.ip,
        method="SECURITY",
        path=SUSPICIOUS_ACTIVITY_PATH,
        user_agent=record.user_agent,
        status=429,
    ))
    db.commit()


class SecurityService:
    """Records failed logins and handled requests.

    Args:
        threshold: attempts from one IP at which ``escalation_hook`` fires.
        escalation_hook: called with the session and the updated record once
            the threshold is reached. It signals; it does not block.
    """

    def __init__(
        self,
        threshold: Optional[int] = None,
        escalation_hook: EscalationHook = record_suspicious_activity,
    ):
        self.threshold = threshold if threshold is not None else settings.FAILED_LOGIN_THRESHOLD
        self.escalation_hook = escalation_hook

    def record_failed_login(
        self,
        db: Session,
        ip: str,
        username: Optional[str],
        user_agent: Optional[str] = None,
    ) -> Optional[FailedLogin]:
        """Upsert the per-IP counter. Concurrent failures may undercount.

        Returns None when the record could not be written; tracking is a
        signal and must not turn a 401 into a 500.
        """
        try:
            record = self._upsert_failed_login(db, ip, username, user_agent)
        except IntegrityError:
            # Another request inserted the row for this IP first
            db.rollback()
            try:
                record = self._upsert_failed_login(db, ip, username, user_agent)
            except SQLAlchemyError as exc:
                db.rollback()
                logger.warning("Could not record failed login from %s: %s", ip, exc)
                return None
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning("Could not record failed login from %s: %s", ip, exc)
            return None

        if record.attempts >= self.threshold:
            try:
                self.escalation_hook(db, record)
            except SQLAlchemyError as exc:
                db.rollback()
                logger.warning("Escalation hook failed for %s: %s", ip, exc)
        return record

    @staticmethod
    def _upsert_failed_login(db, ip, username, user_agent) -> FailedLogin:
        record = db.query(FailedLogin).filter(FailedLogin.ip == ip).first()
        now = utcnow()
        if record is None:
            record = FailedLogin(
                ip=ip,
                username=username,
                user_agent=(user_agent or "")[:500],
                attempts=1,
                last_try=now,
            )
            db.add(record)
        else:
            record.username = username
            record.user_agent = (user_agent or "")[:500]
            record.attempts += 1
            record.last_try = now
        db.commit()
        return record

    @staticmethod
    def log_request(
        session_factory: sessionmaker,
        ip: str,
        method: str,
        path: str,
        status: int,
        duration_ms: int,
        user_id: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        """Write one request-log row in its own session.

        Runs detached from the response; failures are logged and dropped.
        """
        db = session_factory()
        try:
            db.add(RequestLog(
                user_id=user_id,
                ip=ip,
                method=method,
                path=path[:500],
                user_agent=(user_agent or "")[:500],
                status=status,
                duration_ms=duration_ms,
            ))
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning("Dropping request log for %s %s: %s", method, path, exc)
        finally:
            db.close()

    @staticmethod
    def query_request_logs(
        db: Session,
        user_id: Optional[str] = None,
        ip: Optional[str] = None,
        method: Optional[str] = None,
        page: int = 1,
        page_size: int = 50,
    ):
        """Query request logs with filters and pagination."""
        query = db.query(RequestLog)

        if user_id:
            query = query.filter(RequestLog.user_id == user_id)
        if ip:
            query = query.filter(RequestLog.ip == ip)
        if method:
            query = query.filter(RequestLog.method == method.upper())

        total = query.count()
        logs = (
            query.order_by(RequestLog.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )

        return {
            "logs": logs,
            "total": total,
            "page": page,
            "page_size": page_size,
        }

    @staticmethod
    def query_failed_logins(db: Session, min_attempts: int = 1, page: int = 1, page_size: int = 50):
        query = db.query(FailedLogin).filter(FailedLogin.attempts >= min_attempts)
        total = query.count()
        records = (
            query.order_by(FailedLogin.last_try.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return {"records": records, "total": total, "page": page, "page_size": page_size}


security_service = SecurityService()
