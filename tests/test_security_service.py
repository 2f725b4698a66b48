"""
tests/test_security_service.py -- Failed-login tracking and request audit log.
"""

from __future__ import annotations

from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from authkit.db.session import SessionLocal
from authkit.models.security_log import FailedLogin, RequestLog
from authkit.services.security_service import SUSPICIOUS_ACTIVITY_PATH, SecurityService


class TestFailedLogins:
    def test_counter_is_upserted_per_ip(self, db: Session) -> None:
        service = SecurityService(threshold=100)
        service.record_failed_login(db, "10.0.0.1", "alice", "pytest")
        record = service.record_failed_login(db, "10.0.0.1", "bob", "pytest")
        service.record_failed_login(db, "10.0.0.2", "carol", None)

        assert record.attempts == 2
        assert record.username == "bob"
        assert db.query(FailedLogin).count() == 2

    def test_hook_fires_at_threshold(self, db: Session) -> None:
        seen: list[int] = []
        service = SecurityService(threshold=3, escalation_hook=lambda _db, rec: seen.append(rec.attempts))
        for _ in range(4):
            service.record_failed_login(db, "10.0.0.9", "alice")
        assert seen == [3, 4]

    def test_default_hook_writes_security_log(self, db: Session) -> None:
        service = SecurityService(threshold=2)
        service.record_failed_login(db, "10.0.0.3", "alice")
        assert db.query(RequestLog).count() == 0

        service.record_failed_login(db, "10.0.0.3", "alice")
        row = db.query(RequestLog).one()
        assert row.method == "SECURITY"
        assert row.path == SUSPICIOUS_ACTIVITY_PATH
        assert row.ip == "10.0.0.3"

    def test_query_failed_logins_filters_by_attempts(self, db: Session) -> None:
        service = SecurityService(threshold=100)
        for _ in range(3):
            service.record_failed_login(db, "10.0.0.4", "alice")
        service.record_failed_login(db, "10.0.0.5", "bob")

        result = service.query_failed_logins(db, min_attempts=2)
        assert result["total"] == 1
        assert result["records"][0].ip == "10.0.0.4"


class TestRequestLog:
    def test_log_request_writes_row(self, db: Session) -> None:
        SecurityService.log_request(SessionLocal, "10.0.0.1", "GET", "/health", 200, 3, user_agent="pytest")
        result = SecurityService.query_request_logs(db, ip="10.0.0.1")
        assert result["total"] == 1
        assert result["logs"][0].path == "/health"

    def test_log_request_swallows_storage_errors(self) -> None:
        session = MagicMock()
        session.commit.side_effect = OperationalError("INSERT", {}, Exception("disk I/O error"))

        SecurityService.log_request(lambda: session, "10.0.0.1", "GET", "/x", 500, 1)

        session.rollback.assert_called_once()
        session.close.assert_called_once()

    def test_query_filters_by_method(self, db: Session) -> None:
        SecurityService.log_request(SessionLocal, "10.0.0.1", "GET", "/a", 200, 1)
        SecurityService.log_request(SessionLocal, "10.0.0.1", "POST", "/b", 201, 1)
        result = SecurityService.query_request_logs(db, method="post")
        assert [log.path for log in result["logs"]] == ["/b"]
