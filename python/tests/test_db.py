"""Database smoke and isolation tests.

Verifies connectivity, the savepoint isolation the fixtures rely on, and
the dialect-specific upsert helper.
"""

from uuid import uuid4

import pytest
from sqlalchemy import select, text
from sqlalchemy.orm import Session

from casefile.db.models import DetectiveCase, User
from casefile.db.session import create_db_engine, dialect_insert, transaction
from tests.factories import create_test_case


class TestDatabaseConnectivity:
    def test_session_executes_query(self, db_session: Session):
        assert db_session.execute(text("SELECT 1")).scalar() == 1

    def test_in_memory_sqlite_shares_one_connection(self):
        engine = create_db_engine("sqlite+pysqlite:///:memory:")
        try:
            with engine.begin() as conn:
                conn.execute(text("CREATE TABLE t (x INTEGER)"))
            with engine.connect() as conn:
                assert conn.execute(text("SELECT count(*) FROM t")).scalar() == 0
        finally:
            engine.dispose()


class TestIsolation:
    def test_committed_rows_visible_in_test(self, db_session: Session):
        with transaction(db_session):
            create_test_case(db_session, "case-iso")

        assert db_session.get(DetectiveCase, "case-iso") is not None

    def test_rows_from_previous_test_are_gone(self, db_session: Session):
        assert db_session.get(DetectiveCase, "case-iso") is None

    def test_rollback_keeps_earlier_commits(self, db_session: Session):
        with transaction(db_session):
            create_test_case(db_session, "case-kept")

        with pytest.raises(RuntimeError):
            with transaction(db_session):
                create_test_case(db_session, "case-dropped")
                raise RuntimeError("abort")

        assert db_session.get(DetectiveCase, "case-kept") is not None
        assert db_session.scalar(
            select(DetectiveCase.id).where(DetectiveCase.id == "case-dropped")
        ) is None


class TestDialectInsert:
    def test_on_conflict_do_nothing(self, db_session: Session):
        insert = dialect_insert(db_session)
        user_id = uuid4()

        for email in ("first@example.com", "second@example.com"):
            db_session.execute(
                insert(User)
                .values(id=user_id, email=email, is_deleted=False)
                .on_conflict_do_nothing(index_elements=["id"])
            )

        assert db_session.get(User, user_id).email == "first@example.com"
