"""
Tests for the monthly listing usage ledger
"""

import threading
from datetime import datetime
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from marketplace.models.listing import ListingType
from marketplace.models.listing_usage import ListingUsage
from marketplace.services.usage_service import UsageService, month_key

USER = "user_1"
MONTH = "2026-03"


def test_month_key():
    assert month_key(datetime(2026, 3, 31, 23, 59)) == "2026-03"
    assert month_key(datetime(2026, 12, 1)) == "2026-12"


class TestGetUsage:

    def test_missing_row_reads_as_zero(self, db_session, usage_service):
        snapshot = usage_service.get_usage(db_session, USER, MONTH)

        assert snapshot.free_listings_used == 0
        assert snapshot.total_listings_created == 0
        assert db_session.query(ListingUsage).count() == 0


class TestIncrement:

    def test_first_increment_creates_row(self, db_session, usage_service):
        snapshot = usage_service.increment_usage(db_session, USER, ListingType.FREE, MONTH)

        assert snapshot.free_listings_used == 1
        assert snapshot.featured_listings_used == 0
        assert snapshot.total_listings_created == 1
        assert db_session.query(ListingUsage).count() == 1

    def test_featured_counts_against_pool_and_featured(self, db_session, usage_service):
        usage_service.increment_usage(db_session, USER, ListingType.FREE, MONTH)
        snapshot = usage_service.increment_usage(db_session, USER, ListingType.FEATURED, MONTH)

        assert snapshot.free_listings_used == 2
        assert snapshot.featured_listings_used == 1
        assert snapshot.vehicle_listings_used == 0
        assert snapshot.total_listings_created == 2

    def test_vehicle_counts_against_pool_and_vehicle(self, db_session, usage_service):
        snapshot = usage_service.increment_usage(db_session, USER, ListingType.VEHICLE, MONTH)

        assert snapshot.free_listings_used == 1
        assert snapshot.vehicle_listings_used == 1
        assert snapshot.featured_listings_used == 0

    def test_months_are_separate(self, db_session, usage_service):
        usage_service.increment_usage(db_session, USER, ListingType.FREE, "2026-03")
        usage_service.increment_usage(db_session, USER, ListingType.FREE, "2026-04")

        assert usage_service.get_usage(db_session, USER, "2026-03").free_listings_used == 1
        assert usage_service.get_usage(db_session, USER, "2026-04").free_listings_used == 1

    def test_accepts_string_listing_type(self, db_session, usage_service):
        snapshot = usage_service.increment_usage(db_session, USER, "featured", MONTH)
        assert snapshot.featured_listings_used == 1

    def test_existing_row_is_bumped_by_a_single_update(self, db_engine, db_session, usage_service):
        usage_service.increment_usage(db_session, USER, ListingType.FREE, MONTH)
        statements = []

        def capture(conn, cursor, statement, parameters, context, executemany):
            statements.append(statement)

        event.listen(db_engine, "before_cursor_execute", capture)
        try:
            usage_service.increment_usage(db_session, USER, ListingType.FEATURED, MONTH)
        finally:
            event.remove(db_engine, "before_cursor_execute", capture)

        ledger = [statement for statement in statements if "user_listing_usage" in statement]
        # No read of the row before the write; the database does the arithmetic
        assert ledger[0].startswith("UPDATE user_listing_usage SET")
        assert "free_listings_used=(user_listing_usage.free_listings_used + ?)" in ledger[0]
        assert "featured_listings_used=(user_listing_usage.featured_listings_used + ?)" in ledger[0]
        assert "total_listings_created=(user_listing_usage.total_listings_created + ?)" in ledger[0]
        assert [statement for statement in ledger if statement.startswith("UPDATE")] == [ledger[0]]
        assert not any(statement.startswith("INSERT") for statement in ledger)

    def test_lost_insert_race_retries_update(self, db_session, usage_service, analytics, monkeypatch):
        db_session.add(ListingUsage(
            id="usage-1",
            user_id=USER,
            month_year=MONTH,
            free_listings_used=3,
            total_listings_created=3,
        ))
        db_session.commit()
        real_apply = usage_service._apply_increment
        calls = []

        # The first UPDATE misses, as if the month row had not been committed yet
        def apply_increment(db, user_id, month_year, columns):
            calls.append(month_year)
            if len(calls) == 1:
                return False
            return real_apply(db, user_id, month_year, columns)

        monkeypatch.setattr(usage_service, "_apply_increment", apply_increment)

        snapshot = usage_service.increment_usage(db_session, USER, ListingType.VEHICLE, MONTH)

        assert len(calls) == 2
        assert snapshot.free_listings_used == 4
        assert snapshot.vehicle_listings_used == 1
        assert snapshot.total_listings_created == 4
        assert db_session.query(ListingUsage).count() == 1
        analytics.log_failure.assert_not_called()

    def test_failure_propagates(self, analytics):
        db = MagicMock()
        db.query.side_effect = RuntimeError("database down")
        service = UsageService(analytics=analytics)

        with pytest.raises(RuntimeError):
            service.increment_usage(db, USER, ListingType.FREE, MONTH)

        db.rollback.assert_called()
        analytics.log_failure.assert_called()


class TestReset:

    def test_reset_zeroes_counters(self, db_session, usage_service):
        usage_service.increment_usage(db_session, USER, ListingType.FEATURED, MONTH)

        assert usage_service.reset_usage(db_session, USER, MONTH) == 1

        snapshot = usage_service.get_usage(db_session, USER, MONTH)
        assert snapshot.free_listings_used == 0
        assert snapshot.featured_listings_used == 0
        # total is historical and is not reset
        assert snapshot.total_listings_created == 1

    def test_reset_without_row(self, db_session, usage_service):
        assert usage_service.reset_usage(db_session, USER, MONTH) == 0


@pytest.mark.integration
def test_concurrent_increments_are_not_lost(tmp_path, analytics):
    """N parallel creations for one user add exactly N"""
    from marketplace.core.database import Base
    import marketplace.models  # noqa: F401

    engine = create_engine(
        f"sqlite:///{tmp_path / 'usage.db'}",
        connect_args={"check_same_thread": False, "timeout": 30, "isolation_level": None},
    )

    # Writers queue on BEGIN IMMEDIATE; busy timeout applies
    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    service = UsageService(analytics=analytics)
    errors = []
    workers = 10

    def create_listing(listing_type):
        session = Session()
        try:
            service.increment_usage(session, USER, listing_type, MONTH)
        except Exception as e:
            errors.append(e)
        finally:
            session.close()

    threads = [
        threading.Thread(target=create_listing, args=(ListingType.FEATURED if i % 2 else ListingType.FREE,))
        for i in range(workers)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    session = Session()
    try:
        snapshot = service.get_usage(session, USER, MONTH)
    finally:
        session.close()
    assert snapshot.free_listings_used == workers
    assert snapshot.featured_listings_used == workers // 2
    assert snapshot.total_listings_created == workers

    engine.dispose()
