from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from pydantic import BaseModel
from datetime import datetime
from typing import Dict
from marketplace.models.listing import ListingType
from marketplace.models.listing_usage import ListingUsage
from marketplace.services.analytics_service import AnalyticsService
import uuid
import logging

logger = logging.getLogger(__name__)

# Counters bumped per listing type. Every listing consumes one unit of the
# shared free pool in addition to its modifier-specific counter.
USAGE_COLUMNS = {
    ListingType.FREE: ('free_listings_used',),
    ListingType.FEATURED: ('free_listings_used', 'featured_listings_used'),
    ListingType.VEHICLE: ('free_listings_used', 'vehicle_listings_used'),
}


class ListingUsageSnapshot(BaseModel):
    user_id: str
    month_year: str
    free_listings_used: int = 0
    featured_listings_used: int = 0
    vehicle_listings_used: int = 0
    total_listings_created: int = 0


def month_key(now: datetime = None) -> str:
    """Ledger partition key for a timestamp (YYYY-MM, UTC)"""
    return (now or datetime.utcnow()).strftime('%Y-%m')


class UsageService:
    def __init__(self, analytics: AnalyticsService = None):
        self.analytics = analytics or AnalyticsService()
        self.logger = logging.getLogger(__name__)

    def get_usage(self, db: Session, user_id: str, month_year: str = None) -> ListingUsageSnapshot:
        """
        Usage counters for a user and month. A month with no activity reads
        as zero without writing a row.
        """
        month_year = month_year or month_key()
        usage = db.query(ListingUsage).filter(
            ListingUsage.user_id == user_id,
            ListingUsage.month_year == month_year
        ).first()

        if usage is None:
            return ListingUsageSnapshot(user_id=user_id, month_year=month_year)

        return ListingUsageSnapshot(
            user_id=user_id,
            month_year=month_year,
            free_listings_used=usage.free_listings_used or 0,
            featured_listings_used=usage.featured_listings_used or 0,
            vehicle_listings_used=usage.vehicle_listings_used or 0,
            total_listings_created=usage.total_listings_created or 0,
        )

    def _apply_increment(self, db: Session, user_id: str, month_year: str, columns: tuple) -> bool:
        """Single UPDATE ... SET col = col + 1; False when the month row does not exist yet"""
        values: Dict = {getattr(ListingUsage, column): getattr(ListingUsage, column) + 1 for column in columns}
        values[ListingUsage.total_listings_created] = ListingUsage.total_listings_created + 1
        values[ListingUsage.updated_at] = datetime.utcnow()

        rows_updated = db.query(ListingUsage).filter(
            ListingUsage.user_id == user_id,
            ListingUsage.month_year == month_year
        ).update(values, synchronize_session=False)
        return rows_updated > 0

    def increment_usage(
        self,
        db: Session,
        user_id: str,
        listing_type: ListingType,
        month_year: str = None
    ) -> ListingUsageSnapshot:
        """
        Count one created listing against the user's month.

        The counters are bumped by the database in one statement, so
        concurrent creations for the same user never lose an update. When two
        requests race to create the month row, the loser rolls back and
        re-applies the UPDATE to the winner's row.
        """
        listing_type = ListingType(listing_type)
        month_year = month_year or month_key()
        columns = USAGE_COLUMNS[listing_type]
        self.logger.info(f"increment_usage: Entry - user: {user_id}, type: {listing_type.value}, month: {month_year}")

        try:
            for attempt in range(2):
                if not self._apply_increment(db, user_id, month_year, columns):
                    initial = {column: 1 for column in columns}
                    db.add(ListingUsage(
                        id=str(uuid.uuid4()),
                        user_id=user_id,
                        month_year=month_year,
                        total_listings_created=1,
                        **initial
                    ))
                try:
                    db.commit()
                    break
                except IntegrityError:
                    db.rollback()
                    if attempt:
                        raise
                    self.logger.info(f"increment_usage: Month row created concurrently, retrying - user: {user_id}")

            snapshot = self.get_usage(db, user_id, month_year)
            self.analytics.log_success(
                action='increment_usage',
                user_id=user_id,
                parameters={'listing_type': listing_type.value, 'month_year': month_year}
            )
            self.logger.info(
                f"increment_usage: Success - user: {user_id}, free: {snapshot.free_listings_used}, "
                f"featured: {snapshot.featured_listings_used}, vehicle: {snapshot.vehicle_listings_used}"
            )
            return snapshot
        except Exception as e:
            db.rollback()
            self.analytics.log_failure(
                action='increment_usage',
                error=str(e),
                user_id=user_id,
                parameters={'listing_type': listing_type.value, 'month_year': month_year}
            )
            self.logger.error(f"increment_usage: Failure - {e}")
            raise

    def reset_usage(self, db: Session, user_id: str, month_year: str = None) -> int:
        """
        Reset usage counts for a user by setting counters to 0.

        Args:
            db: Database session.
            user_id: User ID (Firebase UID).
            month_year: Target month (YYYY-MM). Defaults to the current month.

        Returns:
            int: Number of rows updated.
        """
        month_year = month_year or month_key()
        self.logger.info(f"reset_usage: Entry - user: {user_id}, month: {month_year}")

        try:
            rows_updated = db.query(ListingUsage).filter(
                ListingUsage.user_id == user_id,
                ListingUsage.month_year == month_year
            ).update({
                "free_listings_used": 0,
                "featured_listings_used": 0,
                "vehicle_listings_used": 0,
            }, synchronize_session=False)
            db.commit()

            self.logger.info(f"reset_usage: Success - user: {user_id}, rows updated: {rows_updated}")
            return rows_updated
        except Exception as e:
            db.rollback()
            self.logger.error(f"reset_usage: Failure - {e}")
            raise
