import logging
from datetime import datetime
from marketplace.core.firebase import get_firestore_client

logger = logging.getLogger(__name__)


class AnalyticsService:
    """
    Product analytics and error reporting backed by Firestore.

    Every write is best-effort: a Firestore outage is logged and never
    propagates into the subscription or listing flows.
    """

    events_collection = 'marketplace_events'
    errors_collection = 'marketplace_errors'

    def __init__(self):
        self.db = get_firestore_client()

    def _write(self, collection: str, payload: dict):
        try:
            self.db.collection(collection).add(payload)
        except Exception as e:
            logger.error(f"analytics write to {collection}: Failure - {e}")

    def log_event(self, event_name: str, user_id: str = None, parameters: dict = None):
        """Record a product event (listing created, plan upgraded, ...)"""
        logger.debug(f"log_event: {event_name}, user: {user_id}")
        self._write(self.events_collection, {
            'event_name': event_name,
            'user_id': user_id,
            'parameters': parameters or {},
            'timestamp': datetime.utcnow()
        })

    def log_success(self, action: str, user_id: str = None, parameters: dict = None):
        self.log_event(
            event_name=f'{action}_success',
            user_id=user_id,
            parameters={'status': 'success', **(parameters or {})}
        )

    def log_failure(
        self,
        action: str,
        error: str,
        user_id: str = None,
        parameters: dict = None,
        fatal: bool = False
    ):
        """
        Log a failed action as a product event and as an error report.
        Non-fatal by default since callers catch and re-raise.
        """
        self.log_event(
            event_name=f'{action}_failure',
            user_id=user_id,
            parameters={'status': 'failure', 'error': error, **(parameters or {})}
        )
        self._write(self.errors_collection, {
            'action': action,
            'user_id': user_id,
            'error_message': error,
            'parameters': parameters or {},
            'fatal': fatal,
            'timestamp': datetime.utcnow()
        })

    def log_degraded(self, action: str, error: str, user_id: str = None, parameters: dict = None):
        """Record that an operation completed in degraded (fail-open) mode"""
        self.log_event(
            event_name=f'{action}_degraded',
            user_id=user_id,
            parameters={'status': 'degraded', 'error': error, **(parameters or {})}
        )
