import logging
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from server.models import PushSubscription

logger = logging.getLogger(__name__)


class SubscriptionRegistry:
    """
    Push endpoints, unique by endpoint.

    Records are never deleted: unsubscribing or a gone endpoint only clears
    the active flag, and re-subscribing the same endpoint reactivates it.
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def upsert(self, endpoint: str, p256dh: str, auth: str, tenant_id: str) -> PushSubscription:
        with self._session_factory() as db:
            try:
                subscription = self._upsert(db, endpoint, p256dh, auth, tenant_id)
                db.commit()
            except IntegrityError:
                # Lost a create race on the unique endpoint; the row exists now.
                db.rollback()
                subscription = self._upsert(db, endpoint, p256dh, auth, tenant_id)
                db.commit()
            db.refresh(subscription)
            return subscription

    @staticmethod
    def _upsert(db, endpoint, p256dh, auth, tenant_id) -> PushSubscription:
        now = datetime.utcnow()
        subscription = db.query(PushSubscription).filter(PushSubscription.endpoint == endpoint).first()
        if subscription:
            subscription.p256dh = p256dh
            subscription.auth = auth
            subscription.user_id = tenant_id
            subscription.is_active = True
            subscription.last_used_at = now
            logger.info(f"Reactivated push subscription {subscription.id}")
        else:
            subscription = PushSubscription(
                endpoint=endpoint,
                p256dh=p256dh,
                auth=auth,
                user_id=tenant_id,
                is_active=True,
                created_at=now,
                last_used_at=now,
            )
            db.add(subscription)
            db.flush()
            logger.info(f"Created push subscription {subscription.id}")
        return subscription

    def deactivate(self, endpoint: str) -> bool:
        """Returns False when the endpoint is unknown."""
        with self._session_factory() as db:
            updated = (
                db.query(PushSubscription)
                .filter(PushSubscription.endpoint == endpoint)
                .update({PushSubscription.is_active: False}, synchronize_session=False)
            )
            db.commit()
        return updated > 0

    def get_by_endpoint(self, endpoint: str) -> Optional[PushSubscription]:
        with self._session_factory() as db:
            return db.query(PushSubscription).filter(PushSubscription.endpoint == endpoint).first()

    def list_active(self, tenant_id: Optional[str] = None) -> List[PushSubscription]:
        with self._session_factory() as db:
            query = db.query(PushSubscription).filter(PushSubscription.is_active.is_(True))
            if tenant_id is not None:
                query = query.filter(PushSubscription.user_id == tenant_id)
            return query.order_by(PushSubscription.id).all()

    def mark_used(self, subscription_ids: Iterable[int]) -> None:
        ids = list(subscription_ids)
        if not ids:
            return
        with self._session_factory() as db:
            db.query(PushSubscription).filter(PushSubscription.id.in_(ids)).update(
                {PushSubscription.last_used_at: datetime.utcnow()}, synchronize_session=False
            )
            db.commit()

    def count_active(self) -> int:
        with self._session_factory() as db:
            return db.query(PushSubscription).filter(PushSubscription.is_active.is_(True)).count()

    def count_total(self) -> int:
        with self._session_factory() as db:
            return db.query(PushSubscription).count()
