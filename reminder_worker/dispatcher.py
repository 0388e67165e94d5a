"""
Notification Dispatcher

Turns one NotificationRequest into one delivery attempt per active
subscriber, run concurrently through the push gateway, and reports the
aggregate outcome. Partial failure is the normal case and never raises.
"""
import logging
import math
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from server.enums import DeliveryStatus
from .gateway import PushDeliveryError, PushGateway, PushGoneError
from .metrics import PUSH_DELIVERIES
from .payloads import NotificationRequest
from .registry import SubscriptionRegistry

logger = logging.getLogger(__name__)

# Slack on top of the per-attempt timeout before a batch stops waiting
BATCH_GRACE_SECONDS = 1.0


@dataclass
class DeliveryResult:
    subscription_id: int
    endpoint: str
    status: DeliveryStatus
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == DeliveryStatus.delivered

    def to_dict(self) -> dict:
        result = {"success": self.success, "endpoint": self.endpoint, "status": self.status.value}
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class DispatchOutcome:
    results: List[DeliveryResult] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return self.attempted - self.succeeded

    @property
    def deactivated(self) -> int:
        return sum(1 for r in self.results if r.status == DeliveryStatus.permanent_failure)

    def to_dict(self) -> dict:
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "results": [r.to_dict() for r in self.results],
        }


class NotificationDispatcher:
    def __init__(
        self,
        registry: SubscriptionRegistry,
        gateway: PushGateway,
        *,
        max_workers: int = 8,
        attempt_timeout: float = 10.0,
    ) -> None:
        self._registry = registry
        self._gateway = gateway
        self._max_workers = max(1, int(max_workers))
        self._attempt_timeout = float(attempt_timeout)
        self._executor = ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="push")

    def dispatch(self, request: NotificationRequest, tenant_id: Optional[str] = None) -> DispatchOutcome:
        subscriptions = self._registry.list_active(tenant_id)
        if not subscriptions:
            logger.info(f"No active subscriptions for {request.tag!r}")
            return DispatchOutcome()

        payload = request.to_payload()
        futures = {
            self._executor.submit(self._attempt, subscription, payload): subscription
            for subscription in subscriptions
        }
        # The deadline only bounds how long the caller waits. Attempts still
        # queued behind other batches on the shared pool are cancelled, and
        # running ones report late through _record_late.
        rounds = math.ceil(len(futures) / self._max_workers)
        done, _ = wait(futures, timeout=rounds * self._attempt_timeout + BATCH_GRACE_SECONDS)

        outcome = DispatchOutcome()
        for future, subscription in futures.items():
            if future in done:
                outcome.results.append(future.result())
            else:
                # A running attempt cannot be cancelled; its result is recorded when it lands
                if not future.cancel():
                    future.add_done_callback(self._record_late)
                outcome.results.append(
                    DeliveryResult(
                        subscription.id,
                        subscription.endpoint,
                        DeliveryStatus.transient_failure,
                        "Delivery timed out",
                    )
                )

        self._record(outcome)
        return outcome

    def _attempt(self, subscription, payload: str) -> DeliveryResult:
        endpoint = subscription.endpoint
        try:
            self._gateway.send(subscription.subscription_info, payload, timeout=self._attempt_timeout)
            return DeliveryResult(subscription.id, endpoint, DeliveryStatus.delivered)
        except PushGoneError as e:
            logger.info(f"Push endpoint gone, deactivating subscription {subscription.id}: {e}")
            return DeliveryResult(subscription.id, endpoint, DeliveryStatus.permanent_failure, str(e))
        except PushDeliveryError as e:
            logger.warning(f"❌ Push delivery failed for subscription {subscription.id}: {e}")
            return DeliveryResult(subscription.id, endpoint, DeliveryStatus.transient_failure, str(e))
        except Exception as e:
            logger.exception(f"Unexpected push gateway error for subscription {subscription.id}")
            return DeliveryResult(subscription.id, endpoint, DeliveryStatus.transient_failure, str(e))

    def _record_late(self, future) -> None:
        result = future.result()
        logger.info(f"Late push result for subscription {result.subscription_id}: {result.status.value}")
        self._update_registry([result])

    def _record(self, outcome: DispatchOutcome) -> None:
        self._update_registry(outcome.results)
        for result in outcome.results:
            PUSH_DELIVERIES.labels(outcome=result.status.value).inc()

        logger.info(
            f"Push delivery summary: {outcome.succeeded} successful, {outcome.failed} failed, "
            f"{outcome.deactivated} deactivated"
        )

    def _update_registry(self, results: List[DeliveryResult]) -> None:
        delivered = [r.subscription_id for r in results if r.success]
        gone = [r.endpoint for r in results if r.status == DeliveryStatus.permanent_failure]

        try:
            self._registry.mark_used(delivered)
            for endpoint in gone:
                self._registry.deactivate(endpoint)
        except SQLAlchemyError:
            logger.exception("Failed to record push delivery results")

    def shutdown(self, wait: bool = False) -> None:
        self._executor.shutdown(wait=wait)
