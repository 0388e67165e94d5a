import logging
from typing import Mapping, Optional

import requests
from pywebpush import WebPushException, webpush

from .config import ReminderWorkerConfig, config as default_config

# Setup logger
logger = logging.getLogger(__name__)

GONE_STATUS_CODES = (404, 410)


class PushDeliveryError(Exception):
    """Raised when a push attempt fails but the endpoint may work later."""
    pass


class PushGoneError(PushDeliveryError):
    """Raised when the push service reports the endpoint as expired or invalid."""

    def __init__(self, endpoint: str, status_code: int):
        self.endpoint = endpoint
        self.status_code = status_code
        super().__init__(f"Push subscription gone ({status_code}): {endpoint[:60]}")


class PushGateway:
    """Interface: deliver one encrypted payload to one subscriber endpoint."""

    def send(self, subscription_info: Mapping, payload: str, timeout: float) -> None:
        raise NotImplementedError


class WebPushGateway(PushGateway):
    """
    Web Push (VAPID) delivery through pywebpush.

    Arguments:
        cfg (ReminderWorkerConfig, optional): Dependency injection for config.
    """

    def __init__(self, cfg: Optional[ReminderWorkerConfig] = None) -> None:
        self.cfg = cfg or default_config

    def send(self, subscription_info, payload, timeout):
        if not self.cfg.vapid_configured:
            raise PushDeliveryError("Missing VAPID configuration")

        endpoint = subscription_info.get("endpoint", "")
        try:
            webpush(
                subscription_info=dict(subscription_info),
                data=payload,
                vapid_private_key=self.cfg.VAPID_PRIVATE_KEY,
                vapid_claims={"sub": self.cfg.VAPID_SUBJECT},
                ttl=self.cfg.PUSH_TTL_SECONDS,
                timeout=timeout,
                headers={"Urgency": "high"},
            )
        except WebPushException as e:
            response = getattr(e, "response", None)
            status_code = getattr(response, "status_code", None)
            if status_code in GONE_STATUS_CODES:
                raise PushGoneError(endpoint, status_code) from e
            raise PushDeliveryError(f"Push rejected ({status_code}): {e}") from e
        except requests.Timeout as e:
            raise PushDeliveryError("Push request timed out") from e
        except requests.RequestException as e:
            raise PushDeliveryError(f"Push transport error: {e}") from e
        except Exception as e:
            # Malformed keys and encryption errors surface as plain exceptions
            raise PushDeliveryError(str(e)) from e
