"""Webhook reconciler for processors that call back on completion.

The inbound endpoint is public. The stored external reference must match the
callback's ``request_id`` before anything is written, and when a shared
secret is configured the callback URL token must match as well. Everything
else, including persistence failures, is acknowledged with 200 so the
processor does not start retrying.
"""

import hmac
import json
import logging
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel

from creative_studio.jobs.errors import InvalidTransition
from creative_studio.jobs.models import JobStatus
from creative_studio.jobs.store import JobStore
from creative_studio.processors.base import result_urls

logger = logging.getLogger(__name__)


class WebhookEnvelope(BaseModel):
    request_id: Optional[str] = None
    gateway_request_id: Optional[str] = None
    status: Optional[str] = None
    payload: Optional[Any] = None
    error: Optional[Any] = None


class WebhookOutcome(str, Enum):
    ACCEPTED = "accepted"
    IGNORED = "ignored"
    NOT_FOUND = "not_found"
    REJECTED = "rejected"
    UNAUTHORIZED = "unauthorized"
    ERROR = "error"

    @property
    def http_status(self) -> int:
        return {
            WebhookOutcome.NOT_FOUND: 404,
            WebhookOutcome.REJECTED: 400,
            WebhookOutcome.UNAUTHORIZED: 403,
        }.get(self, 200)


def _serialize(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


def _matches(given: Optional[str], expected: str) -> bool:
    # compare_digest rejects non-ASCII str, so compare the UTF-8 bytes
    if not given:
        return False
    return hmac.compare_digest(given.encode("utf-8"), expected.encode("utf-8"))


def error_detail_from(envelope: WebhookEnvelope, raw_body: str = "") -> str:
    """Structured error first, then the payload, then the raw body."""
    if envelope.error not in (None, "", {}):
        return _serialize(envelope.error)
    if envelope.payload not in (None, "", {}):
        return _serialize(envelope.payload)
    return raw_body or "Processor reported an error without details"


class WebhookReconciler:
    def __init__(self, store: JobStore, webhook_secret: Optional[str] = None):
        self._store = store
        self._secret = webhook_secret

    def handle(
        self,
        job_id: Optional[str],
        envelope: WebhookEnvelope,
        token: Optional[str] = None,
        raw_body: str = "",
    ) -> WebhookOutcome:
        if not job_id:
            return WebhookOutcome.NOT_FOUND
        job = self._store.get(job_id)
        if job is None:
            logger.info("Webhook for unknown job %s", job_id)
            return WebhookOutcome.NOT_FOUND

        if self._secret and not _matches(token, self._secret):
            logger.warning("Webhook for job %s carried an invalid token", job_id)
            return WebhookOutcome.UNAUTHORIZED

        if not job.external_reference or not _matches(envelope.request_id, job.external_reference):
            logger.warning(
                "Webhook reference mismatch for job %s: got %r, stored %r",
                job_id, envelope.request_id, job.external_reference,
            )
            return WebhookOutcome.REJECTED

        if job.status.is_terminal:
            logger.info("Webhook replay for job %s already %s", job_id, job.status.value)
            return WebhookOutcome.IGNORED

        try:
            if (envelope.status or "").upper() == "OK":
                urls = result_urls(envelope.payload)
                if urls:
                    self._store.transition(
                        job_id, JobStatus.COMPLETED,
                        expected=[JobStatus.PROCESSING],
                        output=urls[0], artifacts=urls,
                    )
                    logger.info("Job %s completed via webhook", job_id)
                else:
                    self._store.transition(
                        job_id, JobStatus.FAILED,
                        expected=[JobStatus.PROCESSING],
                        error_detail="Processor reported success without a result URL: "
                        + _serialize(envelope.payload),
                    )
                    logger.warning("Job %s: OK webhook without result URL", job_id)
            else:
                self._store.transition(
                    job_id, JobStatus.FAILED,
                    expected=[JobStatus.PROCESSING],
                    error_detail=error_detail_from(envelope, raw_body),
                )
                logger.info("Job %s failed via webhook", job_id)
        except InvalidTransition as exc:
            # Another reconciler got there first.
            logger.info("Webhook for job %s not applied: %s", job_id, exc)
            return WebhookOutcome.IGNORED
        except Exception:
            logger.exception("Failed to persist webhook result for job %s", job_id)
            return WebhookOutcome.ERROR
        return WebhookOutcome.ACCEPTED
