"""Inbound processor callbacks.

  POST /webhooks/lipsync?job_id=...&token=...

The endpoint is public. Only spoofing-class problems (unknown job, bad token,
mismatched request id) get a client error; everything else is acknowledged
with 200 so the processor does not retry.
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from creative_studio.api.deps import get_services
from creative_studio.jobs.webhook import WebhookEnvelope, WebhookOutcome
from creative_studio.services import Services

logger = logging.getLogger(__name__)

router = APIRouter()

_MESSAGES = {
    WebhookOutcome.ACCEPTED: "Webhook received",
    WebhookOutcome.IGNORED: "Webhook received",
    WebhookOutcome.ERROR: "Webhook received",
    WebhookOutcome.NOT_FOUND: "Job not found",
    WebhookOutcome.REJECTED: "Request ID mismatch",
    WebhookOutcome.UNAUTHORIZED: "Invalid webhook token",
}


@router.post("/webhooks/lipsync", response_class=PlainTextResponse)
async def lipsync_webhook(
    request: Request,
    job_id: Optional[str] = None,
    token: Optional[str] = None,
    services: Services = Depends(get_services),
):
    raw = (await request.body()).decode("utf-8", errors="replace")
    try:
        envelope = WebhookEnvelope.model_validate(json.loads(raw or "{}"))
    except (ValueError, ValidationError):
        logger.warning("Unparseable webhook body for job %s", job_id)
        return PlainTextResponse("Invalid payload", status_code=400)

    outcome = await run_in_threadpool(
        services.webhook.handle, job_id, envelope, token=token, raw_body=raw
    )
    return PlainTextResponse(_MESSAGES[outcome], status_code=outcome.http_status)
