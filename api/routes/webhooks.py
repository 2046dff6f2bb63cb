"""
Payment provider webhook intake.

200 acknowledges the delivery (including duplicates and ignored events);
503 with Retry-After asks the provider to redeliver; a bad signature is a
401 through the global handler.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from api.dependencies import get_webhook_ingestor
from application.dtos.webhooks import WebhookAck
from application.services.webhook_ingestor import WebhookIngestor
from api.utils.network import ip_allowed
from core.exceptions import RETRY_AFTER_SECONDS
from core.logging_config import get_logger
from core.response import Response as ApiResponse, error_response, success_response
from core.settings import settlement_settings
from shared.codes import BusinessCode


router = APIRouter(prefix="/webhooks", tags=["Webhooks"])
logger = get_logger(__name__)


@router.post("/{provider}", summary="Receive provider webhook", response_model=ApiResponse[WebhookAck])
async def receive_webhook(
    provider: str,
    request: Request,
    ingestor: WebhookIngestor = Depends(get_webhook_ingestor),
):
    allowlist = settlement_settings.webhook.ip_allowlist or []
    if allowlist:
        remote_ip = request.client.host if request.client else None
        if not ip_allowed(remote_ip, allowlist):
            logger.warning("security_event", kind="webhook_ip_rejected", provider=provider, remote_ip=remote_ip)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Webhook source not allowed")

    raw_body = await request.body()
    headers = {k: v for k, v in request.headers.items()}
    result = await ingestor.ingest(provider.lower(), headers, raw_body)

    if result.retry:
        response = error_response(
            code=BusinessCode.SERVICE_UNAVAILABLE,
            message="Webhook not processed; retry later",
            error_type="WebhookRetry",
            details={"event_id": result.event_id, **result.detail},
            request_id=getattr(request.state, "request_id", None),
            retryable=True,
        )
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=response.model_dump(mode="json"),
            headers={"Retry-After": RETRY_AFTER_SECONDS},
        )

    ack = WebhookAck(
        accepted=result.accepted,
        duplicate=result.duplicate,
        event_id=result.event_id,
        outcome=result.outcome,
    )
    return success_response(data=ack, message="Webhook accepted")
