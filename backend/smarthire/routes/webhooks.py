"""Webhook Routes - Stripe subscription lifecycle.

POST /api/webhook        - Stripe webhook endpoint
POST /api/webhook/stripe - Alias (Stripe dashboards configured with the longer path)

Responses:
- 400 "Webhook Error: <reason>" when the signature does not verify; nothing is read or written
- 200 empty body once the event is applied, deduplicated or ignored
- 500 when an entitlement write still failed after retries, so Stripe redelivers
"""
from fastapi import APIRouter, Depends, Header, Request, status
from fastapi.responses import PlainTextResponse, Response
import logging

from smarthire.context import AppContext, get_context
from smarthire.errors import InvalidSignature

logger = logging.getLogger(__name__)
router = APIRouter(tags=["webhooks"])


async def _handle_stripe_webhook(request: Request, ctx: AppContext, stripe_signature: str = None) -> Response:
    payload = await request.body()

    try:
        result = await ctx.webhooks.process_webhook(payload=payload, signature=stripe_signature)
    except InvalidSignature as e:
        return PlainTextResponse(f"Webhook Error: {e.message}", status_code=status.HTTP_400_BAD_REQUEST)
    except Exception as e:
        logger.exception(f"Stripe webhook error: {e}")
        return PlainTextResponse("Webhook processing failed", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    if not result.ok:
        logger.error(f"Webhook {result.event_id} incomplete - failed tenants {result.failed_tenant_ids}")
        return PlainTextResponse("Webhook processing incomplete", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    return Response(status_code=status.HTTP_200_OK)


@router.post("/api/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None, alias="Stripe-Signature"),
    ctx: AppContext = Depends(get_context),
):
    """Handle Stripe webhooks at /api/webhook"""
    return await _handle_stripe_webhook(request, ctx, stripe_signature)


@router.post("/api/webhook/stripe")
async def stripe_webhook_alias(
    request: Request,
    stripe_signature: str = Header(None, alias="Stripe-Signature"),
    ctx: AppContext = Depends(get_context),
):
    """Handle Stripe webhooks at /api/webhook/stripe (alias)"""
    return await _handle_stripe_webhook(request, ctx, stripe_signature)
