# marketplace/routers/email_send.py
"""Direct interest emails for clients that send the notice themselves.

Errors here use the ``{"error": ...}`` body the web client expects, not the
``detail``/``message`` pair of the rest of the API.
"""
import logging

import pydantic
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from marketplace.core.auth import Identity, get_current_identity
from marketplace.core.deps import get_dispatcher
from marketplace.core.errors import MarketplaceError, RateLimited
from marketplace.schemas.email_send import EmailSendIn, EmailSendOut
from marketplace.services.notifications import InterestNotice, NotificationDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["email"])


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.post("/email-send", response_model=EmailSendOut)
async def email_send(
    request: Request,
    me: Identity = Depends(get_current_identity),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    try:
        raw = await request.json()
    except ValueError:
        return _error(400, "Request body must be JSON.")
    if not isinstance(raw, dict):
        return _error(400, "Request body must be a JSON object.")

    try:
        payload = EmailSendIn.model_validate(raw)
        notice = InterestNotice(
            listing_name=payload.subject,
            buyer_name=payload.from_name,
            buyer_email=payload.from_email,
            seller_name=payload.to_name,
            seller_email=payload.to,
            withdrawn=payload.notin,
        )
    except pydantic.ValidationError as e:
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
        return _error(400, f"Missing or invalid fields: {', '.join(fields)}" if fields else "Invalid request.")

    try:
        message_id = dispatcher.send(notice)
    except RateLimited as e:
        return _error(429, e.message)
    except MarketplaceError as e:
        logger.error("email-send failed user=%s to=%s: %s", me.user_id, payload.to, e)
        return _error(500, "Email could not be sent. Please try again later.")

    logger.info("email-send ok user=%s to=%s id=%s withdrawn=%s", me.user_id, payload.to, message_id, payload.notin)
    return EmailSendOut(success=True, message_id=message_id)
