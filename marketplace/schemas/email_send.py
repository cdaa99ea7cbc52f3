# marketplace/schemas/email_send.py
from typing import Optional

from pydantic import EmailStr, Field
from .base import BaseSchema


class EmailSendIn(BaseSchema):
    to: EmailStr
    to_name: str = Field(..., min_length=1, max_length=100)
    # the listing name
    subject: str = Field(..., min_length=1, max_length=200)
    from_name: str = Field(..., min_length=1, max_length=100)
    from_email: EmailStr
    # true when the buyer withdraws interest
    notin: bool = False


class EmailSendOut(BaseSchema):
    success: bool
    message_id: Optional[str] = None
