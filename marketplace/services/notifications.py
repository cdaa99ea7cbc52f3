# marketplace/services/notifications.py
import logging

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from marketplace.core.errors import MarketplaceError
from marketplace.services.mailer import Mailer, OutgoingEmail

logger = logging.getLogger(__name__)


class InterestNotice(BaseModel):
    """Everything the seller email needs; validated before any network call."""

    model_config = ConfigDict(str_strip_whitespace=True)

    listing_name: str = Field(..., min_length=1, max_length=200)
    buyer_name: str = Field(..., min_length=1, max_length=100)
    buyer_email: EmailStr
    seller_name: str = Field(..., min_length=1, max_length=100)
    seller_email: EmailStr
    withdrawn: bool = False


class NotificationDispatcher:
    def __init__(self, mailer: Mailer, brand: str = "Campus Marketplace"):
        self.mailer = mailer
        self.brand = brand

    def render(self, notice: InterestNotice) -> OutgoingEmail:
        if notice.withdrawn:
            subject = f"Withdrawal of Interest in purchase of {notice.listing_name} | {self.brand}"
            update = f"{notice.buyer_name} is no longer interested in purchasing it."
        else:
            subject = f"Interest in purchase of {notice.listing_name} | {self.brand}"
            update = f"{notice.buyer_name} is interested in purchasing it."
        body = (
            f"Hi {notice.seller_name},\n\n"
            f"There's an update on the interest for your listing '{notice.listing_name}'.\n\n"
            f"{update} View more on the listings page.\n\n"
            f"Reply to this email to reach {notice.buyer_name} at {notice.buyer_email}.\n\n"
            f"{self.brand}"
        )
        return OutgoingEmail(
            to=notice.seller_email,
            to_name=notice.seller_name,
            from_display_name=f"{notice.buyer_name} via {self.brand}",
            reply_to=notice.buyer_email,
            subject=subject,
            body=body,
        )

    def send(self, notice: InterestNotice) -> str:
        return self.mailer.send(self.render(notice))

    def notify(self, notice: InterestNotice) -> bool:
        """Fire-and-forget delivery: failures are logged, never raised."""
        try:
            message_id = self.send(notice)
        except MarketplaceError as e:
            logger.warning(
                "interest email failed listing=%r seller=%s withdrawn=%s: %s",
                notice.listing_name, notice.seller_email, notice.withdrawn, e,
            )
            return False
        except Exception:
            logger.exception("interest email crashed listing=%r seller=%s", notice.listing_name, notice.seller_email)
            return False
        logger.info("interest email sent id=%s seller=%s withdrawn=%s", message_id, notice.seller_email, notice.withdrawn)
        return True
