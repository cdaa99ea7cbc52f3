import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from marketplace.core.auth import get_current_profile
from marketplace.core.db import get_db
from marketplace.core.errors import NotFound
from marketplace.models.listing import Listing
from marketplace.models.profile import Profile
from marketplace.models.report import Report
from marketplace.schemas.report import ReportIn, ReportOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/listings", tags=["reports"])


@router.post("/{listing_id}/report", response_model=ReportOut, status_code=status.HTTP_201_CREATED)
def report_listing(
    listing_id: int,
    payload: ReportIn,
    me: Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
):
    if db.get(Listing, listing_id) is None:
        raise NotFound("LISTING_NOT_FOUND", "Listing not found")
    report = Report(
        listing_id=listing_id,
        reporter_id=me.user_id,
        reason=payload.reason,
        details=payload.details,
    )
    db.add(report)
    db.commit()
    db.refresh(report)
    logger.info("listing reported listing=%s reporter=%s reason=%s", listing_id, me.user_id, payload.reason)
    return report
