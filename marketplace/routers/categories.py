from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from marketplace.core.db import get_db
from marketplace.models.category import Category
from marketplace.schemas.common import CategoryOut

router = APIRouter(prefix="/api/categories", tags=["categories"])


@router.get("", response_model=List[CategoryOut])
def list_categories(db: Session = Depends(get_db)):
    return db.query(Category).order_by(Category.name.asc()).all()
