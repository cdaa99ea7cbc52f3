# marketplace/schemas/media.py
from typing import List

from pydantic import Field
from .base import BaseSchema


class ImageUploadOut(BaseSchema):
    urls: List[str]
    errors: List[str] = Field(default_factory=list)
    partial: bool = False
