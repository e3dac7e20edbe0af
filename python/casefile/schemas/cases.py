"""Case catalog, evidence and access schemas."""

from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_serializer


class CaseOut(BaseModel):
    """Catalog entry as returned to clients.

    Prices are exact decimals internally and plain JSON numbers on the wire.
    """

    id: str
    title: str
    description: str
    price: Decimal
    difficulty: Literal["easy", "medium", "hard"]
    image_url: str | None = None
    content: str | None = None

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @field_serializer("price")
    def _price_as_number(self, price: Decimal) -> float:
        return float(price)


class CaseMediaOut(BaseModel):
    """Evidence item row."""

    id: UUID
    case_id: str
    title: str
    description: str | None = None
    media_type: Literal["image", "document", "audio", "video"]
    storage_path: str | None = None
    external_url: str | None = None
    cover_image_url: str | None = None
    display_order: int

    model_config = ConfigDict(from_attributes=True)


class MediaWithUrlOut(CaseMediaOut):
    """Evidence item with its display URL resolved.

    url is None when the item's file could not be signed; the item is still
    listed but has nothing to open.
    """

    url: str | None = None


class AccessOut(BaseModel):
    """Result of an access check.

    error is set when the check itself failed; has_access is then False.
    """

    case_id: str
    has_access: bool
    error: str | None = None
