"""Input models shared by the public endpoints, the internal replay
endpoints and the action executor.
"""

from typing import Optional

from pydantic import BaseModel, Field

from inventory.core.codec import Attachment
from inventory.db.models.product import MIN_INVENTORY_CODE, MAX_INVENTORY_CODE


class AttachmentIn(BaseModel):
    """Base64 file upload inside a JSON body."""
    content: str
    file_name: Optional[str] = None
    content_type: Optional[str] = None

    def to_attachment(self) -> Attachment:
        return Attachment.from_base64(self.content, file_name=self.file_name, content_type=self.content_type)

    @classmethod
    def from_attachment(cls, attachment: Optional[Attachment]) -> Optional["AttachmentIn"]:
        if attachment is None:
            return None
        return cls(
            content=attachment.to_base64(),
            file_name=attachment.file_name,
            content_type=attachment.content_type,
        )


class ProductData(BaseModel):
    inventory_code: int = Field(..., ge=MIN_INVENTORY_CODE, le=MAX_INVENTORY_CODE)
    model: Optional[str] = Field(None, max_length=255)
    vendor: Optional[str] = Field(None, max_length=255)
    worker: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    is_working: bool = True
    is_active: bool = True
    is_new_item: bool = False
    category_id: int = Field(..., gt=0)
    department_id: int = Field(..., gt=0)


NULLABLE_PRODUCT_FIELDS = {"model", "vendor", "worker", "description"}


class ProductUpdate(BaseModel):
    inventory_code: Optional[int] = Field(None, ge=MIN_INVENTORY_CODE, le=MAX_INVENTORY_CODE)
    model: Optional[str] = Field(None, max_length=255)
    vendor: Optional[str] = Field(None, max_length=255)
    worker: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    is_working: Optional[bool] = None
    is_active: Optional[bool] = None
    is_new_item: Optional[bool] = None
    category_id: Optional[int] = Field(None, gt=0)
    department_id: Optional[int] = Field(None, gt=0)

    def set_fields(self) -> dict:
        """Explicitly set fields; None only where the column allows it."""
        return {
            name: value
            for name, value in self.model_dump(exclude_unset=True).items()
            if value is not None or name in NULLABLE_PRODUCT_FIELDS
        }


class TransferData(BaseModel):
    product_id: int = Field(..., gt=0)
    to_department_id: int = Field(..., gt=0)
    to_worker: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None


class RouteUpdate(BaseModel):
    to_department_id: Optional[int] = Field(None, gt=0)
    to_worker: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None
