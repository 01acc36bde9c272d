"""Action payload codec.

A deferred mutation is stored as a JSON document so it can sit in a
text column, travel over HTTP and be shown to a reviewer. Binary
attachments (product photos) are carried as base64 next to the data:

    {
        "product_data": {...},
        "image_data": "iVBORw0KGgo...",
        "image_file_name": "front.png",
        "image_content_type": "image/png",
        "image_size": 48211
    }

Decoding also accepts ``image`` as the attachment key, data URLs
(``data:image/png;base64,...``) and an attachment nested one level down
inside a section.
"""

import base64
import binascii
import json
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from inventory.core.exceptions import PayloadError

ATTACHMENT_KEY = "image_data"
ATTACHMENT_ALIASES = ("image_data", "image", "imageData")
FILE_NAME_KEYS = ("image_file_name", "imageFileName")
CONTENT_TYPE_KEY = "image_content_type"
SIZE_KEYS = ("image_size", "imageSize")


@dataclass
class Attachment:
    """Binary blob travelling with an action payload."""
    content: bytes
    file_name: Optional[str] = None
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.content)

    def to_base64(self) -> str:
        return base64.b64encode(self.content).decode("ascii")

    @classmethod
    def from_base64(
        cls,
        value: str,
        file_name: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> "Attachment":
        """Decode plain base64 or a ``data:<type>;base64,`` URL."""
        if value.startswith("data:"):
            header, _, value = value.partition(",")
            media_type = header[len("data:"):].split(";")[0]
            content_type = content_type or media_type or None
        try:
            content = base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError) as e:
            raise PayloadError(f"Attachment is not valid base64: {e}") from e
        return cls(content=content, file_name=file_name, content_type=content_type)


@dataclass
class ActionPayload:
    """Decoded parameters of a deferred mutation."""
    data: Dict[str, Any] = field(default_factory=dict)
    attachment: Optional[Attachment] = None

    def section(self, key: str) -> Dict[str, Any]:
        """Return ``data[key]`` when the payload is nested, else the flat data."""
        nested = self.data.get(key)
        if isinstance(nested, dict):
            return nested
        return self.data

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_action(data: Dict[str, Any], attachment: Optional[Attachment] = None) -> str:
    """Serialize action parameters and an optional attachment to JSON text."""
    body = dict(data)
    if attachment is not None:
        body[ATTACHMENT_KEY] = attachment.to_base64()
        body[FILE_NAME_KEYS[0]] = attachment.file_name
        body[CONTENT_TYPE_KEY] = attachment.content_type
        body[SIZE_KEYS[0]] = attachment.size
    try:
        return json.dumps(body, default=_json_default)
    except (TypeError, ValueError) as e:
        raise PayloadError(f"Action data cannot be serialized: {e}") from e


def _pop_first(container: Dict[str, Any], keys) -> Any:
    value = None
    for key in keys:
        if key in container:
            found = container.pop(key)
            if value is None:
                value = found
    return value


def _extract_attachment(container: Dict[str, Any]) -> Optional[Attachment]:
    encoded = _pop_first(container, ATTACHMENT_ALIASES)
    file_name = _pop_first(container, FILE_NAME_KEYS)
    content_type = container.pop(CONTENT_TYPE_KEY, None)
    _pop_first(container, SIZE_KEYS)
    if encoded is None:
        return None
    if not isinstance(encoded, str):
        raise PayloadError("Attachment must be a base64 string")
    return Attachment.from_base64(encoded, file_name=file_name, content_type=content_type)


def decode_action(raw: str) -> ActionPayload:
    """Parse JSON text produced by :func:`encode_action`."""
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise PayloadError(f"Action data is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise PayloadError("Action data must be a JSON object")

    attachment = _extract_attachment(data)
    if attachment is None:
        for value in data.values():
            if isinstance(value, dict):
                attachment = _extract_attachment(value)
                if attachment is not None:
                    break

    return ActionPayload(data=data, attachment=attachment)
