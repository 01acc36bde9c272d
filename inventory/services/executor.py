"""Action executor.

Replays an approved request against the internal endpoint of the service
that owns the entity, authenticated as the approver with a short-lived
internal credential. The internal endpoints run the same mutation code as
a direct-permission caller would.
"""

import logging
from typing import Any, Dict, Optional, Tuple

import httpx

from inventory.core.approval.request_types import RequestType
from inventory.core.codec import ActionPayload, decode_action
from inventory.core.config import get_settings
from inventory.core.exceptions import ExecutionError
from inventory.core.security import create_internal_token
from .schemas import AttachmentIn

logger = logging.getLogger(__name__)

APPROVAL_REQUEST_HEADER = "X-Approval-Request-Id"

Call = Tuple[str, str, Optional[Dict[str, Any]]]


class ActionExecutor:
    """Dispatches approved actions to their owning service."""

    def __init__(self, settings=None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings or get_settings()
        self.transport = transport
        self._builders = {
            RequestType.PRODUCT_CREATE: self._product_create,
            RequestType.PRODUCT_UPDATE: self._product_update,
            RequestType.PRODUCT_DELETE: self._product_delete,
            RequestType.PRODUCT_TRANSFER: self._product_transfer,
            RequestType.ROUTE_UPDATE: self._route_update,
            RequestType.ROUTE_DELETE: self._route_delete,
        }

    async def execute(
        self,
        request_type: str,
        action_data: str,
        approver_id: int,
        approver_name: str,
        *,
        approval_request_id: Optional[int] = None,
    ) -> bool:
        """
        Replay an approved action.

        Returns:
            True if the owning service accepted the action

        Raises:
            ExecutionError: Unsupported request type, or the call timed out
            PayloadError: Stored action data could not be decoded
            httpx.HTTPError: Transport failure
        """
        try:
            kind = RequestType(request_type)
        except ValueError:
            raise ExecutionError(f"Unsupported request type: {request_type}") from None

        payload = decode_action(action_data)
        method, url, body = self._builders[kind](payload)

        token = create_internal_token(
            approver_id,
            approver_name,
            approval_request_id=approval_request_id,
            permissions=[kind.direct_permission],
        )
        headers = {"Authorization": f"Bearer {token}"}
        if approval_request_id is not None:
            headers[APPROVAL_REQUEST_HEADER] = str(approval_request_id)

        logger.info(f"Replaying {kind.value} request {approval_request_id}: {method} {url}")
        try:
            async with httpx.AsyncClient(timeout=self.settings.executor_timeout, transport=self.transport) as client:
                response = await client.request(method, url, json=body, headers=headers)
        except httpx.TimeoutException as e:
            raise ExecutionError(
                f"Timed out after {self.settings.executor_timeout}s calling {method} {url}"
            ) from e

        if response.is_success:
            return True

        logger.warning(
            f"Replay of {kind.value} request {approval_request_id} returned "
            f"{response.status_code}: {response.text[:500]}"
        )
        return False

    # Request builders

    def _product_url(self, path: str) -> str:
        return f"{self.settings.product_service_url.rstrip('/')}/api/products{path}"

    def _route_url(self, path: str) -> str:
        return f"{self.settings.route_service_url.rstrip('/')}/api/routes{path}"

    @staticmethod
    def _image(payload: ActionPayload) -> Optional[Dict[str, Any]]:
        image = AttachmentIn.from_attachment(payload.attachment)
        return image.model_dump() if image else None

    @staticmethod
    def _require_id(payload: ActionPayload, key: str) -> int:
        value = payload.get(key)
        if value is None:
            raise ExecutionError(f"Action data has no {key}")
        return int(value)

    def _product_create(self, payload: ActionPayload) -> Call:
        body = {"product": payload.section("product_data"), "image": self._image(payload)}
        return "POST", self._product_url("/approved"), body

    def _product_update(self, payload: ActionPayload) -> Call:
        product_id = self._require_id(payload, "product_id")
        body = {"update": payload.section("update_data"), "image": self._image(payload)}
        return "PUT", self._product_url(f"/{product_id}/approved"), body

    def _product_delete(self, payload: ActionPayload) -> Call:
        product_id = self._require_id(payload, "product_id")
        return "DELETE", self._product_url(f"/{product_id}/approved"), None

    def _product_transfer(self, payload: ActionPayload) -> Call:
        body = {
            "transfer": {
                "product_id": self._require_id(payload, "product_id"),
                "to_department_id": self._require_id(payload, "to_department_id"),
                "to_worker": payload.get("to_worker"),
                "notes": payload.get("notes"),
            },
            "image": self._image(payload),
        }
        return "POST", self._route_url("/transfer/approved"), body

    def _route_update(self, payload: ActionPayload) -> Call:
        route_id = self._require_id(payload, "route_id")
        return "PUT", self._route_url(f"/{route_id}/approved"), {"update": payload.section("update_data")}

    def _route_delete(self, payload: ActionPayload) -> Call:
        route_id = self._require_id(payload, "route_id")
        return "DELETE", self._route_url(f"/{route_id}/approved"), None
