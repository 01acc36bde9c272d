"""Tests for notification wording."""

import pytest
from jinja2 import UndefinedError

from inventory.services.notifications import NOTIFICATION_TEMPLATES, render_notification


def test_approval_created():
    content = render_notification("approval_created", readable="Product Create", requested_by_name="Ann")
    assert content["title"] == "New Product Create Request"
    assert content["message"] == "Ann submitted a product create request that needs your review."


def test_rejection_includes_reason():
    content = render_notification(
        "approval_rejected", readable="Route Delete", processed_by_name="Bo", reason="Route is in use",
    )
    assert content["message"].endswith("Reason: Route is in use")


def test_failure_without_reason():
    content = render_notification("approval_failed", readable="Product Update", processed_by_name="Bo", reason=None)
    assert "Error:" not in content["message"]


def test_missing_values_collapse_whitespace():
    content = render_notification(
        "product_deleted", vendor=None, model="T14", inventory_code=4321,
    )
    assert content["message"] == "T14 (4321) was removed from inventory."


def test_route_completed_mentions_worker():
    content = render_notification("route_completed", inventory_code=12, to_department_name="IT", to_worker="Ann")
    assert content["message"] == "Product 12 now belongs to IT (Ann)."


def test_missing_context_is_an_error():
    with pytest.raises(UndefinedError):
        render_notification("approval_created", readable="Product Create")


def test_every_template_has_title_and_message():
    for key, template in NOTIFICATION_TEMPLATES.items():
        assert set(template) == {"title", "message"}, key
