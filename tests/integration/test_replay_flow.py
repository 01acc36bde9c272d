"""Approve-and-replay through the real executor and internal endpoints."""

import httpx
import pytest

from inventory.core.approval import Actor
from inventory.core.config import Settings
from inventory.core.exceptions import ApprovalPending
from inventory.core.rbac.roles import OPERATOR_PERMISSIONS
from inventory.db.models import InventoryRoute, Product
from inventory.messaging.events import ApprovalRequestProcessed, ProductCreated, ProductTransferred
from inventory.services.approvals import ApprovalProcessor
from inventory.services.executor import ActionExecutor
from inventory.services.products import ProductManagementService
from inventory.services.propagation import apply_product_transfer
from inventory.services.routes import RouteCommands, RouteManagementService
from inventory.services.schemas import ProductData, TransferData

from tests.factories import create_category, create_department, create_product, create_user

pytestmark = [pytest.mark.db, pytest.mark.integration, pytest.mark.asyncio]


@pytest.fixture()
def executor_over_asgi(api_overrides):
    settings = Settings(product_service_url="http://testserver", route_service_url="http://testserver")
    return ActionExecutor(settings, transport=httpx.ASGITransport(app=api_overrides))


@pytest.fixture()
def actors(db_session):
    operator = create_user(db_session, permissions=OPERATOR_PERMISSIONS, name="Oscar Operator")
    admin = create_user(db_session, permissions=["*"], name="Ada Admin")
    db_session.commit()
    return Actor.from_user(operator), Actor.from_user(admin)


async def test_approved_create_is_replayed(db_session, publisher, executor_over_asgi, actors):
    operator, admin = actors
    category = create_category(db_session)
    department = create_department(db_session)
    db_session.commit()

    service = ProductManagementService(db_session, operator, publisher)
    with pytest.raises(ApprovalPending) as exc_info:
        service.create_product(ProductData(
            inventory_code=4321, model="T14", category_id=category.id, department_id=department.id,
        ))
    request_id = exc_info.value.approval_request_id

    processor = ApprovalProcessor(db_session, publisher, executor_over_asgi)
    request = await processor.approve(request_id, admin)

    assert request.status == "executed"
    db_session.expire_all()
    product = db_session.query(Product).filter_by(inventory_code=4321).one()
    assert product.approval_request_id == request_id
    assert publisher.of_type(ProductCreated)[0].product_id == product.id
    assert publisher.of_type(ApprovalRequestProcessed)[0].status == "Approved"


async def test_replay_rejected_by_owner_marks_failed(db_session, publisher, executor_over_asgi, actors):
    operator, admin = actors
    category = create_category(db_session)
    department = create_department(db_session)
    db_session.commit()

    service = ProductManagementService(db_session, operator, publisher)
    with pytest.raises(ApprovalPending) as exc_info:
        service.create_product(ProductData(
            inventory_code=4322, category_id=category.id, department_id=department.id,
        ))
    # Someone takes the code while the request waits for review
    create_product(db_session, inventory_code=4322, category=category, department=department)
    db_session.commit()

    request = await ApprovalProcessor(db_session, publisher, executor_over_asgi).approve(
        exc_info.value.approval_request_id, admin,
    )

    assert request.status == "failed"
    assert request.rejection_reason == "Execution failed"
    assert publisher.of_type(ApprovalRequestProcessed)[0].status == "Failed"


async def test_approved_transfer_moves_product_on_completion(db_session, publisher, executor_over_asgi, actors):
    operator, admin = actors
    product = create_product(db_session, worker="Ann")
    target = create_department(db_session, name="Finance")
    db_session.commit()

    service = RouteManagementService(db_session, operator, publisher)
    with pytest.raises(ApprovalPending) as exc_info:
        service.transfer_inventory(TransferData(product_id=product.id, to_department_id=target.id, to_worker="Bo"))

    request = await ApprovalProcessor(db_session, publisher, executor_over_asgi).approve(
        exc_info.value.approval_request_id, admin,
    )
    assert request.status == "executed"

    db_session.expire_all()
    route = db_session.query(InventoryRoute).filter_by(product_id=product.id).one()
    assert route.approval_request_id == request.id

    RouteCommands(db_session, publisher).complete(route.id)
    (transferred,) = publisher.of_type(ProductTransferred)
    assert apply_product_transfer(db_session, transferred) is True

    db_session.expire_all()
    moved = db_session.get(Product, product.id)
    assert (moved.department_id, moved.worker) == (target.id, "Bo")
