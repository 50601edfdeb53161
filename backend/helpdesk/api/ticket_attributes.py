"""Ticket categories, product types and priorities.

Lists are public so the ticket form can be rendered before login; changes
require an admin.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.api.deps import require_admin
from helpdesk.core import get_db
from helpdesk.models.user import User
from helpdesk.schemas.common import DataResponse, MessageResponse
from helpdesk.schemas.ticket import AttributeRequest, AttributeResponse
from helpdesk.services.ticket_attribute import (
    ATTRIBUTE_MODELS,
    AttributeExistsError,
    AttributeNotFoundError,
    TicketAttributeService,
)

router = APIRouter(tags=["ticket-attributes"])


def _service(kind: str, db: AsyncSession) -> TicketAttributeService:
    return TicketAttributeService(db, ATTRIBUTE_MODELS[kind])


def _register(kind: str) -> None:
    """Add list/create/update/delete routes for one attribute kind."""

    async def list_items(db: AsyncSession = Depends(get_db)) -> DataResponse[list[AttributeResponse]]:
        items = await _service(kind, db).list()
        return DataResponse(data=[AttributeResponse.model_validate(i) for i in items])

    async def create_item(
        data: AttributeRequest,
        _: User = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
    ) -> DataResponse[AttributeResponse]:
        try:
            item = await _service(kind, db).create(data.name)
        except AttributeExistsError as e:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
        return DataResponse(message="Created", data=AttributeResponse.model_validate(item))

    async def update_item(
        attribute_id: int,
        data: AttributeRequest,
        _: User = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
    ) -> DataResponse[AttributeResponse]:
        try:
            item = await _service(kind, db).update(attribute_id, data.name)
        except AttributeNotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
        except AttributeExistsError as e:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
        return DataResponse(message="Updated", data=AttributeResponse.model_validate(item))

    async def delete_item(
        attribute_id: int,
        _: User = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
    ) -> MessageResponse:
        try:
            await _service(kind, db).delete(attribute_id)
        except AttributeNotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
        return MessageResponse(message="Deleted")

    public_path = f"/ticket-{kind}"
    admin_path = f"/admin/ticket-{kind}"
    name = kind.replace("-", "_")

    router.add_api_route(
        public_path,
        list_items,
        methods=["GET"],
        response_model=DataResponse[list[AttributeResponse]],
        name=f"list_{name}",
    )
    router.add_api_route(
        admin_path,
        list_items,
        methods=["GET"],
        response_model=DataResponse[list[AttributeResponse]],
        name=f"admin_list_{name}",
        dependencies=[Depends(require_admin)],
    )
    router.add_api_route(
        admin_path,
        create_item,
        methods=["POST"],
        response_model=DataResponse[AttributeResponse],
        status_code=status.HTTP_201_CREATED,
        name=f"create_{name}",
    )
    router.add_api_route(
        f"{admin_path}/{{attribute_id}}",
        update_item,
        methods=["PUT"],
        response_model=DataResponse[AttributeResponse],
        name=f"update_{name}",
    )
    router.add_api_route(
        f"{admin_path}/{{attribute_id}}",
        delete_item,
        methods=["DELETE"],
        response_model=MessageResponse,
        name=f"delete_{name}",
    )


for _kind in ATTRIBUTE_MODELS:
    _register(_kind)
