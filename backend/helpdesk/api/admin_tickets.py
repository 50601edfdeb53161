"""Ticket handling for staff and admins (/admin)."""

import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status

from helpdesk.api.deps import require_admin, require_staff
from helpdesk.api.tickets import (
    comment_response,
    get_ticket_service,
    list_filters,
    store_attachment,
    ticket_http_error,
    ticket_page_response,
    ticket_response,
)
from helpdesk.models.user import User
from helpdesk.schemas.common import DataResponse, PageResponse
from helpdesk.schemas.ticket import (
    CommentResponse,
    TicketAssignRequest,
    TicketResponse,
    TicketStatusUpdate,
    UserRef,
)
from helpdesk.services.ticket import TicketError, TicketFilters, TicketService
from helpdesk.services.uploads import delete_upload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin-tickets"])


@router.get("/tickets", response_model=PageResponse[TicketResponse])
async def list_tickets(
    filters: TicketFilters = Depends(list_filters),
    assigned_to: int | None = Query(None),
    page: int = Query(1),
    limit: int = Query(10),
    current_user: User = Depends(require_staff),
    service: TicketService = Depends(get_ticket_service),
) -> PageResponse[TicketResponse]:
    """All tickets for admins; staff only see tickets assigned to them."""
    filters.assigned_to = assigned_to
    result = await service.list_tickets(current_user, filters, page, limit)
    return ticket_page_response(result)


@router.get("/tickets/{ticket_id}", response_model=DataResponse[TicketResponse])
async def get_ticket(
    ticket_id: int,
    current_user: User = Depends(require_staff),
    service: TicketService = Depends(get_ticket_service),
) -> DataResponse[TicketResponse]:
    try:
        ticket = await service.get_visible_ticket(current_user, ticket_id)
    except TicketError as e:
        raise ticket_http_error(e) from e
    return DataResponse(data=ticket_response(ticket))


@router.put("/tickets/{ticket_id}/status", response_model=DataResponse[TicketResponse])
async def update_ticket_status(
    ticket_id: int,
    data: TicketStatusUpdate,
    current_user: User = Depends(require_staff),
    service: TicketService = Depends(get_ticket_service),
) -> DataResponse[TicketResponse]:
    """Change status and/or priority. Staff may only touch their assigned tickets."""
    try:
        ticket = await service.update_status(
            current_user,
            ticket_id,
            status=data.status.value if data.status else None,
            priority_id=data.priority_id,
        )
    except TicketError as e:
        raise ticket_http_error(e) from e
    return DataResponse(message="Ticket updated", data=ticket_response(ticket))


@router.get("/tickets/{ticket_id}/comments", response_model=DataResponse[list[CommentResponse]])
async def list_ticket_comments(
    ticket_id: int,
    current_user: User = Depends(require_staff),
    service: TicketService = Depends(get_ticket_service),
) -> DataResponse[list[CommentResponse]]:
    try:
        comments = await service.list_comments(current_user, ticket_id)
    except TicketError as e:
        raise ticket_http_error(e) from e
    return DataResponse(data=[comment_response(c) for c in comments])


@router.post(
    "/tickets/{ticket_id}/comments",
    response_model=DataResponse[CommentResponse],
    status_code=status.HTTP_201_CREATED,
)
async def post_ticket_comment(
    ticket_id: int,
    content: str = Form(""),
    parent_id: int | None = Form(None),
    attachment: UploadFile | None = File(None),
    current_user: User = Depends(require_staff),
    service: TicketService = Depends(get_ticket_service),
) -> DataResponse[CommentResponse]:
    if not content.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Comment content is required"
        )
    attachment_path = await store_attachment(attachment, "comments")
    try:
        comment = await service.add_comment(
            current_user,
            ticket_id,
            content=content,
            parent_id=parent_id,
            attachment_path=attachment_path,
        )
    except TicketError as e:
        delete_upload(attachment_path)
        raise ticket_http_error(e) from e
    return DataResponse(message="Comment added", data=comment_response(comment))


@router.get("/staff", response_model=DataResponse[list[UserRef]])
async def list_assignable_staff(
    current_user: User = Depends(require_admin),
    service: TicketService = Depends(get_ticket_service),
) -> DataResponse[list[UserRef]]:
    staff = await service.list_assignable_staff()
    return DataResponse(data=[UserRef.model_validate(u) for u in staff])


@router.put("/tickets/{ticket_id}/assign", response_model=DataResponse[TicketResponse])
async def assign_ticket(
    ticket_id: int,
    data: TicketAssignRequest,
    current_user: User = Depends(require_admin),
    service: TicketService = Depends(get_ticket_service),
) -> DataResponse[TicketResponse]:
    try:
        ticket = await service.assign(ticket_id, data.assigned_to)
    except TicketError as e:
        raise ticket_http_error(e) from e
    logger.info(f"Admin {current_user.id} assigned ticket {ticket_id} to {data.assigned_to}")
    return DataResponse(message="Ticket assigned", data=ticket_response(ticket))
