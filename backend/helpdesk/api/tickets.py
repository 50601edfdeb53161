"""Ticket endpoints for signed-in users (/user/tickets)."""

import logging
from datetime import date

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.api.deps import get_current_user, get_mail_outbox
from helpdesk.core import get_db
from helpdesk.models.ticket import Ticket, TicketComment, TicketStatus
from helpdesk.models.user import User
from helpdesk.schemas.common import DataResponse, MessageResponse, PageResponse
from helpdesk.schemas.ticket import CommentResponse, TicketResponse
from helpdesk.services.email import MailOutbox
from helpdesk.services.ticket import (
    InvalidTicketDataError,
    TicketError,
    TicketFilters,
    TicketNotFoundError,
    TicketPage,
    TicketPermissionError,
    TicketService,
)
from helpdesk.services.uploads import UploadTooLargeError, delete_upload, save_upload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/user/tickets", tags=["tickets"])


def get_ticket_service(
    db: AsyncSession = Depends(get_db),
    outbox: MailOutbox = Depends(get_mail_outbox),
) -> TicketService:
    return TicketService(db, outbox)


def ticket_http_error(e: TicketError) -> HTTPException:
    if isinstance(e, TicketNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ticket not found")
    if isinstance(e, TicketPermissionError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def ticket_response(ticket: Ticket, has_new_reply: bool = False) -> TicketResponse:
    return TicketResponse.model_validate(ticket).model_copy(update={"has_new_reply": has_new_reply})


def ticket_page_response(result: TicketPage) -> PageResponse[TicketResponse]:
    return PageResponse[TicketResponse].build(
        [ticket_response(t, t.id in result.unread_ticket_ids) for t in result.tickets],
        total=result.total,
        page=result.page,
        limit=result.limit,
    )


def comment_response(comment: TicketComment) -> CommentResponse:
    author = comment.author
    return CommentResponse(
        id=comment.id,
        ticket_id=comment.ticket_id,
        user_id=comment.user_id,
        parent_id=comment.parent_id,
        author_name=author.name if author else "Deleted user",
        author_role=author.role if author else None,
        content=comment.content,
        attachment_path=comment.attachment_path,
        created_at=comment.created_at,
    )


async def store_attachment(upload: UploadFile | None, subdir: str) -> str | None:
    if upload is None or not upload.filename:
        return None
    try:
        return await save_upload(upload, subdir)
    except UploadTooLargeError as e:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail=str(e)
        ) from e


def list_filters(
    status_filter: TicketStatus | None = Query(None, alias="status"),
    priority_id: int | None = Query(None),
    category_id: int | None = Query(None),
    product_type_id: int | None = Query(None),
    search: str | None = Query(None, max_length=200),
    from_date: date | None = Query(None),
    to_date: date | None = Query(None),
) -> TicketFilters:
    return TicketFilters(
        status=status_filter.value if status_filter else None,
        priority_id=priority_id,
        category_id=category_id,
        product_type_id=product_type_id,
        search=search,
        from_date=from_date,
        to_date=to_date,
    )


@router.get("", response_model=PageResponse[TicketResponse])
async def list_my_tickets(
    filters: TicketFilters = Depends(list_filters),
    page: int = Query(1),
    limit: int = Query(10),
    current_user: User = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
) -> PageResponse[TicketResponse]:
    """Tickets visible to the caller: own (customer), assigned (staff) or all (admin)."""
    result = await service.list_tickets(current_user, filters, page, limit)
    return ticket_page_response(result)


@router.post(
    "",
    response_model=DataResponse[TicketResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_ticket(
    title: str = Form(..., max_length=255),
    description: str = Form(""),
    category_id: int | None = Form(None),
    priority_id: int | None = Form(None),
    product_type_id: int | None = Form(None),
    attachment: UploadFile | None = File(None),
    current_user: User = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
) -> DataResponse[TicketResponse]:
    attachment_path = await store_attachment(attachment, "tickets")
    try:
        ticket = await service.create_ticket(
            current_user,
            title=title,
            description=description,
            category_id=category_id,
            priority_id=priority_id,
            product_type_id=product_type_id,
            attachment_path=attachment_path,
        )
    except TicketError as e:
        delete_upload(attachment_path)
        raise ticket_http_error(e) from e
    return DataResponse(message="Ticket created", data=ticket_response(ticket))


@router.get("/{ticket_id}", response_model=DataResponse[TicketResponse])
async def get_ticket(
    ticket_id: int,
    current_user: User = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
) -> DataResponse[TicketResponse]:
    try:
        ticket = await service.get_visible_ticket(current_user, ticket_id)
    except TicketError as e:
        raise ticket_http_error(e) from e
    await service.mark_viewed(current_user, ticket)
    return DataResponse(data=ticket_response(ticket))


@router.put("/{ticket_id}", response_model=DataResponse[TicketResponse])
async def update_ticket(
    ticket_id: int,
    title: str | None = Form(None, max_length=255),
    description: str | None = Form(None),
    category_id: int | None = Form(None),
    priority_id: int | None = Form(None),
    product_type_id: int | None = Form(None),
    attachment: UploadFile | None = File(None),
    current_user: User = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
) -> DataResponse[TicketResponse]:
    """Owner-only edit, allowed while the ticket is still new."""
    attachment_path = await store_attachment(attachment, "tickets")
    try:
        ticket = await service.update_own_ticket(
            current_user,
            ticket_id,
            title=title,
            description=description,
            category_id=category_id,
            priority_id=priority_id,
            product_type_id=product_type_id,
            attachment_path=attachment_path,
        )
    except TicketError as e:
        delete_upload(attachment_path)
        raise ticket_http_error(e) from e
    return DataResponse(message="Ticket updated", data=ticket_response(ticket))


@router.delete("/{ticket_id}", response_model=MessageResponse)
async def delete_ticket(
    ticket_id: int,
    current_user: User = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
) -> MessageResponse:
    """Owner-only delete, allowed while the ticket is still new."""
    try:
        await service.delete_own_ticket(current_user, ticket_id)
    except TicketError as e:
        raise ticket_http_error(e) from e
    return MessageResponse(message="Ticket deleted")


@router.get("/{ticket_id}/comments", response_model=DataResponse[list[CommentResponse]])
async def list_comments(
    ticket_id: int,
    current_user: User = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
) -> DataResponse[list[CommentResponse]]:
    try:
        comments = await service.list_comments(current_user, ticket_id)
    except TicketError as e:
        raise ticket_http_error(e) from e
    return DataResponse(data=[comment_response(c) for c in comments])


@router.post(
    "/{ticket_id}/comments",
    response_model=DataResponse[CommentResponse],
    status_code=status.HTTP_201_CREATED,
)
async def post_comment(
    ticket_id: int,
    content: str = Form(""),
    parent_id: int | None = Form(None),
    attachment: UploadFile | None = File(None),
    current_user: User = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
) -> DataResponse[CommentResponse]:
    if not content.strip():
        raise ticket_http_error(InvalidTicketDataError("Comment content is required"))
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
