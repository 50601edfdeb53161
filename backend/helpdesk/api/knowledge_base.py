"""Knowledge base endpoints: reading (/user) and editing (/admin)."""

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.api.deps import get_current_user, require_staff
from helpdesk.api.tickets import store_attachment
from helpdesk.core import get_db
from helpdesk.models.user import User
from helpdesk.schemas.common import DataResponse, MessageResponse, PageResponse
from helpdesk.schemas.knowledge_base import ArticleResponse
from helpdesk.services.knowledge_base import (
    ArticleNotFoundError,
    ArticlePage,
    InvalidArticleError,
    KnowledgeBaseService,
)
from helpdesk.services.uploads import delete_upload

router = APIRouter(tags=["knowledge-base"])


def get_knowledge_base_service(db: AsyncSession = Depends(get_db)) -> KnowledgeBaseService:
    return KnowledgeBaseService(db)


def _page_response(result: ArticlePage) -> PageResponse[ArticleResponse]:
    return PageResponse[ArticleResponse].build(
        [ArticleResponse.model_validate(a) for a in result.articles],
        total=result.total,
        page=result.page,
        limit=result.limit,
    )


@router.get("/user/knowledge-base", response_model=PageResponse[ArticleResponse])
async def list_published_articles(
    category: str | None = Query(None),
    search: str | None = Query(None, max_length=200),
    page: int = Query(1),
    limit: int = Query(10),
    _: User = Depends(get_current_user),
    service: KnowledgeBaseService = Depends(get_knowledge_base_service),
) -> PageResponse[ArticleResponse]:
    result = await service.list_articles(
        category=category, search=search, page=page, limit=limit, published_only=True
    )
    return _page_response(result)


@router.get("/user/knowledge-base/{slug}", response_model=DataResponse[ArticleResponse])
async def read_article(
    slug: str,
    _: User = Depends(get_current_user),
    service: KnowledgeBaseService = Depends(get_knowledge_base_service),
) -> DataResponse[ArticleResponse]:
    """Published article by slug. Each read counts as a view."""
    try:
        article = await service.view_published(slug)
    except ArticleNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return DataResponse(data=ArticleResponse.model_validate(article))


@router.get("/admin/knowledge-base", response_model=PageResponse[ArticleResponse])
async def list_all_articles(
    category: str | None = Query(None),
    search: str | None = Query(None, max_length=200),
    page: int = Query(1),
    limit: int = Query(10),
    _: User = Depends(require_staff),
    service: KnowledgeBaseService = Depends(get_knowledge_base_service),
) -> PageResponse[ArticleResponse]:
    """Published and draft articles."""
    result = await service.list_articles(category=category, search=search, page=page, limit=limit)
    return _page_response(result)


@router.post(
    "/admin/knowledge-base",
    response_model=DataResponse[ArticleResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_article(
    title: str = Form(..., max_length=255),
    content: str = Form(""),
    category: str | None = Form(None, max_length=100),
    slug: str | None = Form(None, max_length=255),
    is_published: bool = Form(True),
    file: UploadFile | None = File(None),
    current_user: User = Depends(require_staff),
    service: KnowledgeBaseService = Depends(get_knowledge_base_service),
) -> DataResponse[ArticleResponse]:
    file_path = await store_attachment(file, "knowledge")
    try:
        article = await service.create(
            title=title,
            content=content,
            created_by=current_user.id,
            category=category,
            slug=slug,
            is_published=is_published,
            file_path=file_path,
        )
    except InvalidArticleError as e:
        delete_upload(file_path)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return DataResponse(message="Article created", data=ArticleResponse.model_validate(article))


@router.put("/admin/knowledge-base/{article_id}", response_model=DataResponse[ArticleResponse])
async def update_article(
    article_id: int,
    title: str | None = Form(None, max_length=255),
    content: str | None = Form(None),
    category: str | None = Form(None, max_length=100),
    slug: str | None = Form(None, max_length=255),
    is_published: bool | None = Form(None),
    file: UploadFile | None = File(None),
    _: User = Depends(require_staff),
    service: KnowledgeBaseService = Depends(get_knowledge_base_service),
) -> DataResponse[ArticleResponse]:
    file_path = await store_attachment(file, "knowledge")
    try:
        article = await service.update(
            article_id,
            title=title,
            content=content,
            category=category,
            slug=slug,
            is_published=is_published,
            file_path=file_path,
        )
    except ArticleNotFoundError as e:
        delete_upload(file_path)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except InvalidArticleError as e:
        delete_upload(file_path)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return DataResponse(message="Article updated", data=ArticleResponse.model_validate(article))


@router.delete("/admin/knowledge-base/{article_id}", response_model=MessageResponse)
async def delete_article(
    article_id: int,
    _: User = Depends(require_staff),
    service: KnowledgeBaseService = Depends(get_knowledge_base_service),
) -> MessageResponse:
    try:
        article = await service.delete(article_id)
    except ArticleNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return MessageResponse(message="Article deleted")
