"""Knowledge base articles."""

import logging
import re
import unicodedata
from dataclasses import dataclass

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.models.knowledge_base import KnowledgeBaseArticle
from helpdesk.services.ticket import normalize_paging
from helpdesk.services.uploads import delete_upload

logger = logging.getLogger(__name__)

# Letters NFKD cannot decompose to ASCII
_TRANSLITERATE = str.maketrans({"đ": "d", "Đ": "D", "ø": "o", "Ø": "O", "ß": "ss", "æ": "ae"})


class ArticleNotFoundError(Exception):
    pass


class InvalidArticleError(Exception):
    pass


def slugify(text: str) -> str:
    """Lower-case ASCII slug: 'Cài đặt VPN!' -> 'cai-dat-vpn'."""
    text = unicodedata.normalize("NFKD", text.translate(_TRANSLITERATE))
    text = text.encode("ascii", "ignore").decode("ascii").lower()
    return re.sub(r"[^a-z0-9]+", "-", text).strip("-")


@dataclass
class ArticlePage:
    articles: list[KnowledgeBaseArticle]
    total: int
    page: int
    limit: int


class KnowledgeBaseService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _unique_slug(self, base: str, exclude_id: int | None = None) -> str:
        base = base or "article"
        candidate = base
        suffix = 0
        while True:
            query = select(KnowledgeBaseArticle.id).where(KnowledgeBaseArticle.slug == candidate)
            if exclude_id is not None:
                query = query.where(KnowledgeBaseArticle.id != exclude_id)
            if (await self.db.execute(query)).first() is None:
                return candidate
            suffix += 1
            candidate = f"{base}-{suffix}"

    async def list_articles(
        self,
        category: str | None = None,
        search: str | None = None,
        page: int | None = None,
        limit: int | None = None,
        published_only: bool = False,
    ) -> ArticlePage:
        page, limit = normalize_paging(page, limit)
        query = select(KnowledgeBaseArticle)
        if published_only:
            query = query.where(KnowledgeBaseArticle.is_published.is_(True))
        if category:
            query = query.where(KnowledgeBaseArticle.category == category)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.where(
                or_(
                    KnowledgeBaseArticle.title.ilike(pattern),
                    KnowledgeBaseArticle.content.ilike(pattern),
                )
            )

        total = (
            await self.db.execute(select(func.count()).select_from(query.subquery()))
        ).scalar() or 0
        result = await self.db.execute(
            query.order_by(KnowledgeBaseArticle.created_at.desc(), KnowledgeBaseArticle.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return ArticlePage(list(result.scalars().all()), total, page, limit)

    async def get(self, article_id: int) -> KnowledgeBaseArticle:
        article = await self.db.get(KnowledgeBaseArticle, article_id)
        if article is None:
            raise ArticleNotFoundError(f"Article {article_id} not found")
        return article

    async def view_published(self, slug: str) -> KnowledgeBaseArticle:
        """Return a published article by slug and count the view."""
        result = await self.db.execute(
            select(KnowledgeBaseArticle).where(
                KnowledgeBaseArticle.slug == slug,
                KnowledgeBaseArticle.is_published.is_(True),
            )
        )
        article = result.scalar_one_or_none()
        if article is None:
            raise ArticleNotFoundError(f"Article '{slug}' not found")

        await self.db.execute(
            update(KnowledgeBaseArticle)
            .where(KnowledgeBaseArticle.id == article.id)
            .values(views=KnowledgeBaseArticle.views + 1, updated_at=KnowledgeBaseArticle.updated_at)
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(article)
        return article

    async def create(
        self,
        title: str,
        content: str,
        created_by: int,
        category: str | None = None,
        slug: str | None = None,
        is_published: bool = True,
        file_path: str | None = None,
    ) -> KnowledgeBaseArticle:
        title = title.strip()
        if not title:
            raise InvalidArticleError("Title is required")

        article = KnowledgeBaseArticle(
            title=title,
            slug=await self._unique_slug(slugify(slug or title)),
            content=content,
            category=category or None,
            is_published=is_published,
            file_path=file_path,
            created_by=created_by,
        )
        self.db.add(article)
        await self.db.flush()
        logger.info(f"Knowledge base article {article.slug!r} created by user {created_by}")
        return article

    async def update(
        self,
        article_id: int,
        title: str | None = None,
        content: str | None = None,
        category: str | None = None,
        slug: str | None = None,
        is_published: bool | None = None,
        file_path: str | None = None,
    ) -> KnowledgeBaseArticle:
        article = await self.get(article_id)
        if title is not None:
            if not title.strip():
                raise InvalidArticleError("Title is required")
            article.title = title.strip()
        if slug:
            article.slug = await self._unique_slug(slugify(slug), exclude_id=article.id)
        elif title is not None:
            article.slug = await self._unique_slug(slugify(article.title), exclude_id=article.id)
        if content is not None:
            article.content = content
        if category is not None:
            article.category = category or None
        if is_published is not None:
            article.is_published = is_published
        replaced_path = None
        if file_path is not None:
            replaced_path = article.file_path
            article.file_path = file_path
        await self.db.flush()
        delete_upload(replaced_path)
        return article

    async def delete(self, article_id: int) -> KnowledgeBaseArticle:
        article = await self.get(article_id)
        await self.db.delete(article)
        await self.db.flush()
        delete_upload(article.file_path)
        logger.info(f"Knowledge base article {article_id} deleted")
        return article
