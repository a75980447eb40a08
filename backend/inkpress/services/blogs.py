"""Blog publishing: listing, slugs, owner/admin scoped edits and AI drafting."""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone

from pydantic import BaseModel, Field
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, func, select

from inkpress.core.errors import NotFound, PersistenceError, ProcessingError, ValidationError
from inkpress.models.blog import Blog
from inkpress.models.profile import Profile
from inkpress.services.llm import get_llm_provider
from inkpress.services.llm.base import BaseLLMProvider

logger = logging.getLogger(__name__)

BLOG_PROMPT = """Create a high-quality, engaging blog post based on the following description: "{description}"

Requirements:
- Write in a professional yet accessible tone
- Include proper HTML formatting with headings (h2, h3), paragraphs, lists, and emphasis where appropriate
- Make it informative and engaging for readers
- Include practical insights or actionable advice where relevant
- Ensure the content is well-structured with clear sections
- The content should be substantial (at least 800-1200 words)
- Use proper HTML tags like <h2>, <h3>, <p>, <ul>, <li>, <strong>, <em>, etc.
- Do not include any image tags or references to images in the content

Generate a compelling title and optional subtitle along with the full content."""


class BlogForm(BaseModel):
    title: str
    content: str
    author: str
    subtitle: str | None = None
    image: str | None = None


class BlogDraft(BaseModel):
    title: str = Field(min_length=3, max_length=200, description="The title of the blog post")
    subtitle: str | None = Field(
        default=None, max_length=300, description="An optional subtitle or tagline for the blog post"
    )
    content: str = Field(
        min_length=100,
        description="The main content of the blog post in HTML format with proper headings, paragraphs, and formatting",
    )


@dataclass
class BlogPage:
    blogs: list[Blog]
    total_count: int
    has_more: bool


def slugify(title: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")
    return slug or "post"


def unique_slug(session: Session, title: str) -> str:
    base = slugify(title)
    taken = set(
        session.exec(
            select(Blog.slug).where(or_(Blog.slug == base, col(Blog.slug).like(f"{base}-%")))
        ).all()
    )
    if base not in taken:
        return base
    n = 2
    while f"{base}-{n}" in taken:
        n += 1
    return f"{base}-{n}"


def _paginate(session: Session, query, page: int, limit: int) -> BlogPage:
    page = max(page, 1)
    total = session.exec(select(func.count()).select_from(query.subquery())).one()
    blogs = session.exec(
        query.order_by(col(Blog.created_at).desc()).offset((page - 1) * limit).limit(limit)
    ).all()
    return BlogPage(blogs=list(blogs), total_count=total, has_more=total > page * limit)


def list_blogs(session: Session, page: int = 1, limit: int = 10) -> BlogPage:
    return _paginate(session, select(Blog), page, limit)


def list_user_blogs(session: Session, user: Profile, page: int = 1, limit: int = 10) -> BlogPage:
    return _paginate(session, select(Blog).where(Blog.user_id == user.id), page, limit)


def search_blogs(session: Session, query: str, page: int = 1, limit: int = 10) -> BlogPage:
    pattern = f"%{query}%"
    return _paginate(
        session,
        select(Blog).where(
            or_(
                col(Blog.title).ilike(pattern),
                col(Blog.content).ilike(pattern),
                col(Blog.author).ilike(pattern),
            )
        ),
        page,
        limit,
    )


def get_blog_by_slug(session: Session, slug: str) -> Blog | None:
    return session.exec(select(Blog).where(Blog.slug == slug)).first()


def get_blog_for_edit(session: Session, user: Profile, blog_id: str) -> Blog | None:
    """Owners see their own posts; admins see any post."""
    query = select(Blog).where(Blog.id == blog_id)
    if not user.is_admin:
        query = query.where(Blog.user_id == user.id)
    return session.exec(query).first()


def _validate(form: BlogForm) -> None:
    if not form.title.strip() or not form.content.strip() or not form.author.strip():
        raise ValidationError("Title, content, and author are required")


def _save(session: Session, blog: Blog, action: str) -> Blog:
    try:
        session.add(blog)
        session.commit()
        session.refresh(blog)
    except SQLAlchemyError:
        session.rollback()
        logger.exception(f"Failed to {action} blog")
        raise PersistenceError(f"Failed to {action} blog")
    return blog


def create_blog(session: Session, user: Profile, form: BlogForm) -> Blog:
    _validate(form)
    blog = Blog(
        user_id=user.id,
        title=form.title,
        slug=unique_slug(session, form.title),
        subtitle=form.subtitle or None,
        image=form.image or None,
        content=form.content,
        author=form.author,
    )
    blog = _save(session, blog, "create")
    logger.info(f"Created blog {blog.slug} for {user.id}")
    return blog


def update_blog(session: Session, user: Profile, blog_id: str, form: BlogForm) -> Blog:
    _validate(form)
    blog = get_blog_for_edit(session, user, blog_id)
    if blog is None:
        raise NotFound("Blog not found or you do not have permission to edit it")

    blog.title = form.title
    blog.subtitle = form.subtitle or None
    blog.image = form.image or None
    blog.content = form.content
    blog.author = form.author
    blog.updated_at = datetime.now(timezone.utc)
    return _save(session, blog, "update")


def delete_blog(session: Session, user: Profile, blog_id: str) -> bool:
    blog = get_blog_for_edit(session, user, blog_id)
    if blog is None:
        return False
    try:
        session.delete(blog)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception(f"Error deleting blog {blog_id}")
        raise PersistenceError("Failed to delete blog")
    logger.info(f"Deleted blog {blog_id}")
    return True


async def generate_blog_with_ai(
    session: Session,
    user: Profile,
    description: str,
    author: str,
    provider: BaseLLMProvider | None = None,
) -> Blog:
    if not description.strip():
        raise ValidationError("Blog description is required")
    if not author.strip():
        raise ValidationError("Author name is required")

    try:
        provider = provider or get_llm_provider()
        draft = await provider.generate_structured(
            BLOG_PROMPT.format(description=description), BlogDraft
        )
    except Exception:
        logger.exception("AI blog generation error")
        raise ProcessingError(
            "Failed to generate blog content. Please try again with a different description."
        )

    blog = Blog(
        user_id=user.id,
        title=draft.title,
        slug=unique_slug(session, draft.title),
        subtitle=draft.subtitle or None,
        content=draft.content,
        author=author,
    )
    return _save(session, blog, "save AI-generated")
