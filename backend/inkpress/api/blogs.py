"""REST API for blog posts. Reading is public; writing requires the owner or an admin."""

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlmodel import Session

from inkpress.core.auth import get_current_user
from inkpress.core.database import get_session
from inkpress.models.blog import Blog
from inkpress.models.profile import Profile
from inkpress.services import blogs
from inkpress.services.blogs import BlogForm, BlogPage

router = APIRouter()


class BlogGenerate(BaseModel):
    description: str
    author: str


def blog_dict(b: Blog) -> dict:
    return {
        "id": b.id,
        "user_id": b.user_id,
        "title": b.title,
        "slug": b.slug,
        "subtitle": b.subtitle,
        "image": b.image,
        "content": b.content,
        "author": b.author,
        "created_at": b.created_at.isoformat(),
        "updated_at": b.updated_at.isoformat(),
    }


def page_dict(page: BlogPage) -> dict:
    return {
        "blogs": [blog_dict(b) for b in page.blogs],
        "total_count": page.total_count,
        "has_more": page.has_more,
    }


@router.get("/")
async def list_blogs(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    q: str | None = None,
    session: Session = Depends(get_session),
):
    if q:
        return page_dict(blogs.search_blogs(session, q, page, limit))
    return page_dict(blogs.list_blogs(session, page, limit))


@router.get("/mine")
async def list_my_blogs(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: Profile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return page_dict(blogs.list_user_blogs(session, user, page, limit))


@router.get("/slug/{slug}")
async def get_blog_by_slug(slug: str, session: Session = Depends(get_session)):
    blog = blogs.get_blog_by_slug(session, slug)
    if not blog:
        raise HTTPException(status_code=404, detail="Blog not found")
    return blog_dict(blog)


@router.post("/")
async def create_blog(
    body: BlogForm,
    user: Profile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    blog = blogs.create_blog(session, user, body)
    return {"id": blog.id, "slug": blog.slug, "status": "created"}


@router.post("/generate")
async def generate_blog(
    body: BlogGenerate,
    user: Profile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    blog = await blogs.generate_blog_with_ai(session, user, body.description, body.author)
    return {"id": blog.id, "slug": blog.slug, "status": "generated"}


@router.get("/{blog_id}")
async def get_blog(
    blog_id: str,
    user: Profile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    blog = blogs.get_blog_for_edit(session, user, blog_id)
    if not blog:
        raise HTTPException(status_code=404, detail="Blog not found")
    return blog_dict(blog)


@router.put("/{blog_id}")
async def update_blog(
    blog_id: str,
    body: BlogForm,
    user: Profile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    blog = blogs.update_blog(session, user, blog_id, body)
    return {"id": blog.id, "slug": blog.slug, "status": "updated"}


@router.delete("/{blog_id}")
async def delete_blog(
    blog_id: str,
    user: Profile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not blogs.delete_blog(session, user, blog_id):
        raise HTTPException(status_code=404, detail="Blog not found")
    return {"status": "deleted"}
