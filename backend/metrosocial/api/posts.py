"""REST API surface for posts, replies, inline comments and likes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from metrosocial.container import ServiceContainer, get_container
from metrosocial.domain.posts.schemas import CreatePostRequest, LikeRequest, TextRequest
from metrosocial.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/posts")


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_post(
    payload: CreatePostRequest,
    auth_user: AuthenticatedUser = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    post = await container.feed.create_post(
        auth_user,
        post_id=payload.id,
        text=payload.text,
        url=payload.url,
        image=payload.image,
        created_at=payload.created_at,
    )
    return {"post": post.to_dict()}


@router.get("")
async def list_posts(
    _: AuthenticatedUser = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    return {"posts": [post.to_dict() for post in container.posts.list_all()]}


@router.get("/debug/summary")
async def debug_summary(
    _: AuthenticatedUser = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    if not container.settings.is_dev():
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="not_found")
    digest = container.posts.summary()
    return {"totalPosts": len(digest), "posts": digest}


@router.post("/authors/self/refresh")
async def refresh_author(
    auth_user: AuthenticatedUser = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    touched = await container.feed.refresh_author(auth_user)
    return {"updated": len(touched)}


@router.get("/user/{user_id}/latest")
async def latest_post(
    user_id: str,
    _: AuthenticatedUser = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    post = container.posts.latest_by_user(user_id)
    return {"latestPost": post.to_dict() if post is not None else None}


@router.get("/{post_id}/thread")
async def get_thread(
    post_id: str,
    _: AuthenticatedUser = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    return container.posts.get_thread(post_id).to_dict()


@router.post("/{post_id}/replies", status_code=status.HTTP_201_CREATED)
async def create_reply(
    post_id: str,
    payload: TextRequest,
    auth_user: AuthenticatedUser = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    reply = await container.feed.create_reply(post_id, auth_user, payload.text)
    return {"post": reply.to_dict()}


@router.post("/{post_id}/comments", status_code=status.HTTP_201_CREATED)
async def add_comment(
    post_id: str,
    payload: TextRequest,
    auth_user: AuthenticatedUser = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    comment, _post = await container.feed.add_comment(post_id, auth_user, payload.text)
    return {"comment": comment.to_dict()}


@router.get("/{post_id}/comments")
async def list_comments(
    post_id: str,
    _: AuthenticatedUser = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    return {"comments": [comment.to_dict() for comment in container.posts.list_comments(post_id)]}


@router.post("/{post_id}/like")
async def toggle_like(
    post_id: str,
    payload: LikeRequest,
    auth_user: AuthenticatedUser = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    state, post = await container.feed.toggle_like(post_id, auth_user, payload.action)
    return {**state.to_dict(), "post": post.to_dict()}
