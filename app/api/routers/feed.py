import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from app.api.deps import get_gateway
from app.models.post import Category, CategoryCreate, Post, PostCreate
from app.services.feed_service import FeedGateway

logger = logging.getLogger(__name__)
router = APIRouter()

@router.get("/posts", response_model=List[Post], summary="List recent posts")
def list_posts(
    category: Optional[str] = Query(None, description="Category name; 'All' or empty for every post."),
    limit: int = Query(50, ge=1, le=200),
    gateway: FeedGateway = Depends(get_gateway),
):
    """Newest first, capped at ``limit``."""
    return gateway.get_posts(limit=limit, category=category)

@router.post("/posts", response_model=Post, status_code=status.HTTP_201_CREATED, summary="Create a post")
def create_post(request: PostCreate, gateway: FeedGateway = Depends(get_gateway)):
    return gateway.create_post(request.content, request.category)

@router.get("/categories", response_model=List[Category], summary="List categories")
def list_categories(gateway: FeedGateway = Depends(get_gateway)):
    """Oldest first."""
    return gateway.get_categories()

@router.post("/categories", response_model=Category, status_code=status.HTTP_201_CREATED, summary="Create a category")
def create_category(request: CategoryCreate, gateway: FeedGateway = Depends(get_gateway)):
    return gateway.create_category(request.name)
