from fastapi import APIRouter, Query

from ..config import settings
from ..deps import Owner, Service
from ..metrics import registry
from ..models.api import (
    ActiveRequest,
    DueItemsResponse,
    ErrorResponse,
    MemoryItemCreateRequest,
    MemoryItemResponse,
    RetentionStatsResponse,
    ReviewRequest,
    ReviewResponse,
    SeedRequest,
    SeedResponse,
)

router = APIRouter(tags=["memory"])

_NOT_FOUND = {404: {"model": ErrorResponse}}


@router.post(
    "/items",
    response_model=MemoryItemResponse,
    status_code=201,
    summary="復習アイテムを作成",
)
def create_item(req: MemoryItemCreateRequest, owner: Owner, service: Service) -> MemoryItemResponse:
    item = service.create_item(
        owner,
        req.subject,
        req.chapter,
        req.concept,
        req.content,
        req.item_type,
        req.difficulty,
    )
    return MemoryItemResponse.from_item(item)


@router.get(
    "/items/{item_id}",
    response_model=MemoryItemResponse,
    responses=_NOT_FOUND,
    summary="アイテムを ID で取得",
)
def get_item(item_id: str, owner: Owner, service: Service) -> MemoryItemResponse:
    return MemoryItemResponse.from_item(service.get_item(owner, item_id))


@router.get("/due", response_model=DueItemsResponse, summary="出題対象のアイテム一覧")
def due_items(
    owner: Owner,
    service: Service,
    limit: int = Query(default=settings.due_limit_default, ge=1),
) -> DueItemsResponse:
    """Return due items, hardest first, then most overdue (at most `limit`)."""
    items = service.get_due_items(owner, limit=limit)
    return DueItemsResponse(items=[MemoryItemResponse.from_item(it) for it in items], limit=limit)


@router.post(
    "/items/{item_id}/review",
    response_model=ReviewResponse,
    responses={**_NOT_FOUND, 409: {"model": ErrorResponse}},
    summary="復習結果を記録して次回出題時刻を更新",
)
def review_item(item_id: str, req: ReviewRequest, owner: Owner, service: Service) -> ReviewResponse:
    item = service.review_item(owner, item_id, req.outcome)
    registry.record_review(req.outcome.value)
    interval_days = (item.next_review_at - item.last_reviewed_at).days if item.last_reviewed_at else 0
    return ReviewResponse(item=MemoryItemResponse.from_item(item), interval_days=interval_days)


@router.post(
    "/items/{item_id}/active",
    response_model=MemoryItemResponse,
    responses=_NOT_FOUND,
    summary="アイテムの一時停止/再開",
)
def set_active(item_id: str, req: ActiveRequest, owner: Owner, service: Service) -> MemoryItemResponse:
    return MemoryItemResponse.from_item(service.set_active(owner, item_id, req.active))


@router.get("/stats", response_model=RetentionStatsResponse, summary="保持率の集計")
def retention_stats(owner: Owner, service: Service) -> RetentionStatsResponse:
    return RetentionStatsResponse.from_stats(service.get_retention_stats(owner))


@router.post(
    "/seed",
    response_model=SeedResponse,
    status_code=201,
    summary="教科・章のテンプレートアイテムを追加作成",
)
def seed_items(req: SeedRequest, owner: Owner, service: Service) -> SeedResponse:
    """Append template items for the chapter; repeated calls add more items."""
    items = service.generate_seed_items(owner, req.subject, req.chapter)
    return SeedResponse(items=[MemoryItemResponse.from_item(it) for it in items])
