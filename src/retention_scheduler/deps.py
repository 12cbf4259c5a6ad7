"""FastAPI dependencies: caller identity and the shared scheduler service."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request

from .service import SchedulerService


def get_owner(
    x_user_id: Annotated[str | None, Header(alias="X-User-Id")] = None,
) -> str:
    """X-User-Id ヘッダを所有者 ID として扱う。認証自体は前段の責務。"""

    owner = (x_user_id or "").strip()
    if not owner:
        raise HTTPException(status_code=401, detail="X-User-Id header is required")
    return owner


def get_service(request: Request) -> SchedulerService:
    return request.app.state.service


Owner = Annotated[str, Depends(get_owner)]
Service = Annotated[SchedulerService, Depends(get_service)]
