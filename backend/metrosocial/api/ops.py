"""Operations endpoints providing health checks and metrics."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from metrosocial.container import ServiceContainer, get_container
from metrosocial.obs import health

router = APIRouter(prefix="", tags=["ops"])


def _resolve_token(x_admin_token: Optional[str], authorization: Optional[str]) -> Optional[str]:
	if x_admin_token:
		return x_admin_token
	if authorization and authorization.lower().startswith("bearer "):
		return authorization.split(" ", 1)[1]
	return None


async def require_metrics_access(
	X_Admin_Token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
	authorization: Optional[str] = Header(default=None, alias="Authorization"),
	container: ServiceContainer = Depends(get_container),
) -> None:
	settings = container.settings
	if settings.obs_metrics_public:
		return
	token = settings.obs_admin_token
	if not token:
		# Fail closed: without a configured token nobody can scrape.
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="admin_token_not_configured")
	if _resolve_token(X_Admin_Token, authorization) != token:
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="forbidden")


@router.get("/health/live")
async def health_live() -> dict[str, str]:
	return await health.liveness()


@router.get("/health/ready")
async def health_ready(container: ServiceContainer = Depends(get_container)) -> Response:
	status_code, payload = await health.readiness(container)
	return JSONResponse(content=payload, status_code=status_code)


@router.get("/metrics")
async def prometheus_metrics(_: None = Depends(require_metrics_access)) -> Response:
	return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
