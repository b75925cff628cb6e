"""
레이트 리밋 미들웨어
요청마다 (클라이언트, 경로) 단위로 고정 윈도우 한도를 적용
"""

import logging
from typing import Callable, List, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from pointcore.core.exceptions import RateLimitExceededError
from pointcore.services.rate_limit_service import RateLimiter, client_id_for

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """레이트 리밋 미들웨어"""

    def __init__(self, app, exclude_paths: Optional[List[str]] = None):
        super().__init__(app)

        # 레이트 리밋을 적용하지 않을 경로들
        self.exclude_paths = exclude_paths or [
            "/health",
            "/docs",
            "/openapi.json",
            "/redoc",
        ]

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if any(request.url.path.startswith(path) for path in self.exclude_paths):
            return await call_next(request)

        limiter: RateLimiter = request.app.container.rate_limiter()
        client_id = client_id_for(
            self._get_client_ip(request), request.headers.get("User-Agent")
        )
        decision = limiter.hit(client_id, request.url.path)

        if not decision.allowed:
            logger.warning(
                f"Rate limited {request.method} {request.url.path} for {client_id}, "
                f"retry after {decision.retry_after_seconds}s"
            )
            error = RateLimitExceededError(
                retry_after=decision.retry_after_seconds, limit=decision.limit
            )
            return JSONResponse(
                status_code=error.status_code,
                content=error.detail,
                headers=decision.headers(),
            )

        response = await call_next(request)
        response.headers.update(decision.headers())
        return response

    def _get_client_ip(self, request: Request) -> str:
        """클라이언트 IP 주소 추출"""
        # 프록시 환경에서 실제 IP 추출
        x_forwarded_for = request.headers.get("X-Forwarded-For")
        if x_forwarded_for:
            return x_forwarded_for.split(",")[0].strip()

        x_real_ip = request.headers.get("X-Real-IP")
        if x_real_ip:
            return x_real_ip

        return request.client.host if request.client else "unknown"
