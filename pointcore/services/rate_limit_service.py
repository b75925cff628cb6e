"""
레이트 리밋 서비스 - (클라이언트, 엔드포인트) 단위 고정 윈도우 카운터

- 프로세스 메모리에 상태를 보관하므로 인스턴스 간에는 한도가 공유되지 않음
- 윈도우별 잠금으로 증가 경합을 막고, 서로 다른 키는 경합하지 않음
- 만료된 윈도우는 요청 처리 중 확률적으로 정리
"""

import logging
import random
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, Optional, Tuple

from pointcore.config import EndpointLimit, Settings
from pointcore.core.exceptions import RateLimitExceededError
from pointcore.schemas.rate_limit import RateLimitDecision

logger = logging.getLogger(__name__)

CLIENT_SIGNATURE_MAX_LENGTH = 50


def client_id_for(ip_address: Optional[str], user_agent: Optional[str]) -> str:
    """클라이언트 식별자 (IP + User-Agent 앞부분) - 남용 억제용이며 인증 수단이 아님"""
    signature = (user_agent or "unknown")[:CLIENT_SIGNATURE_MAX_LENGTH]
    return f"{ip_address or 'unknown'}:{signature}"


@dataclass
class _Window:
    count: int
    reset_at_ms: int
    lock: threading.Lock = field(default_factory=threading.Lock)
    retired: bool = False


class RateLimiter:
    """고정 윈도우 레이트 리미터"""

    def __init__(
        self,
        default_limit: int = 100,
        default_window_ms: int = 60_000,
        endpoint_limits: Optional[Dict[str, EndpointLimit]] = None,
        prune_probability: float = 0.01,
        clock: Optional[Callable[[], int]] = None,
        rng: Optional[random.Random] = None,
    ):
        if default_limit <= 0 or default_window_ms <= 0:
            raise ValueError("default limit and window must be positive")
        self.default = EndpointLimit(limit=default_limit, window_ms=default_window_ms)
        self.endpoint_limits: Dict[str, EndpointLimit] = dict(endpoint_limits or {})
        self.prune_probability = prune_probability
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._rng = rng or random.Random()
        self._windows: Dict[Tuple[str, str], _Window] = {}
        self._registry_lock = threading.Lock()
        self._closed = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "RateLimiter":
        return cls(
            default_limit=settings.RATE_LIMIT_DEFAULT_LIMIT,
            default_window_ms=settings.RATE_LIMIT_DEFAULT_WINDOW_MS,
            endpoint_limits=settings.RATE_LIMIT_ENDPOINTS,
            prune_probability=settings.RATE_LIMIT_PRUNE_PROBABILITY,
        )

    def config_for(self, endpoint: str) -> EndpointLimit:
        return self.endpoint_limits.get(endpoint, self.default)

    def hit(self, client_id: str, endpoint: str) -> RateLimitDecision:
        """요청 1회 기록 및 판정 (예외를 던지지 않음)"""
        now = self._clock()
        if self.prune_probability > 0 and self._rng.random() < self.prune_probability:
            self.prune(now)

        config = self.config_for(endpoint)
        key = (client_id, endpoint)

        while True:
            window = self._get_or_create(key, now)
            with window.lock:
                if window.retired:
                    # 정리 작업이 방금 제거한 윈도우 - 새로 조회
                    continue

                if now >= window.reset_at_ms:
                    window.count = 1
                    window.reset_at_ms = now + config.window_ms
                    return self._decision(True, config, window, now)

                if window.count >= config.limit:
                    return self._decision(False, config, window, now)

                window.count += 1
                return self._decision(True, config, window, now)

    def check(self, client_id: str, endpoint: str) -> RateLimitDecision:
        """요청 1회 기록 - 한도 초과 시 RateLimitExceededError"""
        decision = self.hit(client_id, endpoint)
        if not decision.allowed:
            logger.warning(
                f"Rate limit exceeded for {client_id} on {endpoint}, "
                f"retry after {decision.retry_after_seconds}s"
            )
            raise RateLimitExceededError(
                retry_after=decision.retry_after_seconds, limit=decision.limit
            )
        return decision

    def prune(self, now: Optional[int] = None) -> int:
        """만료된 윈도우 제거 - 제거한 개수 반환"""
        now = self._clock() if now is None else now
        removed = 0
        with self._registry_lock:
            for key, window in list(self._windows.items()):
                # 사용 중인 윈도우는 건너뜀
                if not window.lock.acquire(blocking=False):
                    continue
                try:
                    if now >= window.reset_at_ms:
                        window.retired = True
                        del self._windows[key]
                        removed += 1
                finally:
                    window.lock.release()
        if removed:
            logger.debug(f"Pruned {removed} expired rate limit windows")
        return removed

    def close(self) -> None:
        with self._registry_lock:
            for window in self._windows.values():
                window.retired = True
            self._windows.clear()
            self._closed = True
        logger.info("Rate limiter closed")

    def __len__(self) -> int:
        return len(self._windows)

    def _get_or_create(self, key: Tuple[str, str], now: int) -> _Window:
        with self._registry_lock:
            window = self._windows.get(key)
            if window is None:
                # reset_at_ms=now 이므로 첫 요청에서 새 윈도우가 시작됨
                window = _Window(count=0, reset_at_ms=now)
                self._windows[key] = window
            return window

    @staticmethod
    def _decision(
        allowed: bool, config: EndpointLimit, window: _Window, now: int
    ) -> RateLimitDecision:
        retry_after = 0
        if not allowed:
            retry_after = max(1, -(-(window.reset_at_ms - now) // 1000))
        return RateLimitDecision(
            allowed=allowed,
            limit=config.limit,
            remaining=max(0, config.limit - window.count),
            reset_at_ms=window.reset_at_ms,
            retry_after_seconds=retry_after,
        )


def init_rate_limiter(settings: Settings) -> Iterator[RateLimiter]:
    """컨테이너 Resource - 서비스 시작 시 생성, 종료 시 정리"""
    limiter = RateLimiter.from_settings(settings)
    logger.info(
        f"Rate limiter started (default {limiter.default.limit}/"
        f"{limiter.default.window_ms}ms, {len(limiter.endpoint_limits)} endpoint rules)"
    )
    try:
        yield limiter
    finally:
        limiter.close()
