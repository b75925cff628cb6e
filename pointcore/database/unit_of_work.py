"""
원자적 작업 단위(Unit of Work) 실행 도우미

- store_errors: 인프라 장애(연결 끊김, 잠금 대기 초과 등)를 StoreUnavailableError로 변환
- run_atomic: 하나의 트랜잭션 안에서 작업을 실행하고 커밋.
  OptimisticConflict 발생 시 롤백 후 제한된 횟수만큼 재시도
"""

import logging
import random
import time
from contextlib import contextmanager
from typing import Callable, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from pointcore.core.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class OptimisticConflict(Exception):
    """동시 갱신으로 compare-and-swap 조건이 깨진 경우 (재시도 대상)"""


@contextmanager
def store_errors(db: Session, operation: str):
    try:
        yield
    except (OperationalError, PoolTimeoutError) as e:
        db.rollback()
        logger.error(f"Store fault during {operation}: {str(e)}")
        raise StoreUnavailableError(
            details={"operation": operation}
        ) from e
    except DBAPIError as e:
        if not e.connection_invalidated:
            raise
        db.rollback()
        logger.error(f"Connection lost during {operation}: {str(e)}")
        raise StoreUnavailableError(details={"operation": operation}) from e


def run_atomic(
    db: Session,
    unit: Callable[[], T],
    *,
    operation: str,
    max_retries: int,
    backoff_ms: int = 10,
) -> T:
    """작업 단위를 실행하고 커밋. 부분 적용 상태는 절대 남지 않음

    Args:
        db: 세션
        unit: 세션에 변경을 가하는 함수 (커밋하지 않아야 함)
        operation: 로깅용 작업 이름
        max_retries: 낙관적 충돌 재시도 횟수
        backoff_ms: 지터 지수 백오프의 기본값

    Raises:
        StoreUnavailableError: 재시도 소진 또는 인프라 장애
        BaseAPIException: 작업 단위가 던진 비즈니스 예외 (롤백 후 그대로 전파)
    """
    attempt = 0
    while True:
        try:
            with store_errors(db, operation):
                result = unit()
                db.commit()
            return result
        except OptimisticConflict:
            db.rollback()
            attempt += 1
            if attempt > max_retries:
                logger.error(
                    f"{operation} gave up after {max_retries} optimistic conflict retries"
                )
                raise StoreUnavailableError(
                    message="Too much contention, please retry",
                    details={"operation": operation, "retries": max_retries},
                )
            logger.debug(f"{operation} conflict, retry {attempt}/{max_retries}")
            if backoff_ms > 0:
                delay = backoff_ms * (2 ** min(attempt - 1, 6))
                time.sleep(random.uniform(0, delay) / 1000)
        except Exception:
            if db.in_transaction():
                db.rollback()
            raise
