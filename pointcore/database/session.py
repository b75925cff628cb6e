from contextlib import contextmanager

from fastapi import Request
from sqlalchemy.orm import Session, sessionmaker


def get_db(request: Request):
    """요청 단위 세션 - 컨테이너의 세션 팩토리에서 생성"""
    session_factory: sessionmaker = request.app.container.session_factory()
    db = session_factory()
    try:
        yield db
    except Exception:
        if db.in_transaction():
            db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def get_db_context(session_factory: sessionmaker):
    """컨텍스트 매니저를 사용한 데이터베이스 세션 관리"""
    db: Session = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
