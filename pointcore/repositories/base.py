from abc import ABC
from typing import TypeVar, Generic, Optional, List, Any, Type
from sqlalchemy.orm import Session
from pydantic import BaseModel

T = TypeVar("T")
SchemaType = TypeVar("SchemaType", bound=BaseModel)


class BaseRepository(Generic[T, SchemaType], ABC):
    """모든 리포지토리의 베이스 클래스 - Pydantic 응답 보장

    리포지토리는 커밋하지 않습니다. 트랜잭션 경계는 서비스의 작업 단위가 결정합니다.
    """

    def __init__(
        self, model_class: Type[T], schema_class: Type[SchemaType], db: Session
    ):
        self.model_class = model_class
        self.schema_class = schema_class
        self.db = db

    def _to_schema(self, model_instance: Any) -> Optional[SchemaType]:
        """SQLAlchemy 모델을 Pydantic 스키마로 변환"""
        if model_instance is None:
            return None
        return self.schema_class.model_validate(model_instance)

    def _to_schemas(self, model_instances: List[Any]) -> List[SchemaType]:
        return [
            schema
            for schema in (self._to_schema(instance) for instance in model_instances)
            if schema is not None
        ]

    def get_by_id(self, id: Any) -> Optional[T]:
        """ID로 모델 조회 (세션에 캐시된 인스턴스도 DB 값으로 갱신)"""
        return self.db.get(self.model_class, id, populate_existing=True)

    def get_by_field(self, field_name: str, value: Any) -> Optional[T]:
        """특정 필드로 모델 조회"""
        return (
            self.db.query(self.model_class)
            .filter(getattr(self.model_class, field_name) == value)
            .first()
        )

    def add(self, **kwargs) -> T:
        """새 레코드를 세션에 추가하고 flush (커밋하지 않음)"""
        instance = self.model_class(**kwargs)
        self.db.add(instance)
        self.db.flush()
        return instance

