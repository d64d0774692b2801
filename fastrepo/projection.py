"""엔티티 -> DTO 프로젝션.

프로젝션은 DTO 필드 이름과 SQL 표현식의 순서있는 매핑입니다. 조회 시점에
``SELECT`` 문으로 변환되므로, 엔티티를 먼저 로드한 뒤 변환하지 않습니다.
"""
from __future__ import annotations

from collections import OrderedDict
from typing import Any, Mapping, Optional, Type

from pydantic import BaseModel
from sqlalchemy import Select, inspect, select
from sqlalchemy.orm import Mapper
from sqlalchemy.sql import ColumnElement


class Projection(OrderedDict):
    """DTO 필드 이름 -> SQL 컬럼 표현식 매핑.

    Example: ::

        projection = Projection.of(Post)
        projection["author_name"] = (
            select(Author.name)
            .where(Author.id == Post.author_id)
            .scalar_subquery()
        )
    """

    @classmethod
    def of(cls, entity_class: type, excludes: Optional[list[str]] = None) -> Projection:
        """엔티티에 매핑된 모든 컬럼으로 기본 프로젝션을 만듭니다.

        연관 관계(navigation) 속성은 포함하지 않습니다.
        """
        mapper: Mapper = inspect(entity_class)
        return cls(
            (attr.key, getattr(entity_class, attr.key))
            for attr in mapper.column_attrs
            if not excludes or attr.key not in excludes
        )

    def columns(self) -> list[ColumnElement]:
        return [expr.label(name) for name, expr in self.items()]

    def select_from(self, entity_class: type) -> Select:
        return select(*self.columns()).select_from(entity_class)

    def build(self, dto_class: Type[Any], row: Mapping[str, Any]) -> Any:
        """조회된 로우 하나로 DTO 객체를 만듭니다."""
        values = {name: row[name] for name in self}

        if isinstance(dto_class, type) and issubclass(dto_class, BaseModel):
            return dto_class.model_validate(values)

        mapper = inspect(dto_class, raiseerr=False)
        if isinstance(mapper, Mapper):
            # 매핑된 클래스는 생성자를 거치지 않고 트래킹 되지 않는 인스턴스를
            # 만듭니다. 연관 관계 속성은 비어 있습니다.
            dto = mapper.class_manager.new_instance()
            for name, value in values.items():
                setattr(dto, name, value)
            return dto

        return dto_class(**values)
