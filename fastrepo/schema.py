"""DTO 스키마 변환 기능을 담당하는 모듈입니다."""
from typing import Any, Callable, ClassVar, Optional, Type, get_origin, get_type_hints

from pydantic import BaseModel, ConfigDict, create_model

SCHEMAS = dict[Type, Type[BaseModel]]()
"""엔티티 클래스 -> 생성된 DTO 스키마 캐시."""


class DtoModel(BaseModel):
    """모든 DTO 스키마의 기본 클래스."""

    model_config = ConfigDict(from_attributes=True, arbitrary_types_allowed=True)


def _optional_fields(
    cls: type, excludes: list[str], with_defaults: bool = False
) -> dict[str, Any]:
    fields = dict[str, Any]()
    for name, hint in get_type_hints(cls).items():
        if name.startswith("_") or name in excludes:
            continue
        if get_origin(hint) is ClassVar:
            continue
        # 프로젝션이 모든 필드를 채우지 않을 수 있으므로 전부 optional 입니다.
        default = getattr(cls, name, None) if with_defaults else None
        fields[name] = (Optional[hint], default)
    return fields


def schema_from(
    EntityClass: type,
    excludes: Optional[list[str]] = None,
) -> Callable[[type], Type[BaseModel]]:
    """엔티티(dataclass) 모델로 Pydantic DTO 스키마를 만드는 데코레이터.

    엔티티의 필드와 감사 필드에, 데코레이트된 클래스에 선언된 필드(계산
    필드)를 더한 모델을 만듭니다. 연관 관계 속성은 `excludes` 로 뺍니다. ::

        @schema_from(Post, excludes=["author"])
        class PostDto:
            author_name: Optional[str] = None
    """
    excludes = excludes or []

    def _wrapper(TargetClass: type) -> Type[BaseModel]:
        fields = _optional_fields(EntityClass, excludes)
        # 타겟 클래스의 필드가 엔티티 필드보다 우선합니다.
        fields.update(_optional_fields(TargetClass, excludes, with_defaults=True))

        schema_class = create_model(  # type: ignore[call-overload]
            TargetClass.__name__,
            __base__=DtoModel,
            __module__=TargetClass.__module__,
            __doc__=TargetClass.__doc__,
            **fields,
        )
        SCHEMAS[EntityClass] = schema_class
        return schema_class

    return _wrapper
