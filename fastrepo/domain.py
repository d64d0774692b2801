"""감사(audit) 메타데이터를 갖는 엔티티 기반 클래스."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from fastrepo.core import AuditedEntity

AUDIT_FIELDS = (
    "created_by",
    "created_at",
    "updated_by",
    "updated_at",
    "deleted_by",
    "deleted_at",
    "deleted",
    "row_version",
)
"""모든 엔티티가 공통으로 갖는 감사 필드 이름."""


def utcnow() -> datetime:
    """tzinfo 가 없는 현재 UTC 시각. 감사 필드의 기본 시계입니다."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Audited:
    """감사 필드와 소프트 삭제 플래그를 제공하는 믹스인.

    도메인 모델은 일반 ``dataclass`` 로 정의하고 이 클래스를 상속합니다.
    여기 정의된 필드는 ``dataclass`` 필드가 아니므로 생성자 인자에 포함되지
    않으며, 레포지터리가 직접 기록합니다. ::

        @dataclass
        class Author(Audited):
            name: str
            id: Optional[int] = None
    """

    id: Optional[int] = None

    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_by: Optional[str] = None
    updated_at: Optional[datetime] = None
    deleted_by: Optional[str] = None
    deleted_at: Optional[datetime] = None
    deleted: bool = False
    row_version: Optional[int] = None
    """낙관적 동시성 제어용 버전. UPDATE 마다 ORM이 1씩 증가시킵니다."""

    @property
    def is_active(self) -> bool:
        return not self.deleted


def stamp_created(entity: AuditedEntity, user: str, now: datetime) -> None:
    """생성 정보를 기록합니다. 삭제 관련 필드는 활성 상태로 초기화 합니다."""
    entity.created_by, entity.created_at = user, now
    stamp_updated(entity, user, now)
    entity.deleted, entity.deleted_by, entity.deleted_at = False, None, None


def stamp_updated(entity: AuditedEntity, user: str, now: datetime) -> None:
    entity.updated_by, entity.updated_at = user, now


def stamp_deleted(entity: AuditedEntity, user: str, now: datetime) -> None:
    stamp_updated(entity, user, now)
    entity.deleted, entity.deleted_by, entity.deleted_at = True, user, now
