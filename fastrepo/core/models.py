from __future__ import annotations

import abc
from contextlib import AbstractContextManager
from datetime import datetime
from typing import (
    Any,
    Callable,
    Generic,
    Iterable,
    Optional,
    Protocol,
    Type,
    TypeVar,
    Union,
)

from fastrepo.core.errors import FastRepoError


class Entity(Protocol):
    """Entity 프로토콜 명세."""

    id: Any  # PK 컬럼으로 id 라는 필드를 제공해야 합니다.


class AuditedEntity(Entity, Protocol):
    """감사(audit) 필드와 소프트 삭제 플래그를 갖는 Entity 프로토콜.

    활성 상태(``deleted=False``) 이거나 소프트 삭제 상태(``deleted=True``,
    ``deleted_by``/``deleted_at`` 설정) 둘 중 하나입니다.
    """

    created_by: Optional[str]
    created_at: Optional[datetime]
    updated_by: Optional[str]
    updated_at: Optional[datetime]
    deleted_by: Optional[str]
    deleted_at: Optional[datetime]
    deleted: bool
    row_version: Optional[int]


E = TypeVar("E", bound=AuditedEntity)
C = TypeVar("C")

IdentityProvider = Callable[[], str]
"""현재 호출자 이름을 리턴하는 함수 타입."""
AnyIdentity = Union[str, IdentityProvider, None]
Clock = Callable[[], datetime]


class AbstractRepository(Generic[E, C], abc.ABC):
    """Repository 패턴의 추상 인터페이스 입니다.

    엔티티 종류(`E`) 와 검색 조건 종류(`C`) 에 대해 제네릭 합니다.
    조회 계열 메소드는 소프트 삭제된 엔티티를 절대 리턴하지 않고,
    변경 계열 메소드는 커밋하지 않습니다(커밋은 UoW 의 역할).
    """

    entity_class: Type[E]

    @abc.abstractmethod
    def create(self) -> E:
        """타입별 기본값이 채워진, 트래킹 되지 않는 새 엔티티를 리턴합니다."""
        raise NotImplementedError

    @abc.abstractmethod
    def search(
        self, criteria: Optional[C] = None, *related: Any, no_tracking: bool = False
    ) -> Iterable[E]:
        """활성 엔티티에 대한 지연 평가 쿼리를 리턴합니다."""
        raise NotImplementedError

    @abc.abstractmethod
    def search_dto(self, criteria: Optional[C] = None) -> list[Any]:
        """검색 결과를 DTO 리스트로 즉시 조회합니다."""
        raise NotImplementedError

    @abc.abstractmethod
    def read(
        self, id: Any, *related: Any, no_tracking: bool = False
    ) -> Optional[E]:
        """`id` 에 해당하는 활성 엔티티를 조회합니다. 없으면 ``None``."""
        raise NotImplementedError

    @abc.abstractmethod
    def read_dto(self, id: Any) -> Optional[Any]:
        """`id` 에 해당하는 활성 엔티티의 DTO를 조회합니다. 없으면 ``None``."""
        raise NotImplementedError

    @abc.abstractmethod
    def insert(self, entity: E, user: Optional[str] = None) -> E:
        """생성 정보를 기록하고 엔티티를 추가 대기 상태로 등록합니다."""
        raise NotImplementedError

    @abc.abstractmethod
    def update(self, entity: E, user: Optional[str] = None) -> E:
        """수정 정보를 기록하고 엔티티를 변경 대기 상태로 만듭니다."""
        raise NotImplementedError

    @abc.abstractmethod
    def delete(self, entity: E, user: Optional[str] = None) -> E:
        """엔티티를 소프트 삭제 합니다. 물리적인 삭제는 없습니다."""
        raise NotImplementedError


ReposMap = dict[type, AbstractRepository]


class AbstractUnitOfWork(AbstractContextManager["AbstractUnitOfWork"]):
    """UnitOfWork 패턴의 추상 인터페이스입니다.

    UnitOfWork(UoW)는 영구 저장소의 유일한 진입점이며, 로드된 객체의
    최신 상태를 계속 트래킹 합니다. 요청 하나당 하나의 UoW를 사용합니다.
    """

    repos: ReposMap
    disposed: bool = False

    def __enter__(self) -> AbstractUnitOfWork:
        """``with`` 블록에 진입했을때 실행되는 메소드입니다."""
        return self

    def __exit__(self, *args: Any) -> None:
        """``with`` 블록에서 빠져나갈 때 실행되는 메소드입니다."""
        if not self.disposed:
            self.rollback()  # save() 안되었을때 변경을 롤백합니다.
        self.dispose()

    def __getitem__(self, key: type) -> AbstractRepository:
        return self.repo(key)

    def repo(self, kind: type) -> AbstractRepository:
        """엔티티 종류에 해당하는 레포지터리를 리턴합니다.

        처음 접근할 때 생성해서 UoW가 폐기될 때까지 캐시합니다.
        """
        self._check_open()
        if kind not in self.repos:
            self.repos[kind] = self._make_repo(kind)
        return self.repos[kind]

    def save(self) -> None:
        """대기중인 모든 변경 사항을 하나의 트랜잭션으로 커밋합니다."""
        self._check_open()
        self._commit()

    def commit(self) -> None:
        """:meth:`save` 와 같습니다."""
        self.save()

    def close(self) -> None:
        """:meth:`dispose` 와 같습니다."""
        self.dispose()

    def _check_open(self) -> None:
        if self.disposed:
            raise FastRepoError("unit of work is already disposed")

    @abc.abstractmethod
    def _make_repo(self, kind: type) -> AbstractRepository:
        raise NotImplementedError

    @abc.abstractmethod
    def _commit(self) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def rollback(self) -> None:
        """세션을 롤백합니다."""
        raise NotImplementedError

    @abc.abstractmethod
    def dispose(self) -> None:
        """세션과 연결 자원을 반환합니다. 여러번 호출해도 안전해야 합니다."""
        raise NotImplementedError
