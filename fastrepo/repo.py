"""레포지터리 패턴 구현."""
from __future__ import annotations

from dataclasses import MISSING, fields, is_dataclass
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Generic,
    Iterator,
    Optional,
    Sequence,
    Type,
    TypeVar,
    Union,
)

import pydantic
from sqlalchemy import Select, func, inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, raiseload, selectinload, with_loader_criteria
from sqlalchemy.orm.attributes import set_committed_value
from sqlalchemy.orm.exc import StaleDataError

from fastrepo.core import (
    AbstractRepository,
    AuditedEntity,
    ConcurrencyConflict,
    PersistenceError,
    ValidationError,
)
from fastrepo.domain import Audited, stamp_created, stamp_deleted, stamp_updated
from fastrepo.logging import get_logger
from fastrepo.projection import Projection

if TYPE_CHECKING:
    from fastrepo.uow import SqlAlchemyUnitOfWork

E = TypeVar("E", bound=AuditedEntity)
C = TypeVar("C")

FilterFunc = Callable[[Select, Any], Select]
"""``filter(statement, criteria) -> statement`` 형태의 검색 조건 함수."""
ProjectionFunc = Callable[[], Projection]
RelatedPath = Union[str, Any]
"""``"author"``, ``"author.posts"`` 같은 경로나 매핑된 관계 속성."""

logger = get_logger("fastrepo.repo")


def exclude_unsaved_deletes(
    session: Session, entity_class: type, statement: Select
) -> Select:
    """세션에서 삭제 표시되었지만 아직 저장되지 않은 엔티티를 결과에서 뺍니다.

    autoflush 를 쓰지 않으므로 저장소의 로우는 :meth:`save` 전까지 활성
    상태로 남아 있습니다.
    """
    ids = [
        obj.id
        for obj in session.dirty
        if isinstance(obj, entity_class) and obj.deleted and obj.id is not None
    ]
    if ids:
        statement = statement.where(entity_class.id.not_in(ids))
    return statement


class EntityQuery(Generic[E]):
    """지연 평가되는 엔티티 쿼리.

    조건을 계속 조합할 수 있으며, 순회하거나 :meth:`all`, :meth:`first`,
    :meth:`count` 를 호출할 때만 실행됩니다.
    """

    def __init__(
        self,
        entity_class: Type[E],
        session: Session,
        statement: Select,
        load_options: Sequence[Any] = (),
        no_tracking: bool = False,
    ):
        self.entity_class = entity_class
        self.session = session
        self.statement = statement
        self.load_options = tuple(load_options)
        self.no_tracking = no_tracking

    def __repr__(self) -> str:
        return f"EntityQuery[{self.statement}]"

    def _copy(self, statement: Select) -> EntityQuery[E]:
        return EntityQuery(
            self.entity_class,
            self.session,
            statement,
            self.load_options,
            self.no_tracking,
        )

    def where(self, *criteria: Any) -> EntityQuery[E]:
        return self._copy(self.statement.where(*criteria))

    filter = where

    def order_by(self, *clauses: Any) -> EntityQuery[E]:
        return self._copy(self.statement.order_by(*clauses))

    def limit(self, limit: int) -> EntityQuery[E]:
        return self._copy(self.statement.limit(limit))

    def offset(self, offset: int) -> EntityQuery[E]:
        return self._copy(self.statement.offset(offset))

    def options(self, *options: Any) -> EntityQuery[E]:
        return EntityQuery(
            self.entity_class,
            self.session,
            self.statement,
            self.load_options + options,
            self.no_tracking,
        )

    def __iter__(self) -> Iterator[E]:
        return iter(self.all())

    def all(self) -> list[E]:
        return self._execute(self.statement)

    def first(self) -> Optional[E]:
        items = self._execute(self.statement.limit(1))
        return items[0] if items else None

    def count(self) -> int:
        subquery = self._visible(self.statement).subquery()
        statement = select(func.count()).select_from(subquery)
        try:
            return self.session.scalar(statement) or 0
        except SQLAlchemyError as e:
            logger.error("count query failed: %s", e)
            raise PersistenceError(f"query failed: {e}") from e

    def _visible(self, statement: Select) -> Select:
        return exclude_unsaved_deletes(self.session, self.entity_class, statement)

    def _execute(self, statement: Select) -> list[E]:
        statement = self._visible(statement).options(*self.load_options)
        try:
            if not self.no_tracking:
                return list(self.session.scalars(statement))

            # 같은 연결을 쓰는 별도 세션으로 로드한 뒤 닫아서, 현재 UoW가
            # 트래킹하지 않는 객체를 리턴합니다.
            with Session(bind=self.session.connection()) as side_session:
                return list(side_session.scalars(statement))
        except SQLAlchemyError as e:
            logger.error("query failed: %s", e)
            raise PersistenceError(f"query failed: {e}") from e


class SqlAlchemyRepository(AbstractRepository[E, C]):
    """SqlAlchemy ORM을 저장소로 하는 :class:`AbstractRepository` 구현입니다.

    엔티티 종류마다 UoW 하나에 하나씩 만들어지며, UoW의 세션을 공유합니다.
    엔티티 종류별 동작은 하위 클래스에서 :meth:`filter`, :meth:`to_dto`,
    :meth:`to_search_dto`, :meth:`get_defaults` 를 재정의하거나, 생성자에
    `filter_func`, `projection` 함수를 넘겨서 바꿉니다.
    """

    criteria_class: Optional[Type[pydantic.BaseModel]] = None
    """검색 조건 모델. 지정되면 ``dict`` 조건도 이 모델로 검증합니다."""
    dto_class: Optional[Type[Any]] = None
    """DTO 타입. 지정되지 않으면 엔티티 클래스를 그대로 사용합니다."""

    def __init__(
        self,
        entity_class: Type[E],
        uow: SqlAlchemyUnitOfWork,
        filter_func: Optional[FilterFunc] = None,
        projection: Optional[ProjectionFunc] = None,
    ):
        """임의의 엔티티 E 를 받아 E에 대한 Repository를 초기화합니다."""
        super().__init__()
        self.entity_class = entity_class
        self.uow = uow  # 소유하지 않는 역참조
        self._filter_func = filter_func
        self._projection = projection

    def __repr__(self) -> str:
        return f"SqlAlchemyRepository[{self.entity_class.__name__}]"

    @property
    def session(self) -> Session:
        return self.uow.session

    # 재정의 지점

    def filter(self, statement: Select, criteria: C) -> Select:
        """검색 조건으로 쿼리를 좁힙니다. 기본 구현은 아무것도 하지 않습니다.

        조건이 없을(``None``) 때는 호출되지 않습니다.
        """
        if self._filter_func:
            return self._filter_func(statement, criteria)
        return statement

    def to_dto(self) -> Projection:
        """엔티티 -> DTO 프로젝션. 기본값은 매핑된 모든 컬럼입니다."""
        if self._projection:
            return self._projection()
        return Projection.of(self.entity_class)

    def to_search_dto(self) -> Projection:
        """검색 결과용 프로젝션. 기본값은 :meth:`to_dto` 와 같습니다."""
        return self.to_dto()

    def get_defaults(self) -> dict[str, Any]:
        """:meth:`create` 가 채울 기본값. ``dataclass`` 필드 기본값을 씁니다."""
        defaults = dict[str, Any]()
        if is_dataclass(self.entity_class):
            for field in fields(self.entity_class):
                if field.default is not MISSING:
                    defaults[field.name] = field.default
                elif field.default_factory is not MISSING:
                    defaults[field.name] = field.default_factory()
        return defaults

    # 조회

    def create(self) -> E:
        mapper = inspect(self.entity_class)
        # 생성자를 거치지 않으므로 필수 필드는 비어 있습니다.
        entity = mapper.class_manager.new_instance()
        for name, value in self.get_defaults().items():
            setattr(entity, name, value)
        entity.deleted = False
        return entity

    def search(
        self,
        criteria: Optional[C] = None,
        *related: RelatedPath,
        no_tracking: bool = False,
    ) -> EntityQuery[E]:
        """활성 엔티티에 대한 지연 평가 쿼리를 리턴합니다.

        Args:
            criteria: 검색 조건. ``None`` 이면 소프트 삭제 필터만 적용됩니다.
            related: 함께 로드할 연관 관계 경로들.
            no_tracking: ``True`` 이면 UoW가 트래킹하지 않는 객체를 리턴합니다.
                결과를 변경하지 않을 조회에 사용합니다.
        """
        criteria = self.validate_criteria(criteria)
        options = self._load_options(related)  # 경로 오류는 실행 전에 검출

        statement = select(self.entity_class).where(self._active())
        if criteria is not None:
            statement = self.filter(statement, criteria)

        return EntityQuery(
            self.entity_class, self.session, statement, options, no_tracking
        )

    def search_dto(self, criteria: Optional[C] = None) -> list[Any]:
        criteria = self.validate_criteria(criteria)
        projection = self.to_search_dto()

        statement = projection.select_from(self.entity_class).where(self._active())
        if criteria is not None:
            statement = self.filter(statement, criteria)

        dto_class = self._dto_class()
        return [projection.build(dto_class, row) for row in self._rows(statement)]

    def read(
        self, id: Any, *related: RelatedPath, no_tracking: bool = False
    ) -> Optional[E]:
        if id is None:
            return None
        query = self.search(None, *related, no_tracking=no_tracking)
        return query.where(self.entity_class.id == id).first()

    def read_dto(self, id: Any) -> Optional[Any]:
        if id is None:
            return None
        projection = self.to_dto()
        statement = (
            projection.select_from(self.entity_class)
            .where(self._active(), self.entity_class.id == id)
            .limit(1)
        )
        rows = self._rows(statement)
        return projection.build(self._dto_class(), rows[0]) if rows else None

    # 변경

    def insert(self, entity: E, user: Optional[str] = None) -> E:
        self._check_entity(entity)
        state = inspect(entity)
        if not (state.transient or (state.pending and state.session is self.session)):
            raise ValidationError(f"{entity!r} is already persisted")

        stamp_created(entity, self._user(user), self.uow.now())
        self.session.add(entity)
        logger.debug("insert %s by %s", self.entity_class.__name__, entity.created_by)
        return entity

    def update(self, entity: E, user: Optional[str] = None) -> E:
        self._check_entity(entity)
        tracked = self._attach(entity)
        stamp_updated(tracked, self._user(user), self.uow.now())
        logger.debug("update %s(id=%s)", self.entity_class.__name__, tracked.id)
        return tracked

    def delete(self, entity: E, user: Optional[str] = None) -> E:
        self._check_entity(entity)
        if entity.deleted:
            return entity

        tracked = self._attach(entity)
        stamp_deleted(tracked, self._user(user), self.uow.now())
        logger.debug("soft delete %s(id=%s)", self.entity_class.__name__, tracked.id)
        return tracked

    # 내부 함수

    def validate_criteria(self, criteria: Any) -> Any:
        """검색 조건을 :attr:`criteria_class` 로 검증합니다."""
        if criteria is None or self.criteria_class is None:
            return criteria
        if isinstance(criteria, self.criteria_class):
            return criteria
        try:
            return self.criteria_class.model_validate(criteria)
        except pydantic.ValidationError as e:
            raise ValidationError(f"invalid search criteria: {e}") from e

    def _active(self) -> Any:
        return self.entity_class.deleted.is_(False)

    def _dto_class(self) -> Type[Any]:
        return self.dto_class or self.entity_class

    def _user(self, user: Optional[str]) -> str:
        return user or self.uow.current_user()

    def _check_entity(self, entity: Any) -> None:
        if not isinstance(entity, self.entity_class):
            raise ValidationError(
                f"{self!r} cannot handle {type(entity).__name__} objects"
            )

    def _load_options(self, related: Sequence[RelatedPath]) -> list[Any]:
        # 연관 데이터 로드시에도 소프트 삭제된 로우는 제외합니다.
        # 조건은 매핑된 Audited 클래스마다 하나씩 겁니다.
        mappers = inspect(self.entity_class).registry.mappers
        options: list[Any] = [
            with_loader_criteria(
                m.class_, m.class_.deleted.is_(False), include_aliases=True
            )
            for m in mappers
            if issubclass(m.class_, Audited)
        ]
        options.extend(self._include(path) for path in related)
        if not self.uow.config.lazy_loading:
            options.append(raiseload("*"))
        return options

    def _include(self, path: RelatedPath) -> Any:
        if not isinstance(path, str):
            return selectinload(path)

        current_class: type = self.entity_class
        option = None
        for name in path.split("."):
            relationships = inspect(current_class).relationships
            if name not in relationships:
                raise ValidationError(
                    f"{current_class.__name__} has no relationship {name!r}"
                )
            attr = getattr(current_class, name)
            option = selectinload(attr) if option is None else option.selectinload(attr)
            current_class = relationships[name].mapper.class_
        return option

    def _attach(self, entity: E) -> E:
        """UoW 세션이 엔티티를 트래킹 하도록 합니다.

        이미 트래킹 중이면 그대로 리턴하고, 다른 세션에서 로드된(detached)
        엔티티는 세션에 다시 붙입니다. ``id`` 를 가진 새 객체(프로세스 밖에서
        전달된 경우)는 저장된 로우 위에 병합하고, 병합된 객체를 리턴합니다.
        """
        state = inspect(entity)

        if state.persistent or state.pending:
            if state.session is not self.session:
                raise ValidationError(f"{entity!r} belongs to another unit of work")
            return entity

        if state.detached:
            if state.key not in self.session.identity_map:
                self.session.add(entity)
                return entity
            return self._merge(entity, entity.row_version)

        if entity.id is None:
            raise ValidationError(f"{entity!r} has no identifier")

        current = self.session.get(self.entity_class, entity.id)
        if current is None or current.deleted:
            raise ConcurrencyConflict(
                f"{self.entity_class.__name__}(id={entity.id}) no longer exists"
            )
        # 생성 정보는 바뀌지 않습니다.
        entity.created_by, entity.created_at = current.created_by, current.created_at
        return self._merge(entity, getattr(entity, "row_version", None))

    def _merge(self, entity: E, expected_version: Optional[int]) -> E:
        try:
            merged = self.session.merge(entity)
        except StaleDataError as e:
            # 저장된 버전과 호출자가 알고 있던 버전이 다른 경우
            raise ConcurrencyConflict(f"concurrency conflict: {e}") from e
        if expected_version is not None:
            # 호출자가 알고 있던 버전을 기준으로 UPDATE ... WHERE row_version=?
            # 가 실행되도록 합니다.
            set_committed_value(merged, "row_version", expected_version)
        return merged

    def _rows(self, statement: Select) -> list[Any]:
        statement = exclude_unsaved_deletes(self.session, self.entity_class, statement)
        try:
            return list(self.session.execute(statement).mappings())
        except SQLAlchemyError as e:
            logger.error("query failed: %s", e)
            raise PersistenceError(f"query failed: {e}") from e
