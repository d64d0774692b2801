"""UnitOfWork 패턴 모듈.

SqlAlchemy를 이용한 기본 구현체를 제공합니다.

UoW 하나는 요청 하나 동안 하나의 세션을 소유합니다. 같은 UoW 에서 얻은
모든 레포지터리는 이 세션을 공유하므로, 한 요청 안에서는 같은 객체 그래프를
보게 됩니다.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value
from sqlalchemy.orm.exc import StaleDataError

from fastrepo.config import FastRepo, get_config
from fastrepo.core import (
    AbstractRepository,
    AbstractUnitOfWork,
    AnyIdentity,
    Clock,
    ConcurrencyConflict,
    FastRepoError,
    PersistenceError,
    ReposMap,
)
from fastrepo.domain import utcnow
from fastrepo.logging import get_logger
from fastrepo.orm import SessionMaker, get_sessionmaker
from fastrepo.repo import SqlAlchemyRepository

RepoMakerFunc = Callable[["SqlAlchemyUnitOfWork"], AbstractRepository]
RepoMakerDict = dict[type, RepoMakerFunc]


logger = get_logger("fastrepo.uow")


VERSION_KEY = "row_version"


@dataclass
class PendingChanges:
    """커밋 직전 세션에 대기중인 변경 사항.

    커밋이 실패해서 세션을 롤백한 뒤, 같은 변경을 다시 대기 상태로 만드는데
    사용합니다.
    """

    new: list[Any] = field(default_factory=list)
    changed: list[tuple[Any, dict[str, Any], Optional[int]]] = field(
        default_factory=list
    )

    def __bool__(self) -> bool:
        return bool(self.new or self.changed)

    @classmethod
    def of(cls, session: Session) -> PendingChanges:
        pending = cls(new=list(session.new))
        for obj in session.dirty:
            state = inspect(obj)
            mapper = state.mapper
            keys = [prop.key for prop in mapper.column_attrs] + [
                rel.key for rel in mapper.relationships if not rel.uselist
            ]
            values = {
                key: getattr(obj, key)
                for key in keys
                if key != VERSION_KEY and state.attrs[key].history.has_changes()
            }
            version = None
            if VERSION_KEY in mapper.attrs:
                history = state.attrs[VERSION_KEY].history
                version = (history.deleted or history.unchanged or [None])[0]
            pending.changed.append((obj, values, version))
        return pending

    def restore(self, session: Session) -> None:
        """세션을 롤백하고 변경 사항을 다시 대기 상태로 만듭니다.

        버전은 로드했을 때의 값으로 되돌리므로, 다시 저장할 때도 같은
        버전 검사를 거칩니다.
        """
        session.rollback()
        for obj, values, version in self.changed:
            if version is not None:
                set_committed_value(obj, VERSION_KEY, version)
            for key, value in values.items():
                setattr(obj, key, value)
        session.add_all(self.new)


class SqlAlchemyUnitOfWork(AbstractUnitOfWork):
    """``SqlAlchemy`` ORM을 이용한 UnitOfWork 패턴 구현입니다.

    Example: ::

        with SqlAlchemyUnitOfWork(current_user="alice") as uow:
            post = uow[Post].create()
            post.title = "Foo"
            uow[Post].insert(post)
            uow.save()
    """

    # pylint: disable=super-init-not-called
    def __init__(
        self,
        get_session: Optional[SessionMaker] = None,
        repo_maker: Optional[RepoMakerDict] = None,
        current_user: AnyIdentity = None,
        clock: Optional[Clock] = None,
        config: Optional[FastRepo] = None,
    ) -> None:
        """세션을 열고 UoW를 초기화합니다. 엔티티는 아직 로드되지 않습니다.

        Args:
            get_session: 세션 팩토리. 없으면 :func:`fastrepo.orm.get_sessionmaker`.
            repo_maker: 엔티티 종류별 레포지터리 생성 함수.
            current_user: 감사 필드에 기록할 호출자 이름 또는 이를 리턴하는 함수.
            clock: 감사 필드에 기록할 현재 시각 함수.
        """
        self.config = config or get_config()
        self.get_session = get_session or get_sessionmaker()
        self.repo_maker = repo_maker or {}
        self.repos: ReposMap = {}
        self._current_user = current_user
        self._clock = clock or utcnow

        self.committed = False
        self.disposed = False
        self._session: Optional[Session] = self.get_session()

    def __repr__(self):
        return f"SqlAlchemyUnitOfWork[{self.repo_maker}]"

    @property
    def session(self) -> Session:
        self._check_open()
        if self._session is None:
            raise FastRepoError("unit of work has no open session")
        return self._session

    def current_user(self) -> str:
        """현재 호출자 이름."""
        user = self._current_user
        if callable(user):
            user = user()
        return user or self.config.default_user

    def now(self) -> Any:
        return self._clock()

    def _make_repo(self, kind: type) -> AbstractRepository:
        repo_maker = self.repo_maker.get(kind)
        if repo_maker:
            return repo_maker(self)

        if inspect(kind, raiseerr=False) is None:
            raise FastRepoError("repository not found for: %r" % kind)
        return SqlAlchemyRepository(kind, self)

    def _commit(self) -> None:
        """세션을 커밋합니다.

        저장소가 변경을 거부하면 트랜잭션은 롤백되지만, 대기중이던 변경은
        다시 대기 상태로 되돌려 놓습니다. 호출자는 고쳐서 다시 저장하거나
        :meth:`rollback` 으로 버릴 수 있습니다.
        """
        session = self.session
        pending = PendingChanges.of(session)
        try:
            session.commit()
        except StaleDataError as e:
            pending.restore(session)
            logger.warning("concurrency conflict: %s", e)
            raise ConcurrencyConflict(f"concurrency conflict: {e}") from e
        except SQLAlchemyError as e:
            pending.restore(session)
            logger.error("commit failed: %s", e)
            raise PersistenceError(f"commit failed: {e}") from e

        self.committed = True
        if pending:
            logger.info(
                "committed %d new, %d changed entities",
                len(pending.new),
                len(pending.changed),
            )

    def rollback(self) -> None:
        """세션을 롤백합니다."""
        self.session.rollback()

    def dispose(self) -> None:
        """세션을 닫습니다. 두번째 호출부터는 아무것도 하지 않습니다."""
        if self.disposed:
            return

        self.disposed = True
        self.repos.clear()
        if self._session:
            self._session.close()
            self._session = None
        logger.debug("unit of work disposed")
