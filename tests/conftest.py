# pylint: disable=redefined-outer-name
"""pytest 에서 사용될 전역 Fixture들을 정의합니다."""
from __future__ import annotations

from pathlib import Path
from typing import Callable, Generator, Optional

import pytest
from sqlalchemy import MetaData
from sqlalchemy.orm import Session

from fastrepo.core import AnyIdentity
from fastrepo.orm import SessionMaker, clear_mappers, start_mappers
from fastrepo.test import TickingClock, sqlite_sessionmaker
from fastrepo.uow import SqlAlchemyUnitOfWork
from tests import CLOCK_START, UowFactory
from tests.app.adapters.orm import init_mappers
from tests.app.adapters.repos import REPO_MAKER


@pytest.fixture(scope="session")
def metadata() -> Generator[MetaData, None, None]:
    """테스트 앱의 매핑을 한번만 등록합니다."""
    clear_mappers()
    yield start_mappers(use_exist=False, init_hooks=[init_mappers])


@pytest.fixture
def get_session(metadata: MetaData, tmp_path: Path) -> SessionMaker:
    """테스트마다 새 SQLite 파일 DB를 사용하는 세션 팩토리."""
    return sqlite_sessionmaker(metadata, tmp_path / "test.db")


@pytest.fixture
def session(get_session: SessionMaker) -> Generator[Session, None, None]:
    """UoW 를 거치지 않고 DB를 직접 확인하기 위한 세션."""
    session = get_session()
    yield session
    session.close()


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock(CLOCK_START)


@pytest.fixture
def make_uow(
    get_session: SessionMaker, clock: TickingClock
) -> Generator[UowFactory, None, None]:
    """같은 DB와 시계를 공유하는 UoW 를 만드는 팩토리.

    만들어진 UoW 는 테스트가 끝나면 모두 폐기됩니다.
    """
    uows: list[SqlAlchemyUnitOfWork] = []

    def factory(user: AnyIdentity = "alice", **kwargs) -> SqlAlchemyUnitOfWork:
        uow = SqlAlchemyUnitOfWork(
            get_session,
            repo_maker=REPO_MAKER,
            current_user=user,
            clock=clock,
            **kwargs,
        )
        uows.append(uow)
        return uow

    yield factory

    for uow in uows:
        uow.dispose()


@pytest.fixture
def tmp_project(tmp_path: Path) -> Callable[[str, Optional[str]], Path]:
    """`setup.cfg` 만 있는 빈 프로젝트 디렉토리를 만듭니다."""

    def factory(name: str, setupcfg: Optional[str] = None) -> Path:
        path = tmp_path / name
        path.mkdir()
        if setupcfg is not None:
            (path / "setup.cfg").write_text(setupcfg)
        return path

    return factory
