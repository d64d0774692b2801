"""Test 헬퍼를 제공하는 모듈.

- SQLite 기반의 세션 팩토리를 제공합니다.
- 감사 필드 검증을 위한 테스트용 시계를 제공합니다.
"""
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional, Union, cast

from sqlalchemy import MetaData, create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fastrepo.config import FastRepo, get_config
from fastrepo.orm import SessionMaker


def sqlite_sessionmaker(
    metadata: MetaData,
    path: Union[str, Path, None] = None,
    config: Optional[FastRepo] = None,
) -> SessionMaker:
    """테이블이 생성된 새 SQLite DB에 대한 세션 팩토리를 리턴합니다.

    `path` 가 없으면 메모리 DB를 사용하며, 모든 세션이 하나의 연결을
    공유합니다. 매핑은 미리 :func:`fastrepo.orm.start_mappers` 로 등록되어
    있어야 합니다.
    """
    config = config or get_config()
    if path is None:
        engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(
            f"sqlite:///{path}", connect_args={"check_same_thread": False}
        )
    metadata.create_all(engine)
    return cast(SessionMaker, sessionmaker(engine, **config.get_session_options()))


class TickingClock:
    """호출할 때마다 지정한 간격만큼 흐르는 테스트용 시계."""

    def __init__(self, start: datetime, step: timedelta = timedelta(seconds=1)):
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        now = self.current
        self.current += self.step
        return now
