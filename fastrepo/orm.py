"""ORM 어댑터 모듈"""
from __future__ import annotations

import io
import logging
import re
from typing import Any, Callable, Optional, Type, Union, cast

from sqlalchemy import Boolean, Column, DateTime, Integer, MetaData, String, Table
from sqlalchemy import create_engine, false
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Mapper
from sqlalchemy.orm import clear_mappers as _clear_mappers
from sqlalchemy.orm import registry, sessionmaker
from sqlalchemy.orm.session import Session
from sqlalchemy.pool import Pool

from fastrepo.config import FastRepo, get_config

SessionMaker = Callable[[], Session]
"""Session 팩토리 타입."""
MapperHook = Callable[[MetaData], Any]
"""``init_mappers(metadata)`` 형태의 사용자 매핑 함수 타입."""

metadata: Optional[MetaData] = None
mapper_registry = registry()

__session_factory: Optional[SessionMaker] = None


def audit_columns() -> list[Column]:
    """엔티티 테이블에 추가할 감사 컬럼들을 새로 만들어 리턴합니다.

    Example: ::

        author = Table(
            "author",
            metadata,
            Column("id", Integer, primary_key=True, autoincrement=True),
            Column("name", String(255), nullable=False),
            *audit_columns(),
        )
    """
    return [
        Column("created_by", String(255)),
        Column("created_at", DateTime),
        Column("updated_by", String(255)),
        Column("updated_at", DateTime),
        Column("deleted_by", String(255), nullable=True),
        Column("deleted_at", DateTime, nullable=True),
        Column(
            "deleted", Boolean, nullable=False, default=False, server_default=false()
        ),
        Column("row_version", Integer, nullable=False),
    ]


def map_entity(
    entity_class: type, table: Table, properties: Optional[dict[str, Any]] = None
) -> Mapper:
    """도메인 클래스를 테이블에 매핑합니다.

    ``row_version`` 컬럼을 버전 컬럼으로 지정해서, 다른 요청이 먼저 변경한
    로우를 덮어쓰려고 하면 flush 시점에 ``StaleDataError`` 가 발생합니다.
    """
    return mapper_registry.map_imperatively(
        entity_class,
        table,
        properties=properties or {},
        version_id_col=table.c.row_version,
    )


def get_sessionmaker() -> SessionMaker:
    """기본설정으로 SqlAlchemy Session 팩토리를 만듭니다."""
    global __session_factory  # pylint: disable=global-statement,invalid-name

    if not __session_factory:
        __session_factory = init_db(config=get_config())

    return __session_factory


def set_default_sessionmaker(get_session: Optional[SessionMaker]) -> None:
    """:func:`get_sessionmaker` 가 리턴할 기본 세션 팩토리를 지정합니다."""
    global __session_factory  # pylint: disable=global-statement,invalid-name
    __session_factory = get_session


def init_db(
    db_url: Optional[str] = None,
    drop_all: bool = False,
    show_log: bool = False,
    init_hooks: Optional[list[MapperHook]] = None,
    config: Optional[FastRepo] = None,
) -> SessionMaker:
    """DB 엔진을 초기화 하고 세션 팩토리를 리턴합니다."""
    config = config or get_config()
    meta = start_mappers(init_hooks=init_hooks)

    engine = init_engine(
        meta,
        db_url or config.get_db_url(),
        connect_args=config.get_db_connect_args(),
        poolclass=config.get_db_poolclass(),
        drop_all=drop_all,
        show_log=show_log,
    )
    return cast(SessionMaker, sessionmaker(engine, **config.get_session_options()))


def start_mappers(
    use_exist: bool = True, init_hooks: Optional[list[MapperHook]] = None
) -> MetaData:
    """도메인 객체들을 SqlAlchemy ORM 매퍼에 등록합니다."""
    global metadata  # pylint: disable=global-statement,invalid-name
    if use_exist and metadata:
        return metadata

    metadata = MetaData()

    # 사용자 매핑 함수 추가.
    if init_hooks:
        for hook in init_hooks:
            hook(metadata)

    return metadata


def clear_mappers() -> None:
    """ORM 매핑을 초기화 합니다."""
    global metadata  # pylint: disable=global-statement,invalid-name
    _clear_mappers()
    metadata = None


def init_engine(
    meta: MetaData,
    url: str,
    connect_args: Optional[dict[str, Any]] = None,
    poolclass: Optional[Type[Pool]] = None,
    show_log: Union[bool, dict[str, Any]] = False,
    isolation_level: Optional[str] = None,
    drop_all: bool = False,
) -> Engine:
    """ORM Engine을 초기화 하고 테이블을 생성합니다.

    Args:
        meta: 생성할 테이블이 등록된 메타데이터.
        url: SqlAlchemy DB URL.
        show_log: ``True`` 이면 생성된 ``CREATE`` 문을, ``{"all": True}`` 이면
            엔진 로그 전체를 출력합니다.
        drop_all: 테이블 생성 전 기존 테이블을 모두 삭제할지 여부.
    """
    logger = logging.getLogger("sqlalchemy.engine.Engine")
    out = io.StringIO()
    handler = logging.StreamHandler(out)
    logger.addHandler(handler)

    kwargs: dict[str, Any] = dict(connect_args=connect_args or {}, echo=bool(show_log))
    if poolclass:
        kwargs["poolclass"] = poolclass
    if isolation_level:
        kwargs["isolation_level"] = isolation_level

    try:
        engine = create_engine(url, **kwargs)

        if drop_all:
            meta.drop_all(engine)

        meta.create_all(engine)
    finally:
        logger.removeHandler(handler)

    if show_log:
        log_txt = out.getvalue()
        if show_log is True:
            print("".join(re.findall("CREATE.*?\n\n", log_txt, re.DOTALL | re.I)))
        elif isinstance(show_log, dict):
            if show_log.get("all"):
                print(log_txt)

    return engine
