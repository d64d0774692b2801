"""기본 환경 설정."""

from __future__ import annotations

import importlib
import os
import sys
from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Type, cast

from sqlalchemy.pool import Pool, StaticPool

from fastrepo.core import FastRepoInitError

DB_URL_ENV = "FASTREPO_DB_URL"
"""기본 DB URL을 지정하는 환경변수 이름."""


@dataclass
class FastRepoSetupConfig:
    name: str
    title: Optional[str] = None
    module_name: Optional[str] = None
    module_path: Optional[str] = None


def load_setupcfg(path: Path) -> Optional[FastRepoSetupConfig]:
    if (path / "setup.cfg").exists():
        # 현재 경로에 "setup.cfg" 파일이 있다면 [fastrepo] 섹션에서
        # name, module 등의 정보를 읽습니다.
        config = ConfigParser()
        config.read(path / "setup.cfg")
        if "fastrepo" in config:
            try:
                return FastRepoSetupConfig(**config["fastrepo"])
            except TypeError as e:
                raise FastRepoInitError(f"invalid [fastrepo] section: {e}") from e
    return None


@dataclass
class FastRepo:
    """FastRepo 데이터 접근 레이어 설정.

    프로젝트 ``config.py`` 에서 이 클래스를 상속한 ``Config`` 클래스를
    정의하면 :meth:`load_from_config` 가 이를 로드합니다.
    """

    name: str = "fastrepo"
    title: str = "FastRepo"
    module_path: Path = Path(".")
    module_name: str = "fastrepo"
    is_implicit_name: bool = True
    """setup.cfg 없이 암시적으로 부여된 이름인지 여부."""

    lazy_loading = False
    """``False`` 이면 include 되지 않은 연관 데이터 접근시 에러가 발생합니다."""
    autoflush = False
    """``False`` 이면 변경 감지는 ``save()`` 시점에만 일어납니다."""
    expire_on_commit = False
    default_user = "system"
    """호출자 정보가 없을 때 감사 필드에 기록할 이름."""

    @staticmethod
    def load_from_config(path=Path(".")) -> FastRepo:
        """`setup.cfg` 와 `<module>/config.py` 에서 설정을 로드합니다."""
        cfg = load_setupcfg(path)
        name = path.absolute().name
        title = name
        module_name = name
        module_path = path / name
        is_implicit_name = True

        if cfg:
            is_implicit_name = False
            name = cfg.name
            module_name = cfg.module_name or name
            title = cfg.title or title

            if cfg.module_path:
                module_path = path / cfg.module_path
            else:
                module_path = path / module_name.replace(".", "/")

        kwargs = dict(
            name=name,
            title=title,
            module_name=module_name,
            module_path=module_path,
            is_implicit_name=is_implicit_name,
        )

        if not name.isidentifier():
            raise FastRepoInitError(f"invalid project name: {name!r}")

        if (module_path / "config.py").exists():
            abs_path = str(path.absolute())
            if abs_path not in sys.path:
                sys.path.insert(0, abs_path)

            conf_module = importlib.import_module(f"{module_name}.config")
            config = getattr(conf_module, "Config", None)
            if config is None:
                raise FastRepoInitError(f"{module_name}.config has no Config class")
            # config.py 파일이 발견되면 이 설정을 로드합니다.
            return cast(FastRepo, cast(Type[FastRepo], config)(**kwargs))

        return FastRepo(**kwargs)

    def get_db_url(self) -> str:
        """SqlAlchemy 에서 사용 가능한 형식의 DB URL을 리턴합니다.

        ``FASTREPO_DB_URL`` 환경변수가 있으면 그 값을, 없으면 메모리 SQLite를
        사용합니다. 프로젝트 ``Config`` 에서 재정의할 수 있습니다. ::

            def get_db_url(self):
                db_host = os.environ.get("DB_HOST", "localhost")
                return f"postgresql://postgres:password@{db_host}/blog"
        """
        return os.environ.get(DB_URL_ENV, "sqlite://")

    def get_db_connect_args(self) -> dict[str, Any]:
        """``create_engine(connect_args=...)`` 에 전달할 인자.

        SQLite 연결은 여러 스레드(요청)에서 사용될 수 있도록 합니다.
        """
        if self.get_db_url().startswith("sqlite"):
            return {"check_same_thread": False}
        return {}

    def get_db_poolclass(self) -> Optional[Type[Pool]]:
        """``create_engine(poolclass=...)`` 에 전달할 풀 클래스.

        메모리 SQLite 의 경우 모든 세션이 하나의 연결을 공유해야 합니다.
        """
        if self.get_db_url() in ("sqlite://", "sqlite:///:memory:"):
            return StaticPool
        return None

    def get_session_options(self) -> dict[str, Any]:
        """``sessionmaker`` 에 전달할 옵션."""
        return dict(autoflush=self.autoflush, expire_on_commit=self.expire_on_commit)


__config: Optional[FastRepo] = None


def get_config() -> FastRepo:
    """프로세스 기본 설정을 리턴합니다. 없으면 기본값으로 만듭니다."""
    global __config  # pylint: disable=global-statement,invalid-name

    if not __config:
        __config = FastRepo()
    return __config


def set_config(config: Optional[FastRepo]) -> None:
    global __config  # pylint: disable=global-statement,invalid-name
    __config = config
