import os
import uuid
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Callable, Generator, Union

from fastrepo.uow import SqlAlchemyUnitOfWork

UowFactory = Callable[..., SqlAlchemyUnitOfWork]
"""`make_uow` 픽스처 타입."""

CLOCK_START = datetime(2021, 5, 1, 9, 0, 0)
"""테스트용 시계의 시작 시각."""


def random_suffix() -> str:
    """랜덤 ID뒤에 붙일 UUID 기반의 6자리 임의의 ID를 생성합니다."""
    return uuid.uuid4().hex[:6]


def random_title(name: str = "") -> str:
    """임의의 게시글 제목을 생성합니다."""
    return f"post-{name}-{random_suffix()}"


def random_email(name: str = "user") -> str:
    """임의의 이메일 주소를 생성합니다."""
    return f"{name}-{random_suffix()}@example.com"


@contextmanager
def cwd(path: Union[str, Path]) -> Generator[Path, None, None]:
    """작업 디렉토리를 잠시 바꿉니다."""
    prev = os.getcwd()
    os.chdir(path)
    try:
        yield Path(path)
    finally:
        os.chdir(prev)
