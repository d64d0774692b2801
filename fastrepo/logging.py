import logging
import os
from typing import Optional, Union

from uvicorn.logging import DefaultFormatter

LOG_LEVEL_ENV = "FASTREPO_LOG_LEVEL"
"""기본 로그 레벨을 지정하는 환경변수 이름."""


def get_logger(
    name: str, log_level: Optional[Union[int, str]] = None
) -> logging.Logger:
    """``fastrepo.<name>`` 로거를 리턴합니다.

    처음 요청될 때만 uvicorn 포맷터를 사용하는 핸들러를 붙입니다. 레벨을
    지정하지 않으면 ``FASTREPO_LOG_LEVEL`` 환경변수(기본 ``INFO``)를 씁니다.
    """
    if name != "fastrepo" and not name.startswith("fastrepo."):
        name = f"fastrepo.{name}"

    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.setLevel(log_level or os.environ.get(LOG_LEVEL_ENV, "INFO").upper())
        ch = logging.StreamHandler()
        ch.setFormatter(DefaultFormatter(fmt="%(levelprefix)s [%(name)s] %(message)s"))
        logger.addHandler(ch)

    return logger
