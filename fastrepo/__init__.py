"""FastRepo - SqlAlchemy 기반의 Repository / UnitOfWork 데이터 접근 레이어."""
from fastrepo.config import FastRepo, get_config, set_config  # noqa
from fastrepo.core import (  # noqa
    ConcurrencyConflict,
    FastRepoError,
    PersistenceError,
    ValidationError,
)
from fastrepo.domain import Audited  # noqa
from fastrepo.projection import Projection  # noqa
from fastrepo.repo import EntityQuery, SqlAlchemyRepository  # noqa
from fastrepo.uow import SqlAlchemyUnitOfWork  # noqa
