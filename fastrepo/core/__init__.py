from .errors import (  # noqa
    ConcurrencyConflict,
    FastRepoError,
    FastRepoInitError,
    PersistenceError,
    ValidationError,
)
from .models import (  # noqa
    AbstractRepository,
    AbstractUnitOfWork,
    AnyIdentity,
    AuditedEntity,
    Clock,
    Entity,
    IdentityProvider,
    ReposMap,
)
