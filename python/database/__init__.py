"""
Database Package for the PostingGuard Ledger Service

This package provides:
- SQLAlchemy ORM models for the metadata lawbook and the ledger
- FastAPI Dependency Injection for database sessions
- Unit of Work pattern for transaction management
- Repository pattern for data access, with tenant scoping
- Performance monitoring and query timing
"""

from database.models import (
    Base,
    StandardPack,
    Concept,
    Alias,
    Account,
    JournalEntryRecord,
    JournalLineRecord,
    UsageLog,
    AuthorityLevel,
    PackStatus,
    ConceptDomain,
    ConceptType,
    AliasType,
    JournalStatus,
    MatchStrategy,
    ActorType,
)
from database.connection import (
    DatabaseSessionProvider,
    DatabaseSettings,
    UnitOfWork,
    # FastAPI dependencies
    get_db,
    get_db_provider,
    # Initialization
    init_db,
    close_db,
    # Testing support
    create_test_provider,
)
from database.monitoring import (
    query_timer,
    timed_query,
    get_db_metrics,
    get_slow_query_report,
    reset_metrics,
    configure_monitoring,
    check_health,
    HealthStatus,
)
from database.repositories import (
    RepositoryError,
    EntityNotFoundError,
    DuplicateEntityError,
    TenantScopedRepository,
    StandardPackRepository,
    ConceptRepository,
    TenantConceptRepository,
    AccountRepository,
    JournalRepository,
    UsageLogRepository,
)

__all__ = [
    # Base
    'Base',
    # Lawbook models
    'StandardPack',
    'Concept',
    'Alias',
    # Ledger models
    'Account',
    'JournalEntryRecord',
    'JournalLineRecord',
    # Telemetry
    'UsageLog',
    # Enums
    'AuthorityLevel',
    'PackStatus',
    'ConceptDomain',
    'ConceptType',
    'AliasType',
    'JournalStatus',
    'MatchStrategy',
    'ActorType',
    # Database provider
    'DatabaseSessionProvider',
    'DatabaseSettings',
    'UnitOfWork',
    # FastAPI dependencies
    'get_db',
    'get_db_provider',
    # Initialization
    'init_db',
    'close_db',
    # Testing support
    'create_test_provider',
    # Monitoring
    'query_timer',
    'timed_query',
    'get_db_metrics',
    'get_slow_query_report',
    'reset_metrics',
    'configure_monitoring',
    'check_health',
    'HealthStatus',
    # Repositories
    'RepositoryError',
    'EntityNotFoundError',
    'DuplicateEntityError',
    'TenantScopedRepository',
    'StandardPackRepository',
    'ConceptRepository',
    'TenantConceptRepository',
    'AccountRepository',
    'JournalRepository',
    'UsageLogRepository',
]
