"""Create and drop the relational schema of a service domain."""

from protean.domain import Domain
from sqlalchemy import create_engine

_RDBMS_PROVIDERS = ("sqlite", "postgresql")


def _load_models(domain: Domain, provider) -> None:
    # Touching ``_dao`` registers each aggregate's table with SQLAlchemy
    for _, aggregate_record in domain.registry.aggregates.items():
        if aggregate_record.cls.meta_.provider == provider.name:
            domain.repository_for(aggregate_record.cls)._dao  # noqa: B018


def setup_db(domain: Domain) -> list[str]:
    """Create every table of ``domain``, including its outbox, ledger and dead letters.

    Returns the names of the providers that were set up. Memory providers are
    skipped since they hold no schema.
    """
    prepared = []
    with domain.domain_context():
        for name, provider in domain.providers.items():
            if provider.conn_info["provider"] not in _RDBMS_PROVIDERS:
                continue

            engine = create_engine(provider.conn_info["database_uri"])
            _load_models(domain, provider)
            provider._metadata.create_all(engine)
            prepared.append(name)
    return prepared


def drop_db(domain: Domain) -> list[str]:
    """Drop every table of ``domain``."""
    dropped = []
    with domain.domain_context():
        for name, provider in domain.providers.items():
            if provider.conn_info["provider"] not in _RDBMS_PROVIDERS:
                continue

            engine = create_engine(provider.conn_info["database_uri"])
            provider._metadata.drop_all(engine)
            dropped.append(name)
    return dropped
