from protean.domain import Domain
from sqlalchemy import create_engine

from storefront.ledger import get_ledger
from storefront.ledger.sql import SqlAlchemyWebhookLedger


def _sql_providers(domain: Domain):
    for _, provider in domain.providers.items():
        if provider.conn_info["provider"] in ("sqlite", "postgresql"):
            yield provider


def setup_db(domain: Domain):
    """Create the domain tables and the webhook ledger table"""
    with domain.domain_context():
        for provider in _sql_providers(domain):
            engine = create_engine(provider.conn_info["database_uri"])

            # Touch each repository's _dao so its model is registered with
            #   the provider's SQLAlchemy metadata before create_all runs.
            for registry in (domain.registry.aggregates, domain.registry.entities, domain.registry.projections):
                for _, record in registry.items():
                    if record.cls.meta_.provider == provider.name:
                        domain.repository_for(record.cls)._dao  # noqa: B018

            provider._metadata.create_all(engine)

        ledger = get_ledger()
        if isinstance(ledger, SqlAlchemyWebhookLedger):
            ledger.create_tables()


def drop_db(domain: Domain):
    """Drop the domain tables and the webhook ledger table"""
    with domain.domain_context():
        for provider in _sql_providers(domain):
            engine = create_engine(provider.conn_info["database_uri"])
            provider._metadata.drop_all(engine)

        ledger = get_ledger()
        if isinstance(ledger, SqlAlchemyWebhookLedger):
            ledger.drop_tables()
