"""
Dependencies for FastAPI.

Collaborators of the core (session factory, clock, configuration, lock
manager) are injected here so tests can override any of them with
app.dependency_overrides.
"""

from typing import Optional

from fastapi import Depends, Header

from poultry_backend.app.core.clock import system_clock
from poultry_backend.app.core.config import Settings, settings
from poultry_backend.app.core.locking import build_lock_manager
from poultry_backend.app.db.session import AsyncSessionLocal
from poultry_backend.app.services.ledger_queries import LedgerQueries
from poultry_backend.app.services.transaction_coordinator import SYSTEM_ACTOR, TransactionCoordinator

# Shared across requests: keyed locks and the storage circuit breaker only
# work when every request sees the same instance.
_lock_manager = None
_queries: Optional[LedgerQueries] = None


def get_settings() -> Settings:
    return settings


def get_session_factory():
    return AsyncSessionLocal


def get_clock():
    return system_clock


def get_lock_manager(config: Settings = Depends(get_settings)):
    global _lock_manager
    if _lock_manager is None:
        _lock_manager = build_lock_manager(config)
    return _lock_manager


def get_coordinator(
    session_factory=Depends(get_session_factory),
    config: Settings = Depends(get_settings),
    clock=Depends(get_clock),
    locks=Depends(get_lock_manager),
) -> TransactionCoordinator:
    return TransactionCoordinator(session_factory, config=config, clock=clock, locks=locks)


def get_queries(
    session_factory=Depends(get_session_factory),
    config: Settings = Depends(get_settings),
    clock=Depends(get_clock),
) -> LedgerQueries:
    global _queries
    if _queries is None or _queries.session_factory is not session_factory or _queries.clock is not clock:
        _queries = LedgerQueries(session_factory, config=config, clock=clock)
    return _queries


async def get_operator(x_operator: Optional[str] = Header(None, max_length=100)) -> str:
    """
    Operator name recorded in audit entries.

    The core holds no session state; the acting operator arrives with every
    request in the X-Operator header.
    """
    return (x_operator or "").strip() or SYSTEM_ACTOR
