"""FastAPI dependencies: session, generation wiring, service facade."""

from __future__ import annotations

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from config import get_settings
from wordbank.db.database import get_session
from wordbank.delivery import WordbankService
from wordbank.generation import GenerationOrchestrator, RetryingClient
from wordbank.quota import QuotaGuard


def get_http_client(request: Request) -> RetryingClient | None:
    """Shared upstream client created in the app lifespan."""
    return getattr(request.app.state, "http_client", None)


def get_orchestrator(
    db: Session = Depends(get_session),
    client: RetryingClient | None = Depends(get_http_client),
) -> GenerationOrchestrator | None:
    if client is None:
        return None
    return GenerationOrchestrator.from_settings(db, client, get_settings())


def get_service(
    db: Session = Depends(get_session),
    orchestrator: GenerationOrchestrator | None = Depends(get_orchestrator),
) -> WordbankService:
    return WordbankService(db, orchestrator=orchestrator, settings=get_settings())


def get_quota_guard(db: Session = Depends(get_session)) -> QuotaGuard:
    return QuotaGuard(db, default_tier=get_settings().default_tier)
