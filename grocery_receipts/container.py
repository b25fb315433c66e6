"""
Composition root — builds the process-wide collaborators once at startup.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from grocery_receipts.config import Settings
from grocery_receipts.database import make_engine, make_session_factory
from grocery_receipts.errors import ConfigurationError
from grocery_receipts.lifecycle.controller import ReceiptLifecycle
from grocery_receipts.lifecycle.insights import InsightsService
from grocery_receipts.services.auth import TokenVerifier
from grocery_receipts.services.blob_store import BlobStore, GCSBlobStore
from grocery_receipts.services.extraction import Extractor, OpenAIExtractor

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    engine: Engine
    session_factory: sessionmaker
    blob_store: BlobStore
    extractor: Optional[Extractor]
    token_verifier: TokenVerifier

    def lifecycle(self, db: Session) -> ReceiptLifecycle:
        return ReceiptLifecycle(
            db,
            self.blob_store,
            self.extractor,
            temp_url_ttl=timedelta(hours=self.settings.TEMP_URL_TTL_HOURS),
            long_url_ttl=timedelta(days=self.settings.LONG_URL_TTL_DAYS),
        )

    def insights(self, db: Session) -> InsightsService:
        return InsightsService(db, self.extractor)

    def close(self) -> None:
        self.engine.dispose()
        logger.info("Services closed")


def build_services(settings: Settings) -> Services:
    """Construct all collaborators from settings, failing fast on missing config."""
    missing = settings.missing_required()
    if missing:
        raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")

    engine = make_engine(settings.DATABASE_URL, echo=settings.DEBUG)
    return Services(
        settings=settings,
        engine=engine,
        session_factory=make_session_factory(engine),
        blob_store=GCSBlobStore(settings.GCS_BUCKET_NAME, settings.GCS_CREDENTIALS_JSON),
        extractor=OpenAIExtractor(
            api_key=settings.LLM_API_KEY,
            model=settings.LLM_MODEL,
            max_output_tokens=settings.LLM_INSIGHTS_MAX_TOKENS,
        ),
        token_verifier=TokenVerifier(
            secret=settings.SECRET_KEY,
            algorithm=settings.ALGORITHM,
            audience=settings.AUTH_AUDIENCE,
            issuer=settings.AUTH_ISSUER,
        ),
    )
