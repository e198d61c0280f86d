import logging
import os
import time

from fastapi import FastAPI
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from ticketpay.api.routes.routes import router
from ticketpay.infrastructure.db.session import engine
from ticketpay.infrastructure.db.models import Base

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def wait_for_db(max_retries: int, retry_delay_seconds: float) -> int:
    """Block until the database answers; returns the attempt that succeeded."""
    for attempt in range(1, max_retries + 1):
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database is reachable. attempt=%s", attempt)
            return attempt
        except OperationalError:
            if attempt == max_retries:
                logger.exception(
                    "Database not reachable after %s attempts. Check DATABASE_URL.",
                    max_retries,
                )
                raise
            logger.warning(
                "Database not ready (attempt %s/%s). Retrying in %.1f seconds...",
                attempt,
                max_retries,
                retry_delay_seconds,
            )
            time.sleep(retry_delay_seconds)
    raise ValueError("max_retries must be at least 1")


configure_logging()

app = FastAPI(title="ticketpay")
app.include_router(router)


@app.on_event("startup")
def on_startup() -> None:
    wait_for_db(
        max_retries=int(os.getenv("DB_CONNECT_MAX_RETRIES", "30")),
        retry_delay_seconds=float(os.getenv("DB_CONNECT_RETRY_DELAY", "1.5")),
    )
    Base.metadata.create_all(bind=engine)
    logger.info("Schema ready. payment_gateway_mode=%s", os.getenv("PAYMENT_GATEWAY_MODE", "khalti"))
