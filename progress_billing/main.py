"""
Main FastAPI Application for the Progress Billing engine.
Serves the v1 REST API for AIA G702/G703 payment applications.
"""
import logging

from fastapi import FastAPI

from progress_billing import __version__
from progress_billing.config import get_config
from progress_billing.models import init_db
from progress_billing.api.v1 import api_router as v1_router

logger = logging.getLogger(__name__)


app = FastAPI(
    title="Progress Billing",
    description="Schedule of Values, continuation sheets and payment certificates "
                "for construction progress billing",
    version=__version__
)

app.include_router(v1_router)


# Initialize database on startup
@app.on_event("startup")
async def startup_event():
    init_db()
    logger.info(f"Progress Billing {__version__} started (config {get_config().path})")


@app.get("/health")
def health():
    return {"status": "ok", "version": __version__}
