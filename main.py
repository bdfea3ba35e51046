from fastapi import FastAPI
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

# Internal imports
from config import config
from data.database import create_tables
from api.experiment_routes import experiment_router
from api.events_routes import events_router
from api.report_routes import report_router

import contextlib
import logging
import middleware

logger = logging.getLogger(__name__)


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Handles startup and shutdown events for the application.
    Code before 'yield' runs on startup.
    Code after 'yield' runs on shutdown.
    """
    try:
        logger.info("Application starting up with %s", config)
        create_tables()
        logger.info("Database tables initialized successfully.")
    except SQLAlchemyError as e:
        # Reports cannot be tracked without the database, refuse to start
        logger.error("Failed to initialize database tables: %s", e)
        raise

    yield

    logger.info("Application shutting down.")

# --- FastAPI App Initialization ---
app = FastAPI(
    lifespan=lifespan,
    title="Experiment Report API",
    version="1.0.0",
    description="Experiment definitions, event collection and asynchronous A/B test reports."
)

# Add the middleware to the application
app.add_middleware(middleware.RequestIDMiddleware)

app.include_router(experiment_router)
app.include_router(events_router)
app.include_router(report_router)


@app.get("/health")
def health_check():
    return JSONResponse(content={"status": "healthy"}, status_code=200)
