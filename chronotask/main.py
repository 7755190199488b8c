"""Main FastAPI application for the chronotask core."""
import asyncio
import logging

from fastapi import FastAPI
from sqlmodel import Session

from chronotask.config import DELIVERY_WEBHOOK_URL, LOG_LEVEL, SCHEDULER_ENABLED, SCHEDULER_TICK_SECONDS
from chronotask.db.config import engine
from chronotask.db.init import init_db
from chronotask.middleware.cors import add_cors_middleware
from chronotask.routers import profile_router, tasks_router
from chronotask.services.delivery import build_delivery_provider
from chronotask.services.notification_scheduler import NotificationScheduler, run_scheduler
from chronotask.utils.logger import configure_logging
from chronotask.utils.metrics import metrics_collector

logger = logging.getLogger(__name__)

# Create FastAPI application
app = FastAPI(
    title="chronotask API",
    description="Recurring tasks, change history and periodic task summaries",
    version="1.0.0",
)

# Add CORS middleware
add_cors_middleware(app)

app.state.scheduler = NotificationScheduler(
    session_factory=lambda: Session(engine),
    delivery=build_delivery_provider(DELIVERY_WEBHOOK_URL),
)
app.state.scheduler_task = None


@app.on_event("startup")
async def startup_event():
    """Initialize logging and the database, then start the summary scheduler."""
    configure_logging(LOG_LEVEL)
    try:
        init_db()
        logger.info("[SUCCESS] Database tables initialized successfully.")
        app.state.scheduler.recover_interrupted()
    except Exception as e:
        logger.warning(f"[WARNING] Database initialization failed: {str(e)}")
        logger.warning("[WARNING] Server will continue but database operations may fail.")

    if SCHEDULER_ENABLED:
        app.state.scheduler_task = asyncio.create_task(
            run_scheduler(app.state.scheduler, SCHEDULER_TICK_SECONDS)
        )
    else:
        logger.info("Task summary scheduler disabled by configuration")

    logger.info("[SUCCESS] Application startup complete.")


@app.on_event("shutdown")
async def shutdown_event():
    """Cancel the scheduler loop and release the delivery client."""
    task = app.state.scheduler_task
    if task is not None:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        app.state.scheduler_task = None
    await app.state.scheduler.delivery.close()
    logger.info("Application shutdown complete.")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    task = app.state.scheduler_task
    return {
        "status": "healthy",
        "version": "1.0.0",
        "scheduler_running": task is not None and not task.done(),
    }


@app.get("/metrics")
async def metrics():
    """In-process counters and timers."""
    return metrics_collector.get_metrics()


@app.get("/")
async def root():
    """Root endpoint - API welcome message."""
    return {
        "title": "chronotask API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
    }


app.include_router(tasks_router, prefix="/api")  # Task endpoints: /api/{profile_id}/tasks, /api/tasks/{id}
app.include_router(profile_router, prefix="/api")  # Summary settings: /api/profile/{profile_id}/task-summary


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "chronotask.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
