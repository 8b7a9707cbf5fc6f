"""FastAPI service exposing the stats ledger.

The trainer bot forwards every accept/block decision here through the sync
bridge; the ledger keeps the full attempt history of each user.
"""
import logging
from typing import Any, Dict, Optional, Union

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, field_validator

from smishdefense.config import settings
from smishdefense.errors import PersistenceError, ValidationError
from smishdefense.models.base import init_db
from smishdefense.services.stats_service import LedgerRepository, StatsAggregator

logger = logging.getLogger(__name__)


class SaveProgressRequest(BaseModel):
    # Everything is optional so missing fields get the ledger's own 400 answer
    userId: Optional[Union[str, int]] = None
    userName: Optional[str] = None
    messageId: Optional[int] = None
    action: Optional[str] = None
    correct: Optional[bool] = None
    timestamp: Optional[str] = None

    @field_validator("userId")
    def user_id_as_text(cls, v):
        # Ids are opaque tokens; numeric ones are stored as text
        return None if v is None else str(v)


def error_response(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


def get_aggregator(request: Request) -> StatsAggregator:
    """Aggregator shared by every request of the application."""
    return request.app.state.aggregator


def create_app(aggregator: Optional[StatsAggregator] = None) -> FastAPI:
    """Build the stats API around an aggregator (the default one uses DATABASE_URL)."""
    if aggregator is None:
        init_db()
        aggregator = StatsAggregator(LedgerRepository())

    app = FastAPI(
        title="Smishing Defense Stats API",
        description="Per-user ledger of smishing training attempts.",
        version="0.1.0",
    )
    app.state.aggregator = aggregator

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info(f"Rejected malformed body on {request.url.path}: {exc.errors()}")
        return error_response(400, "Invalid request body")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.post("/api/save-progress", response_model=None)
    def save_progress(
        payload: SaveProgressRequest,
        stats: StatsAggregator = Depends(get_aggregator),
    ) -> Union[Dict[str, Any], JSONResponse]:
        try:
            summary = stats.record_attempt(payload.model_dump())
        except ValidationError as e:
            logger.info(f"Rejected attempt: {e}")
            return error_response(400, str(e))
        except PersistenceError as e:
            logger.error(f"Error in /api/save-progress: {e}")
            return error_response(500, "Failed to save statistics")

        return {
            "success": True,
            "message": "Progress saved successfully",
            "userStats": {
                "totalAttempts": summary.total_attempts,
                "correctAnswers": summary.correct_answers,
                "accuracy": summary.accuracy_percent,
            },
        }

    @app.get("/api/user-stats/{user_id}", response_model=None)
    def user_stats(
        user_id: str,
        stats: StatsAggregator = Depends(get_aggregator),
    ) -> Union[Dict[str, Any], JSONResponse]:
        try:
            user = stats.get_user_stats(user_id)
        except PersistenceError as e:
            logger.error(f"Error in /api/user-stats: {e}")
            return error_response(500, "Internal server error")

        if user is None:
            return {"success": False, "message": "User not found"}
        return {"success": True, "user": user.to_data()}

    return app


def main() -> None:
    """Run the stats API with uvicorn."""
    import uvicorn

    from smishdefense.logging_config import setup_logging
    from smishdefense.monitoring import start_monitoring

    setup_logging("Starting Smishing Defense stats API ...", log_name="smishdefense-api.log")
    if settings.monitoring.enabled:
        start_monitoring(settings.monitoring.port)
    app = create_app()
    logger.info(f"Server running on http://{settings.api.host}:{settings.api.port}")
    uvicorn.run(app, host=settings.api.host, port=settings.api.port, log_config=None)


if __name__ == "__main__":
    main()
