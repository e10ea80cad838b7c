"""Lambda handler for high scores service."""

import json
from datetime import datetime, UTC
from typing import Any

from aws_lambda_powertools import Logger
from aws_lambda_powertools.event_handler import (
    APIGatewayRestResolver,
    CORSConfig,
    Response,
    content_types,
)
from aws_lambda_powertools.event_handler.exceptions import (
    BadRequestError,
    InternalServerError,
)
from aws_lambda_powertools.event_handler.exceptions import (
    NotFoundError as RouteNotFoundError,
)
from aws_lambda_powertools.logging import correlation_paths
from aws_lambda_powertools.utilities.typing import LambdaContext

from .exceptions import (
    CorruptStateError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from .models import DEFAULT_TOP_N
from .service import LeaderboardService

MAX_LIMIT = 100

logger = Logger(service="highscores")
app = APIGatewayRestResolver(cors=CORSConfig(allow_origin="*"))
service = LeaderboardService()


@app.get("/api/health")
def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {**service.health_check(), "timestamp": datetime.now(UTC).isoformat()}


@app.get("/api/highscores")
def get_high_scores() -> list[dict[str, Any]]:
    """Get the top scores."""
    limit_param = app.current_event.get_query_string_value("limit", str(DEFAULT_TOP_N))
    try:
        limit = int(limit_param) if limit_param else DEFAULT_TOP_N
        if limit < 1 or limit > MAX_LIMIT:
            raise ValueError()
    except ValueError as ve:
        raise BadRequestError(
            f"Invalid limit: must be an integer between 1 and {MAX_LIMIT}"
        ) from ve

    try:
        records = service.get_high_scores(limit)
    except (CorruptStateError, PersistenceError) as e:
        logger.error("Storage error", extra={"error": str(e)})
        raise InternalServerError("Failed to fetch high scores") from e

    logger.info("High scores retrieved", extra={"entries_count": len(records)})
    return [record.to_response() for record in records]


@app.post("/api/scores")
def submit_score() -> Response:
    """Submit a new score."""
    try:
        body = app.current_event.json_body
    except (TypeError, ValueError) as e:
        logger.warning("Unreadable score submission", extra={"error": str(e)})
        raise BadRequestError("Invalid request: body must be a JSON object") from e
    if not isinstance(body, dict):
        raise BadRequestError("Invalid request: body must be a JSON object")

    try:
        record = service.submit_score(body.get("name"), body.get("score"))
    except ValidationError as e:
        logger.warning("Invalid score submission", extra={"reason": e.reason})
        raise BadRequestError(f"Invalid request: {e.reason}") from e
    except (CorruptStateError, PersistenceError) as e:
        logger.error("Storage error", extra={"error": str(e)})
        raise InternalServerError("Failed to save score") from e

    return Response(
        status_code=201,
        content_type=content_types.APPLICATION_JSON,
        body=json.dumps(
            {"message": "Score saved successfully", "score": record.to_response()}
        ),
    )


@app.get("/api/scores")
def list_scores() -> list[dict[str, Any]]:
    """Get all scores, for administration."""
    try:
        records = service.list_scores()
    except (CorruptStateError, PersistenceError) as e:
        logger.error("Storage error", extra={"error": str(e)})
        raise InternalServerError("Failed to fetch scores") from e
    return [record.to_response() for record in records]


@app.delete("/api/scores/<score_id>")
def delete_score(score_id: str) -> dict[str, str]:
    """Delete a score, for administration."""
    try:
        service.delete_score(score_id)
    except NotFoundError as e:
        logger.info("Score to delete not found", extra={"id": score_id})
        raise RouteNotFoundError("Score not found") from e
    except (CorruptStateError, PersistenceError) as e:
        logger.error("Storage error", extra={"error": str(e)})
        raise InternalServerError("Failed to delete score") from e
    return {"message": "Score deleted successfully"}


@logger.inject_lambda_context(correlation_id_path=correlation_paths.API_GATEWAY_REST)
def lambda_handler(event: dict[str, Any], context: LambdaContext) -> dict[str, Any]:
    """Lambda handler entry point."""
    return app.resolve(event, context)
