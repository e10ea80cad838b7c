"""Business logic service for high score operations."""

import uuid
from datetime import datetime, UTC
from typing import Any

from aws_lambda_powertools import Logger
from pydantic import ValidationError as PydanticValidationError

from .config import Settings
from .exceptions import NotFoundError, ValidationError
from .models import (
    DEFAULT_TOP_N,
    ScoreRecord,
    ScoreSubmission,
    describe_validation_error,
)
from .store import ScoreStore

logger = Logger(service="highscores", child=True)


class LeaderboardService:
    """Validation and ranking on top of the score store.

    The service keeps no records between calls; every operation reads the
    current set from the store.
    """

    def __init__(self, store: ScoreStore | None = None) -> None:
        """Initialize service with store dependency."""
        self.store = store or ScoreStore.from_settings(Settings())

    def health_check(self) -> dict[str, str]:
        """Perform health check."""
        return {"status": "healthy", "service": "highscores"}

    def submit_score(self, name: Any, score: Any) -> ScoreRecord:
        """Validate and store a new score.

        Args:
            name: Submitter name, trimmed before storing
            score: Number of correct answers, 0 to MAX_SCORE

        Returns:
            The created record, including its id and creation time

        Raises:
            ValidationError: If name is blank or score is not a valid score
            CorruptStateError: If stored scores cannot be parsed
            PersistenceError: If the store cannot be read or written
        """
        try:
            submission = ScoreSubmission(name=name, score=score)
        except PydanticValidationError as e:
            reason = describe_validation_error(e)
            logger.info("Rejected score submission", extra={"reason": reason})
            raise ValidationError(reason) from e

        def append_record(records: list[ScoreRecord]) -> list[ScoreRecord]:
            existing_ids = {existing.id for existing in records}
            score_id = uuid.uuid4().hex
            while score_id in existing_ids:
                score_id = uuid.uuid4().hex

            new_record = ScoreRecord(
                id=score_id,
                name=submission.name,
                score=submission.score,
                created_at=datetime.now(UTC),
            )
            return [*records, new_record]

        # The appended record is always last
        record = self.store.update(append_record)[-1]

        logger.info(
            "Score saved",
            extra={"id": record.id, "player": record.name, "score": record.score},
        )
        return record

    def get_high_scores(self, limit: int = DEFAULT_TOP_N) -> list[ScoreRecord]:
        """Return the best ``limit`` scores.

        Ordered by score descending; equal scores keep the earlier submission
        first. The sort is stable, so records with identical keys stay in
        store order. A limit of 0 returns an empty list.

        Raises:
            ValidationError: If limit is negative
        """
        if limit < 0:
            raise ValidationError("limit must not be negative")
        if limit == 0:
            return []
        records = self.store.load_all()
        return sorted(records, key=lambda record: record.rank_key)[:limit]

    def list_scores(self) -> list[ScoreRecord]:
        """Return every stored score in store order."""
        return self.store.load_all()

    def delete_score(self, score_id: str) -> bool:
        """Delete the score with the given id.

        Raises:
            NotFoundError: If no stored score has this id
            CorruptStateError: If stored scores cannot be parsed
            PersistenceError: If the store cannot be read or written
        """

        def remove_record(records: list[ScoreRecord]) -> list[ScoreRecord]:
            remaining = [record for record in records if record.id != score_id]
            if len(remaining) == len(records):
                raise NotFoundError(score_id)
            return remaining

        self.store.update(remove_record)

        logger.info("Score deleted", extra={"id": score_id})
        return True
