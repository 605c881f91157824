"""Persist successful generations to the history table."""

from __future__ import annotations

import asyncio
import logging

from dal.generation_dal import GenerationDAL
from models.generation_models import GenerationResult
from models.generation_record import GenerationRecord
from services.thumbnail_generator import ThumbnailGenerator

LOGGER = logging.getLogger(__name__)


class HistoryRecorder:
    """Completion hook that stores each finished run with a front-view thumbnail."""

    def __init__(self, dal: GenerationDAL, thumbnails: ThumbnailGenerator | None = None) -> None:
        self.dal = dal
        self.thumbnails = thumbnails or ThumbnailGenerator()

    async def __call__(self, result: GenerationResult) -> int:
        thumbnail = None
        if result.images:
            try:
                # Pillow work is blocking -> run in thread
                thumbnail = await asyncio.to_thread(
                    self.thumbnails.create_thumbnail_from_data_uri, result.images[0].url
                )
            except ValueError as exc:
                LOGGER.warning("Skipping history thumbnail for session %s: %s", result.session_id, exc)

        record = GenerationRecord(
            id=None,
            session_id=result.session_id,
            mesh_url=result.mesh_url,
            total_time=result.total_time,
            step_times=result.step_times(),
            view_labels=[image.label for image in result.images],
            thumbnail=thumbnail,
            created_at=int(result.created_at),
        )
        record_id = await self.dal.create_generation(record)
        LOGGER.info("Stored generation %s for session %s", record_id, result.session_id)
        return record_id
