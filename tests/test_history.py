import asyncio
import io

import pytest
from PIL import Image

from dal.generation_dal import GenerationDAL
from models.generation_models import GeneratedImage, GenerationResult, Step, StepStatus
from models.generation_record import GenerationRecord
from services.history_recorder import HistoryRecorder
from services.thumbnail_generator import ThumbnailGenerator
from utils.database_init import AsyncDatabaseInitializer
from tests.conftest import MESH_URL, png_uri


@pytest.fixture
def dal(tmp_path):
    return GenerationDAL(AsyncDatabaseInitializer(tmp_path / "db"))


def _record(session_id="s1", **overrides):
    values = dict(
        id=None,
        session_id=session_id,
        mesh_url=MESH_URL,
        total_time=12.5,
        step_times={"Generate View Images": "4.00", "Generate 3D Model": "8.50"},
        view_labels=["Front view", "Back view", "Left side view"],
        thumbnail=b"png",
        created_at=1700000000,
    )
    values.update(overrides)
    return GenerationRecord(**values)


def test_database_dir_is_required(monkeypatch):
    monkeypatch.delenv("DATABASE_DIR", raising=False)
    with pytest.raises(RuntimeError, match="DATABASE_DIR"):
        AsyncDatabaseInitializer()


def test_database_dir_from_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("DATABASE_DIR", str(tmp_path / "env-db"))
    initializer = AsyncDatabaseInitializer()
    assert initializer.db_path == tmp_path / "env-db" / "app.db"


def test_ensure_database_starts_fresh(tmp_path):
    async def scenario():
        first = GenerationDAL(AsyncDatabaseInitializer(tmp_path))
        await first.create_generation(_record())
        second = GenerationDAL(AsyncDatabaseInitializer(tmp_path))
        return await second.list_generations()

    assert asyncio.run(scenario()) == []


def test_create_get_list_delete(dal):
    async def scenario():
        first = await dal.create_generation(_record("s1"))
        second = await dal.create_generation(_record("s2", thumbnail=None, created_at=None))
        fetched = await dal.get_generation_by_id(first)
        listed = await dal.list_generations()
        page = await dal.list_generations(limit=1, offset=1)
        deleted = await dal.delete_generation(first)
        deleted_again = await dal.delete_generation(first)
        missing = await dal.get_generation_by_id(first)
        return first, second, fetched, listed, page, deleted, deleted_again, missing

    first, second, fetched, listed, page, deleted, deleted_again, missing = asyncio.run(scenario())

    assert fetched == _record("s1", id=first)
    assert [record.id for record in listed] == [second, first]
    assert listed[0].created_at is not None
    assert [record.id for record in page] == [first]
    assert deleted is True
    assert deleted_again is False
    assert missing is None


def test_record_as_dict_hides_thumbnail_bytes():
    data = _record(id=3).as_dict()
    assert "thumbnail" not in data
    assert data["has_thumbnail"] is True
    assert data["view_labels"][0] == "Front view"


def test_thumbnail_fits_bounds():
    png = ThumbnailGenerator().create_thumbnail_from_data_uri(png_uri(640, 320))
    image = Image.open(io.BytesIO(png))
    assert image.format == "PNG"
    assert image.size == (160, 80)


def test_thumbnail_rejects_bad_input():
    with pytest.raises(ValueError):
        ThumbnailGenerator().create_thumbnail_from_data_uri("data:image/png;base64,AAAA")


def _result(images):
    return GenerationResult(
        session_id="s1",
        mesh_url=MESH_URL,
        total_time=3.0,
        steps=[
            Step("Generate View Images", StepStatus.DONE, "1.00"),
            Step("Generate 3D Model", StepStatus.DONE, "2.00"),
        ],
        images=images,
    )


def test_recorder_stores_result_with_thumbnail(dal):
    images = [
        GeneratedImage("front", "Front view", png_uri(400, 400)),
        GeneratedImage("back", "Back view", png_uri(400, 400)),
        GeneratedImage("left", "Left side view", png_uri(400, 400)),
    ]

    async def scenario():
        record_id = await HistoryRecorder(dal)(_result(images))
        return await dal.get_generation_by_id(record_id)

    record = asyncio.run(scenario())
    assert record.session_id == "s1"
    assert record.step_times == {"Generate View Images": "1.00", "Generate 3D Model": "2.00"}
    assert record.view_labels == ["Front view", "Back view", "Left side view"]
    assert Image.open(io.BytesIO(record.thumbnail)).size == (160, 160)


def test_recorder_skips_unreadable_thumbnail(dal):
    images = [GeneratedImage("front", "Front view", "data:image/png;base64,AAAA")]

    async def scenario():
        record_id = await HistoryRecorder(dal)(_result(images))
        return await dal.get_generation_by_id(record_id)

    record = asyncio.run(scenario())
    assert record.thumbnail is None
    assert record.mesh_url == MESH_URL
