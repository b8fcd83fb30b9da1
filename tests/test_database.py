import asyncio

import pytest

from boutique_trainer.components.database import Database
from boutique_trainer.components.knowledge import resolve_session_config
from boutique_trainer.components.models import ChatMessage
from boutique_trainer.llm_judge import parse_llm_response

from conftest import EVALUATION_JSON


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'trainer.db'}"


@pytest.fixture
def config():
    return resolve_session_config("GIFT", "CLOSING", "INTERMEDIATE", "Bottega Veneta")


@pytest.fixture
def messages():
    return [
        ChatMessage(role="customer", text="我想送朋友一个礼物。"),
        ChatMessage(role="user", text="请问朋友平时的穿衣风格是？"),
        ChatMessage(role="customer", text="比较低调。"),
    ]


def test_save_and_read_back_round_trip(database_url, config, messages):
    evaluation = parse_llm_response(EVALUATION_JSON)

    async def scenario():
        database = Database()
        await database.initialize(database_url)
        try:
            record_id = await database.save_session("u1", config, messages, evaluation, chapter_id="ch-1")
            return await database.get_record(record_id)
        finally:
            await database.close()

    record = asyncio.run(scenario())

    assert record.user_id == "u1"
    assert record.chapter_id == "ch-1"
    assert record.brand == "Bottega Veneta"
    assert (record.persona, record.scenario, record.difficulty) == ("GIFT", "CLOSING", "INTERMEDIATE")
    assert [(m.role, m.text, m.timestamp) for m in record.messages] == [
        (m.role, m.text, m.timestamp) for m in messages
    ]
    assert record.completed_at is not None
    restored = record.evaluation()
    assert restored.dimensions == evaluation.dimensions
    assert restored.feedback == evaluation.feedback
    assert restored.overall_score == evaluation.overall_score


def test_fallback_feedback_round_trip(database_url, config, messages):
    raw = "  评语不是 JSON，\n原样保存。  "
    evaluation = parse_llm_response(raw)

    async def scenario():
        database = Database()
        await database.initialize(database_url)
        try:
            record_id = await database.save_session("u1", config, messages, evaluation)
            return await database.get_record(record_id)
        finally:
            await database.close()

    record = asyncio.run(scenario())
    assert record.feedback == raw
    assert record.evaluation().dimensions == evaluation.dimensions


def test_list_sessions_newest_first_with_limit(database_url, config, messages):
    async def scenario():
        database = Database()
        await database.initialize(database_url)
        try:
            for score in (60, 70, 80):
                evaluation = parse_llm_response(f'{{"overallScore": {score}, "dimensions": {{}}}}')
                await database.save_session("u1", config, messages, evaluation)
            await database.save_session("u2", config, messages, parse_llm_response(EVALUATION_JSON))
            return await database.list_sessions("u1"), await database.list_sessions("u1", limit=2)
        finally:
            await database.close()

    all_records, limited = asyncio.run(scenario())
    assert [r.overall_score for r in all_records] == [80, 70, 60]
    assert [r.overall_score for r in limited] == [80, 70]
    assert all(r.user_id == "u1" for r in all_records)


def test_mark_chapter_completed_upserts(database_url):
    async def scenario():
        database = Database()
        await database.initialize(database_url)
        try:
            before = await database.get_chapter_progress("u1", "ch-1")
            await database.mark_chapter_completed("u1", "ch-1")
            await database.mark_chapter_completed("u1", "ch-1")
            return before, await database.get_chapter_progress("u1", "ch-1")
        finally:
            await database.close()

    before, after = asyncio.run(scenario())
    assert before is None
    assert after is True


def test_operations_require_initialize(config, messages):
    database = Database()
    with pytest.raises(RuntimeError):
        asyncio.run(database.list_sessions("u1"))
