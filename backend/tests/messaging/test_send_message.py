"""Pruebas del envío de mensajes."""

from __future__ import annotations

from datetime import timedelta

import pytest

from marketplace.messaging import service


@pytest.fixture(name="conversation")
def fixture_conversation(fake_repo):
    return fake_repo.add_conversation("c1", listing_id="42", buyer_id="1", seller_id="2")


@pytest.mark.parametrize("text", ["", "   ", "\n\t ", None])
async def test_blank_text_is_a_noop(fake_repo, conversation, text) -> None:
    result = await service.send_message(fake_repo, "c1", "1", text)

    assert result is None
    assert fake_repo.calls == []


async def test_missing_conversation_is_a_noop(fake_repo) -> None:
    assert await service.send_message(fake_repo, None, "1", "hello") is None
    assert fake_repo.calls == []


async def test_send_appends_and_touches_conversation(fake_repo, conversation, t0) -> None:
    before = conversation.updated_at
    clock_value = t0 + timedelta(minutes=10)

    thread = await service.send_message(
        fake_repo, "c1", "1", "  hello  ", clock=lambda: clock_value
    )

    assert thread is not None
    last = thread.messages[-1]
    assert (last.content, last.sender_id, last.is_read) == ("hello", "1", False)

    stored = await fake_repo.get_messages_by_conversation_id("c1")
    assert stored[-1].content == "hello"
    assert fake_repo.conversations["c1"].updated_at > before
    assert thread.conversation.updated_at == clock_value

    ops = [op for op, _ in fake_repo.calls]
    assert ops.index("insert_message") < ops.index("get_messages_by_conversation_id")
    assert ops.index("get_messages_by_conversation_id") < ops.index(
        "update_conversation_timestamp"
    )


async def test_timestamp_strictly_advances_with_lagging_clock(fake_repo, conversation, t0) -> None:
    await service.send_message(fake_repo, "c1", "1", "hello", clock=lambda: t0 - timedelta(hours=1))

    assert fake_repo.conversations["c1"].updated_at > t0


async def test_insert_failure_propagates(fake_repo, conversation) -> None:
    fake_repo.failing.add("insert_message")

    with pytest.raises(service.StoreError):
        await service.send_message(fake_repo, "c1", "1", "hello")
    assert not fake_repo.called("update_conversation_timestamp")


async def test_touch_failure_still_returns_thread(fake_repo, conversation, t0) -> None:
    fake_repo.failing.add("update_conversation_timestamp")

    thread = await service.send_message(fake_repo, "c1", "1", "hello")

    assert thread is not None
    assert thread.messages[-1].content == "hello"
    assert thread.conversation.updated_at == t0


async def test_outsider_cannot_send(fake_repo, conversation) -> None:
    with pytest.raises(service.NotParticipantError):
        await service.send_message(fake_repo, "c1", "99", "hello")
    assert not fake_repo.called("insert_message")


async def test_reload_failure_still_touches_conversation(fake_repo, conversation, t0) -> None:
    fake_repo.failing.add("get_messages_by_conversation_id")

    thread = await service.send_message(fake_repo, "c1", "1", "hello")

    assert thread is not None
    assert [m.content for m in thread.messages] == ["hello"]
    assert len(fake_repo.called("insert_message")) == 1
    assert len(fake_repo.called("update_conversation_timestamp")) == 1
    assert fake_repo.conversations["c1"].updated_at > t0
