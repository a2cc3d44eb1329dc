"""Tests for the Conversation orchestrator."""

import pytest

from chatline.client.client import DirectLineClientError
from chatline.client.models import Activity, ActivitySet, ConversationGrant, ReconnectGrant
from chatline.config.models.session import SessionConfig, SessionMode
from chatline.conversation.errors import (
    ConversationClosedError,
    CreationFailedError,
    ReconnectFailedError,
    SendFailedError,
)
from chatline.conversation.events import ConversationEvent
from chatline.conversation.models import LifecycleState
from chatline.conversation.session import END_OF_CONVERSATION, Conversation
from tests.factories import ActivityFactory, SessionStateFactory, settle

STREAM_URL = "wss://directline.test/stream/1"


def build(client, connector=None, **config) -> Conversation:
    """Create a conversation around a prepared session state."""
    mode = config.setdefault("mode", SessionMode.PULL)
    state = SessionStateFactory.create(mode=mode)
    return Conversation(
        state=state,
        client=client,
        config=SessionConfig(**config),
        connect=connector,
    )


class Collector:
    """Subscribes to every notification of a conversation."""

    def __init__(self, conversation: Conversation) -> None:
        self.batches: list[list[Activity]] = []
        self.errors: list = []
        self.closed: list[int] = []
        conversation.on_activities(self.batches.append)
        conversation.on_error(self.errors.append)
        conversation.on_closed(self.closed.append)


class TestStart:
    """Tests for starting a conversation."""

    @pytest.mark.asyncio
    async def test_start_push_opens_channel(self, client, connector) -> None:
        client.create_conversation.return_value = ConversationGrant(
            conversation_id="conv-1",
            token="token-1",
            expires_in=1800,
            stream_url=STREAM_URL,
        )

        conversation = await Conversation.start(
            "user-1",
            "s3cr3t",
            config=SessionConfig(mode=SessionMode.PUSH),
            client=client,
            connect=connector,
        )
        await settle()

        client.create_conversation.assert_awaited_once_with("s3cr3t")
        assert conversation.conversation_id == "conv-1"
        assert conversation.token == "token-1"
        assert conversation.user_id == "user-1"
        assert conversation.get_user_id() == "user-1"
        assert conversation.watermark is None
        assert conversation.lifecycle == LifecycleState.ACTIVE
        assert conversation.is_refreshing
        assert connector.last.url == STREAM_URL
        assert conversation.channel is not None and conversation.channel.active

        await conversation.close()
        client.close.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_start_pull_does_not_poll_yet(self, client, connector) -> None:
        client.create_conversation.return_value = ConversationGrant(
            conversation_id="conv-1", token="token-1", expires_in=1800
        )

        conversation = await Conversation.start(
            "user-1",
            "s3cr3t",
            config=SessionConfig(mode=SessionMode.PULL),
            client=client,
            connect=connector,
        )

        assert conversation.mode == SessionMode.PULL
        assert not conversation.is_polling
        assert conversation.channel is None
        assert connector.sockets == []
        client.fetch_activities.assert_not_awaited()
        conversation.cleanup()

    @pytest.mark.asyncio
    async def test_start_failure(self, client) -> None:
        failure = DirectLineClientError("forbidden", status_code=403)
        client.create_conversation.side_effect = failure

        with pytest.raises(CreationFailedError) as exc_info:
            await Conversation.start("user-1", "bad", client=client)

        assert exc_info.value.cause is failure
        client.close.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_push_start_requires_stream_url(self, client, connector) -> None:
        client.create_conversation.return_value = ConversationGrant(
            conversation_id="conv-1", token="token-1", expires_in=1800
        )

        with pytest.raises(CreationFailedError):
            await Conversation.start(
                "user-1",
                "s3cr3t",
                config=SessionConfig(mode=SessionMode.PUSH),
                client=client,
                connect=connector,
            )

        assert connector.sockets == []

    @pytest.mark.asyncio
    async def test_session_settings_apply_without_config(
        self, client, tmp_path, monkeypatch
    ) -> None:
        """The [session] section is used when no config is passed."""
        config_dir = tmp_path / "config"
        config_dir.mkdir()
        (config_dir / "default.toml").write_text(
            "[session]\nmode = 'pull'\npoll_interval = 2.5\nauto_reconnect = false"
        )
        monkeypatch.setenv("CHATLINE_CONFIG_DIR", str(config_dir))
        monkeypatch.setenv("CHATLINE_ENV", "test")
        client.create_conversation.return_value = ConversationGrant(
            conversation_id="conv-1", token="token-1", expires_in=1800
        )

        conversation = await Conversation.start("user-1", "s3cr3t", client=client)

        assert conversation.mode == SessionMode.PULL
        assert conversation.config.poll_interval == 2.5
        assert conversation.config.auto_reconnect is False
        conversation.cleanup()


class TestSend:
    """Tests for outbound activities."""

    @pytest.mark.asyncio
    async def test_send_message_shape(self, client) -> None:
        conversation = build(client)

        ack = await conversation.send_message("Hello!")

        assert ack == {"id": "conv-1|0000001"}
        conversation_id, token, payload = client.send_activity.await_args.args
        assert (conversation_id, token) == ("conv-1", "token-1")
        assert payload.to_wire() == {"type": "message", "from": {"id": "user-1"}, "text": "Hello!"}
        conversation.cleanup()

    @pytest.mark.asyncio
    async def test_first_send_starts_polling(self, client) -> None:
        conversation = build(client)

        await conversation.send({"type": "message", "from": {"id": "user-1"}, "text": "hi"})

        assert conversation.is_polling
        client.fetch_activities.assert_awaited()
        conversation.cleanup()
        assert not conversation.is_polling

    @pytest.mark.asyncio
    async def test_send_without_auto_start(self, client) -> None:
        conversation = build(client)

        await conversation.send({"type": "typing"}, auto_start_pull=False)

        assert not conversation.is_polling
        conversation.cleanup()

    @pytest.mark.asyncio
    async def test_send_failure(self, client) -> None:
        conversation = build(client)
        client.send_activity.side_effect = DirectLineClientError("boom", status_code=500)

        with pytest.raises(SendFailedError):
            await conversation.send_message("hi")

        assert not conversation.is_polling
        conversation.cleanup()

    @pytest.mark.asyncio
    async def test_send_after_cleanup(self, client) -> None:
        conversation = build(client)
        conversation.cleanup()

        with pytest.raises(ConversationClosedError):
            await conversation.send_message("hi")
        client.send_activity.assert_not_awaited()


class TestDelivery:
    """Tests for inbound activities in both modes."""

    @pytest.mark.asyncio
    async def test_pull_advance_triggers_direct_poll(self, client) -> None:
        batches = [
            ActivitySet(activities=[ActivityFactory.create("A")], watermark="1"),
            ActivitySet(activities=[ActivityFactory.create("B")], watermark="2"),
        ]

        async def fetch(*args):
            return batches.pop(0) if batches else ActivitySet(activities=[], watermark="2")

        client.fetch_activities.side_effect = fetch
        conversation = build(client)
        collector = Collector(conversation)

        await conversation.start_polling()
        await settle()

        assert [[a.text for a in batch] for batch in collector.batches] == [["A"], ["B"]]
        assert conversation.watermark == 2
        assert client.fetch_activities.await_args_list[1].args == ("conv-1", "token-1", 1)
        conversation.cleanup()

    @pytest.mark.asyncio
    async def test_push_frames_reach_listeners(self, client, connector) -> None:
        conversation = build(client, connector, mode=SessionMode.PUSH)
        collector = Collector(conversation)
        await settle()

        connector.last.push(
            '{"activities": [{"type": "message", "from": {"id": "bot"}, "text": "A"}],'
            ' "watermark": "5"}'
        )
        connector.last.push(
            '{"activities": [{"type": "message", "from": {"id": "bot"}, "text": "C"}],'
            ' "watermark": "3"}'
        )
        await settle()

        assert [[a.text for a in batch] for batch in collector.batches] == [["A"]]
        assert conversation.watermark == 5
        conversation.cleanup()

    @pytest.mark.asyncio
    async def test_foreign_activities(self, client) -> None:
        client.fetch_activities.return_value = ActivitySet(
            activities=[
                ActivityFactory.create("mine", sender="user-1"),
                ActivityFactory.create("theirs", sender="bot"),
            ],
            watermark="1",
        )
        conversation = build(client)

        await conversation.start_polling()

        assert [a.text for a in conversation.get_activities()] == ["mine", "theirs"]
        assert [a.text for a in conversation.get_foreign_activities()] == ["theirs"]
        conversation.cleanup()


class TestEnd:
    """Tests for ending a conversation."""

    @pytest.mark.asyncio
    async def test_end_records_marker_and_cleans_up(self, client) -> None:
        conversation = build(client)

        await conversation.end()

        payload = client.send_activity.await_args.args[2]
        assert payload.type == END_OF_CONVERSATION
        assert payload.sender_id == "user-1"
        assert [a.type for a in conversation.activities] == [END_OF_CONVERSATION]
        assert conversation.lifecycle == LifecycleState.CLOSED
        client.fetch_activities.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_end_without_cleanup_records_marker_once(self, client) -> None:
        conversation = build(client)

        await conversation.end(cleanup=False)
        await conversation.end(cleanup=False)

        assert [a.type for a in conversation.activities] == [END_OF_CONVERSATION]
        assert conversation.lifecycle == LifecycleState.ACTIVE
        assert client.send_activity.await_count == 2
        conversation.cleanup()

    @pytest.mark.asyncio
    async def test_second_end_is_noop(self, client) -> None:
        """Ending a torn down conversation sends and records nothing."""
        conversation = build(client)

        await conversation.end()
        ack = await conversation.end()

        assert ack == {}
        assert client.send_activity.await_count == 1
        assert [a.type for a in conversation.activities] == [END_OF_CONVERSATION]
        assert conversation.lifecycle == LifecycleState.CLOSED

    @pytest.mark.asyncio
    async def test_end_after_cleanup_is_noop(self, client) -> None:
        conversation = build(client)
        conversation.cleanup()

        assert await conversation.end() == {}
        client.send_activity.assert_not_awaited()
        assert conversation.activities == []


class TestCleanup:
    """Tests for teardown."""

    @pytest.mark.asyncio
    async def test_cleanup_from_listener_stops_delivery(self, client) -> None:
        """Listeners after one that cleaned up receive nothing."""
        client.fetch_activities.return_value = ActivitySet(
            activities=[ActivityFactory.create("A")], watermark="1"
        )
        conversation = build(client)
        received: list = []
        conversation.on_activities(lambda batch: conversation.cleanup())
        conversation.on_activities(received.append)

        await conversation.start_polling()
        await settle()

        assert conversation.lifecycle == LifecycleState.CLOSED
        assert received == []
        assert not conversation.is_polling

    @pytest.mark.asyncio
    async def test_cleanup_is_idempotent(self, client, connector) -> None:
        conversation = build(client, connector, mode=SessionMode.PUSH)
        await settle()
        socket = connector.last

        conversation.cleanup()
        conversation.cleanup()
        await settle()

        assert conversation.lifecycle == LifecycleState.CLOSED
        assert conversation.channel is None
        assert not conversation.is_refreshing
        assert socket.exited

    @pytest.mark.asyncio
    async def test_cleanup_releases_listeners_and_suppresses_close(
        self, client, connector
    ) -> None:
        conversation = build(client, connector, mode=SessionMode.PUSH)
        collector = Collector(conversation)
        await settle()
        socket = connector.last

        conversation.cleanup()
        socket.close_connection(1000)
        await settle()

        assert collector.closed == []
        assert collector.errors == []
        client.reconnect_conversation.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_close_closes_owned_client(self, client) -> None:
        state = SessionStateFactory.create()
        conversation = Conversation(state=state, client=client, owns_client=True)

        async with conversation:
            pass
        await conversation.close()

        client.close.assert_awaited_once()
        assert conversation.lifecycle == LifecycleState.CLOSED

    @pytest.mark.asyncio
    async def test_token_refresh_controls(self, client) -> None:
        conversation = build(client)

        conversation.stop_token_refresh()
        assert not conversation.is_refreshing

        delay = conversation.start_token_refresh()
        assert 1700 < delay <= 1740
        assert conversation.is_refreshing

        conversation.cleanup()
        with pytest.raises(ConversationClosedError):
            conversation.start_token_refresh()


class TestReconnect:
    """Tests for push channel recovery."""

    @pytest.mark.asyncio
    async def test_unsolicited_close_reconnects(self, client, connector) -> None:
        client.reconnect_conversation.return_value = ReconnectGrant(
            conversation_id="conv-1",
            token="token-2",
            stream_url="wss://directline.test/stream/2",
        )
        conversation = build(client, connector, mode=SessionMode.PUSH)
        collector = Collector(conversation)
        await settle()
        first = connector.last
        first.push('{"activities": [], "watermark": "4"}')
        await settle()
        first.close_connection(1006)
        await settle()

        client.reconnect_conversation.assert_awaited_once_with("conv-1", "token-1", 4)
        assert len(connector.sockets) == 2
        assert connector.last.url == "wss://directline.test/stream/2"
        assert conversation.token == "token-2"
        assert conversation.channel is not None and conversation.channel.active
        assert collector.closed == [1006]
        assert collector.errors == []
        conversation.cleanup()

    @pytest.mark.asyncio
    async def test_reconnect_failure(self, client, connector) -> None:
        failure = DirectLineClientError("gone", status_code=404)
        client.reconnect_conversation.side_effect = failure
        conversation = build(client, connector, mode=SessionMode.PUSH)
        collector = Collector(conversation)
        await settle()

        connector.last.close_connection(1001)
        await settle()

        assert len(collector.errors) == 1
        assert isinstance(collector.errors[0], ReconnectFailedError)
        assert collector.errors[0].cause is failure
        assert conversation.channel is None
        assert collector.closed == [1001]
        assert conversation.lifecycle == LifecycleState.ACTIVE
        conversation.cleanup()

    @pytest.mark.asyncio
    async def test_no_auto_reconnect(self, client, connector) -> None:
        conversation = build(client, connector, mode=SessionMode.PUSH, auto_reconnect=False)
        collector = Collector(conversation)
        await settle()

        connector.last.close_connection(1000)
        await settle()

        client.reconnect_conversation.assert_not_awaited()
        assert collector.closed == [1000]
        assert len(connector.sockets) == 1
        conversation.cleanup()

    @pytest.mark.asyncio
    async def test_manual_reconnect_keeps_expiry(self, client, connector) -> None:
        client.reconnect_conversation.return_value = ReconnectGrant(
            conversation_id="conv-1",
            token="token-2",
            stream_url="wss://directline.test/stream/2",
        )
        conversation = build(client, connector, mode=SessionMode.PUSH)
        await settle()
        first = connector.last
        expires_at = conversation._state.credential.expires_at

        assert await conversation.reconnect() is True
        await settle()

        assert first.exited
        assert conversation._state.credential.expires_at == expires_at
        assert conversation.token == "token-2"
        conversation.cleanup()

    @pytest.mark.asyncio
    async def test_reconnect_ignored_in_pull_mode(self, client) -> None:
        conversation = build(client)

        assert await conversation.reconnect() is False

        client.reconnect_conversation.assert_not_awaited()
        conversation.cleanup()

    @pytest.mark.asyncio
    async def test_listener_subscription_release(self, client, connector) -> None:
        conversation = build(client, connector, mode=SessionMode.PUSH, auto_reconnect=False)
        closed: list[int] = []
        subscription = conversation.subscribe(ConversationEvent.CLOSED, closed.append)
        await settle()

        subscription.release()
        connector.last.close_connection(1000)
        await settle()

        assert closed == []
        conversation.cleanup()
