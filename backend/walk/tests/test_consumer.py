import asyncio

from channels.testing import WebsocketCommunicator
from django.contrib.auth.models import AnonymousUser

from walk.consumers import WalkConsumer, group_for


class Caller:
    pk = 1
    is_anonymous = False


def test_group_name():
    assert group_for("abc") == "walk_abc"


def test_anonymous_socket_is_closed():
    async def scenario():
        communicator = WebsocketCommunicator(WalkConsumer.as_asgi(), "/ws/walk/")
        communicator.scope["user"] = AnonymousUser()
        connected, _ = await communicator.connect()
        await communicator.disconnect()
        return connected

    assert asyncio.run(scenario()) is False


def test_ping_and_unknown_messages():
    async def scenario():
        communicator = WebsocketCommunicator(WalkConsumer.as_asgi(), "/ws/walk/")
        communicator.scope["user"] = Caller()
        connected, _ = await communicator.connect()
        assert connected
        assert await communicator.receive_json_from() == {"type": "connected"}

        await communicator.send_json_to({"type": "ping"})
        assert await communicator.receive_json_from() == {"type": "pong"}

        await communicator.send_json_to({"type": "dance"})
        error = await communicator.receive_json_from()
        assert error["type"] == "error"
        assert error["code"] == "invalid_message_type"

        # leaving a session never joined is a no-op
        await communicator.send_json_to({"type": "leave", "session_id": "x"})
        assert await communicator.receive_nothing()

        await communicator.disconnect()

    asyncio.run(scenario())
