"""
Test suite for the chess room network layer.

Tests the protocol, connection management, message handling and the
WebSocket server with real clients.

Run from project root: python -m pytest tests/test_network -v
Or run directly: python tests/test_network/test_network.py
"""

import asyncio
import json
import sys
import unittest
from pathlib import Path

import chess

# Add project root to path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from chessroom_client.config import ClientSettings
from chessroom_client.network.client import ConnectionState, RoomClient
from chessroom_server.network import (
    Audience,
    ChessRoomServer,
    ConnectionManager,
    MessageHandler,
)
from chessroom_server.rooms import RoomStore
from chessroom_shared.enums import Color, GameStatus, MessageType, MovePolicy, Role
from chessroom_shared.protocol import (
    CreateRoomRequest,
    ErrorMessage,
    Message,
    MoveRequest,
    PlayerLeftMessage,
    parse_message,
)


AFTER_E4 = "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1"


# =============================================================================
# Mock WebSocket for unit tests
# =============================================================================

class MockWebSocket:
    """Mock WebSocket for testing without real connections."""

    def __init__(self, id: str):
        self.id = id
        self.sent_messages = []
        self.closed = False

    async def send(self, data: str) -> None:
        if self.closed:
            raise ConnectionError("Connection closed")
        self.sent_messages.append(data)

    async def close(self) -> None:
        self.closed = True

    def get_messages(self) -> list[dict]:
        return [json.loads(m) for m in self.sent_messages]

    def clear_messages(self) -> None:
        self.sent_messages.clear()


def types_of(messages) -> list[str]:
    return [m.type.value if isinstance(m, Message) else m["type"] for m in messages]


# =============================================================================
# Protocol
# =============================================================================

class TestProtocol(unittest.TestCase):
    """Tests for message encoding and decoding."""

    def test_envelope(self):
        msg = CreateRoomRequest.create("r1", "white", request_id="req-1")
        raw = json.loads(msg.to_json())
        self.assertEqual(raw, {
            "type": "createRoom",
            "data": {"roomId": "r1", "color": "white"},
            "request_id": "req-1",
        })

        parsed = parse_message(msg.to_json())
        self.assertEqual(parsed.type, MessageType.CREATE_ROOM)
        self.assertEqual(parsed.data["roomId"], "r1")
        self.assertEqual(parsed.request_id, "req-1")

    def test_move_request(self):
        msg = MoveRequest.create("r1", "a7", "a8", promotion="q", game_state="fen")
        self.assertEqual(msg.data["move"], {"from": "a7", "to": "a8", "promotion": "q"})
        self.assertEqual(msg.data["gameState"], "fen")

        plain = MoveRequest.create("r1", "e2", "e4")
        self.assertNotIn("gameState", plain.data)
        self.assertNotIn("promotion", plain.data["move"])

    def test_error_message(self):
        msg = ErrorMessage.create("boom", "PARSE_ERROR")
        self.assertEqual(msg.type, MessageType.ERROR)
        self.assertEqual(msg.data, {"message": "boom", "code": "PARSE_ERROR"})

    def test_missing_data_defaults_to_empty(self):
        msg = Message.from_dict({"type": "leaveRoom"})
        self.assertEqual(msg.data, {})

    def test_rejects_bad_envelopes(self):
        with self.assertRaises(ValueError):
            Message.from_dict({"type": "bogus"})
        with self.assertRaises(KeyError):
            Message.from_dict({"data": {}})
        with self.assertRaises(TypeError):
            Message.from_dict(["createRoom"])
        with self.assertRaises(TypeError):
            Message.from_dict({"type": "move", "data": [1, 2]})


# =============================================================================
# Connection Manager
# =============================================================================

class TestConnectionManager(unittest.TestCase):
    """Tests for ConnectionManager."""

    def setUp(self):
        self.cm = ConnectionManager()

    def test_connection_lifecycle(self):
        a = self.cm.connect(MockWebSocket("a"))
        b = self.cm.connect(MockWebSocket("b"))
        self.assertNotEqual(a.connection_id, b.connection_id)
        self.assertEqual(len(self.cm), 2)
        self.assertTrue(self.cm.is_connected(a.connection_id))

        self.assertIs(self.cm.disconnect(a.connection_id), a)
        self.assertFalse(self.cm.is_connected(a.connection_id))
        self.assertIsNone(self.cm.disconnect(a.connection_id))

    def test_fixed_connection_id(self):
        conn = self.cm.connect(MockWebSocket("a"), connection_id="A")
        self.assertEqual(conn.connection_id, "A")
        self.assertIs(self.cm.get("A"), conn)

    def test_memberships(self):
        self.cm.connect(MockWebSocket("a"), connection_id="A")
        self.assertTrue(self.cm.add_membership("A", "r1"))
        self.assertTrue(self.cm.add_membership("A", "r2"))
        self.assertFalse(self.cm.add_membership("ghost", "r1"))
        self.assertEqual(self.cm.rooms_of("A"), {"r1", "r2"})

        self.assertTrue(self.cm.remove_membership("A", "r1"))
        self.assertFalse(self.cm.remove_membership("A", "r1"))
        self.assertEqual(self.cm.rooms_of("A"), {"r2"})

        stats = self.cm.get_stats()
        self.assertEqual(stats["total_connections"], 1)
        self.assertEqual(stats["connections_in_rooms"], 1)
        self.assertEqual(stats["memberships"], 1)

    def test_send_and_broadcast(self):
        async def run():
            sockets = {cid: MockWebSocket(cid) for cid in ("A", "B", "C")}
            for cid, ws in sockets.items():
                self.cm.connect(ws, connection_id=cid)

            sent = await self.cm.send_to_connection("A", PlayerLeftMessage.create("r1"))
            self.assertTrue(sent)
            self.assertEqual(types_of(sockets["A"].get_messages()), ["playerLeft"])
            self.assertFalse(await self.cm.send_to_connection("ghost", {"type": "x"}))

            count = await self.cm.broadcast(["A", "B", "C"], {"type": "ping"}, exclude_connection_id="A")
            self.assertEqual(count, 2)
            self.assertEqual(len(sockets["A"].sent_messages), 1)
            self.assertEqual(sockets["B"].get_messages(), [{"type": "ping"}])

            # A failed send is reported, not raised
            await sockets["C"].close()
            self.assertFalse(await self.cm.send_to_connection("C", "raw text"))

        asyncio.run(run())


# =============================================================================
# Message Handler
# =============================================================================

class HandlerTestCase(unittest.TestCase):
    """Base case wiring a handler to mock connections A, B, C."""

    move_policy = MovePolicy.TURN

    def setUp(self):
        self.store = RoomStore()
        self.cm = ConnectionManager()
        self.handler = MessageHandler(self.store, self.cm, move_policy=self.move_policy)
        for cid in ("A", "B", "C"):
            self.cm.connect(MockWebSocket(cid), connection_id=cid)

    def send(self, connection_id: str, msg_type: str, request_id: str | None = None, **data):
        return asyncio.run(self.handler.handle_message(
            connection_id,
            {"type": msg_type, "data": data, "request_id": request_id},
        ))

    def seat_both(self):
        self.send("A", "createRoom", roomId="r1", color="white")
        self.send("B", "joinRoom", roomId="r1")

    def error_code(self, result) -> str:
        [reply] = result.responses
        self.assertEqual(reply.type, MessageType.ERROR)
        return reply.data["code"]


class TestMessageHandlerErrors(HandlerTestCase):
    """Malformed requests get an error reply and change nothing."""

    def handle_raw(self, raw):
        return asyncio.run(self.handler.handle_message("A", raw))

    def test_parse_errors(self):
        self.assertEqual(self.error_code(self.handle_raw("not json")), "PARSE_ERROR")
        self.assertEqual(self.error_code(self.handle_raw("[1, 2]")), "PARSE_ERROR")
        self.assertEqual(self.error_code(self.handle_raw('{"data": {}}')), "PARSE_ERROR")

    def test_unknown_types(self):
        self.assertEqual(self.error_code(self.handle_raw('{"type": "bogus"}')), "UNKNOWN_MESSAGE_TYPE")
        # Server-only events are not accepted from clients
        self.assertEqual(self.error_code(self.send("A", "moveMade", roomId="r1")), "UNKNOWN_MESSAGE_TYPE")

    def test_missing_fields(self):
        self.assertEqual(self.error_code(self.send("A", "createRoom", color="white")), "MISSING_ROOM_ID")
        self.assertEqual(self.error_code(self.send("A", "joinRoom", roomId="")), "MISSING_ROOM_ID")
        self.assertEqual(self.error_code(self.send("A", "createRoom", roomId="r1", color="red")), "INVALID_COLOR")
        self.assertEqual(self.error_code(self.send("A", "move", roomId="r1")), "MISSING_MOVE")
        self.assertEqual(len(self.store), 0)

    def test_request_id_echoed(self):
        result = self.send("A", "createRoom", request_id="req-7", roomId="r1", color="white")
        self.assertTrue(result.responses)
        for reply in result.responses:
            self.assertEqual(reply.request_id, "req-7")


class TestMessageHandlerMembership(HandlerTestCase):
    """Tests for create/join/spectate/leave routing."""

    def test_create_room(self):
        result = self.send("A", "createRoom", roomId="r1", color="white")
        self.assertEqual(result.room_id, "r1")
        self.assertEqual(types_of(result.broadcasts), ["playerJoined"])
        self.assertEqual(types_of(result.responses), ["syncGameState"])
        self.assertEqual(result.responses[0].data["players"], {"white": "A", "black": None})
        self.assertEqual(self.cm.rooms_of("A"), {"r1"})

    def test_join_room(self):
        self.send("A", "createRoom", roomId="r1", color="white")
        result = self.send("B", "joinRoom", roomId="r1")
        [joined] = result.broadcasts
        self.assertEqual(joined.data["color"], "black")
        self.assertTrue(joined.data["isReady"])
        self.assertTrue(result.responses[0].data["isReady"])

    def test_join_failures(self):
        self.assertEqual(types_of(self.send("A", "joinRoom", roomId="r1").responses), ["roomNotFound"])
        self.assertEqual(types_of(self.send("A", "joinAsSpectator", roomId="r1").responses), ["roomNotFound"])

        self.seat_both()
        result = self.send("C", "joinRoom", roomId="r1")
        self.assertEqual(types_of([o.message for o in result.outbound]), ["roomFull"])
        result = self.send("C", "createRoom", roomId="r1", color="white")
        self.assertEqual(types_of(result.responses), ["roomFull"])
        self.assertEqual(self.cm.rooms_of("C"), set())

    def test_repeat_join_sends_only_snapshot(self):
        self.send("A", "createRoom", roomId="r1", color="white")
        result = self.send("A", "createRoom", roomId="r1", color="white")
        self.assertEqual(types_of(result.broadcasts), [])
        self.assertEqual(types_of(result.responses), ["syncGameState"])

    def test_spectate(self):
        self.seat_both()
        result = self.send("C", "joinAsSpectator", roomId="r1")
        self.assertEqual([o.audience for o in result.outbound], [Audience.REQUESTER, Audience.ROOM])
        self.assertEqual(types_of(result.responses), ["syncGameState"])
        [notice] = result.broadcasts
        self.assertEqual(notice.type, MessageType.SPECTATOR_JOINED)
        self.assertEqual(notice.data["count"], 1)

    def test_promoted_spectator(self):
        self.send("A", "createRoom", roomId="r1", color="white")
        self.send("C", "joinAsSpectator", roomId="r1")
        result = self.send("C", "joinRoom", roomId="r1")
        self.assertEqual(types_of(result.broadcasts), ["spectatorLeft", "playerJoined"])
        self.assertEqual(result.broadcasts[0].data["count"], 0)

    def test_leave_room(self):
        self.seat_both()
        result = self.send("B", "leaveRoom", roomId="r1")
        self.assertEqual(types_of(result.broadcasts), ["playerLeft"])
        [ack] = result.responses
        self.assertEqual(ack.type, MessageType.LEAVE_ROOM)
        self.assertTrue(ack.data["success"])
        self.assertIsNone(self.store.get("r1").players[Color.BLACK])
        self.assertEqual(self.cm.rooms_of("B"), set())

        again = self.send("B", "leaveRoom", roomId="r1")
        self.assertFalse(again.responses[0].data["success"])

    def test_last_leave_deletes_room_silently(self):
        self.send("A", "createRoom", roomId="r1", color="white")
        result = self.send("A", "leaveRoom", roomId="r1")
        self.assertEqual(result.broadcasts, [])
        self.assertNotIn("r1", self.store)

    def test_request_sync(self):
        self.seat_both()
        result = self.send("A", "requestSync", roomId="r1")
        self.assertEqual(types_of(result.responses), ["syncGameState"])
        self.assertTrue(self.send("C", "requestSync", roomId="r1").is_empty)
        self.assertTrue(self.send("A", "requestSync", roomId="ghost").is_empty)

    def test_handle_disconnect(self):
        self.seat_both()
        self.send("C", "joinAsSpectator", roomId="r1")

        [result] = asyncio.run(self.handler.handle_disconnect("B"))
        self.assertEqual(types_of(result.broadcasts), ["playerLeft"])

        [result] = asyncio.run(self.handler.handle_disconnect("C"))
        self.assertEqual(types_of(result.broadcasts), ["spectatorLeft"])
        self.assertEqual(result.broadcasts[0].data["count"], 0)

        self.assertEqual(asyncio.run(self.handler.handle_disconnect("C")), [])


class TestMessageHandlerPlay(HandlerTestCase):
    """Tests for move and theme routing under the turn policy."""

    def test_move_relayed_to_others(self):
        self.seat_both()
        result = self.send("A", "move", roomId="r1", move={"from": "e2", "to": "e4"}, gameState="junk")
        [outbound] = result.outbound
        self.assertEqual(outbound.audience, Audience.OTHERS)
        self.assertEqual(outbound.message.type, MessageType.MOVE_MADE)
        self.assertEqual(outbound.message.data["position"], AFTER_E4)
        self.assertEqual(outbound.message.data["move"]["san"], "e4")
        self.assertEqual(self.store.get("r1").position, AFTER_E4)

    def test_illegal_move(self):
        self.seat_both()
        result = self.send("A", "move", roomId="r1", move="e2e5")
        self.assertEqual(types_of(result.responses), ["invalidMove"])
        self.assertEqual(result.broadcasts, [])
        self.assertEqual(self.store.get("r1").position, chess.STARTING_FEN)

    def test_out_of_turn(self):
        self.seat_both()
        result = self.send("B", "move", roomId="r1", move="e2e4")
        [reply] = result.responses
        self.assertEqual(reply.type, MessageType.INVALID_MOVE)
        self.assertIn("white", reply.data["reason"])
        self.assertEqual(self.store.get("r1").move_log, [])

    def test_spectator_cannot_move(self):
        self.seat_both()
        self.send("C", "joinAsSpectator", roomId="r1")
        result = self.send("C", "move", roomId="r1", move="e2e4")
        self.assertEqual(types_of(result.responses), ["invalidMove"])

    def test_unknown_room_ignored(self):
        self.assertTrue(self.send("A", "move", roomId="ghost", move="e2e4").is_empty)
        self.assertTrue(self.send("A", "themeChange", roomId="ghost", theme="dark").is_empty)
        self.assertNotIn("ghost", self.store)

    def test_theme_relay(self):
        self.seat_both()
        theme = {"board": "walnut", "pieces": "alpha"}
        result = self.send("A", "themeChange", roomId="r1", theme=theme)
        [outbound] = result.outbound
        self.assertEqual(outbound.audience, Audience.OTHERS)
        self.assertEqual(outbound.message.data["theme"], theme)


class TestSeatedPolicy(HandlerTestCase):
    move_policy = MovePolicy.SEATED

    def test_either_seat_may_move(self):
        self.seat_both()
        result = self.send("B", "move", roomId="r1", move="e2e4")
        self.assertEqual(types_of(result.broadcasts), ["moveMade"])

    def test_spectator_still_refused(self):
        self.seat_both()
        self.send("C", "joinAsSpectator", roomId="r1")
        self.assertEqual(types_of(self.send("C", "move", roomId="r1", move="e2e4").responses), ["invalidMove"])


class TestOpenPolicy(HandlerTestCase):
    move_policy = MovePolicy.OPEN

    def test_anyone_may_move(self):
        self.send("A", "createRoom", roomId="r1", color="white")
        result = self.send("C", "move", roomId="r1", move="e4")
        self.assertEqual(types_of(result.broadcasts), ["moveMade"])
        self.assertEqual(self.store.get("r1").move_log[0].mover_id, "C")


# =============================================================================
# Integration
# =============================================================================

async def drain(ws, timeout: float = 0.3) -> list[dict]:
    """Read everything that arrives within ``timeout`` of the last message."""
    msgs = []
    while True:
        try:
            msgs.append(json.loads(await asyncio.wait_for(ws.recv(), timeout)))
        except asyncio.TimeoutError:
            return msgs


async def wait_until(predicate, timeout: float = 3.0) -> bool:
    deadline = asyncio.get_running_loop().time() + timeout
    while asyncio.get_running_loop().time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(0.02)
    return predicate()


class TestIntegration(unittest.TestCase):
    """Integration tests with a real WebSocket server on an ephemeral port."""

    def run_with_server(self, scenario, **server_kwargs):
        async def run():
            server = ChessRoomServer(host="127.0.0.1", port=0, **server_kwargs)
            await server.listen()
            try:
                await scenario(server, f"ws://127.0.0.1:{server.bound_port}")
            finally:
                await server.stop()

        asyncio.run(run())

    def test_room_scenario(self):
        from websockets.asyncio.client import connect

        async def scenario(server, url):
            ws_a = await connect(url)
            ws_b = await connect(url)
            ws_c = await connect(url)
            ids = {}
            for name, ws in (("A", ws_a), ("B", ws_b), ("C", ws_c)):
                hello = json.loads(await ws.recv())
                self.assertEqual(hello["type"], "connected")
                ids[name] = hello["data"]["connectionId"]
            self.assertEqual(len(set(ids.values())), 3)

            await ws_a.send(json.dumps({"type": "createRoom", "data": {"roomId": "r1", "color": "white"}}))
            self.assertEqual([m["type"] for m in await drain(ws_a)], ["playerJoined", "syncGameState"])

            await ws_b.send(json.dumps({"type": "joinRoom", "data": {"roomId": "r1"}}))
            b_msgs = await drain(ws_b)
            a_msgs = await drain(ws_a)
            self.assertEqual([m["type"] for m in b_msgs], ["playerJoined", "syncGameState"])
            self.assertEqual(b_msgs[0]["data"]["color"], "black")
            self.assertTrue(b_msgs[0]["data"]["isReady"])
            self.assertEqual([m["type"] for m in a_msgs], ["playerJoined"])

            await ws_a.send(json.dumps({
                "type": "move",
                "data": {"roomId": "r1", "move": {"from": "e2", "to": "e4"}},
            }))
            b_msgs = await drain(ws_b)
            self.assertEqual([m["type"] for m in b_msgs], ["moveMade"])
            self.assertEqual(b_msgs[0]["data"]["position"], AFTER_E4)
            self.assertEqual(await drain(ws_a), [])

            await ws_c.send(json.dumps({"type": "joinAsSpectator", "data": {"roomId": "r1"}}))
            c_msgs = await drain(ws_c)
            self.assertEqual([m["type"] for m in c_msgs], ["syncGameState", "spectatorJoined"])
            self.assertEqual(c_msgs[0]["data"]["position"], AFTER_E4)
            for ws in (ws_a, ws_b):
                [notice] = await drain(ws)
                self.assertEqual(notice, {
                    "type": "spectatorJoined",
                    "data": {"roomId": "r1", "count": 1},
                    "request_id": None,
                })

            await ws_b.close()
            a_msgs = await drain(ws_a)
            self.assertEqual([m["type"] for m in a_msgs], ["playerLeft"])
            self.assertIn("r1", server.rooms)

            await ws_a.close()
            self.assertTrue(await wait_until(lambda: server.rooms.get("r1") is not None
                                             and server.rooms.get("r1").players[Color.WHITE] is None))
            self.assertIn("r1", server.rooms)

            await ws_c.close()
            self.assertTrue(await wait_until(lambda: "r1" not in server.rooms))
            self.assertTrue(await wait_until(lambda: len(server.connections) == 0))

        self.run_with_server(scenario)

    def test_malformed_frame_gets_error(self):
        from websockets.asyncio.client import connect

        async def scenario(server, url):
            async with connect(url) as ws:
                await ws.recv()
                await ws.send("{not json")
                [reply] = await drain(ws)
                self.assertEqual(reply["type"], "error")
                self.assertEqual(reply["data"]["code"], "PARSE_ERROR")

                # The connection stays usable
                await ws.send(json.dumps({"type": "joinRoom", "data": {"roomId": "r9"}, "request_id": "q1"}))
                [reply] = await drain(ws)
                self.assertEqual(reply["type"], "roomNotFound")
                self.assertEqual(reply["request_id"], "q1")

            stats = server.get_stats()
            self.assertEqual(stats["move_policy"], "turn")
            self.assertEqual(stats["rooms"]["total_rooms"], 0)

        self.run_with_server(scenario)

    def test_client_mirror(self):
        client_settings = ClientSettings(reconnect_attempts=3, reconnect_delay=0.05, connect_timeout=2.0)

        async def scenario(server, url):
            alice = RoomClient(url, client_settings)
            bob = RoomClient(url, client_settings)
            carol = RoomClient(url, client_settings)
            for client in (alice, bob, carol):
                self.assertTrue(await client.connect())
                self.assertEqual(client.state, ConnectionState.CONNECTED)

            try:
                await alice.create_room("r1", Color.WHITE)
                self.assertIsNotNone(await alice.wait_for(MessageType.SYNC_GAME_STATE))
                await bob.join_room("r1")
                self.assertIsNotNone(await bob.wait_for(MessageType.SYNC_GAME_STATE))
                self.assertEqual(bob.view.color, Color.BLACK)
                self.assertEqual(bob.view.role, Role.PLAYER)
                self.assertTrue(bob.view.is_ready)

                # Moving out of turn is refused locally
                self.assertFalse(await bob.make_move("e7", "e5"))

                self.assertTrue(await alice.make_move("e2", "e4"))
                made = await bob.wait_for(MessageType.MOVE_MADE)
                self.assertEqual(made["position"], AFTER_E4)
                self.assertEqual(bob.view.position, alice.view.position)
                self.assertTrue(bob.view.can_move)

                await carol.spectate("r1")
                self.assertIsNotNone(await carol.wait_for(MessageType.SYNC_GAME_STATE))
                self.assertEqual(carol.view.role, Role.SPECTATOR)
                self.assertEqual(carol.view.position, AFTER_E4)
                self.assertIsNotNone(await alice.wait_for(MessageType.SPECTATOR_JOINED))
                self.assertEqual(alice.view.spectator_count, 1)

                await alice.change_theme("dark")
                await bob.wait_for(MessageType.THEME_CHANGED)
                self.assertEqual(bob.view.theme, "dark")

                # Drop alice from the server side; she reconnects and takes white again
                old_id = alice.connection_id
                alice.clear_pending()
                await server.connections.get(old_id).websocket.close()

                self.assertIsNotNone(await bob.wait_for(MessageType.PLAYER_LEFT))
                self.assertIsNotNone(await alice.wait_for(MessageType.SYNC_GAME_STATE, timeout=5.0))
                self.assertNotEqual(alice.connection_id, old_id)
                self.assertEqual(alice.view.color, Color.WHITE)
                self.assertEqual(alice.view.position, AFTER_E4)
                self.assertEqual(server.rooms.get("r1").players[Color.WHITE], alice.connection_id)

                await bob.leave_room()
                self.assertIsNotNone(await bob.wait_for(MessageType.LEAVE_ROOM))
                self.assertIsNone(bob.view.room_id)
            finally:
                for client in (alice, bob, carol):
                    await client.disconnect()

            self.assertTrue(await wait_until(lambda: len(server.rooms) == 0))

        self.run_with_server(scenario)

    async def seat_two_clients(self, url):
        """Connect alice (white) and bob (black) to room r1."""
        client_settings = ClientSettings(reconnect_attempts=0, reconnect_delay=0.05, connect_timeout=2.0)
        alice = RoomClient(url, client_settings)
        bob = RoomClient(url, client_settings)
        self.assertTrue(await alice.connect())
        self.assertTrue(await bob.connect())
        await alice.create_room("r1", Color.WHITE)
        self.assertIsNotNone(await alice.wait_for(MessageType.SYNC_GAME_STATE))
        await bob.join_room("r1")
        self.assertIsNotNone(await bob.wait_for(MessageType.SYNC_GAME_STATE))
        return alice, bob

    def test_client_sees_own_mate(self):
        async def scenario(server, url):
            alice, bob = await self.seat_two_clients(url)
            try:
                for mover, watcher, (from_sq, to_sq) in (
                    (alice, bob, ("f2", "f3")),
                    (bob, alice, ("e7", "e5")),
                    (alice, bob, ("g2", "g4")),
                    (bob, alice, ("d8", "h4")),
                ):
                    self.assertTrue(await mover.make_move(from_sq, to_sq))
                    self.assertIsNotNone(await watcher.wait_for(MessageType.MOVE_MADE))

                # The mover is never sent its own move back
                self.assertEqual(bob.view.status, GameStatus.CHECKMATE)
                self.assertEqual(bob.view.result, "0-1")
                self.assertEqual(alice.view.status, GameStatus.CHECKMATE)
                self.assertEqual(alice.view.result, "0-1")
                self.assertEqual(server.rooms.get("r1").status, GameStatus.CHECKMATE)
                self.assertFalse(alice.view.can_move)
                self.assertFalse(await alice.make_move("a2", "a3"))
            finally:
                await alice.disconnect()
                await bob.disconnect()

        self.run_with_server(scenario)

    def test_client_rolls_back_rejected_move(self):
        async def scenario(server, url):
            alice, bob = await self.seat_two_clients(url)
            try:
                # Bob's board is a move ahead of the server's
                bob.view.board = chess.Board(AFTER_E4)
                bob.clear_pending()

                self.assertTrue(await bob.make_move("e7", "e5"))
                self.assertNotEqual(bob.view.position, chess.STARTING_FEN)

                rejected = await bob.wait_for(MessageType.INVALID_MOVE)
                self.assertIn("white", rejected["reason"])
                self.assertIsNotNone(await bob.wait_for(MessageType.SYNC_GAME_STATE))

                self.assertEqual(bob.view.position, chess.STARTING_FEN)
                self.assertEqual(bob.view.status, GameStatus.ONGOING)
                self.assertFalse(bob.view.can_move)
                self.assertEqual(server.rooms.get("r1").move_log, [])
                self.assertIsNone(await alice.wait_for(MessageType.MOVE_MADE, timeout=0.3))
            finally:
                await alice.disconnect()
                await bob.disconnect()

        self.run_with_server(scenario)



if __name__ == "__main__":
    unittest.main(verbosity=2)
