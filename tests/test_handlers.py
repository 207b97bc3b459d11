import asyncio
import json

from planning_poker.handlers import handle_disconnect, handle_frame, handle_ws_message
from planning_poker.state import hub, registry


def run(coro):
    return asyncio.run(coro)


def send(channel, event, data=None):
    return run(handle_ws_message(channel, event, data or {}))


def setup_room(connect):
    """Alice (creator, admin) and Bob joined to a fresh room."""
    alice, alice_ws = connect()
    bob, bob_ws = connect()
    created = send(alice, "room:create", {"clientId": "c1"})
    room_id = created.room_id
    assert send(alice, "room:join", {"roomId": room_id, "name": "Alice", "clientId": "c1"}).ok
    assert send(bob, "room:join", {"roomId": room_id.lower(), "name": "Bob", "clientId": "c2"}).ok
    return registry.get(room_id), (alice, alice_ws), (bob, bob_ws)


def test_create_ack(connect):
    channel, ws = connect()
    ack = send(channel, "room:create", {"clientId": " c1 "})
    assert ack.ok
    assert ack.url == f"/room/{ack.room_id}"
    assert registry.get(ack.room_id).created_by_client_id == "c1"
    assert ws.last("rooms:state")["total_rooms"] == 1


def test_create_without_payload(connect):
    channel, _ = connect()
    ack = send(channel, "room:create", None)
    assert ack.ok
    assert registry.get(ack.room_id).created_by_client_id is None


def test_join_ack_and_admin(connect):
    room, (alice, _), (bob, _) = setup_room(connect)
    ack = send(bob, "room:join", {"roomId": room.id, "name": "Bob", "clientId": "c2"})
    assert ack.ok
    assert ack.room_id == room.id
    assert ack.is_admin is False
    assert ack.voting_options == room.voting_options
    assert alice.room_id == room.id and alice.client_id == "c1"


def test_join_failures(connect):
    room, _, _ = setup_room(connect)
    carol, _ = connect()
    assert send(carol, "room:join", {"roomId": room.id, "name": "", "clientId": "c3"}).code == "invalid_payload"
    assert send(carol, "room:join", {"roomId": "NOPE00", "name": "Carol", "clientId": "c3"}).code == "room_not_found"
    dup = send(carol, "room:join", {"roomId": room.id, "name": "alice", "clientId": "c3"})
    assert dup.ok is False
    assert dup.error == "Name already exists in this room."
    assert len(room.participants) == 2
    assert not carol.has_session


def test_operations_need_room_context(connect):
    channel, _ = connect()
    for event in ("vote:submit", "round:start", "round:reveal", "round:reset", "room:update-settings"):
        ack = send(channel, event, {})
        assert ack.ok is False
        assert ack.code == "room_context_missing"


def test_unknown_event(connect):
    channel, _ = connect()
    assert send(channel, "room:explode").code == "unknown_event"


def test_round_scenario_and_fan_out(connect):
    room, (alice, alice_ws), (bob, bob_ws) = setup_room(connect)
    outsider, outsider_ws = connect()

    assert send(alice, "round:start").ok
    assert alice_ws.last("room:state")["status"] == "voting"

    assert send(alice, "vote:submit", {"vote": "5"}).ok
    state = bob_ws.last("room:state")
    alice_view = next(p for p in state["participants"] if p["client_id"] == "c1")
    assert alice_view["has_voted"] is True
    assert alice_view["vote"] is None

    assert send(bob, "vote:submit", {"vote": "8"}).ok
    state = alice_ws.last("room:state")
    assert state["status"] == "revealed"
    assert state["history"][0]["average"] == 6.5
    assert state["history"][0]["auto_revealed"] is True

    assert send(alice, "round:reset").ok
    state = bob_ws.last("room:state")
    assert state["status"] == "waiting"
    assert state["current_round"] == 2
    assert len(state["history"]) == 1

    # Room snapshots stay in the room; the summary goes to everyone.
    assert outsider_ws.of_type("room:state") == []
    summary = outsider_ws.last("rooms:state")["rooms"][0]
    assert summary["current_round"] == 2
    assert summary["admin_name"] == "Alice"


def test_every_mutation_broadcasts(connect):
    room, (alice, alice_ws), (bob, _) = setup_room(connect)
    start = len(alice_ws.of_type("room:state"))
    send(alice, "round:start")
    send(alice, "vote:submit", {"vote": "1"})
    send(alice, "room:update-settings", {"votingOptions": ["1", "2"]})
    statuses = [m["data"]["status"] for m in alice_ws.of_type("room:state")[start:]]
    assert statuses == ["voting", "voting", "voting"]


def test_rejected_operation_does_not_broadcast(connect):
    room, (alice, alice_ws), (bob, _) = setup_room(connect)
    send(alice, "round:start")
    count = len(alice_ws.sent)
    ack = send(bob, "round:reveal")
    assert ack.ok is False
    assert ack.code == "not_admin"
    assert room.status == "voting"
    assert len(alice_ws.sent) == count


def test_vote_errors(connect):
    room, (alice, _), _ = setup_room(connect)
    assert send(alice, "vote:submit", {"vote": "5"}).error == "Voting is not active."
    send(alice, "round:start")
    assert send(alice, "vote:submit", {"vote": "99"}).error == "Invalid vote option."
    assert send(alice, "vote:submit", {"vote": {"x": 1}}).code == "invalid_vote"


def test_update_settings(connect):
    room, (alice, _), (bob, _) = setup_room(connect)
    assert send(bob, "room:update-settings", {"votingOptions": ["S"]}).code == "not_admin"
    assert send(alice, "room:update-settings", {"votingOptions": []}).error == "Invalid voting scale."
    assert send(alice, "room:update-settings", {"votingOptions": "S,M"}).code == "invalid_scale"
    assert send(alice, "room:update-settings", {"votingOptions": ["S", "M", "L"]}).ok
    assert room.voting_options == ["S", "M", "L"]


def test_disconnect_removes_participant_and_fails_over(connect):
    room, (alice, alice_ws), (bob, bob_ws) = setup_room(connect)
    send(alice, "round:start")
    send(bob, "vote:submit", {"vote": "3"})
    run(handle_disconnect(alice))
    assert alice.id not in hub.channels
    assert [p.client_id for p in room.participants] == ["c2"]
    assert room.admin_client_id == "c2"
    assert room.status == "voting"
    assert bob_ws.last("room:state")["admin_client_id"] == "c2"


def test_reconnect_keeps_single_entry(connect):
    room, (alice, _), (bob, _) = setup_room(connect)
    bob2, _ = connect()
    assert send(bob2, "room:join", {"roomId": room.id, "name": "Bob", "clientId": "c2"}).ok
    assert bob.room_id is None
    assert bob not in hub.members(room.id)
    assert send(bob, "round:start").code == "room_context_missing"
    assert len(room.participants) == 2
    # The superseded channel closing must not evict the reconnected client.
    run(handle_disconnect(bob))
    assert len(room.participants) == 2
    assert room.find_participant("c2").channel_id == bob2.id


def test_creator_regains_admin_on_rejoin(connect):
    room, (alice, _), (bob, _) = setup_room(connect)
    run(handle_disconnect(alice))
    assert room.admin_client_id == "c2"
    alice2, _ = connect()
    ack = send(alice2, "room:join", {"roomId": room.id, "name": "Alice", "clientId": "c1"})
    assert ack.is_admin is True
    assert room.admin_client_id == "c1"


def test_switching_rooms_leaves_previous(connect):
    room, (alice, _), (bob, _) = setup_room(connect)
    other = send(bob, "room:create", {}).room_id
    assert send(bob, "room:join", {"roomId": other, "name": "Bob", "clientId": "c2"}).ok
    assert [p.client_id for p in room.participants] == ["c1"]
    assert bob.room_id == other


def test_failing_channel_does_not_stop_broadcast(connect):
    room, (alice, alice_ws), _ = setup_room(connect)
    broken, _ = connect(fail=True)
    hub.bind(broken.id, room.id, "c9")
    count = len(alice_ws.of_type("room:state"))
    assert send(alice, "round:start").ok
    assert len(alice_ws.of_type("room:state")) == count + 1


def test_handle_frame_replies(connect):
    channel, _ = connect()
    reply = run(handle_frame(channel, json.dumps({"type": "room:create", "data": {}, "ack": 7})))
    assert reply["type"] == "ack"
    assert reply["ack"] == 7
    assert reply["data"]["ok"] is True
    # Outbound keys are snake_case whatever casing the request used.
    assert set(reply["data"]) == {"ok", "room_id", "url"}

    assert run(handle_frame(channel, json.dumps({"type": "room:create"}))) is None

    error = run(handle_frame(channel, json.dumps({"type": "round:start"})))
    assert error["type"] == "error"
    assert error["data"]["code"] == "room_context_missing"

    malformed = run(handle_frame(channel, "{not json"))
    assert malformed["type"] == "error"
    assert malformed["data"]["ok"] is False


def test_reaper_sweep_pushes_summary(connect):
    from planning_poker.reaper import sweep_once

    channel, ws = connect()
    stale = registry.create()
    stale.last_active_at = 0
    assert run(sweep_once(ttl=60)) is True
    assert stale.id not in registry
    assert ws.last("rooms:state")["total_rooms"] == 0
    sent = len(ws.sent)
    assert run(sweep_once(ttl=60)) is False
    assert len(ws.sent) == sent


def test_failed_identity_switch_leaves_room_untouched(connect):
    room, (alice, _), (bob, bob_ws) = setup_room(connect)
    seen = len(bob_ws.sent)
    ack = send(alice, "room:join", {"roomId": room.id, "name": "Bob", "clientId": "c3"})
    assert ack.code == "duplicate_name"
    assert [p.client_id for p in room.participants] == ["c1", "c2"]
    assert room.admin_client_id == "c1"
    assert (alice.room_id, alice.client_id) == (room.id, "c1")
    assert len(bob_ws.sent) == seen


def test_failed_room_switch_keeps_previous_room(connect):
    room, (alice, alice_ws), (bob, _) = setup_room(connect)
    other_id = send(bob, "room:create", {}).room_id
    carol, _ = connect()
    assert send(carol, "room:join", {"roomId": other_id, "name": "Bob", "clientId": "c9"}).ok
    seen = len(alice_ws.of_type("room:state"))

    ack = send(bob, "room:join", {"roomId": other_id, "name": "bob", "clientId": "c2"})
    assert ack.code == "duplicate_name"
    assert [p.client_id for p in room.participants] == ["c1", "c2"]
    assert [p.client_id for p in registry.get(other_id).participants] == ["c9"]
    assert (bob.room_id, bob.client_id) == (room.id, "c2")
    assert len(alice_ws.of_type("room:state")) == seen


def test_identity_switch_in_same_room(connect):
    room, (alice, _), (bob, _) = setup_room(connect)
    ack = send(alice, "room:join", {"roomId": room.id, "name": "Alicia", "clientId": "c3"})
    assert ack.ok
    assert [p.client_id for p in room.participants] == ["c2", "c3"]
    assert room.admin_client_id == "c2"
    assert (alice.room_id, alice.client_id) == (room.id, "c3")


def test_concurrent_mutations_broadcast_in_apply_order(connect):
    room, (alice, alice_ws), (bob, bob_ws) = setup_room(connect)
    carol, carol_ws = connect()
    assert send(carol, "room:join", {"roomId": room.id, "name": "Carol", "clientId": "c3"}).ok
    assert send(alice, "round:start").ok
    subscribers = [(ws, len(ws.of_type("room:state"))) for ws in (alice_ws, bob_ws, carol_ws)]

    async def burst():
        return await asyncio.gather(
            handle_ws_message(alice, "vote:submit", {"vote": "1"}),
            handle_ws_message(bob, "vote:submit", {"vote": "2"}),
            handle_ws_message(alice, "round:reveal", {}),
        )

    acks = run(burst())
    assert all(ack.ok for ack in acks)
    for ws, mark in subscribers:
        states = [m["data"] for m in ws.of_type("room:state")[mark:]]
        assert [s["status"] for s in states] == ["voting", "voting", "revealed"]
        assert [sum(p["has_voted"] for p in s["participants"]) for s in states] == [1, 2, 2]
    assert room.history[-1].votes == {"c1": "1", "c2": "2"}
    assert room.history[-1].auto_revealed is False
