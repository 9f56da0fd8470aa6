"""
tests/ — Basic test coverage for tally-relay modules.
Run with: pytest tests/ -v
"""

import pytest

from fakes import BlockingTransport, FakeTransport, ScriptedSession, named_replies, wait_until


# ─── Protocol ─────────────────────────────────────────────────────────────────

from tally_relay.core import protocol


def test_name_query_and_framing():
    assert protocol.name_query(3) == "XMLTEXT vmix/inputs/input[3]/@title"
    assert protocol.encode_line("SUBSCRIBE TALLY") == b"SUBSCRIBE TALLY\r\n"
    assert protocol.decode_line(b"XMLTEXT OK Cam 1 \r\n") == "XMLTEXT OK Cam 1 "


def test_match_name_response():
    assert protocol.match_name_response("XMLTEXT OK  Camera 2 ") == "Camera 2"
    assert protocol.match_name_response("XMLTEXT OK ") == ""
    assert protocol.match_name_response("XMLTEXT OK") == ""
    assert protocol.match_name_response("XMLTEXT ER") is None
    assert protocol.match_name_response("TALLY OK 0100") is None


# ─── Tally Decoder ────────────────────────────────────────────────────────────

from tally_relay.core import DecodeError, DecoderMode, InputDirectory, TallyDecoder, TallyEvent, decode

FOUR_CAMS = InputDirectory.from_names({1: "Cam A", 2: "Cam B", 3: "Cam C", 4: "Cam D"}, 4)


def test_decode_maps_slot_through_directory():
    event = decode("TALLY OK 0010", FOUR_CAMS)
    assert event == TallyEvent(slot=3, value="Cam C")
    assert event.to_message() == {"tally": "Cam C"}


def test_decode_empty_directory_falls_back_to_slot():
    assert decode("TALLY OK 0010", InputDirectory.empty()).to_message() == {"tally": 3}
    assert decode("TALLY OK 0010").to_message() == {"tally": 3}


def test_decode_no_live_input_yields_nothing():
    assert decode("TALLY OK 0000", FOUR_CAMS) is None
    assert decode("TALLY OK 2000", FOUR_CAMS) is None


def test_decode_first_program_input_wins():
    assert decode("TALLY OK 0101", FOUR_CAMS).slot == 2
    assert decode("TALLY OK 2100", FOUR_CAMS).value == "Cam B"


def test_decode_out_of_range_slot_uses_number():
    assert decode("TALLY OK 000001", FOUR_CAMS).value == 6


def test_decode_blank_title_uses_number():
    directory = InputDirectory.from_names({1: "", 2: "Cam B"}, 2)
    assert decode("TALLY OK 10", directory).value == 1


def test_decode_ignores_other_lines():
    assert decode("XMLTEXT OK Cam A", FOUR_CAMS) is None
    assert decode("TALLYHO 0100", FOUR_CAMS) is None


@pytest.mark.parametrize("line", ["TALLY OK", "TALLY OK 01x0", "TALLY OK 0 1"])
def test_decode_malformed_bitmask_raises(line):
    with pytest.raises(DecodeError):
        decode(line, FOUR_CAMS)


def test_decoder_mode_gates_events():
    decoder = TallyDecoder()
    assert decoder.mode is DecoderMode.AWAITING_HANDSHAKE
    assert decoder.feed("TALLY OK 0100") is None

    decoder.enter_steady_state(FOUR_CAMS)
    assert decoder.feed("TALLY OK 0100").value == "Cam B"
    assert decoder.feed("TALLY OK 01?0") is None  # dropped, not raised

    decoder.await_handshake()
    assert decoder.directory.is_empty()
    assert decoder.feed("TALLY OK 0100") is None


# ─── Input Directory ──────────────────────────────────────────────────────────

from tally_relay.core import HandshakeError, resolve_names


def test_directory_must_be_complete():
    with pytest.raises(ValueError):
        InputDirectory.from_names({1: "Cam A", 3: "Cam C"}, 3)
    with pytest.raises(ValueError):
        InputDirectory.from_names({}, 2)
    assert InputDirectory.empty().lookup(1) is None
    assert len(FOUR_CAMS) == 4
    assert FOUR_CAMS.as_dict()[4] == "Cam D"


@pytest.mark.asyncio
@pytest.mark.parametrize("count", [1, 3, 8])
async def test_handshake_resolves_exactly_count_names(count):
    names = {slot: f"Camera {slot}" for slot in range(1, count + 2)}
    session = ScriptedSession(named_replies(names))
    resolved = await resolve_names(session, count)
    assert resolved == {slot: f"Camera {slot}" for slot in range(1, count + 1)}
    assert len(session.sent) == count


@pytest.mark.asyncio
async def test_handshake_is_strictly_sequential():
    session = ScriptedSession(named_replies({1: "A", 2: "B", 3: "C"}))
    await resolve_names(session, 3)
    assert session.sent == [protocol.name_query(i) for i in (1, 2, 3)]
    # Every read happened with exactly one outstanding query.
    assert session.sent_at_read == [1, 2, 3]


@pytest.mark.asyncio
async def test_handshake_skips_unrelated_lines_and_keeps_blank_names():
    session = ScriptedSession({
        1: ["TALLY OK 0100", "XMLTEXT OK Cam A"],
        2: ["XMLTEXT OK "],
    })
    assert await resolve_names(session, 2) == {1: "Cam A", 2: ""}


@pytest.mark.asyncio
async def test_handshake_rejected_query_raises():
    session = ScriptedSession({1: ["XMLTEXT OK Cam A"], 2: ["XMLTEXT ER"]})
    with pytest.raises(HandshakeError, match="input 2"):
        await resolve_names(session, 3)


@pytest.mark.asyncio
async def test_handshake_early_close_raises():
    session = ScriptedSession(named_replies({1: "Cam A"}))
    with pytest.raises(HandshakeError, match="1/4"):
        await resolve_names(session, 4)


@pytest.mark.asyncio
async def test_directory_resolve_builds_complete_directory():
    session = ScriptedSession(named_replies({1: "Cam A", 2: "Cam B"}))
    directory = await InputDirectory.resolve(session, 2)
    assert directory.lookup(2) == "Cam B"


# ─── Backoff ──────────────────────────────────────────────────────────────────

from tally_relay.core import Backoff


def test_backoff_doubles_and_caps():
    backoff = Backoff()
    delays = [backoff.next_delay() for _ in range(8)]
    assert delays == [2000, 4000, 8000, 16000, 32000, 60000, 60000, 60000]
    assert backoff.failures == 8


def test_backoff_reset():
    backoff = Backoff(base_ms=2000, max_ms=60000)
    backoff.next_delay()
    backoff.next_delay()
    backoff.reset()
    assert backoff.next_delay() == 2000
    assert backoff.next_delay_seconds() == 4.0


def test_backoff_rejects_bad_bounds():
    with pytest.raises(ValueError):
        Backoff(base_ms=0)
    with pytest.raises(ValueError):
        Backoff(base_ms=5000, max_ms=1000)


# ─── Broadcast Hub ────────────────────────────────────────────────────────────

from tally_relay.core import BroadcastHub
from tally_relay.core.hub import WELCOME_MESSAGE


@pytest.mark.asyncio
async def test_hub_welcomes_new_subscriber_with_last_status():
    hub = BroadcastHub()
    await hub.broadcast_status("Connected to vMix API")
    transport = FakeTransport()
    await hub.subscribe(transport)
    await hub.drain()
    assert transport.statuses == [WELCOME_MESSAGE, "Connected to vMix API"]


@pytest.mark.asyncio
async def test_hub_skips_subscriber_that_is_not_ready():
    hub = BroadcastHub()
    ready_a, ready_b, not_ready = FakeTransport(), FakeTransport(), FakeTransport(ready=False)
    for t in (ready_a, ready_b, not_ready):
        await hub.subscribe(t)

    delivered = await hub.broadcast({"tally": "Cam B"})
    await hub.drain()

    assert delivered == 2
    assert ready_a.tallies == ["Cam B"]
    assert ready_b.tallies == ["Cam B"]
    assert not_ready.sent == []
    assert hub.count() == 3


@pytest.mark.asyncio
async def test_hub_drops_failing_subscriber_only():
    hub = BroadcastHub()
    good, bad = FakeTransport(), FakeTransport(fail=True)
    await hub.subscribe(good)
    bad_handle = await hub.subscribe(bad)
    await hub.drain()
    assert bad_handle.failed

    await hub.broadcast({"tally": 2})
    await hub.drain()
    assert good.tallies == [2]
    assert hub.count() == 1
    assert bad.closed_with is not None


@pytest.mark.asyncio
async def test_hub_does_not_wait_for_slow_subscriber():
    hub = BroadcastHub(outbox_size=1)
    slow, fast = BlockingTransport(), FakeTransport()
    await hub.subscribe(slow)
    await hub.subscribe(fast)
    await wait_until(lambda: slow.in_send)  # welcome is stuck in flight

    assert await hub.broadcast({"tally": 1}) == 2
    await wait_until(lambda: fast.tallies == [1])
    assert await hub.broadcast({"tally": 2}) == 1  # slow outbox full, skipped

    slow.release.set()
    await hub.drain()
    assert fast.tallies == [1, 2]
    assert slow.tallies == [1]


@pytest.mark.asyncio
async def test_hub_unsubscribe_closes_transport():
    hub = BroadcastHub()
    transport = FakeTransport()
    handle = await hub.subscribe(transport)
    await hub.unsubscribe(handle)
    assert hub.count() == 0
    assert transport.closed_with == 1001
    assert await hub.broadcast({"tally": 1}) == 0


@pytest.mark.asyncio
async def test_hub_close_sends_notice_and_rejects_new_subscribers():
    hub = BroadcastHub()
    transport = FakeTransport()
    await hub.subscribe(transport)
    await hub.close("Tally relay shutting down.")
    await hub.close("again")

    assert transport.statuses[-1] == "Tally relay shutting down."
    assert transport.close_calls == 1
    assert hub.is_closed()
    with pytest.raises(RuntimeError):
        await hub.subscribe(FakeTransport())
