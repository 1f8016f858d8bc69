import json

import pytest

from packets import MalformedPacket, encode, outbound, parse_packet


def frame(event, data=None):
    packet = {"event": event}
    if data is not None:
        packet["data"] = data
    return json.dumps(packet)


def test_identify_with_object():
    assert parse_packet(frame("identify", {"username": " <b>alice</b> "})) == ("identify", {"username": "alice"})


def test_identify_with_bare_string():
    assert parse_packet(frame("identify", "bob")) == ("identify", {"username": "bob"})


def test_identify_with_empty_username():
    with pytest.raises(MalformedPacket) as excinfo:
        parse_packet(frame("identify", {"username": "<i> </i>"}))
    assert excinfo.value.reason == "invalid_username"
    assert excinfo.value.event == "identify"


def test_signal():
    assert parse_packet(frame("signal", {"signal": "dash", "timestamp": 1700000000000, "extra": 1})) == (
        "signal", {"signal": "dash", "timestamp": 1700000000000}
    )


def test_signal_rejects_unknown_kind():
    with pytest.raises(MalformedPacket) as excinfo:
        parse_packet(frame("signal", {"signal": "beep", "timestamp": 1}))
    assert excinfo.value.reason == "malformed_signal"


def test_message_complete_is_sanitized():
    event, data = parse_packet(frame("message-complete", {
        "message": "... <b>---</b> ...",
        "translatedText": "<script>x</script>SOS",
        "wpm": 99,
        "timestamp": 12,
    }))
    assert event == "message-complete"
    assert data == {"message": "... --- ...", "translatedText": "xSOS", "wpm": 12, "timestamp": 12}


def test_message_complete_defaults():
    assert parse_packet(frame("message-complete", {"message": ".-"})) == (
        "message-complete", {"message": ".-", "translatedText": "", "wpm": 12, "timestamp": 0}
    )


def test_message_complete_requires_message():
    with pytest.raises(MalformedPacket):
        parse_packet(frame("message-complete", {"wpm": 20}))


@pytest.mark.parametrize("event", ["typing", "typing-stop", "disconnect-partner", "find-new-partner"])
def test_events_without_data(event):
    assert parse_packet(frame(event)) == (event, {})


@pytest.mark.parametrize("message", [
    "not json",
    "[1, 2]",
    json.dumps({"data": {}}),
    json.dumps({"event": "set-admin"}),
])
def test_malformed_frames(message):
    with pytest.raises(MalformedPacket) as excinfo:
        parse_packet(message)
    assert excinfo.value.reason == "malformed_request"


def test_outbound():
    assert outbound("waiting") == {"event": "waiting"}
    assert outbound("user-count", {"count": 2}) == {"event": "user-count", "data": {"count": 2}}
    assert json.loads(encode(outbound("paired", {"partnerUsername": "zoë"}))) == {
        "event": "paired", "data": {"partnerUsername": "zoë"}
    }
