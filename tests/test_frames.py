import pytest

from chatsync.errors import FrameValidationError
from chatsync.models.frames import AuthFrame, EditFrame, MessageFrame, UserStatusFrame
from chatsync.transport.frames import decode_frame, encode_frame

from fakes import M1, ME, PEER


def test_decode_message_frame():
    frame = decode_frame(
        '{"type": "message", "sender_id": "%s", "receiver_id": "%s", "text": "hi",'
        ' "message_id": "%s", "temp_id": "t-1", "created_at": "2024-05-01T12:00:00Z"}' % (ME, PEER, M1)
    )
    assert isinstance(frame, MessageFrame)
    assert frame.temp_id == "t-1"


def test_decode_dict_frames():
    assert isinstance(decode_frame({"type": "edit", "message_id": M1, "text": "x"}), EditFrame)
    assert isinstance(decode_frame({"type": "user_status", "user_id": PEER, "is_online": True}), UserStatusFrame)


@pytest.mark.parametrize("raw", [
    "not json",
    '{"text": "no type"}',
    '{"type": "bogus"}',
    '{"type": "edit", "text": "missing id"}',
    '["type", "message"]',
])
def test_rejects_malformed(raw):
    with pytest.raises(FrameValidationError):
        decode_frame(raw)


def test_encode_omits_empty_fields():
    assert encode_frame(AuthFrame(token="abc")) == '{"type":"auth","token":"abc"}'
    encoded = encode_frame(MessageFrame(receiver_id=PEER, text="hi", temp_id="t-1"))
    assert "media_url" not in encoded
    assert '"temp_id":"t-1"' in encoded
