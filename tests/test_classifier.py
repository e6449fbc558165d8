import json

import pytest

from agent_connection import AgentConnection, protocol
from agent_connection.classifier import FRAME_CATEGORIES, FrameCategory, classify, payload_key
from agent_connection.envelope import decode_frame
from agent_connection.errors import ClassificationError

from .conftest import payload_frame

SAMPLES = {
    protocol.STATE: {'content': {'initialized': True}},
    protocol.INVITE_GENERATED: {'invite': 'http://a?c_i=e30='},
    protocol.REQUEST_RECEIVED: {'did': 'D3', 'endpoint': 'http://b', 'label': 'bob'},
    protocol.REQUEST_SENT: {'label': 'bob'},
    protocol.MESSAGE_SENT: {'id': 'm-1'},
    protocol.INVITE_RECEIVED: {'connection_key': 'VK1', 'label': 'bob', 'endpoint': 'http://b'},
    protocol.RESPONSE_RECEIVED: {'connection_key': 'VK1', 'their_did': 'D2'},
    protocol.RESPONSE_SENT: {'did': 'D2', 'label': 'bob'},
}


@pytest.mark.parametrize('msg_type', sorted(FRAME_CATEGORIES))
def test_every_known_type_has_a_key(msg_type):
    if msg_type == protocol.MESSAGE_RECEIVED:
        frame = payload_frame('D2', protocol.PROOF, {'proof': 1})
    else:
        frame = dict(SAMPLES[msg_type], **{'@type': msg_type})
    route = classify(frame)
    assert route.key


def test_session_frames_keyed_by_type():
    frame = dict(SAMPLES[protocol.STATE], **{'@type': protocol.STATE})
    route = classify(frame)
    assert route.key == protocol.STATE
    assert route.body is frame


def test_invite_keyed_frames():
    frame = {'@type': protocol.INVITE_RECEIVED, 'connection_key': 'VK1'}
    assert classify(frame).key == protocol.INVITE_RECEIVED + '.VK1'


def test_response_received_falls_back_to_signer():
    frame = {
        '@type': protocol.RESPONSE_RECEIVED,
        'their_did': 'D2',
        'history': {'connection~sig': {'signer': 'VK9'}},
    }
    assert classify(frame).key == protocol.RESPONSE_RECEIVED + '.VK9'


def test_response_sent_keyed_by_did():
    assert classify({'@type': protocol.RESPONSE_SENT, 'did': 'D7'}).key == protocol.RESPONSE_SENT + '.D7'


@pytest.mark.parametrize('nested_strings', [True, False])
def test_payload_is_unwrapped_and_rekeyed(nested_strings):
    frame = payload_frame('D2', protocol.CREDENTIAL_OFFER, {'schemaId': '1'}, nested_strings)
    route = classify(frame)
    assert route.key == payload_key(protocol.CREDENTIAL_OFFER, 'D2')
    assert route.body == {'schemaId': '1'}


def test_categories_cover_the_closed_set():
    assert set(FRAME_CATEGORIES.values()) == set(FrameCategory)


@pytest.mark.parametrize('frame', [
    {'@type': protocol.SPEC_BASE + 'admin/1.0/unknown'},
    {'no_type': True},
    {'@type': protocol.INVITE_RECEIVED},
    {'@type': protocol.RESPONSE_SENT, 'did': ''},
    {'@type': protocol.MESSAGE_RECEIVED, 'message': 'not json'},
    {'@type': protocol.MESSAGE_RECEIVED, 'message': {'from': 'D2', 'content': {'message': {}}}},
])
def test_unroutable_frames_raise(frame):
    with pytest.raises(ClassificationError):
        classify(frame)


def test_decode_rejects_garbage():
    with pytest.raises(ClassificationError):
        decode_frame('{not json')
    with pytest.raises(ClassificationError):
        decode_frame('[1, 2]')
    with pytest.raises(ClassificationError):
        decode_frame('[' * 100000 + ']' * 100000)


def test_unknown_frame_leaves_mailbox_untouched():
    conn = AgentConnection()
    with pytest.raises(ClassificationError):
        conn.dispatch_frame(json.dumps({'@type': 'did:sov:x;spec/other/1.0/ping'}))
    assert conn.mailbox.snapshot() == {}


def test_dispatch_buffers_known_frame():
    conn = AgentConnection()
    route = conn.dispatch_frame(json.dumps({'@type': protocol.RESPONSE_SENT, 'did': 'D2'}))
    assert conn.mailbox.buffered(route.key)[0]['did'] == 'D2'
