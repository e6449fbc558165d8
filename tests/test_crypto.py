import pytest

from agent_connection.crypto import verify_signed_field
from agent_connection.did import b58decode, b58encode, verkey_to_bytes
from agent_connection.errors import SignatureError

from .conftest import generate_keypair, sign_field


def test_base58_keeps_leading_zeros():
    data = b'\x00\x00\x01\x02'
    assert b58encode(data).startswith('11')
    assert b58decode(b58encode(data)) == data


def test_base58_rejects_invalid_characters():
    with pytest.raises(ValueError):
        b58decode('0OIl')


def test_verkey_must_be_32_bytes():
    _, verkey = generate_keypair()
    assert len(verkey_to_bytes(verkey)) == 32
    with pytest.raises(ValueError):
        verkey_to_bytes('abc')


def test_signed_field_verifies():
    seed, verkey = generate_keypair()
    connection = {'DID': 'D2', 'DIDDoc': {'publicKey': []}}
    signed = sign_field(connection, seed, timestamp=1546300800)
    assert signed['signer'] == verkey
    assert verify_signed_field(signed) == connection


def test_signed_field_from_other_signer_fails():
    seed, _ = generate_keypair()
    _, other = generate_keypair()
    signed = dict(sign_field({'DID': 'D2'}, seed), signer=other)
    with pytest.raises(SignatureError):
        verify_signed_field(signed)


def test_signed_field_with_short_signer_fails():
    seed, _ = generate_keypair()
    signed = dict(sign_field({'DID': 'D2'}, seed), signer='abc')
    with pytest.raises(SignatureError):
        verify_signed_field(signed)


def test_incomplete_signed_field_fails():
    with pytest.raises(SignatureError):
        verify_signed_field({'signer': 'abc'})
