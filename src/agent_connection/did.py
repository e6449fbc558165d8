VERKEY_LENGTH = 32


_BASE58_ALPHABET = b'123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz'
_BASE58_INDEX = {c: i for i, c in enumerate(_BASE58_ALPHABET)}


def b58encode(data: bytes) -> str:
    # Count leading zeros
    zeros = len(data) - len(data.lstrip(b'\x00'))
    num = int.from_bytes(data, 'big')
    enc = bytearray()
    while num > 0:
        num, rem = divmod(num, 58)
        enc.append(_BASE58_ALPHABET[rem])
    # Add leading '1's for zeros
    enc.extend(b'1' * zeros)
    enc.reverse()
    return enc.decode('ascii')


def b58decode(text: str) -> bytes:
    raw = text.encode('ascii')
    num = 0
    for c in raw:
        if c not in _BASE58_INDEX:
            raise ValueError(f'invalid base58 character: {chr(c)!r}')
        num = num * 58 + _BASE58_INDEX[c]
    # Each leading '1' stands for a zero byte
    zeros = len(raw) - len(raw.lstrip(b'1'))
    body = num.to_bytes((num.bit_length() + 7) // 8, 'big')
    return b'\x00' * zeros + body


def verkey_to_bytes(verkey: str) -> bytes:
    """
    Decode a base58 Ed25519 verkey into its raw 32 bytes.
    """
    key = b58decode(verkey)
    if len(key) != VERKEY_LENGTH:
        raise ValueError('Ed25519 verkey must be 32 bytes')
    return key
