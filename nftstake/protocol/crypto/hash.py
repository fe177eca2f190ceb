import hashlib


def sha256(data: bytes) -> bytes:
    """Returns SHA256 hash of bytes."""
    return hashlib.sha256(data).digest()


def sha256_hex(data: bytes) -> str:
    """Returns SHA256 hash of bytes as hex string."""
    return sha256(data).hex()


def account_id(pub_bytes: bytes) -> bytes:
    """20-byte account id of a public key: first 20 bytes of SHA256(SHA256(pub))."""
    return sha256(sha256(pub_bytes))[:20]
