from typing import Optional, Tuple
import bech32  # type: ignore
from .hash import account_id

ADDRESS_PREFIX = "nft"


def address_from_pubkey(pub_bytes: bytes, prefix: str = ADDRESS_PREFIX) -> str:
    """Creates Bech32 address from public key."""
    five_bit = bech32.convertbits(account_id(pub_bytes), 8, 5)
    if five_bit is None:
        raise ValueError("Error converting to bech32 words")
    return bech32.bech32_encode(prefix, five_bit)


def decode_address(addr: str) -> Tuple[str, bytes]:
    """Decodes Bech32 address to (prefix, account id)."""
    hrp, data = bech32.bech32_decode(addr)
    if hrp is None or data is None:
        raise ValueError(f"Invalid bech32 address: {addr}")

    decoded = bech32.convertbits(data, 5, 8, False)
    if decoded is None:
        raise ValueError("Error converting from bech32 words")
    return hrp, bytes(decoded)


def is_valid_address(addr: str, expected_prefix: Optional[str] = ADDRESS_PREFIX) -> bool:
    try:
        hrp, _ = decode_address(addr)
    except ValueError:
        return False
    return expected_prefix is None or hrp == expected_prefix
