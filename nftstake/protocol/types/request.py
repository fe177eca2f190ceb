# MIT License
# Copyright (c) 2025 Hashborn

from pydantic import BaseModel, Field
from typing import List, Optional
from ..crypto.hash import sha256_hex
from ..crypto.keys import sign as crypto_sign
from .common import ActionType


class SignedRequest(BaseModel):
    """
    A state-changing call as submitted to the node.

    The signature covers the action, so a request signed for one endpoint
    cannot be replayed against another, and the nonce, so it cannot be
    replayed at all.
    """
    caller: str                                  # Bech32 address of the signer
    token_ids: List[int] = Field(default_factory=list)
    rate: Optional[int] = None                   # update_rate only
    nonce: int
    pub_key: str = ""                            # hex compressed public key
    signature: str = ""                          # hex 64-byte ECDSA (r, s)

    def hash(self, action: ActionType) -> str:
        payload = "|".join([
            action.value,
            self.caller,
            ",".join(str(t) for t in self.token_ids),
            "" if self.rate is None else str(self.rate),
            str(self.nonce),
            self.pub_key,
        ])
        return sha256_hex(payload.encode("utf-8"))

    def sign(self, action: ActionType, priv_key_bytes: bytes) -> None:
        msg_hash = bytes.fromhex(self.hash(action))
        self.signature = crypto_sign(msg_hash, priv_key_bytes).hex()
