# MIT License
# Copyright (c) 2025 Hashborn

"""
Caller authentication for requests arriving over RPC.

A request is accepted when its public key hashes to the claimed caller
address, the signature verifies over the request hash for the endpoint's
action, and the nonce equals the caller's next nonce. The nonce is consumed
as soon as the request authenticates, whether or not the operation then
succeeds.
"""

import logging
import threading
from ...protocol.crypto.addresses import address_from_pubkey
from ...protocol.crypto.keys import verify
from ...protocol.types.common import ActionType, AuthenticationFailed
from ...protocol.types.request import SignedRequest
from ..storage.db import StorageDB

logger = logging.getLogger(__name__)


class RequestAuthenticator:
    def __init__(self, db: StorageDB):
        self.db = db
        self._lock = threading.Lock()

    def get_nonce(self, address: str) -> int:
        raw = self.db.get_state(f"nonce:{address}")
        return int(raw) if raw is not None else 0

    def authenticate(self, req: SignedRequest, action: ActionType) -> str:
        """Returns the verified caller address or raises AuthenticationFailed."""
        if not req.signature or not req.pub_key:
            raise AuthenticationFailed("Missing signature or pub_key")

        try:
            pub_bytes = bytes.fromhex(req.pub_key)
            sig_bytes = bytes.fromhex(req.signature)
        except ValueError:
            raise AuthenticationFailed("pub_key and signature must be hex")

        prefix = req.caller.split("1")[0]
        try:
            derived = address_from_pubkey(pub_bytes, prefix=prefix)
        except ValueError as e:
            raise AuthenticationFailed(f"Invalid public key: {e}")
        if derived != req.caller:
            raise AuthenticationFailed(f"pub_key does not belong to {req.caller}")

        if not verify(bytes.fromhex(req.hash(action)), sig_bytes, pub_bytes):
            raise AuthenticationFailed(f"Invalid signature for {action.value}")

        with self._lock:
            expected = self.get_nonce(req.caller)
            if req.nonce != expected:
                raise AuthenticationFailed(f"Invalid nonce {req.nonce} for {req.caller}, expected {expected}")
            self.db.set_state(f"nonce:{req.caller}", str(expected + 1))

        logger.debug(f"Authenticated {action.value} from {req.caller} (nonce {req.nonce})")
        return req.caller
