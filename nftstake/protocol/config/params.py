# MIT License
# Copyright (c) 2025 Hashborn

from typing import Dict, Any

# Global Constants
DENOM = "rwd"
DECIMALS = 18
SECONDS_PER_DAY = 24 * 60 * 60


class VaultConfig:
    def __init__(self,
                 network_id: str,
                 initial_rate: int,
                 unbonding_delay: int,
                 time_unit: int = 1,
                 settle_on_withdraw: bool = True,
                 max_batch_size: int = 100,
                 rpc_host: str = "127.0.0.1",
                 rpc_port: int = 8000):
        if initial_rate < 0:
            raise ValueError(f"initial_rate must be non-negative, got {initial_rate}")
        if unbonding_delay < 0:
            raise ValueError(f"unbonding_delay must be non-negative, got {unbonding_delay}")
        if time_unit <= 0:
            raise ValueError(f"time_unit must be positive, got {time_unit}")
        if max_batch_size <= 0:
            raise ValueError(f"max_batch_size must be positive, got {max_batch_size}")

        self.network_id = network_id
        # Reward per time_unit per deposited token
        self.initial_rate = initial_rate
        # Seconds between unstake and permitted withdrawal
        self.unbonding_delay = unbonding_delay
        # Seconds per rate unit (1 = per-second rate, 86400 = per-day rate)
        self.time_unit = time_unit
        # Pay the frozen reward when the NFT is withdrawn
        self.settle_on_withdraw = settle_on_withdraw
        self.max_batch_size = max_batch_size
        self.rpc_host = rpc_host
        self.rpc_port = rpc_port

    def to_dict(self) -> Dict[str, Any]:
        return {
            "network_id": self.network_id,
            "initial_rate": self.initial_rate,
            "unbonding_delay": self.unbonding_delay,
            "time_unit": self.time_unit,
            "settle_on_withdraw": self.settle_on_withdraw,
            "max_batch_size": self.max_batch_size,
            "rpc_host": self.rpc_host,
            "rpc_port": self.rpc_port,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'VaultConfig':
        """Builds a config from a preset name plus overrides (vault.json)."""
        base = NETWORKS.get(data.get("network_id", "devnet"))
        merged = base.to_dict() if base else {}
        merged.update({k: v for k, v in data.items() if v is not None})
        return cls(
            network_id=merged["network_id"],
            initial_rate=int(merged["initial_rate"]),
            unbonding_delay=int(merged["unbonding_delay"]),
            time_unit=int(merged.get("time_unit", 1)),
            settle_on_withdraw=bool(merged.get("settle_on_withdraw", True)),
            max_batch_size=int(merged.get("max_batch_size", 100)),
            rpc_host=merged.get("rpc_host", "127.0.0.1"),
            rpc_port=int(merged.get("rpc_port", 8000)),
        )


NETWORKS: Dict[str, VaultConfig] = {
    "devnet": VaultConfig(
        network_id="devnet",
        initial_rate=10**16,
        unbonding_delay=1,
        time_unit=1,
    ),
    "testnet": VaultConfig(
        network_id="testnet",
        initial_rate=10**16,
        unbonding_delay=60 * 60,           # 1 hour
        time_unit=1,
    ),
    "mainnet": VaultConfig(
        network_id="mainnet",
        initial_rate=100 * 10**DECIMALS,   # 100 RWD per day
        unbonding_delay=7 * SECONDS_PER_DAY,
        time_unit=SECONDS_PER_DAY,
        max_batch_size=50,
    ),
}

# Default to devnet for now
CURRENT_NETWORK = NETWORKS["devnet"]
