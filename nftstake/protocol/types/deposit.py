# MIT License
# Copyright (c) 2025 Hashborn

from pydantic import BaseModel, Field
from typing import Optional
from .common import DepositState


class RateCheckpoint(BaseModel):
    """A recorded (time, rate) pair marking when the reward rate changed."""
    effective_at: int = Field(..., description="Timestamp the rate takes effect")
    rate: int = Field(..., ge=0, description="Reward per time unit per deposited token")


class DepositRecord(BaseModel):
    token_id: int
    depositor: Optional[str] = None           # Entitled to claim/withdraw
    state: DepositState = DepositState.EMPTY
    accrual_start: int = 0                    # Last settlement (deposit or claim)
    exit_requested_at: Optional[int] = None   # Set only while EXITING
    # Rate-seconds accrued but not yet worth a whole reward unit
    carry: int = Field(0, ge=0)

    @property
    def is_empty(self) -> bool:
        return self.state == DepositState.EMPTY

    def last_touched(self) -> int:
        """Latest timestamp written to this record."""
        if self.exit_requested_at is not None:
            return max(self.accrual_start, self.exit_requested_at)
        return self.accrual_start

    @classmethod
    def empty(cls, token_id: int) -> 'DepositRecord':
        return cls(token_id=token_id)


class ClaimWindow(BaseModel):
    """Accrual window handed back by the registry on claim: [start, end) plus the prior carry."""
    token_id: int
    start: int
    end: int
    carry: int = 0
