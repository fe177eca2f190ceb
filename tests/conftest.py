"""
Shared fixtures: an in-memory vault wired to in-memory NFT and reward assets.

Time is measured in seconds with a per-day rate (time_unit = 1 day), so
"rate 100" means 100 reward units per day per token.
"""
import pytest

from nftstake.protocol.config.params import VaultConfig, SECONDS_PER_DAY
from nftstake.vault.core.assets import NFTCollection, RewardToken
from nftstake.vault.core.controller import StakingController
from nftstake.vault.storage.db import StorageDB

DAY = SECONDS_PER_DAY
VAULT = "vault"
ADMIN = "owner"

ALICE = "alice"
BOB = "bob"
CAROL = "carol"
MALLORY = "mallory"

TOKEN_A = 1
TOKEN_B = 2
TOKEN_C = 5


class VaultHarness:
    """Bundles the controller with the assets it talks to."""

    def __init__(self, settle_on_withdraw: bool = True, rate: int = 100,
                 unbonding_delay: int = DAY, time_unit: int = DAY, start: int = 0,
                 holders: dict = None, admins: list = None):
        self.db = StorageDB(":memory:")
        self.nft = NFTCollection()
        self.token = RewardToken(owner=ADMIN)
        self.token.add_controller(VAULT)
        self.config = VaultConfig(
            network_id="test",
            initial_rate=rate,
            unbonding_delay=unbonding_delay,
            time_unit=time_unit,
            settle_on_withdraw=settle_on_withdraw,
        )
        self.controller = StakingController.create(
            config=self.config,
            db=self.db,
            custody=self.nft.custody_handle(VAULT),
            reward=self.token.reward_handle(VAULT),
            admins=admins or [ADMIN],
            start=start,
            vault_address=VAULT,
        )

        if holders is None:
            holders = {ALICE: [TOKEN_A, 3, 4], BOB: [TOKEN_B], CAROL: [TOKEN_C]}
        for owner, token_ids in holders.items():
            for token_id in token_ids:
                self.nft.mint(owner, token_id)
            self.nft.set_approval_for_all(owner, VAULT, True)

    def close(self):
        self.db.close()


@pytest.fixture
def vault():
    harness = VaultHarness()
    yield harness
    harness.close()


@pytest.fixture
def forfeit_vault():
    """Vault that discards frozen rewards on withdrawal."""
    harness = VaultHarness(settle_on_withdraw=False)
    yield harness
    harness.close()


@pytest.fixture
def memory_db():
    db = StorageDB(":memory:")
    yield db
    db.close()
