import argparse
import os
import sys
import logging
import json
import time
from typing import Dict, Any
from uvicorn import Config, Server
from ...protocol.config.params import NETWORKS, CURRENT_NETWORK, VaultConfig
from ...protocol.types.common import DepositState
from ...protocol.crypto.addresses import is_valid_address
from ..core.assets import NFTCollection, RewardToken
from ..core.auth import RequestAuthenticator
from ..core.controller import StakingController
from ..storage.db import StorageDB
from ..rpc import api  # import module to set globals

logger = logging.getLogger(__name__)

VAULT_FILE = "vault.json"
DB_FILE = "vault.db"
VAULT_ADDRESS = "vault"


def load_vault_file(data_dir: str) -> Dict[str, Any]:
    path = os.path.join(data_dir, VAULT_FILE)
    if not os.path.exists(path):
        raise FileNotFoundError(f"{path} not found, run 'init' first")
    with open(path, "r") as f:
        return json.load(f)


def build_controller(data_dir: str, now: int = None) -> StakingController:
    """
    Assembles a vault node from its data dir.

    The NFT collection and reward token are in-memory devnet assets: seed
    tokens are minted to their allocated owners (or to the vault when a
    persisted deposit says it holds them) and owners pre-approve the vault.
    """
    data = load_vault_file(data_dir)
    config = VaultConfig.from_dict(data.get("config", {}))
    db = StorageDB(os.path.join(data_dir, DB_FILE))

    collection = NFTCollection()
    token = RewardToken(owner=(data.get("admins") or [None])[0])
    token.add_controller(VAULT_ADDRESS)

    controller = StakingController.create(
        config=config,
        db=db,
        custody=collection.custody_handle(VAULT_ADDRESS),
        reward=token.reward_handle(VAULT_ADDRESS),
        admins=data.get("admins", []),
        start=int(data.get("genesis_time", now if now is not None else time.time())),
        vault_address=VAULT_ADDRESS,
    )

    count = 0
    for owner, token_ids in data.get("nfts", {}).items():
        for token_id in token_ids:
            record = controller.registry.get(int(token_id))
            holder = VAULT_ADDRESS if record.state != DepositState.EMPTY else owner
            collection.mint(holder, int(token_id))
            count += 1
        collection.set_approval_for_all(owner, VAULT_ADDRESS, True)
    logger.info(f"Minted {count} seed NFT(s) for {len(data.get('nfts', {}))} owner(s)")
    return controller


def cmd_init(args):
    """Initialize vault node: data dir and vault.json."""
    data_dir = args.datadir
    os.makedirs(data_dir, exist_ok=True)

    path = os.path.join(data_dir, VAULT_FILE)
    if os.path.exists(path) and not args.force:
        print(f"Vault already initialized at {path}")
        return

    if args.network not in NETWORKS:
        print(f"Unknown network '{args.network}'. Choose from: {', '.join(NETWORKS)}")
        sys.exit(1)

    admins = args.admin or []
    for admin in admins:
        if not is_valid_address(admin):
            print(f"Invalid admin address: {admin}")
            sys.exit(1)

    config = NETWORKS[args.network].to_dict()
    if args.rate is not None:
        config["initial_rate"] = args.rate
    if args.unbonding_delay is not None:
        config["unbonding_delay"] = args.unbonding_delay
    if args.time_unit is not None:
        config["time_unit"] = args.time_unit
    if args.no_settle_on_withdraw:
        config["settle_on_withdraw"] = False

    nfts: Dict[str, list] = {}
    for allocation in args.nft or []:
        owner, _, ids = allocation.partition("=")
        if not is_valid_address(owner):
            print(f"Invalid NFT owner address: {owner}")
            sys.exit(1)
        nfts.setdefault(owner, []).extend(int(t) for t in ids.split(",") if t)

    data = {
        "config": config,
        "admins": admins,
        "nfts": nfts,
        "genesis_time": int(time.time()),
    }
    with open(path, "w") as f:
        json.dump(data, f, indent=2)

    print(f"Vault initialized at {path}")
    print(f"Network: {args.network}  Rate: {config['initial_rate']}  Unbonding: {config['unbonding_delay']}s")


def cmd_start(args):
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        controller = build_controller(args.datadir)
    except FileNotFoundError as e:
        logger.error(str(e))
        sys.exit(1)

    api.controller = controller
    api.authenticator = RequestAuthenticator(controller.registry.db)
    host = args.host or controller.config.rpc_host
    port = args.port or controller.config.rpc_port
    logger.info(f"Starting vault RPC on {host}:{port} ({controller.config.network_id})")

    server = Server(Config(api.app, host=host, port=port, log_level=args.log_level.lower()))
    server.run()


def main():
    parser = argparse.ArgumentParser(description="NFT stake vault node")
    subparsers = parser.add_subparsers(dest="command")

    p_init = subparsers.add_parser("init", help="Initialize a vault data dir")
    p_init.add_argument("--datadir", default="./.nftstake")
    p_init.add_argument("--network", default=CURRENT_NETWORK.network_id)
    p_init.add_argument("--admin", action="append", help="Administrator address (repeatable)")
    p_init.add_argument("--nft", action="append", help="Seed NFTs as address=1,2,3 (repeatable)")
    p_init.add_argument("--rate", type=int, default=None)
    p_init.add_argument("--unbonding-delay", type=int, default=None)
    p_init.add_argument("--time-unit", type=int, default=None)
    p_init.add_argument("--no-settle-on-withdraw", action="store_true")
    p_init.add_argument("--force", action="store_true")
    p_init.set_defaults(func=cmd_init)

    p_start = subparsers.add_parser("start", help="Run the vault RPC server")
    p_start.add_argument("--datadir", default="./.nftstake")
    p_start.add_argument("--host", default=None)
    p_start.add_argument("--port", type=int, default=None)
    p_start.add_argument("--log-level", default="info")
    p_start.set_defaults(func=cmd_start)

    args = parser.parse_args()
    if not getattr(args, "func", None):
        parser.print_help()
        sys.exit(1)
    args.func(args)


if __name__ == "__main__":
    main()
