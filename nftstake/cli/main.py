# MIT License
# Copyright (c) 2025 Hashborn

import argparse
import sys
import json
import requests
import os
from .keystore import KeyStore, KEYSTORE_DIR
from ..protocol.config.params import DECIMALS, DENOM
from ..protocol.types.common import ActionType
from ..protocol.types.request import SignedRequest

DEFAULT_NODE = "http://localhost:8000"


def get_node_url(args):
    return args.node or os.environ.get("NFTSTAKE_NODE", DEFAULT_NODE)


def get_keystore(args) -> KeyStore:
    return KeyStore(args.keys_dir or os.environ.get("NFTSTAKE_KEYS", KEYSTORE_DIR))


def parse_token_ids(raw):
    return [int(t) for t in raw.split(",") if t.strip()]


def format_amount(raw) -> str:
    amount = int(raw)
    return f"{amount / 10**DECIMALS} {DENOM} ({amount} units)"


def _get(args, path, params=None):
    url = get_node_url(args)
    try:
        resp = requests.get(f"{url}{path}", params=params)
    except requests.RequestException as e:
        print(f"Connection error: {e}")
        sys.exit(1)
    if resp.status_code != 200:
        print(f"Error: {resp.text}")
        sys.exit(1)
    return resp.json()


def _submit(args, path, action: ActionType, token_ids=None, rate=None):
    """Signs a request with the --from key and posts it."""
    key = get_keystore(args).get_key(args.from_name)
    if not key:
        print(f"Key '{args.from_name}' not found.")
        sys.exit(1)

    nonce = _get(args, f"/nonce/{key['address']}")["nonce"]
    req = SignedRequest(
        caller=key["address"],
        token_ids=token_ids or [],
        rate=rate,
        nonce=nonce,
        pub_key=key["public_key"],
    )
    req.sign(action, bytes.fromhex(key["private_key"]))

    url = get_node_url(args)
    try:
        resp = requests.post(f"{url}{path}", json=req.model_dump())
    except requests.RequestException as e:
        print(f"Connection error: {e}")
        sys.exit(1)
    if resp.status_code != 200:
        try:
            err = resp.json()
            print(f"Error [{err.get('error', resp.status_code)}]: {err.get('detail', resp.text)}")
        except ValueError:
            print(f"Error: {resp.text}")
        sys.exit(1)
    return resp.json()


# --- Keys Commands ---
def cmd_keys_add(args):
    try:
        key = get_keystore(args).create_key(args.name)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)
    print(f"Key '{args.name}' created.")
    print(f"Address: {key['address']}")


def cmd_keys_import(args):
    try:
        key = get_keystore(args).import_key(args.name, args.private_key)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)
    print(f"Key '{args.name}' imported.")
    print(f"Address: {key['address']}")


def cmd_keys_list(args):
    keys = get_keystore(args).list_keys()
    if not keys:
        print("No keys found.")
        return
    print(f"{'Name':<15} {'Address':<45}")
    print("-" * 60)
    for k in keys:
        print(f"{k['name']:<15} {k['address']:<45}")


# --- Query Commands ---
def cmd_status(args):
    print(json.dumps(_get(args, "/status"), indent=2))


def cmd_earnings(args):
    data = _get(args, "/earnings", params={"token_ids": args.token_ids})
    print(f"Tokens: {data['token_ids']}")
    print(f"Earned: {format_amount(data['earned'])}")


def cmd_vault(args):
    print(json.dumps(_get(args, f"/vault/{args.token_id}"), indent=2))


def cmd_deposits(args):
    data = _get(args, f"/deposits/{args.owner}")
    deposits = data["deposits"]
    if not deposits:
        print(f"No deposits for {args.owner}.")
        return
    print(f"{'Token':<10} {'State':<12} {'Accrual start':<15} {'Exit requested'}")
    print("-" * 60)
    for d in deposits:
        exit_at = d["exit_requested_at"] if d["exit_requested_at"] is not None else "-"
        print(f"{d['token_id']:<10} {d['state']:<12} {d['accrual_start']:<15} {exit_at}")


def cmd_rate(args):
    data = _get(args, "/rate")
    print(f"Rate: {data['rate']} per {data['time_unit']}s per token")


def cmd_events(args):
    data = _get(args, "/events", params={"limit": args.limit})
    for e in data["events"]:
        outcome = e["error"] or "ok"
        print(f"{e['timestamp']}  {e['action']:<12} {e['caller']:<45} {e['token_ids']}  {outcome}")


# --- Depositor Commands ---
def cmd_stake(args):
    data = _submit(args, "/stake", ActionType.STAKE, parse_token_ids(args.token_ids))
    print(f"Staked {len(data['deposits'])} token(s).")


def cmd_unstake(args):
    data = _submit(args, "/unstake", ActionType.UNSTAKE, parse_token_ids(args.token_ids))
    print(f"Exit requested for {len(data['deposits'])} token(s). Rewards are frozen until withdrawal.")


def cmd_claim(args):
    data = _submit(args, "/claim", ActionType.CLAIM, parse_token_ids(args.token_ids))
    print(f"Claimed: {format_amount(data['amount'])}")


def cmd_withdraw(args):
    data = _submit(args, "/withdraw", ActionType.WITHDRAW, parse_token_ids(args.token_ids))
    print(f"Withdrawn. Settled: {format_amount(data['amount'])}")


# --- Admin Commands ---
def cmd_update_rate(args):
    data = _submit(args, "/admin/rate", ActionType.UPDATE_RATE, rate=args.rate)
    print(f"Rate set to {data['rate']} at t={data['effective_at']}")


def cmd_pause(args):
    _submit(args, "/admin/pause", ActionType.PAUSE)
    print("Staking paused.")


def cmd_unpause(args):
    _submit(args, "/admin/unpause", ActionType.UNPAUSE)
    print("Staking unpaused.")


def main():
    parser = argparse.ArgumentParser(prog="nftstake-cli", description="NFT Stake Vault Client CLI")
    parser.add_argument("--node", help="Node URL (default: http://localhost:8000)")
    parser.add_argument("--keys-dir", default=None, help=f"Keystore directory (default: {KEYSTORE_DIR})")

    subparsers = parser.add_subparsers(dest="command", help="Sub-commands")

    # Keys
    p_keys = subparsers.add_parser("keys", help="Manage signing keys")
    keys_sub = p_keys.add_subparsers(dest="keys_command")
    p_add = keys_sub.add_parser("add", help="Create a new key")
    p_add.add_argument("name")
    p_add.set_defaults(func=cmd_keys_add)
    p_imp = keys_sub.add_parser("import", help="Import a hex private key")
    p_imp.add_argument("name")
    p_imp.add_argument("--private-key", required=True)
    p_imp.set_defaults(func=cmd_keys_import)
    keys_sub.add_parser("list", help="List keys").set_defaults(func=cmd_keys_list)

    # Queries
    subparsers.add_parser("status", help="Show vault status").set_defaults(func=cmd_status)
    subparsers.add_parser("rate", help="Show current reward rate").set_defaults(func=cmd_rate)

    p_earn = subparsers.add_parser("earnings", help="Unclaimed rewards for tokens")
    p_earn.add_argument("token_ids", help="Comma-separated token ids")
    p_earn.set_defaults(func=cmd_earnings)

    p_vault = subparsers.add_parser("vault", help="Deposit record of a token")
    p_vault.add_argument("token_id", type=int)
    p_vault.set_defaults(func=cmd_vault)

    p_dep = subparsers.add_parser("deposits", help="Deposits of an owner")
    p_dep.add_argument("owner", help="Depositor address")
    p_dep.set_defaults(func=cmd_deposits)

    p_events = subparsers.add_parser("events", help="Recent vault operations")
    p_events.add_argument("--limit", type=int, default=20)
    p_events.set_defaults(func=cmd_events)

    # Signed operations
    for name, func, help_text in [
        ("stake", cmd_stake, "Deposit NFTs into the vault"),
        ("unstake", cmd_unstake, "Start the unbonding period"),
        ("claim", cmd_claim, "Claim accrued rewards"),
        ("withdraw", cmd_withdraw, "Withdraw NFTs after unbonding"),
    ]:
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument("token_ids", help="Comma-separated token ids")
        p.add_argument("--from", dest="from_name", required=True, help="Depositor key name")
        p.set_defaults(func=func)

    p_rate = subparsers.add_parser("update-rate", help="Set a new reward rate (admin)")
    p_rate.add_argument("rate", type=int, help="Reward per time unit per token, in minimal units")
    p_rate.add_argument("--from", dest="from_name", required=True, help="Administrator key name")
    p_rate.set_defaults(func=cmd_update_rate)

    for name, func, help_text in [
        ("pause", cmd_pause, "Pause staking (admin)"),
        ("unpause", cmd_unpause, "Resume staking (admin)"),
    ]:
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument("--from", dest="from_name", required=True, help="Administrator key name")
        p.set_defaults(func=func)

    args = parser.parse_args()
    if not getattr(args, "func", None):
        parser.print_help()
        sys.exit(1)
    args.func(args)


if __name__ == "__main__":
    main()
