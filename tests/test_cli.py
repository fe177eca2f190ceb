"""Client CLI and keystore tests against a stubbed HTTP layer."""
import argparse
import os
import stat

import pytest

from nftstake.cli import main as cli
from nftstake.cli.keystore import KeyStore
from nftstake.protocol.crypto.addresses import is_valid_address
from nftstake.protocol.crypto.keys import verify
from nftstake.protocol.types.common import ActionType
from nftstake.protocol.types.request import SignedRequest

ALICE_KEY_HEX = "01" * 32


class StubResponse:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self._payload = payload
        self.text = str(payload)

    def json(self):
        return self._payload


@pytest.fixture
def keys_dir(tmp_path):
    path = str(tmp_path / "keys")
    KeyStore(path).import_key("alice", ALICE_KEY_HEX)
    return path


def cli_args(keys_dir, **kwargs):
    return argparse.Namespace(node="http://n", keys_dir=keys_dir, **kwargs)


def test_parse_token_ids():
    assert cli.parse_token_ids("1,2, 5,") == [1, 2, 5]


def test_format_amount():
    assert cli.format_amount("1500000000000000000") == "1.5 rwd (1500000000000000000 units)"


def test_node_url_from_env(monkeypatch):
    monkeypatch.setenv("NFTSTAKE_NODE", "http://vault:9000")
    assert cli.get_node_url(argparse.Namespace(node=None)) == "http://vault:9000"
    assert cli.get_node_url(argparse.Namespace(node="http://x")) == "http://x"


# ═══════════════════════════════════════════════════════════════════
# KEYSTORE
# ═══════════════════════════════════════════════════════════════════

def test_keystore_create_and_list(tmp_path):
    store = KeyStore(str(tmp_path))
    created = store.create_key("bob")

    assert is_valid_address(created["address"])
    assert store.get_key("bob")["private_key"] == created["private_key"]
    assert store.list_keys() == [
        {"name": "bob", "address": created["address"], "public_key": created["public_key"]}
    ]
    mode = os.stat(os.path.join(str(tmp_path), "bob.json")).st_mode
    assert stat.S_IMODE(mode) == 0o600

    with pytest.raises(ValueError):
        store.create_key("bob")


def test_keystore_import_is_deterministic(tmp_path):
    first = KeyStore(str(tmp_path / "a")).import_key("k", ALICE_KEY_HEX)
    second = KeyStore(str(tmp_path / "b")).import_key("k", ALICE_KEY_HEX)
    assert first["address"] == second["address"]

    store = KeyStore(str(tmp_path / "c"))
    with pytest.raises(ValueError):
        store.import_key("short", "abcd")
    with pytest.raises(ValueError):
        store.import_key("nothex", "zz" * 32)
    assert store.get_key("missing") is None


# ═══════════════════════════════════════════════════════════════════
# SIGNED COMMANDS
# ═══════════════════════════════════════════════════════════════════

def test_claim_posts_signed_batch(monkeypatch, capsys, keys_dir):
    alice = KeyStore(keys_dir).get_key("alice")
    sent = {}

    def fake_get(url, params=None):
        sent["nonce_url"] = url
        return StubResponse(200, {"address": alice["address"], "nonce": 7})

    def fake_post(url, json):
        sent["url"] = url
        sent["body"] = json
        return StubResponse(200, {"status": "claimed", "amount": "300"})

    monkeypatch.setattr(cli.requests, "get", fake_get)
    monkeypatch.setattr(cli.requests, "post", fake_post)
    cli.cmd_claim(cli_args(keys_dir, from_name="alice", token_ids="1,3"))

    assert sent["nonce_url"] == f"http://n/nonce/{alice['address']}"
    assert sent["url"] == "http://n/claim"
    body = sent["body"]
    assert (body["caller"], body["token_ids"], body["nonce"]) == (alice["address"], [1, 3], 7)

    req = SignedRequest(**body)
    assert verify(bytes.fromhex(req.hash(ActionType.CLAIM)),
                  bytes.fromhex(req.signature), bytes.fromhex(req.pub_key))
    assert not verify(bytes.fromhex(req.hash(ActionType.WITHDRAW)),
                      bytes.fromhex(req.signature), bytes.fromhex(req.pub_key))
    assert "300 units" in capsys.readouterr().out


def test_update_rate_sends_rate(monkeypatch, keys_dir):
    sent = {}
    monkeypatch.setattr(cli.requests, "get", lambda url, params=None: StubResponse(200, {"nonce": 0}))

    def fake_post(url, json):
        sent["body"] = json
        return StubResponse(200, {"status": "rate_updated", "effective_at": 5, "rate": "250"})

    monkeypatch.setattr(cli.requests, "post", fake_post)
    cli.cmd_update_rate(cli_args(keys_dir, from_name="alice", rate=250))

    assert sent["body"]["rate"] == 250
    assert sent["body"]["token_ids"] == []


def test_unknown_key_exits(capsys, keys_dir):
    with pytest.raises(SystemExit):
        cli.cmd_stake(cli_args(keys_dir, from_name="nobody", token_ids="1"))
    assert "not found" in capsys.readouterr().out


def test_error_response_exits(monkeypatch, capsys, keys_dir):
    monkeypatch.setattr(cli.requests, "get", lambda url, params=None: StubResponse(200, {"nonce": 0}))
    monkeypatch.setattr(
        cli.requests, "post",
        lambda url, json: StubResponse(403, {"error": "NOT_DEPOSITOR", "detail": "not yours"}),
    )
    with pytest.raises(SystemExit):
        cli.cmd_unstake(cli_args(keys_dir, from_name="alice", token_ids="1"))
    assert "NOT_DEPOSITOR" in capsys.readouterr().out
