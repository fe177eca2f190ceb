from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from typing import Optional, List, Callable
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from ...protocol.types.common import (
    ActionType,
    StakingError,
    AuthenticationFailed,
    CustodyRollbackFailed,
    AlreadyDeposited,
    InvalidState,
    NotDepositor,
    Unauthorized,
    UnbondingNotElapsed,
    SystemPaused,
)
from ...protocol.types.request import SignedRequest
from ..core.auth import RequestAuthenticator
from ..core.controller import StakingController
from ..observability.metrics import metrics_registry, update_metrics
import logging
import time

logger = logging.getLogger(__name__)

app = FastAPI(title="NFT Stake Vault RPC")

controller: Optional[StakingController] = None
authenticator: Optional[RequestAuthenticator] = None
# Wall clock for request timestamps; replaced in tests
clock: Callable[[], int] = lambda: int(time.time())

ERROR_STATUS = {
    AuthenticationFailed: 401,
    Unauthorized: 403,
    NotDepositor: 403,
    AlreadyDeposited: 409,
    InvalidState: 409,
    UnbondingNotElapsed: 409,
    SystemPaused: 409,
}


def _controller() -> StakingController:
    if not controller:
        raise HTTPException(status_code=503, detail="Vault not initialized")
    return controller


def _authenticate(req: SignedRequest, action: ActionType) -> str:
    if not authenticator:
        raise HTTPException(status_code=503, detail="Vault not initialized")
    return authenticator.authenticate(req, action)


def _parse_ids(token_ids: str) -> List[int]:
    try:
        return [int(t) for t in token_ids.split(",") if t.strip()]
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid token id list: {token_ids}")


@app.exception_handler(StakingError)
async def staking_error_handler(request: Request, exc: StakingError):
    status = ERROR_STATUS.get(type(exc), 400)
    content = {"error": exc.code, "detail": exc.message, "token_id": exc.token_id}
    if isinstance(exc, CustodyRollbackFailed):
        content["stranded"] = exc.stranded
    return JSONResponse(status_code=status, content=content)


@app.get("/status")
async def get_status():
    return _controller().status(clock())


@app.get("/vault/{token_id}")
async def get_vault(token_id: int):
    ctl = _controller()
    record = ctl.vault_info(token_id)
    data = record.model_dump(mode="json")
    data["earned"] = str(ctl.earned(token_id, clock()))
    return data


@app.get("/deposits/{owner}")
async def get_deposits(owner: str):
    records = _controller().deposits_of(owner)
    return {
        "owner": owner,
        "deposits": [r.model_dump(mode="json") for r in records],
    }


@app.get("/earnings")
async def get_earnings(token_ids: str):
    ids = _parse_ids(token_ids)
    # Amounts as strings, they routinely exceed 2**53
    return {"token_ids": ids, "earned": str(_controller().earning_info(ids, clock()))}


@app.get("/rate")
async def get_rate():
    ctl = _controller()
    now = clock()
    return {"rate": str(ctl.current_rate(now)), "time_unit": ctl.config.time_unit, "timestamp": now}


@app.get("/checkpoints")
async def get_checkpoints():
    return {
        "checkpoints": [
            {"effective_at": c.effective_at, "rate": str(c.rate)}
            for c in _controller().ledger.checkpoints
        ]
    }


@app.get("/metrics")
async def get_metrics():
    update_metrics(_controller())
    return Response(content=generate_latest(metrics_registry), media_type=CONTENT_TYPE_LATEST)


@app.get("/nonce/{address}")
async def get_nonce(address: str):
    if not authenticator:
        raise HTTPException(status_code=503, detail="Vault not initialized")
    return {"address": address, "nonce": authenticator.get_nonce(address)}


@app.get("/events")
async def get_events(limit: int = 50, caller: Optional[str] = None):
    events = _controller().events.recent(limit=limit, caller=caller)
    return {
        "events": [
            {**e.model_dump(mode="json", exclude={"amount", "rate"}),
             "amount": None if e.amount is None else str(e.amount),
             "rate": None if e.rate is None else str(e.rate)}
            for e in events
        ]
    }


# --- Signed operations ---

@app.post("/stake")
async def post_stake(req: SignedRequest):
    caller = _authenticate(req, ActionType.STAKE)
    records = _controller().stake(caller, req.token_ids, clock())
    return {"status": "staked", "deposits": [r.model_dump(mode="json") for r in records]}


@app.post("/unstake")
async def post_unstake(req: SignedRequest):
    caller = _authenticate(req, ActionType.UNSTAKE)
    records = _controller().unstake(caller, req.token_ids, clock())
    return {"status": "exiting", "deposits": [r.model_dump(mode="json") for r in records]}


@app.post("/claim")
async def post_claim(req: SignedRequest):
    caller = _authenticate(req, ActionType.CLAIM)
    amount = _controller().claim(caller, req.token_ids, clock())
    return {"status": "claimed", "amount": str(amount)}


@app.post("/withdraw")
async def post_withdraw(req: SignedRequest):
    caller = _authenticate(req, ActionType.WITHDRAW)
    amount = _controller().withdraw(caller, req.token_ids, clock())
    return {"status": "withdrawn", "amount": str(amount)}


@app.post("/admin/rate")
async def post_rate(req: SignedRequest):
    if req.rate is None:
        raise HTTPException(status_code=400, detail="rate is required")
    caller = _authenticate(req, ActionType.UPDATE_RATE)
    checkpoint = _controller().update_rate(caller, req.rate, clock())
    return {"status": "rate_updated", "effective_at": checkpoint.effective_at, "rate": str(checkpoint.rate)}


@app.post("/admin/pause")
async def post_pause(req: SignedRequest):
    caller = _authenticate(req, ActionType.PAUSE)
    _controller().pause(caller, clock())
    return {"status": "paused"}


@app.post("/admin/unpause")
async def post_unpause(req: SignedRequest):
    caller = _authenticate(req, ActionType.UNPAUSE)
    _controller().unpause(caller, clock())
    return {"status": "unpaused"}
