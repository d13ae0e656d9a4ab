"""Forge Battle: FastAPI host for the battle engine.

Wraps the engine for a browser client: simulate a dungeon run from a roster,
or replay a server-computed event log into the same result shape.

Run with: uvicorn web.app:app --reload
"""

from __future__ import annotations

import dataclasses
import logging
import sys
from pathlib import Path
from typing import Any

from fastapi import APIRouter, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, field_validator

# Add parent directory to sys.path so we can import the battlesim package
_project_root = Path(__file__).resolve().parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from battlesim.config import DEFAULT_CONFIG, config_hash
from battlesim.engine import BattleResult
from battlesim.roster import RosterError, UnitSpec
from battlesim.session import BattleSession

logger = logging.getLogger(__name__)

app = FastAPI(title="Forge Battle", version="1.0.0")

# CORS middleware: the game client is served from another origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

MAX_REPLAY_EVENTS = 20_000


class SimulateRequest(BaseModel):
    allies: list[UnitSpec] = Field(..., min_length=1)
    enemies: list[UnitSpec] = Field(..., min_length=1)
    seed: int = Field(default=42, ge=0)
    speed: int = Field(default=1, description="Playback speed multiplier")
    include_events: bool = True

    @field_validator("speed")
    @classmethod
    def validate_speed(cls, v: int) -> int:
        return DEFAULT_CONFIG.validate_speed(v)


class ReplayRequest(BaseModel):
    events: list[Any] = Field(..., min_length=1, max_length=MAX_REPLAY_EVENTS)


class RewardsResponse(BaseModel):
    rogue_credits: int
    forge_tokens: int


class BattleResponse(BaseModel):
    outcome: str
    victory: bool
    stage_index: int
    completed_stages: int
    total_stages: int
    ticks: int
    turns: int
    rewards: RewardsResponse
    seed: int | None = None
    allies: list[dict[str, Any]]
    enemies: list[dict[str, Any]]
    action_log: list[str]
    events: list[dict[str, Any]] | None = None
    skipped_events: int = 0


# -- Shared logic ----------------------------------------------------------------


def _to_response(result: BattleResult, include_events: bool, skipped: int = 0) -> BattleResponse:
    return BattleResponse(
        outcome=result.outcome.value,
        victory=result.victory,
        stage_index=result.stage_index,
        completed_stages=result.completed_stages,
        total_stages=result.total_stages,
        ticks=result.ticks,
        turns=result.turns,
        rewards=RewardsResponse(
            rogue_credits=result.rewards.rogue_credits,
            forge_tokens=result.rewards.forge_tokens,
        ),
        seed=result.seed,
        allies=result.allies,
        enemies=result.enemies,
        action_log=result.action_log,
        events=result.events if include_events else None,
        skipped_events=skipped,
    )


def _simulate_logic(req: SimulateRequest) -> BattleResponse:
    try:
        session = BattleSession.simulate(
            {"allies": req.allies, "enemies": req.enemies},
            match_seed=req.seed,
            playback_speed=req.speed,
        )
    except (RosterError, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid roster: {e}")

    result = session.run()
    if result is None:
        raise HTTPException(status_code=500, detail="Simulation did not finish")
    return _to_response(result, req.include_events)


def _replay_logic(req: ReplayRequest) -> BattleResponse:
    session = BattleSession.replay(req.events)
    result = session.run()
    if result is None:
        raise HTTPException(
            status_code=400,
            detail=f"Event log has no usable battle_end event ({session.skipped} events skipped)",
        )
    if session.skipped:
        logger.warning("Replay skipped %d malformed events", session.skipped)
    return _to_response(result, include_events=False, skipped=session.skipped)


# -- Routes ----------------------------------------------------------------------


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


api_v1 = APIRouter(prefix="/api/v1")


@api_v1.post("/simulate", response_model=BattleResponse)
def api_simulate(req: SimulateRequest) -> BattleResponse:
    return _simulate_logic(req)


@api_v1.post("/replay", response_model=BattleResponse)
def api_replay(req: ReplayRequest) -> BattleResponse:
    return _replay_logic(req)


@api_v1.get("/config")
def api_config() -> dict[str, Any]:
    return {"hash": config_hash(), **dataclasses.asdict(DEFAULT_CONFIG)}


app.include_router(api_v1)
