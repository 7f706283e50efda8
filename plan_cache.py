"""
Plan Cache & Reconciler

A generated plan is cached in two tiers:
    - local: SQLite on this server (db.LocalPlanStore), fast, best-effort
    - remote: the durable tool-data store under the reserved "orchestrator-plan" id

On load both tiers are read and reconciled: the remote copy wins only when
its cachedAt is strictly newer, and the winner is written back to the other
tier. Staleness is reported, never acted on: a plan older than 24 hours or
built from data that no longer matches the current signature is flagged,
with one reason per condition.
"""

import json
import sqlite3
import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Tuple

from db import LocalPlanStore
from errors import CacheWriteError, ToolDataStoreError
from plan import Plan, parse_iso, to_iso, utc_now
from tool_data import ORCHESTRATOR_PLAN_TOOL_ID, ToolSnapshot
from tool_store import ToolDataStore

logger = logging.getLogger(__name__)

STALE_AFTER = timedelta(hours=24)
AGE_REASON = "This plan is over 24 hours old."
DATA_CHANGED_REASON = "Your planning data has changed since this plan was generated."

TIER_LOCAL = "local"
TIER_REMOTE = "remote"


# ------------------------ Signatures ------------------------ #

def canonical_json(value: Any) -> str:
    """JSON with keys sorted at every depth and no insignificant whitespace."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def compute_data_signature(value: Any) -> str:
    return hashlib.sha256(canonical_json(value).encode("utf-8")).hexdigest()


def snapshot_signature(snapshot: ToolSnapshot) -> str:
    """Signature over the snapshot's content. Record timestamps are left out."""
    return compute_data_signature(snapshot.to_dict(include_timestamps=False))


# ------------------------ Cached plan ------------------------ #

@dataclass
class CachedPlan:
    user_id: str
    plan: Plan
    tier_used: str
    cached_at: str
    data_signature: str
    tokens_used: Optional[Dict[str, int]] = None

    @property
    def cached_at_dt(self) -> Optional[datetime]:
        return parse_iso(self.cached_at)

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "userId": self.user_id,
            "plan": self.plan.to_dict(),
            "tierUsed": self.tier_used,
            "cachedAt": self.cached_at,
            "dataSignature": self.data_signature,
        }
        if self.tokens_used is not None:
            out["tokensUsed"] = dict(self.tokens_used)
        return out

    @classmethod
    def from_dict(cls, d: Any, created: Optional[str] = None) -> Optional["CachedPlan"]:
        """
        None when the stored value is not a recognizable cached plan.

        A missing cachedAt falls back to the plan's generatedAt, then to the
        storage record's `created` timestamp.
        """
        if not isinstance(d, Mapping) or not isinstance(d.get("plan"), Mapping):
            return None
        user_id = d.get("userId")
        if not isinstance(user_id, str):
            return None
        candidates = (d.get("cachedAt"), d["plan"].get("generatedAt"), created)
        cached_at = next((c for c in candidates if isinstance(c, str) and c), None)
        if cached_at is None:
            return None
        tokens = d.get("tokensUsed")
        return cls(
            user_id=user_id,
            plan=Plan.from_dict(d["plan"]),
            tier_used=d.get("tierUsed") if d.get("tierUsed") in ("free", "paid") else "free",
            cached_at=cached_at,
            data_signature=d.get("dataSignature") if isinstance(d.get("dataSignature"), str) else "",
            tokens_used=dict(tokens) if isinstance(tokens, Mapping) else None,
        )


def reconcile(local: Optional[CachedPlan], remote: Optional[CachedPlan]) -> Tuple[Optional[CachedPlan], Optional[str]]:
    """
    Pick the authoritative copy and the tier that needs the winner written back.

    Remote wins only when its cachedAt is strictly newer. Equal timestamps keep
    local and need no write-back. An unparseable timestamp never wins.
    """
    if local is None and remote is None:
        return None, None
    if local is None:
        return remote, TIER_LOCAL
    if remote is None:
        return local, TIER_REMOTE

    local_at, remote_at = local.cached_at_dt, remote.cached_at_dt
    if remote_at is not None and (local_at is None or remote_at > local_at):
        return remote, TIER_LOCAL
    if local_at is not None and (remote_at is None or local_at > remote_at):
        return local, TIER_REMOTE
    return local, None


# ------------------------ Staleness ------------------------ #

@dataclass
class Staleness:
    age_exceeded: bool = False
    data_changed: bool = False
    reasons: List[str] = field(default_factory=list)

    @property
    def is_stale(self) -> bool:
        return self.age_exceeded or self.data_changed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isStale": self.is_stale,
            "ageExceeded": self.age_exceeded,
            "dataChanged": self.data_changed,
            "reasons": list(self.reasons),
        }


def assess_staleness(cached: CachedPlan, current_signature: Optional[str], now: Optional[datetime] = None) -> Staleness:
    """Both conditions are checked independently. A missing current signature skips the data check."""
    now = now or utc_now()
    cached_at = cached.cached_at_dt
    age_exceeded = cached_at is None or (now - cached_at) > STALE_AFTER
    data_changed = current_signature is not None and current_signature != cached.data_signature

    reasons = []
    if age_exceeded:
        reasons.append(AGE_REASON)
    if data_changed:
        reasons.append(DATA_CHANGED_REASON)
    return Staleness(age_exceeded=age_exceeded, data_changed=data_changed, reasons=reasons)


# ------------------------ Two-tier cache ------------------------ #

class PlanCache:
    def __init__(self, local: LocalPlanStore, remote: Optional[ToolDataStore] = None):
        self.local = local
        self.remote = remote

    def _read_local(self, user_id: str) -> Optional[CachedPlan]:
        try:
            cached = CachedPlan.from_dict(self.local.get_plan(user_id))
        except sqlite3.Error as e:
            logger.warning("Local plan cache read failed for %s: %s", user_id, e)
            return None
        return cached if cached and cached.user_id == user_id else None

    async def _read_remote(self, user_id: str, auth_token: str) -> Optional[CachedPlan]:
        if self.remote is None or not auth_token:
            return None
        try:
            record = await self.remote.load_one(user_id, auth_token, ORCHESTRATOR_PLAN_TOOL_ID)
        except ToolDataStoreError as e:
            logger.warning("Remote plan cache read failed for %s: %s", user_id, e)
            return None
        cached = CachedPlan.from_dict(record.get("data"), created=record.get("created")) if record else None
        return cached if cached and cached.user_id == user_id else None

    def _write_local(self, cached: CachedPlan):
        self.local.save_plan(cached.user_id, cached.cached_at, cached.to_dict())

    async def _write_remote(self, cached: CachedPlan, auth_token: str):
        await self.remote.save(cached.user_id, auth_token, ORCHESTRATOR_PLAN_TOOL_ID, cached.to_dict())

    async def load_cached(self, user_id: str, auth_token: str) -> Optional[CachedPlan]:
        local = self._read_local(user_id)
        remote = await self._read_remote(user_id, auth_token)
        winner, write_back = reconcile(local, remote)

        if winner is not None and write_back == TIER_LOCAL:
            try:
                self._write_local(winner)
            except sqlite3.Error as e:
                logger.warning("Local plan cache write-back failed for %s: %s", user_id, e)
        elif winner is not None and write_back == TIER_REMOTE and self.remote is not None and auth_token:
            try:
                await self._write_remote(winner, auth_token)
            except ToolDataStoreError as e:
                logger.warning("Remote plan cache write-back failed for %s: %s", user_id, e)
        return winner

    async def store(
        self,
        user_id: str,
        auth_token: str,
        plan: Plan,
        tier_used: str,
        tokens_used: Optional[Dict[str, int]],
        data_signature: str,
        now: Optional[datetime] = None,
    ) -> CachedPlan:
        """Write to both tiers. Raises CacheWriteError naming every tier that failed."""
        cached = CachedPlan(
            user_id=user_id,
            plan=plan,
            tier_used=tier_used,
            cached_at=to_iso(now or utc_now()),
            data_signature=data_signature,
            tokens_used=tokens_used,
        )

        failed = []
        try:
            self._write_local(cached)
        except sqlite3.Error as e:
            logger.warning("Local plan cache write failed for %s: %s", user_id, e)
            failed.append(TIER_LOCAL)

        if self.remote is not None:
            try:
                await self._write_remote(cached, auth_token)
            except ToolDataStoreError as e:
                logger.warning("Remote plan cache write failed for %s: %s", user_id, e)
                failed.append(TIER_REMOTE)

        if failed:
            raise CacheWriteError(f"Plan cache write failed for tier(s): {', '.join(failed)}", tiers=failed)
        return cached
