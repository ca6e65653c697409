# services/rewards.py
# XP-gated reward tiers. One reward per (account, tier); minting the badge
# token itself happens elsewhere, we only record the claim.

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from .. import config
from ..Database.store import add_unique, xp_points
from ..errors import AuthorizationError, NotFoundError, StateConflictError
from ..models import Reward

log = logging.getLogger("gigchain.rewards")


@dataclass(frozen=True)
class RewardTier:
    reward_id: str
    xp_required: int
    name: str


REWARD_TIERS: Dict[str, RewardTier] = {
    "BRONZE_BADGE": RewardTier("BRONZE_BADGE", 100, "Bronze Badge"),
    "SILVER_BADGE": RewardTier("SILVER_BADGE", 500, "Silver Badge"),
    "GOLD_BADGE": RewardTier("GOLD_BADGE", 2000, "Gold Badge"),
}


def reward_overview(session: Session, account_id: str) -> Dict[str, Any]:
    xp = xp_points(session, account_id)
    claimed = {
        r.reward_id: r
        for r in session.query(Reward).filter(Reward.user_account_id == account_id).all()
    }
    tiers: List[Dict[str, Any]] = []
    for tier in REWARD_TIERS.values():
        tiers.append({
            "reward_id": tier.reward_id,
            "name": tier.name,
            "xp_required": tier.xp_required,
            "claimed": tier.reward_id in claimed,
            "eligible": xp >= tier.xp_required and tier.reward_id not in claimed,
        })
    return {"account_id": account_id, "xp_points": xp, "tiers": tiers}


def claim_reward(
    session: Session,
    *,
    account_id: str,
    reward_id: str,
    serial_number: Optional[int] = None,
) -> Reward:
    tier = REWARD_TIERS.get(reward_id)
    if tier is None:
        raise NotFoundError(f"Unknown reward {reward_id}", code="reward_not_found", entity_id=reward_id)

    xp = xp_points(session, account_id)
    if xp < tier.xp_required:
        raise AuthorizationError(
            "Not eligible for this reward.",
            code="insufficient_xp",
            entity_id=account_id,
            expected=tier.xp_required,
            actual=xp,
        )

    reward = Reward(
        user_account_id=account_id,
        reward_id=reward_id,
        token_id=config.reward_token_id(reward_id),
        serial_number=serial_number,
    )
    try:
        add_unique(session, reward, "Reward already claimed.", entity_id=account_id)
    except StateConflictError:
        log.info("duplicate claim of %s by %s", reward_id, account_id)
        raise
    session.commit()
    session.refresh(reward)
    log.info("reward %s claimed by %s (xp=%s)", reward_id, account_id, xp)
    return reward
