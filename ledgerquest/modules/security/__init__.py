"""One-time security hygiene rewards."""

from .service import SecurityRewardClaim, SecurityRewardService, SecurityRewardStatus

__all__ = ["SecurityRewardService", "SecurityRewardStatus", "SecurityRewardClaim"]
