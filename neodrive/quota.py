# Filename: neodrive/quota.py
"""Storage quota evaluation per subscription tier.

Usage is recomputed from the file records on every call; there is no running
counter and no reservation step, so two concurrent uploads can both pass the
check against the same snapshot.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional, Union

from sqlalchemy import func
from sqlmodel import Session, select

from .models import FileRecord
from .units import GB, MB, format_bytes


@dataclass(frozen=True)
class TierLimits:
    max_single_file_size: int
    max_total_storage: int
    allowed_mime_types: Optional[FrozenSet[str]] = None  # None = unrestricted


SUBSCRIPTION_LIMITS: Dict[str, TierLimits] = {
    "free": TierLimits(max_single_file_size=100 * MB, max_total_storage=200 * MB),
    "pro": TierLimits(max_single_file_size=5 * GB, max_total_storage=10 * GB),
    "premium": TierLimits(max_single_file_size=50 * GB, max_total_storage=100 * GB),
}
DEFAULT_TIER = "free"


class DenialReason(str, Enum):
    file_too_large = "file_too_large"
    mime_type_not_allowed = "mime_type_not_allowed"
    total_quota_exceeded = "total_quota_exceeded"


@dataclass(frozen=True)
class Allowed:
    remaining_after: int


@dataclass(frozen=True)
class Denied:
    reason: DenialReason
    message: str


@dataclass(frozen=True)
class SubscriptionUsage:
    used_storage: int
    storage_limit: int
    remaining_storage: int
    usage_percentage: int
    subscription: str


def limits_for(tier: str, limits: Dict[str, TierLimits] = SUBSCRIPTION_LIMITS) -> TierLimits:
    return limits.get((tier or "").lower(), limits[DEFAULT_TIER])


def used_storage(db: Session, user_id: str) -> int:
    stmt = select(func.coalesce(func.sum(FileRecord.size), 0)).where(FileRecord.user_id == user_id)
    return int(db.exec(stmt).one())


def check_limits(
    tier: str,
    file_size: int,
    mime_type: Optional[str],
    current_usage: int,
    limits: Dict[str, TierLimits] = SUBSCRIPTION_LIMITS,
) -> Union[Allowed, Denied]:
    tier_limits = limits_for(tier, limits)

    if file_size > tier_limits.max_single_file_size:
        return Denied(
            DenialReason.file_too_large,
            f"File is too large. The maximum file size for your plan is "
            f"{format_bytes(tier_limits.max_single_file_size)}.",
        )

    allowed_types = tier_limits.allowed_mime_types
    if allowed_types is not None and (mime_type or "") not in allowed_types:
        return Denied(
            DenialReason.mime_type_not_allowed,
            f"Files of type '{mime_type}' are not allowed on your plan.",
        )

    remaining = max(0, tier_limits.max_total_storage - current_usage)
    # boundary inclusive: filling the quota exactly is allowed
    if current_usage + file_size > tier_limits.max_total_storage:
        return Denied(
            DenialReason.total_quota_exceeded,
            f"Storage limit exceeded. You have {format_bytes(remaining)} remaining. "
            f"Please upgrade your subscription or delete some files.",
        )
    return Allowed(remaining_after=remaining - file_size)


def storage_usage(db: Session, user_id: str, tier: str) -> SubscriptionUsage:
    used = used_storage(db, user_id)
    limit = limits_for(tier).max_total_storage
    return SubscriptionUsage(
        used_storage=used,
        storage_limit=limit,
        remaining_storage=max(0, limit - used),
        usage_percentage=round(used / limit * 100) if limit else 100,
        subscription=tier,
    )
