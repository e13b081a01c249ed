# ============================================================================
# FILE: agenda/api/dependencies.py
# Shared request dependencies
# ============================================================================
from datetime import datetime
from fastapi import Path

from agenda.models import Owner, OwnerType
from agenda.utils.clock import utcnow


def get_owner(
        owner_type: OwnerType = Path(..., description="unit or agent"),
        owner_id: int = Path(..., ge=1)
) -> Owner:
    """Owner addressed by /{owner_type}/{owner_id}"""
    return Owner(owner_type, owner_id)


def get_now() -> datetime:
    """Current instant; overridden in tests to pin the clock"""
    return utcnow()
