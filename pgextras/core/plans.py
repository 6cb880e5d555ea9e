"""
Plan tier checks.

Guards fail closed: an attachment without a plan name is treated as
ineligible.
"""

import logging
import re
from typing import Optional

from .errors import UnsupportedPlanTier

logger = logging.getLogger(__name__)

STARTER_PLAN = re.compile(r"(dev|basic)$")
ESSENTIAL_TIER_PLAN = re.compile(r"(dev|basic|essential-\d+)$")


def _plan_name(attachment) -> Optional[str]:
    if attachment is None:
        return None
    return getattr(attachment, "plan_name", None) or None


def ensure_non_starter_plan(attachment) -> None:
    """
    Reject hobby (dev/basic) plans.

    Raises:
        UnsupportedPlanTier: If the plan is a hobby plan or unknown
    """
    plan = _plan_name(attachment)
    if plan is None:
        logger.info("Rejecting operation: plan could not be determined")
        raise UnsupportedPlanTier("This operation is not supported: the database plan could not be determined.")
    if STARTER_PLAN.search(plan):
        logger.info(f"Rejecting operation on hobby plan {plan}")
        raise UnsupportedPlanTier("This operation is not supported by Hobby-tier databases.")


def ensure_essential_tier_plan(attachment) -> None:
    """
    Reject hobby and essential-N plans.

    Raises:
        UnsupportedPlanTier: If the plan is essential-tier or unknown
    """
    plan = _plan_name(attachment)
    if plan is None:
        logger.info("Rejecting operation: plan could not be determined")
        raise UnsupportedPlanTier("This operation is not supported: the database plan could not be determined.")
    if ESSENTIAL_TIER_PLAN.search(plan):
        logger.info(f"Rejecting operation on essential-tier plan {plan}")
        raise UnsupportedPlanTier("This operation is not supported by Essential-tier databases.")


def is_essential_plan(attachment) -> bool:
    """True when the tier part of the plan name starts with 'essential'."""
    plan = _plan_name(attachment)
    if plan is None:
        return False
    parts = plan.split(":")
    if len(parts) < 2:
        return False
    return parts[1].startswith("essential")


def is_starter_plan(attachment) -> bool:
    plan = _plan_name(attachment)
    return bool(plan and STARTER_PLAN.search(plan))
