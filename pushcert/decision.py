"""
Per-app action selection.

Pure mapping from an app's push status, the app filter and the refresh
policy to the action the run takes for it.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List

from .catalog import App, PushStatus


class Action(Enum):
    """What the run does with a catalog entry."""
    SKIP = "skip"
    CONFIGURE_NEW = "configure_new"
    RENEW_EXISTING = "renew_existing"


class DecisionReason(Enum):
    """Why an action was chosen."""
    FILTERED_OUT = "filtered_out"
    NOT_CONFIGURABLE = "not_configurable"
    ALREADY_ENABLED = "already_enabled"
    REFRESH_REQUESTED = "refresh_requested"
    CONFIGURABLE = "configurable"


@dataclass(frozen=True)
class Decision:
    """Action chosen for one app."""
    app: App
    action: Action
    reason: DecisionReason


def matches_filter(app_id: str, app_filter: str) -> bool:
    """
    Check an identifier against the configured suffix filter.

    An empty filter matches every app.
    """
    return not app_filter or app_id.endswith(app_filter)


def decide(app: App, refresh_existing: bool, app_filter: str = "") -> Decision:
    """
    Choose the action for an app.

    Args:
        app: Catalog entry
        refresh_existing: Renew certificates that are already enabled
        app_filter: Identifier suffix an app must end with

    Returns:
        Decision with the action and its reason
    """
    if not matches_filter(app.id, app_filter):
        return Decision(app, Action.SKIP, DecisionReason.FILTERED_OUT)

    if app.push_status == PushStatus.ENABLED_FOR_PRODUCTION:
        if refresh_existing:
            return Decision(app, Action.RENEW_EXISTING, DecisionReason.REFRESH_REQUESTED)
        return Decision(app, Action.SKIP, DecisionReason.ALREADY_ENABLED)

    if app.push_status == PushStatus.CONFIGURABLE_FOR_PRODUCTION:
        return Decision(app, Action.CONFIGURE_NEW, DecisionReason.CONFIGURABLE)

    return Decision(app, Action.SKIP, DecisionReason.NOT_CONFIGURABLE)


def plan(apps: List[App], refresh_existing: bool, app_filter: str = "") -> List[Decision]:
    """Decide every app in catalog order."""
    return [decide(app, refresh_existing, app_filter) for app in apps]
