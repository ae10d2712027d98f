"""
Catalog scanning.

Turns the rows of the remote app table into App records with resolved
identifiers and a classified push status.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional


ELLIPSIS_MARKERS = ("...", "…")


class PushStatus(Enum):
    """Production push certificate status of a catalog entry."""
    NOT_CONFIGURED = "not_configured"
    CONFIGURABLE_FOR_PRODUCTION = "configurable_for_production"
    ENABLED_FOR_PRODUCTION = "enabled_for_production"


@dataclass(frozen=True)
class CatalogRow:
    """
    Raw text of one table row as read by the console driver.

    name_text is None when the row has no name control (headers, spacers).
    """
    name_text: Optional[str]
    status_text: str = ""
    name_title: Optional[str] = None
    configure_ref: Optional[str] = None


@dataclass(frozen=True)
class App:
    """A registered application."""
    id: str
    display_name: str
    push_status: PushStatus
    configure_ref: Optional[str] = None


def classify_status(status_text: str) -> PushStatus:
    """
    Map the status column text to a PushStatus.

    Args:
        status_text: Visible text of the status cell

    Returns:
        ENABLED_FOR_PRODUCTION, CONFIGURABLE_FOR_PRODUCTION or NOT_CONFIGURED
    """
    if "Enabled for Production" in status_text:
        return PushStatus.ENABLED_FOR_PRODUCTION
    if "Configurable for Production" in status_text:
        return PushStatus.CONFIGURABLE_FOR_PRODUCTION
    return PushStatus.NOT_CONFIGURED


def is_truncated(text: str) -> bool:
    return text.strip().endswith(ELLIPSIS_MARKERS)


def resolve_app_id(name_text: str, name_title: Optional[str] = None) -> str:
    """
    Resolve the full identifier of a row.

    The table truncates long names with an ellipsis; the full name is then
    only available from the title attribute.
    """
    if is_truncated(name_text) and name_title and name_title.strip():
        return name_title.strip()
    return name_text.strip()


def scan(rows: Iterable[CatalogRow]) -> List[App]:
    """
    Read catalog rows into App records, preserving table order.

    Rows without a name control are skipped.
    """
    apps = []

    for row in rows:
        if row.name_text is None:
            continue

        apps.append(App(
            id=resolve_app_id(row.name_text, row.name_title),
            display_name=row.name_text.strip(),
            push_status=classify_status(row.status_text),
            configure_ref=row.configure_ref,
        ))

    return apps
