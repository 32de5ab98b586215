"""
Role-based visibility for reports.

Admins and managers see every schedule row; employees only their own. Net
profit and material cost are admin-only figures.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from ..records import ScheduleRecord
from .aggregator import CategoryTotals

logger = logging.getLogger(__name__)


def normalize_name(name: Optional[str]) -> str:
    return (name or "").strip().lower()


@dataclass(frozen=True)
class Viewer:
    """The signed-in user a report is rendered for."""
    user_id: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None
    is_admin: bool = False
    is_manager: bool = False

    @property
    def is_elevated(self) -> bool:
        return self.is_admin or self.is_manager


def metadata_name(metadata: Optional[Dict[str, Any]]) -> Optional[str]:
    """Name from auth metadata: name, then full_name, then user_name."""
    if not metadata:
        return None
    for key in ("name", "full_name", "user_name"):
        value = (metadata.get(key) or "").strip()
        if value:
            return value
    return None


def resolve_viewer(
    repository,
    user_id: Optional[str],
    email: Optional[str] = None,
    admin_ids: Iterable[str] = (),
    admin_emails: Iterable[str] = (),
    metadata: Optional[Dict[str, Any]] = None,
) -> Viewer:
    """
    Work out a viewer's roles and display name.

    Admin if the id or e-mail is on the configured admin lists or the
    profile's is_admin flag is set. The name comes from the profile
    (display_name > full_name > name), then from auth metadata.
    """
    user_id = (user_id or "").strip() or None
    email_key = (email or "").strip().lower()

    is_admin = bool(user_id and user_id in set(admin_ids))
    is_admin = is_admin or bool(email_key and email_key in {e.lower() for e in admin_emails})
    is_manager = False
    name = None

    if user_id:
        profile = repository.get_profile(user_id)
        if profile is not None:
            name = profile.preferred_name
            is_admin = is_admin or profile.is_admin
            is_manager = profile.is_manager
        else:
            logger.debug(f"No profile for user {user_id}")

    if not name:
        name = metadata_name(metadata)

    return Viewer(
        user_id=user_id,
        email=email,
        name=name,
        is_admin=is_admin,
        is_manager=is_manager,
    )


def rows_for_viewer(schedules: Iterable[ScheduleRecord], viewer: Viewer) -> List[ScheduleRecord]:
    """
    Rows the viewer may see.

    Elevated viewers get everything. Others get rows assigned to their id or
    to their (case-insensitive) name; with neither they get nothing.
    """
    schedules = list(schedules)
    if viewer.is_elevated:
        return schedules

    user_id = (viewer.user_id or "").strip()
    name = normalize_name(viewer.name)
    if not user_id and not name:
        return []

    visible = []
    for record in schedules:
        match_id = bool(user_id) and (record.employee_id or "").strip() == user_id
        match_name = bool(name) and normalize_name(record.employee_name) == name
        if match_id or match_name:
            visible.append(record)
    return visible


def safe_metric(metric: str, viewer: Viewer) -> str:
    """Non-admins asking for net get revenue instead."""
    if metric == "net" and not viewer.is_admin:
        return "revenue"
    return metric


def mask_totals(totals: CategoryTotals, viewer: Viewer) -> Dict[str, Any]:
    """Totals as a dict with admin-only figures set to None for other viewers."""
    data = totals.to_dict()
    if not viewer.is_admin:
        data['material_cost'] = None
        data['grand_total'] = None
    return data