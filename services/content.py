"""Helpers shared by the template and readme services."""

from __future__ import annotations

import uuid
from typing import Sequence

from errors import ForbiddenError, NotFoundError
from repositories.base import INCREMENT, as_uuid
from repositories.widgets import WidgetRepository


async def bump_widget_users(
    widgets: WidgetRepository, widget_ids: Sequence[uuid.UUID | str], delta: str = INCREMENT
) -> None:
    """Apply *delta* to ``num_of_users`` of every referenced widget.

    All ids must resolve; a dangling reference aborts the enclosing
    transaction with NotFoundError before any counter moves.
    """
    wanted = list(dict.fromkeys(as_uuid(i, field="widgets") for i in widget_ids))
    if not wanted:
        return
    found = await widgets.get_by_ids(wanted)
    missing = set(wanted) - {w.id for w in found}
    if missing:
        raise NotFoundError(
            "widget not found", details={"widgets": sorted(str(i) for i in missing)}
        )
    for widget in found:
        await widgets.update({"num_of_users": delta}, widget.id)


def require_owner(user_id: uuid.UUID, owner_id: uuid.UUID, what: str) -> None:
    if user_id != owner_id:
        raise ForbiddenError(f"{what} belongs to another user")
