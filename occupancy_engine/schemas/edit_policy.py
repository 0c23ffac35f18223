# occupancy_engine/schemas/edit_policy.py
from __future__ import annotations

from datetime import date
from enum import Enum

from pydantic import BaseModel, Field


class DeleteMode(str, Enum):
    FULL_DELETE = "full_delete"
    PARTIAL_DELETE = "partial_delete"
    RULE_NOT_FOUND = "rule_not_found"


class DeleteClassification(BaseModel):
    """
    Outcome of classifying a delete request against a rule.
    """

    mode: DeleteMode
    cap_date: date | None = Field(
        None,
        description="New effective_to_date for a partial delete (from_date - 1 day).",
    )


class DeleteResult(BaseModel):
    """
    Response payload for DELETE /rules/{rule_id}.
    """

    rule_id: int
    mode: DeleteMode
    cap_date: date | None = None
    removed_count: int = Field(..., description="Occurrences removed on or after the delete boundary.")
    retired: bool
