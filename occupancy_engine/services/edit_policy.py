# occupancy_engine/services/edit_policy.py
from __future__ import annotations

from datetime import date as date_type, timedelta
from typing import Any

from occupancy_engine.core.errors import ValidationError
from occupancy_engine.models.schedule_rule import ScheduleRule
from occupancy_engine.schemas.edit_policy import DeleteClassification, DeleteMode
from occupancy_engine.schemas.recurrence import Single, parse_recurrence


class EditPolicyGuard:
    """
    Decides which mutations are legal against a rule on a given day.

    Rules
    -----
    1) Unknown rule                          => RULE_NOT_FOUND
    2) `single` rule                         => FULL_DELETE, whatever from_date is
    3) No from_date                          => FULL_DELETE
    4) from_date before today                => rejected (would rewrite history)
    5) Otherwise                             => PARTIAL_DELETE capped at from_date - 1

    Edits follow the same forward-only principle: nothing dated strictly
    before `today` may change.
    """

    @staticmethod
    def classify_delete(
        rule: ScheduleRule | None,
        from_date: date_type | None,
        today: date_type,
    ) -> DeleteClassification:
        if rule is None:
            return DeleteClassification(mode=DeleteMode.RULE_NOT_FOUND)

        spec = parse_recurrence(rule.recurrence)
        if isinstance(spec, Single) or from_date is None:
            return DeleteClassification(mode=DeleteMode.FULL_DELETE)

        if from_date < today:
            raise ValidationError(
                f"from_date {from_date.isoformat()} is before today ({today.isoformat()}); "
                "past occurrences cannot be deleted.",
                field="from_date",
            )

        return DeleteClassification(
            mode=DeleteMode.PARTIAL_DELETE,
            cap_date=from_date - timedelta(days=1),
        )

    @staticmethod
    def check_edit(
        rule: ScheduleRule,
        changes: dict[str, Any],
        today: date_type,
    ) -> None:
        """
        Reject an edit that would alter anything dated before `today`.

        Raises
        ------
        ValidationError
            If the rule is retired, already entirely in the past, or the edit
            moves dates across the today boundary.
        """
        if rule.retired:
            raise ValidationError("Retired rules cannot be edited.", field="rule_id")

        if rule.effective_to_date is not None and rule.effective_to_date < today:
            raise ValidationError(
                "Rule ended before today; its occurrences are history.",
                field="rule_id",
            )

        new_from = changes.get("effective_from_date")
        if new_from is not None and new_from != rule.effective_from_date:
            if rule.effective_from_date < today:
                raise ValidationError(
                    "effective_from_date cannot change once the rule has started.",
                    field="effective_from_date",
                )
            if new_from < today:
                raise ValidationError(
                    "effective_from_date cannot be moved before today.",
                    field="effective_from_date",
                )

        new_spec = changes.get("recurrence")
        if isinstance(new_spec, Single) and new_spec.date < today:
            raise ValidationError(
                "A one-off rule cannot be moved to a past date.",
                field="recurrence",
            )
