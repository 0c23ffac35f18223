# occupancy_engine/services/occurrence_ledger.py
from __future__ import annotations

from datetime import date as date_type, time, timedelta
from typing import Any

from sqlalchemy import and_, delete, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from occupancy_engine.core.config import get_settings
from occupancy_engine.core.errors import NotFoundError, ValidationError
from occupancy_engine.core.logging import get_logger
from occupancy_engine.models.ledger_entry import LedgerEntry
from occupancy_engine.models.schedule_rule import ScheduleRule
from occupancy_engine.schemas.occurrence import Occurrence, OccurrenceOrigin, OccurrenceOverride
from occupancy_engine.schemas.recurrence import RecurrenceSpec, Weekday, parse_recurrence
from occupancy_engine.services.recurrence_expander import ExpandedDate, expand_between

logger = get_logger(__name__)

_LEDGER_KEY = ["rule_id", "occurrence_date"]


def _dialect_insert(db: AsyncSession):
    """
    Pick the dialect-specific INSERT construct that supports ON CONFLICT.
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise RuntimeError(f"Keyed ledger upserts are not supported on dialect {dialect!r}")


def validate_hours(
    is_closed: bool,
    open_time: time | None,
    close_time: time | None,
) -> None:
    """
    Open and close are required, and ordered, unless the day is closed.
    """
    if is_closed:
        return
    if open_time is None:
        raise ValidationError("open_time is required unless is_closed is true.", field="open_time")
    if close_time is None:
        raise ValidationError("close_time is required unless is_closed is true.", field="close_time")
    if close_time <= open_time:
        raise ValidationError("close_time must be after open_time.", field="close_time")


def default_window(today: date_type) -> tuple[date_type, date_type]:
    """
    Whole calendar years around `today` used when no range is requested.
    """
    settings = get_settings()
    return (
        date_type(today.year - settings.LEDGER_LOOKBACK_YEARS, 1, 1),
        date_type(today.year + settings.LEDGER_LOOKAHEAD_YEARS, 12, 31),
    )


def rule_window(rule: ScheduleRule, start: date_type, end: date_type) -> tuple[date_type, date_type]:
    """
    Intersect [start, end] with the rule's effective window.
    """
    window_start = max(start, rule.effective_from_date)
    window_end = end if rule.effective_to_date is None else min(end, rule.effective_to_date)
    return window_start, window_end


class OccurrenceLedger:
    """
    Resolves rules into per-date occurrences backed by the ledger table.

    For every date a rule produces:
    - an existing ledger row (frozen or overridden) is used verbatim;
    - a date on or after `today` is projected live from the rule, unpersisted;
    - a past date with no row is frozen into the ledger exactly once, from
      the rule as it exists now.

    Freezing is an insert-if-absent on (rule_id, occurrence_date). When two
    requests race to freeze the same date the loser's insert is a no-op and
    it re-reads the winner's row.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def resolve(
        self,
        site_id: int,
        start_date: date_type,
        end_date: date_type,
        today: date_type,
    ) -> list[Occurrence]:
        """
        Resolve every occurrence of the site's rules within [start_date, end_date].

        Parameters
        ----------
        site_id:
            Site whose rules are resolved.
        start_date, end_date:
            Inclusive range of calendar dates.
        today:
            Site-local today; the boundary between history and projection.

        Returns
        -------
        list[Occurrence]
            Ordered by date, then rule id.
        """
        if end_date < start_date:
            raise ValidationError("end_date must be greater than or equal to start_date", field="end_date")

        rules_result = await self.db.execute(
            select(ScheduleRule).where(ScheduleRule.site_id == site_id).order_by(ScheduleRule.id)
        )
        rules = list(rules_result.scalars().all())

        entries_result = await self.db.execute(
            select(LedgerEntry).where(
                and_(
                    LedgerEntry.site_id == site_id,
                    LedgerEntry.occurrence_date >= start_date,
                    LedgerEntry.occurrence_date <= end_date,
                )
            )
        )
        entries: dict[int, dict[date_type, LedgerEntry]] = {}
        for entry in entries_result.scalars().all():
            entries.setdefault(entry.rule_id, {})[entry.occurrence_date] = entry

        occurrences: list[Occurrence] = []
        frozen_count = 0
        for rule in rules:
            rule_occurrences, frozen = await self._resolve_rule(
                rule,
                start_date,
                end_date,
                today,
                entries.get(rule.id, {}),
            )
            occurrences.extend(rule_occurrences)
            frozen_count += frozen

        if frozen_count:
            await self.db.commit()
            logger.info(
                "ledger_materialized",
                site_id=site_id,
                start_date=start_date.isoformat(),
                end_date=end_date.isoformat(),
                frozen=frozen_count,
            )

        occurrences.sort(key=lambda occ: (occ.occurrence_date, occ.rule_id))
        return occurrences

    async def _resolve_rule(
        self,
        rule: ScheduleRule,
        start_date: date_type,
        end_date: date_type,
        today: date_type,
        entries: dict[date_type, LedgerEntry],
    ) -> tuple[list[Occurrence], int]:
        window_start, window_end = rule_window(rule, start_date, end_date)
        if window_end < window_start:
            return [], 0

        in_window = {
            day: entry for day, entry in entries.items() if window_start <= day <= window_end
        }

        # Retired rules keep their persisted history and nothing else.
        if rule.retired:
            return [
                self._from_entry(entry, rule, today)
                for day, entry in sorted(in_window.items())
                if day < today
            ], 0

        spec = parse_recurrence(rule.recurrence)
        results: list[Occurrence] = []
        seen: set[date_type] = set()
        frozen = 0

        for expanded in expand_between(spec, window_start, window_end):
            day = expanded.day
            seen.add(day)
            entry = in_window.get(day)
            if entry is not None:
                results.append(self._from_entry(entry, rule, today))
            elif day >= today:
                results.append(self._from_rule(rule, spec, expanded, today))
            elif rule.frozen_through is not None and day <= rule.frozen_through:
                # History for this date was sealed without it.
                continue
            else:
                entry = await self._freeze(rule, spec, expanded)
                frozen += 1
                results.append(self._from_entry(entry, rule, today))

        # Rows the current recurrence no longer produces (history from an
        # earlier definition, or overrides) still stand.
        for day, entry in in_window.items():
            if day not in seen:
                results.append(self._from_entry(entry, rule, today))

        return results, frozen

    # ------------------------------------------------------------------
    # Materialization
    # ------------------------------------------------------------------

    def _frozen_values(
        self,
        rule: ScheduleRule,
        spec: RecurrenceSpec,
        expanded: ExpandedDate,
    ) -> dict[str, Any]:
        hours = expanded.hours
        if hours is not None:
            is_closed, open_time, close_time = hours.is_closed, hours.open_time, hours.close_time
        else:
            is_closed, open_time, close_time = rule.is_closed, rule.open_time, rule.close_time

        return {
            "rule_id": rule.id,
            "site_id": rule.site_id,
            "occurrence_date": expanded.day,
            "name": rule.name,
            "is_closed": bool(is_closed),
            "open_time": None if is_closed else open_time,
            "close_time": None if is_closed else close_time,
            "is_override": False,
        }

    async def _fetch_entry(self, rule_id: int, day: date_type) -> LedgerEntry:
        result = await self.db.execute(
            select(LedgerEntry).where(
                LedgerEntry.rule_id == rule_id,
                LedgerEntry.occurrence_date == day,
            )
        )
        return result.scalar_one()

    async def _freeze(
        self,
        rule: ScheduleRule,
        spec: RecurrenceSpec,
        expanded: ExpandedDate,
    ) -> LedgerEntry:
        """
        Insert-if-absent the frozen row for (rule, date) and return whichever
        row holds the key afterwards.
        """
        insert = _dialect_insert(self.db)
        stmt = (
            insert(LedgerEntry)
            .values(**self._frozen_values(rule, spec, expanded))
            .on_conflict_do_nothing(index_elements=_LEDGER_KEY)
        )
        result = await self.db.execute(stmt)
        if result.rowcount == 0:
            logger.info(
                "ledger_freeze_conflict_deferred",
                rule_id=rule.id,
                occurrence_date=expanded.day.isoformat(),
            )
        return await self._fetch_entry(rule.id, expanded.day)

    async def freeze_past(self, rule: ScheduleRule, today: date_type) -> int:
        """
        Freeze every past occurrence of `rule` since its effective_from_date that
        is not in the ledger yet, and mark its history sealed through yesterday.

        Must run before any edit or delete so the change cannot leak into
        dates before `today`. Does not commit.

        Returns
        -------
        int
            Number of rows newly inserted.
        """
        yesterday = today - timedelta(days=1)
        window_start, window_end = rule_window(rule, rule.effective_from_date, yesterday)
        if rule.frozen_through is not None:
            window_start = max(window_start, rule.frozen_through + timedelta(days=1))

        inserted = 0
        if window_start <= window_end:
            spec = parse_recurrence(rule.recurrence)
            insert = _dialect_insert(self.db)
            for expanded in expand_between(spec, window_start, window_end):
                stmt = (
                    insert(LedgerEntry)
                    .values(**self._frozen_values(rule, spec, expanded))
                    .on_conflict_do_nothing(index_elements=_LEDGER_KEY)
                )
                result = await self.db.execute(stmt)
                inserted += result.rowcount or 0

        if rule.frozen_through is None or rule.frozen_through < yesterday:
            rule.frozen_through = yesterday

        logger.info("ledger_history_sealed", rule_id=rule.id, through=yesterday.isoformat(), frozen=inserted)
        return inserted

    # ------------------------------------------------------------------
    # Overrides and removal
    # ------------------------------------------------------------------

    async def override(
        self,
        rule_id: int,
        occurrence_date: date_type,
        payload: OccurrenceOverride,
        today: date_type,
    ) -> Occurrence:
        """
        Record a manual correction for one (rule, date), replacing whatever
        the ledger held for that key.
        """
        rule = await self.db.get(ScheduleRule, rule_id)
        if rule is None:
            raise NotFoundError("Rule", rule_id)
        if rule.retired:
            raise ValidationError("Retired rules cannot be overridden.", field="rule_id")

        spec = parse_recurrence(rule.recurrence)
        window_start, window_end = rule_window(rule, occurrence_date, occurrence_date)
        produced = {item.day for item in expand_between(spec, window_start, window_end)}
        if occurrence_date not in produced:
            raise ValidationError(
                f"Rule {rule_id} has no occurrence on {occurrence_date.isoformat()}.",
                field="occurrence_date",
            )

        validate_hours(payload.is_closed, payload.open_time, payload.close_time)

        values = {
            "rule_id": rule.id,
            "site_id": rule.site_id,
            "occurrence_date": occurrence_date,
            "name": payload.name or rule.name,
            "is_closed": payload.is_closed,
            "open_time": None if payload.is_closed else payload.open_time,
            "close_time": None if payload.is_closed else payload.close_time,
            "is_override": True,
        }
        insert = _dialect_insert(self.db)
        stmt = insert(LedgerEntry).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=_LEDGER_KEY,
            set_={key: stmt.excluded[key] for key in ("name", "is_closed", "open_time", "close_time", "is_override")},
        )
        await self.db.execute(stmt)
        await self.db.commit()

        entry = await self._fetch_entry(rule.id, occurrence_date)
        await self.db.refresh(entry)
        logger.info("ledger_override_recorded", rule_id=rule.id, occurrence_date=occurrence_date.isoformat())
        return self._from_entry(entry, rule, today)

    async def entry_dates(
        self,
        rule_id: int,
        start_date: date_type | None = None,
        end_date: date_type | None = None,
    ) -> list[date_type]:
        conditions = [LedgerEntry.rule_id == rule_id]
        if start_date is not None:
            conditions.append(LedgerEntry.occurrence_date >= start_date)
        if end_date is not None:
            conditions.append(LedgerEntry.occurrence_date <= end_date)
        result = await self.db.execute(
            select(LedgerEntry.occurrence_date)
            .where(and_(*conditions))
            .order_by(LedgerEntry.occurrence_date)
        )
        return list(result.scalars().all())

    async def remove_from(self, rule_id: int, boundary: date_type) -> int:
        """
        Delete ledger rows for the rule dated on or after `boundary`.
        Does not commit.
        """
        result = await self.db.execute(
            delete(LedgerEntry).where(
                LedgerEntry.rule_id == rule_id,
                LedgerEntry.occurrence_date >= boundary,
            )
        )
        return result.rowcount or 0

    # ------------------------------------------------------------------
    # Row -> schema
    # ------------------------------------------------------------------

    @staticmethod
    def _from_entry(entry: LedgerEntry, rule: ScheduleRule, today: date_type) -> Occurrence:
        return Occurrence(
            rule_id=entry.rule_id,
            site_id=entry.site_id,
            occurrence_date=entry.occurrence_date,
            day_of_week=Weekday.of(entry.occurrence_date).value,
            name=entry.name,
            rule_type=rule.rule_type,
            is_closed=entry.is_closed,
            open_time=entry.open_time,
            close_time=entry.close_time,
            is_override=entry.is_override,
            origin=OccurrenceOrigin.OVERRIDE if entry.is_override else OccurrenceOrigin.FROZEN,
            is_past=entry.occurrence_date < today,
        )

    def _from_rule(
        self,
        rule: ScheduleRule,
        spec: RecurrenceSpec,
        expanded: ExpandedDate,
        today: date_type,
    ) -> Occurrence:
        values = self._frozen_values(rule, spec, expanded)
        return Occurrence(
            rule_id=rule.id,
            site_id=rule.site_id,
            occurrence_date=expanded.day,
            day_of_week=Weekday.of(expanded.day).value,
            name=rule.name,
            rule_type=rule.rule_type,
            is_closed=values["is_closed"],
            open_time=values["open_time"],
            close_time=values["close_time"],
            is_override=False,
            origin=OccurrenceOrigin.LIVE,
            is_past=expanded.day < today,
        )
