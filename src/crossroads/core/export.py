"""Tabular (CSV) export of signups and committed assignments.

Read-only: export never resolves anything itself, it renders what the
resolver committed.
"""

from __future__ import annotations

import csv
import io
import logging
from typing import TYPE_CHECKING

from crossroads.core.lifecycle import load_training
from crossroads.core.resolver import get_assignment
from crossroads.core.signups import list_signups

if TYPE_CHECKING:
    from crossroads.db.repository import Repository
    from crossroads.models.roster import Assignment, SignupView

logger = logging.getLogger(__name__)

SIGNUP_COLUMNS = ["Account", "External Id", "Training", "Roles", "Comment"]
ASSIGNMENT_COLUMNS = ["Section", "Role", "Slot", "Account", "External Id", "Boss"]


def _to_csv(columns: list[str], rows: list[dict[str, object]]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=columns, lineterminator="\n")
    writer.writeheader()
    writer.writerows(rows)
    return buffer.getvalue()


async def export_signups_csv(repo: Repository, training_ids: list[int]) -> tuple[str, list[str]]:
    """One row per signup across the given trainings.

    Signups without roles are skipped and reported in the returned log.
    """
    rows: list[dict[str, object]] = []
    log: list[str] = []
    role_codes = {r.id: r.repr for r in await repo.list_all_roles()}

    for training_id in training_ids:
        training = await load_training(repo, training_id)
        for signup in await list_signups(repo, training_id):
            if not signup.accepted_role_ids:
                log.append(f"No roles selected for signup with id {signup.signup_id}. Skipped")
                continue
            rows.append(
                {
                    "Account": signup.account_name,
                    "External Id": signup.external_id,
                    "Training": training.title,
                    "Roles": ", ".join(role_codes.get(r, str(r)) for r in signup.accepted_role_ids),
                    "Comment": signup.comment or "none",
                }
            )

    logger.info(
        "signups_exported trainings=%s rows=%d skipped=%d",
        training_ids,
        len(rows),
        len(log),
    )
    return _to_csv(SIGNUP_COLUMNS, rows), log


def assignment_rows(
    assignment: Assignment,
    role_codes: dict[int, str],
    signups: dict[int, SignupView],
    boss_codes: dict[int, str],
) -> list[dict[str, object]]:
    """Flatten an assignment into CSV rows: slots, then benched, then boss rosters."""

    def who(signup_id: int | None) -> tuple[str, object]:
        if signup_id is None or signup_id not in signups:
            return "", ""
        view = signups[signup_id]
        return view.account_name, view.external_id

    rows: list[dict[str, object]] = []
    for fill in assignment.slots:
        account, external = who(fill.signup_id)
        rows.append(
            {
                "Section": "slot",
                "Role": role_codes.get(fill.role_id, str(fill.role_id)),
                "Slot": fill.slot_index + 1,
                "Account": account,
                "External Id": external,
                "Boss": "",
            }
        )
    for signup_id in assignment.benched:
        account, external = who(signup_id)
        rows.append(
            {
                "Section": "benched",
                "Role": "",
                "Slot": "",
                "Account": account,
                "External Id": external,
                "Boss": "",
            }
        )
    assigned = assignment.assigned
    for roster in assignment.boss_rosters:
        for signup_id in roster.signup_ids:
            account, external = who(signup_id)
            rows.append(
                {
                    "Section": "boss",
                    "Role": role_codes.get(assigned.get(signup_id, -1), ""),
                    "Slot": "",
                    "Account": account,
                    "External Id": external,
                    "Boss": boss_codes.get(roster.boss_id, str(roster.boss_id)),
                }
            )
    return rows


async def export_assignment_csv(repo: Repository, training_id: int) -> str:
    """The committed assignment of a training as CSV."""
    assignment = await get_assignment(repo, training_id)
    role_ids = sorted({f.role_id for f in assignment.slots})
    role_codes = {r.id: r.repr for r in await repo.get_roles(role_ids)}
    signups = {s.signup_id: s for s in await list_signups(repo, training_id)}
    boss_codes = {b.id: b.repr for b in await repo.get_training_bosses(training_id)}
    rows = assignment_rows(assignment, role_codes, signups, boss_codes)
    logger.info("assignment_exported training=%s rows=%d", training_id, len(rows))
    return _to_csv(ASSIGNMENT_COLUMNS, rows)
