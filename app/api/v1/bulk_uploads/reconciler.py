"""
Repairs drift between parents' ``assignments.children`` and the student accounts
that actually exist.

The accounts table is the source of truth; a parent's children list is only an
index over it. Students whose ``parent_id`` points nowhere lose the reference,
parents drop ids that are not (or no longer) their students, and parents pick
up students that name them but are missing from the list.

A sweep first plans from an unlocked snapshot. Parents that need a new list
are then locked and the lists recomputed from fresh rows, so a child linked by
a concurrent batch in between is kept.
"""

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import Account
from app.auth.profiles import with_children, with_parent
from app.core.enums import AccountRole
from app.core.exceptions import DanglingReferenceError


logger = logging.getLogger(__name__)


class _Ownership:
    """Which existing parent each student belongs to."""

    def __init__(self, students: Iterable[Account], parent_ids: Set[str]) -> None:
        self.owner_of: Dict[str, Optional[str]] = {}
        self.claimed_by: Dict[str, List[str]] = defaultdict(list)
        self.orphans: List[Account] = []
        for student in students:
            owner = student.parent_id
            if owner and owner not in parent_ids:
                self.orphans.append(student)
                owner = None
            self.owner_of[student.id] = owner
            if owner:
                self.claimed_by[owner].append(student.id)

    def children_for(self, parent: Account) -> Tuple[List[str], List[str]]:
        """Repaired children list of ``parent`` and the ids dropped because no student has them."""
        repaired: List[str] = []
        dangling: List[str] = []
        for child_id in parent.children_ids:
            if child_id in repaired:
                continue
            if child_id not in self.owner_of:
                dangling.append(child_id)
                continue
            if self.owner_of[child_id] not in (None, parent.id):
                continue
            repaired.append(child_id)
        repaired.extend(s for s in self.claimed_by[parent.id] if s not in repaired)
        return repaired, dangling


class ConsistencyReconciler:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self.dangling: List[DanglingReferenceError] = []

    async def _accounts(self, role: AccountRole) -> List[Account]:
        result = await self.db.execute(
            select(Account)
            .where(Account.role == role.value)
            .order_by(Account.created_at, Account.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def _parent_ids(self) -> Set[str]:
        result = await self.db.execute(select(Account.id).where(Account.role == AccountRole.PARENT.value))
        return set(result.scalars().all())

    async def _lock_parents(self, parent_ids: List[str]) -> List[Account]:
        """Re-read the given parents FOR UPDATE, in id order."""
        result = await self.db.execute(
            select(Account)
            .where(Account.id.in_(parent_ids))
            .order_by(Account.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def reconcile(self) -> int:
        """Run one sweep in its own transaction; returns the number of parents whose list was rewritten."""
        self.dangling = []
        parents = await self._accounts(AccountRole.PARENT)
        plan = _Ownership(await self._accounts(AccountRole.STUDENT), {p.id for p in parents})
        stale = [p.id for p in parents if plan.children_for(p)[0] != p.children_ids]
        if not stale and not plan.orphans:
            await self.db.rollback()
            logger.info("Reconciliation finished: nothing to repair")
            return 0

        locked = await self._lock_parents(stale) if stale else []
        # Students before parent ids: a student and its new parent commit together
        students = await self._accounts(AccountRole.STUDENT)
        ownership = _Ownership(students, await self._parent_ids())

        for student in ownership.orphans:
            self._note(DanglingReferenceError(student.parent_id, student.id))
            student.profile = with_parent(student.profile, None)

        parents_repaired = 0
        for parent in locked:
            current = parent.children_ids
            repaired, dangling = ownership.children_for(parent)
            for child_id in dangling:
                self._note(DanglingReferenceError(child_id, parent.id))
            if repaired != current:
                parent.profile = with_children(parent.profile, repaired)
                parents_repaired += 1
                logger.info("Repaired children of parent %s: %s -> %s", parent.id, current, repaired)

        await self.db.commit()
        logger.info(
            "Reconciliation finished: %s parents repaired, %s student references cleared",
            parents_repaired,
            len(ownership.orphans),
        )
        return parents_repaired

    def _note(self, ref: DanglingReferenceError) -> None:
        self.dangling.append(ref)
        logger.info("Dangling reference: %s", ref)
