import pytest
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.bulk_uploads.reconciler import ConsistencyReconciler
from app.auth.models import Account, generate_account_id
from app.auth.profiles import with_children
from app.auth.security import hash_password

from factories import CENTER_ID


async def _reload(db: AsyncSession, account_id: str) -> Account:
    result = await db.execute(
        select(Account).where(Account.id == account_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def _family(db: AsyncSession, make_account, children: int = 2):
    """A parent plus students, linked both ways. Returns ids."""
    parent = await make_account("parent", "mom@example.com")
    parent_id = parent.id
    student_ids = []
    for n in range(1, children + 1):
        student = await make_account("student", f"kid{n}@example.com", profile={"parent_id": parent_id})
        student_ids.append(student.id)
    parent = await _reload(db, parent_id)
    parent.profile = with_children(parent.profile, student_ids)
    await db.commit()
    return parent_id, student_ids


@pytest.mark.asyncio
async def test_deleted_student_is_dropped_once(db_session: AsyncSession, make_account) -> None:
    parent_id, (s1, s2) = await _family(db_session, make_account)
    await db_session.delete(await _reload(db_session, s2))
    await db_session.commit()

    reconciler = ConsistencyReconciler(db_session)

    assert await reconciler.reconcile() == 1
    assert [ref.dangling_id for ref in reconciler.dangling] == [s2]
    assert (await _reload(db_session, parent_id)).children_ids == [s1]
    assert await reconciler.reconcile() == 0


@pytest.mark.asyncio
async def test_consistent_data_is_not_written(db_session: AsyncSession, make_account) -> None:
    parent_id, student_ids = await _family(db_session, make_account)

    assert await ConsistencyReconciler(db_session).reconcile() == 0
    assert (await _reload(db_session, parent_id)).children_ids == student_ids


@pytest.mark.asyncio
async def test_unlisted_student_is_added_to_its_parent(db_session: AsyncSession, make_account) -> None:
    parent_id, (s1, s2) = await _family(db_session, make_account)
    parent = await _reload(db_session, parent_id)
    parent.profile = with_children(parent.profile, [s1])
    await db_session.commit()

    assert await ConsistencyReconciler(db_session).reconcile() == 1
    assert (await _reload(db_session, parent_id)).children_ids == [s1, s2]


@pytest.mark.asyncio
async def test_student_pointing_at_missing_parent_is_cleared(db_session: AsyncSession, make_account) -> None:
    orphan = await make_account("student", "orphan@example.com", profile={"parent_id": "f" * 24})
    orphan_id = orphan.id

    reconciler = ConsistencyReconciler(db_session)

    assert await reconciler.reconcile() == 0
    assert (await _reload(db_session, orphan_id)).parent_id is None
    assert reconciler.dangling[0].owner_id == orphan_id


@pytest.mark.asyncio
async def test_child_claimed_by_another_parent_moves(db_session: AsyncSession, make_account) -> None:
    mom_id, (s1, s2) = await _family(db_session, make_account)
    dad = await make_account("parent", "dad@example.com", profile={"assignments": {"children": [s2]}})
    dad_id = dad.id
    # s2 names mom but both parents list it
    assert await ConsistencyReconciler(db_session).reconcile() == 1

    assert (await _reload(db_session, dad_id)).children_ids == []
    assert (await _reload(db_session, mom_id)).children_ids == [s1, s2]


@pytest.mark.asyncio
async def test_non_student_ids_and_duplicates_are_removed(db_session: AsyncSession, make_account) -> None:
    parent_id, (s1,) = await _family(db_session, make_account, children=1)
    tutor = await make_account("tutor", "tutor@example.com")
    parent = await _reload(db_session, parent_id)
    parent.profile = with_children(parent.profile, [s1, tutor.id, s1])
    await db_session.commit()

    assert await ConsistencyReconciler(db_session).reconcile() == 1
    assert (await _reload(db_session, parent_id)).children_ids == [s1]


@pytest.mark.asyncio
async def test_child_linked_after_the_snapshot_is_kept(db_session: AsyncSession, make_account, monkeypatch) -> None:
    parent_id, (s1,) = await _family(db_session, make_account, children=1)
    parent = await _reload(db_session, parent_id)
    stale_profile = with_children(parent.profile, [s1, "0" * 24])
    parent.profile = stale_profile
    await db_session.commit()

    late = Account(
        id=generate_account_id(),
        email="late@example.com",
        username="late",
        password_hash=hash_password("Secret1!"),
        role="student",
        center_id=CENTER_ID,
        first_name="Late",
        last_name="Student",
        profile={"parent_id": parent_id},
    )
    lock_parents = ConsistencyReconciler._lock_parents

    async def link_concurrently(self, parent_ids):
        # another batch links a student between the snapshot and the write
        self.db.add(late)
        await self.db.flush()
        await self.db.execute(
            update(Account)
            .where(Account.id == parent_id)
            .values(profile=with_children(stale_profile, [s1, "0" * 24, late.id]))
        )
        return await lock_parents(self, parent_ids)

    monkeypatch.setattr(ConsistencyReconciler, "_lock_parents", link_concurrently)
    reconciler = ConsistencyReconciler(db_session)

    assert await reconciler.reconcile() == 1
    assert (await _reload(db_session, parent_id)).children_ids == [s1, late.id]
    assert [ref.dangling_id for ref in reconciler.dangling] == ["0" * 24]


@pytest.mark.asyncio
async def test_malformed_assignments_read_as_no_children(db_session: AsyncSession, make_account) -> None:
    parent = await make_account("parent", "mom@example.com", profile={"assignments": ["not", "an", "object"]})
    parent_id = parent.id
    other = await make_account("parent", "dad@example.com", profile={"assignments": {"children": "oops"}})
    student = await make_account("student", "kid@example.com", profile={"parent_id": parent_id})
    student_id = student.id

    assert other.children_ids == []
    assert await ConsistencyReconciler(db_session).reconcile() == 1
    assert (await _reload(db_session, parent_id)).children_ids == [student_id]
