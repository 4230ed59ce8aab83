from datetime import datetime, timedelta, timezone

from app.models.review import DocumentStatus, TaskStatus
from app.schemas.documents import DocumentCreate
from app.schemas.tasks import TaskCreate
from app.services import queries
from app.services.approver_policy import set_approver_policy
from app.services.documents import Documents
from app.services.permissions import Actor
from app.services.tasks import Tasks
from tests.mocks import StaticApproverPolicy


def _document(db_session, author, submit=False):
    doc = Documents.create(
        db_session,
        Actor.from_user(author),
        DocumentCreate(
            title="Sampling plan",
            content="plan",
            category="procedure",
            department="Quality",
        ),
    )
    if submit:
        doc = Documents.submit(db_session, Actor.from_user(author), str(doc.id))
    return doc


def _task(db_session, assigner, assignee, due=None):
    return Tasks.create(
        db_session,
        Actor.from_user(assigner),
        TaskCreate(title="Check samples", assigned_to=assignee.id, due_date=due),
    )


class TestProjections:
    def test_pending_documents(self, db_session, person, manager):
        set_approver_policy(StaticApproverPolicy(manager))
        _document(db_session, person)
        pending = _document(db_session, person, submit=True)
        assert [d.id for d in queries.pending_documents(db_session)] == [pending.id]

    def test_open_tasks_for_user(self, db_session, person, manager):
        open_task = _task(db_session, manager, person)
        closed = _task(db_session, manager, person)
        Tasks.transition(
            db_session, Actor.from_user(manager), str(closed.id), "canceled"
        )
        _task(db_session, manager, manager)
        ids = [t.id for t in queries.open_tasks_for(db_session, person.id)]
        assert ids == [open_task.id]

    def test_unresolved_approvals_for_user(self, db_session, person, manager, admin):
        set_approver_policy(StaticApproverPolicy(manager, admin))
        doc = _document(db_session, person, submit=True)
        rows = queries.unresolved_approvals_for(db_session, manager.id)
        assert [(a.entity_id, a.user_id) for a in rows] == [(doc.id, manager.id)]

    def test_overdue_recomputed_at_query_time(self, db_session, person, manager):
        now = datetime.now(timezone.utc)
        task = _task(db_session, manager, person, due=now + timedelta(hours=1))
        assert queries.overdue_tasks(db_session, now) == []
        later = now + timedelta(hours=2)
        assert [t.id for t in queries.overdue_tasks(db_session, later)] == [task.id]

    def test_dashboard_stats(self, db_session, person, manager):
        set_approver_policy(StaticApproverPolicy(manager))
        _document(db_session, person)
        _document(db_session, person, submit=True)
        now = datetime.now(timezone.utc)
        _task(db_session, manager, person, due=now - timedelta(days=1))
        done = _task(db_session, manager, person)
        actor = Actor.from_user(person)
        Tasks.transition(db_session, actor, str(done.id), "in_progress")
        Tasks.transition(db_session, actor, str(done.id), "completed")
        assert done.status == TaskStatus.completed

        stats = queries.dashboard_stats(db_session, now)
        assert stats["documents_by_status"][DocumentStatus.draft.value] == 1
        assert stats["documents_by_status"][DocumentStatus.pending.value] == 1
        assert stats["documents_by_status"][DocumentStatus.approved.value] == 0
        assert stats["open_tasks"] == 1
        assert stats["overdue_tasks"] == 1
        assert stats["pending_approvals"] == 1

    def test_recent_activities(self, db_session, person):
        _document(db_session, person)
        recent = queries.recent_activities(db_session, limit=5)
        assert [a.action for a in recent] == ["created"]
