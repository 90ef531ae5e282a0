import logging

from django.utils import timezone

from core.exceptions import PermissionDeniedError, TaskTransitionError
from core.repositories import (
    OrganizationRepository, ProjectRepository, ProjectTaskRepository, now_iso,
)
from financeapp.services.budget_service import parse_date
from financeapp.services.invoice_service import InvoiceService

from ..board_events import notify_board_changed
from ..classifier import (
    STATUS_APPROVED, STATUS_IN_REVIEW, STATUS_ONGOING, TODO_LIMIT, ReviewGraceWindow, Snapshot,
    is_ongoing_incomplete, urgency_rank,
)
from ..status import COMPLETED, PAUSED, calculate_project_progress, resolve_project_status

logger = logging.getLogger(__name__)


def load_board_snapshot(freelancer_id, store=None):
    """Everything the board needs for one freelancer, read fresh from the store"""
    projects = ProjectRepository(store).all()
    own_ids = {p.get('projectId') for p in projects if p.get('freelancerId') == freelancer_id}
    project_tasks = [
        entry for entry in ProjectTaskRepository(store).all()
        if entry.get('projectId') in own_ids
    ]
    return Snapshot(
        project_tasks=project_tasks,
        projects=[p for p in projects if p.get('projectId') in own_ids],
        organizations=OrganizationRepository(store).all(),
    )


class TaskService:
    """Task transitions driven by the freelancer (submit) and commissioner (review)"""

    def __init__(self, store=None, grace_window=None):
        self.store = store
        self.projects = ProjectRepository(store)
        self.project_tasks = ProjectTaskRepository(store)
        self.grace_window = grace_window or ReviewGraceWindow()

    def _check_role(self, project, user_id, role):
        field = 'freelancerId' if role == 'freelancer' else 'commissionerId'
        if project.get(field) != user_id:
            raise PermissionDeniedError(f"Only the project {role} can do this")

    def submit(self, project_id, task_id, user_id, reference_url=None):
        project = self.projects.get(project_id)
        self._check_role(project, user_id, 'freelancer')
        _, task = self.project_tasks.get_task(project_id, task_id)

        if not is_ongoing_incomplete(task):
            raise TaskTransitionError(f"Task {task_id} is '{task.get('status')}' and cannot be submitted")
        if str(project.get('status', '')).lower() == PAUSED:
            raise TaskTransitionError("Tasks of a paused project cannot be submitted")

        task.update({
            'status': STATUS_IN_REVIEW,
            'completed': False,
            'submittedDate': now_iso(),
            'version': (task.get('version') or 0) + 1,
        })
        if reference_url:
            task['link'] = reference_url
        self.project_tasks.save_task(project_id, task)
        self.grace_window.record(project_id, task_id)
        logger.info(f"Task {task_id} of project {project_id} submitted for review by {user_id}")
        notify_board_changed([project.get('freelancerId')])
        return task

    def approve(self, project_id, task_id, user_id):
        project = self.projects.get(project_id)
        self._check_role(project, user_id, 'commissioner')
        _, task = self.project_tasks.get_task(project_id, task_id)

        if task.get('status') != STATUS_IN_REVIEW:
            raise TaskTransitionError(f"Task {task_id} is not awaiting review")

        task.update({
            'status': STATUS_APPROVED,
            'completed': True,
            'rejected': False,
            'approvedDate': now_iso(),
        })
        self.project_tasks.save_task(project_id, task)
        logger.info(f"Task {task_id} of project {project_id} approved by {user_id}")

        project = self.sync_project_status(project_id)
        invoice = None
        if project.get('invoicingMethod') == 'milestone':
            invoice = InvoiceService(self.store).generate_for_tasks(project, [task])
        notify_board_changed([project.get('freelancerId')])

        return {'task': task, 'project': project, 'invoice': invoice}

    def reject(self, project_id, task_id, user_id, feedback=None):
        project = self.projects.get(project_id)
        self._check_role(project, user_id, 'commissioner')
        _, task = self.project_tasks.get_task(project_id, task_id)

        if task.get('status') != STATUS_IN_REVIEW:
            raise TaskTransitionError(f"Task {task_id} is not awaiting review")

        task.update({
            'status': STATUS_ONGOING,
            'completed': False,
            'rejected': True,
            'feedbackCount': (task.get('feedbackCount') or 0) + 1,
            'rejectedDate': now_iso(),
        })
        if feedback and feedback.strip():
            task.setdefault('notes', []).append({
                'date': timezone.localdate().isoformat(),
                'feedback': feedback.strip(),
            })
        self.project_tasks.save_task(project_id, task)
        logger.info(f"Task {task_id} of project {project_id} rejected by {user_id}")
        notify_board_changed([project.get('freelancerId')])
        return task

    def sync_project_status(self, project_id):
        project = self.projects.get(project_id)
        entry = self.project_tasks.find(project_id) or {}
        tasks = entry.get('tasks', [])

        status = resolve_project_status(project, tasks)
        if status != project.get('status'):
            logger.info(f"Project {project_id} status {project.get('status')} -> {status}")
        project.update({
            'status': status,
            'progress': calculate_project_progress(tasks),
            'totalTasks': len(tasks),
            'updatedAt': now_iso(),
        })
        if status == COMPLETED and not project.get('completedAt'):
            project['completedAt'] = now_iso()
        return self.projects.save(project)

    def tasks_to_review(self, commissioner_id):
        """Submitted tasks awaiting the commissioner, from active projects of their organization"""
        org = OrganizationRepository(self.store).for_contact(commissioner_id)
        if org is None:
            logger.info(f"No organization found for commissioner {commissioner_id}")
            return []

        projects = {
            p.get('projectId'): p for p in self.projects.all()
            if p.get('organizationId') == org.get('id')
            and str(p.get('status', '')).lower() not in (PAUSED, COMPLETED)
        }
        review = []
        for entry in self.project_tasks.all():
            project = projects.get(entry.get('projectId'))
            if project is None:
                continue
            for task in entry.get('tasks', []):
                if task.get('status') != STATUS_IN_REVIEW:
                    continue
                reviewed = (task.get('feedbackCount') or 0) > 0 or bool(task.get('rejected'))
                review.append({
                    'id': task.get('id'),
                    'title': task.get('title'),
                    'projectId': entry.get('projectId'),
                    'projectTitle': entry.get('title') or project.get('title'),
                    'freelancerId': project.get('freelancerId'),
                    'submittedDate': task.get('submittedDate'),
                    'version': task.get('version') or 1,
                    'link': task.get('link'),
                    'important': not reviewed,
                    'reviewed': reviewed,
                })
        return review


def move_tasks_to_today(store=None, freelancer_id=None, today=None):
    """Pull tasks due later into today while today has fewer than three.

    Urgent tasks (rejected, pushed back, with feedback) go first, then the
    earliest due. Moving a task rewrites its ``dueDate`` to today.
    """
    today = today or timezone.localdate()
    projects = ProjectRepository(store).all()
    paused = {p.get('projectId') for p in projects if str(p.get('status', '')).lower() == PAUSED}
    if freelancer_id is not None:
        scope = {p.get('projectId') for p in projects if p.get('freelancerId') == freelancer_id}
    else:
        scope = None

    repo = ProjectTaskRepository(store)
    entries = [
        e for e in repo.all()
        if (scope is None or e.get('projectId') in scope) and e.get('projectId') not in paused
    ]

    due_today, later = 0, []
    for entry in entries:
        for task in entry.get('tasks', []):
            if not is_ongoing_incomplete(task):
                continue
            due = parse_date(task.get('dueDate'))
            if due is None:
                continue
            if due == today:
                due_today += 1
            elif due > today:
                later.append((entry.get('projectId'), task, due))

    free_slots = TODO_LIMIT - due_today
    if free_slots <= 0 or not later:
        return {
            'moved': False,
            'moved_tasks': [],
            'today_count': due_today,
            'upcoming_count': len(later),
        }

    later.sort(key=lambda c: (urgency_rank(c[1]) == 0, c[2]))
    chosen = later[:free_slots]
    moved_keys = {(project_id, task.get('id')) for project_id, task, _ in chosen}
    new_due = today.isoformat() + 'T00:00:00.000Z'

    def mutate(records):
        for entry in records:
            for task in entry.get('tasks', []):
                if (entry.get('projectId'), task.get('id')) in moved_keys:
                    task['originalDueDate'] = task.get('originalDueDate') or task.get('dueDate')
                    task['dueDate'] = new_due

    repo.store.update(repo.collection, mutate)
    logger.info(f"Moved {len(chosen)} task(s) to today: {sorted(moved_keys)}")
    return {
        'moved': True,
        'moved_tasks': [{'projectId': p, 'id': t.get('id'), 'title': t.get('title')} for p, t, _ in chosen],
        'today_count': due_today + len(chosen),
        'upcoming_count': len(later) - len(chosen),
    }

