"""
Task board columns for a freelancer.

A snapshot (project task lists, project records, organizations) is bucketed into
``todo``, ``upcoming`` and ``review``. ``todo`` holds at most three of the most
urgent ongoing tasks from active projects; ``upcoming`` is every other ongoing
task, paused projects last; ``review`` is everything waiting on the
commissioner.
"""
import logging
import math
import time

from django.conf import settings
from django.core.cache import cache

logger = logging.getLogger(__name__)

TODO = 'todo'
UPCOMING = 'upcoming'
REVIEW = 'review'
COLUMNS = (TODO, UPCOMING, REVIEW)

TODO_LIMIT = 3
FALLBACK_LOGO = '/logos/fallback-logo.png'
PAUSED_SUFFIX = ' (Paused Project)'

STATUS_ONGOING = 'Ongoing'
STATUS_IN_REVIEW = 'In review'
STATUS_APPROVED = 'Approved'
STATUS_REJECTED = 'Rejected'


class Snapshot:
    """The three collections the board is computed from"""

    def __init__(self, project_tasks=None, projects=None, organizations=None):
        self.project_tasks = project_tasks or []
        self.projects = {p.get('projectId'): p for p in (projects or [])}
        self.organizations = {o.get('id'): o for o in (organizations or [])}

    def project_info(self, project_id):
        return self.projects.get(project_id, {})

    def is_paused(self, project_id):
        return str(self.project_info(project_id).get('status', '')).lower() == 'paused'

    def is_completed(self, project_id):
        return str(self.project_info(project_id).get('status', '')).lower() == 'completed'

    def logo_for(self, entry):
        info = self.project_info(entry.get('projectId'))
        org_id = info.get('organizationId', entry.get('organizationId'))
        org = self.organizations.get(org_id) or {}
        return org.get('logo') or FALLBACK_LOGO

    def type_tags(self, entry):
        info = self.project_info(entry.get('projectId'))
        return info.get('typeTags') or entry.get('typeTags') or []


class ReviewGraceWindow:
    """Remembers tasks just sent to review so a stale snapshot cannot show them twice.

    Entries live in the Django cache so every worker sees a submission; the
    comparison itself runs against ``clock`` so tests can move time by hand.
    """
    key_prefix = 'task-review-grace'

    def __init__(self, seconds=None, clock=time.time):
        if seconds is None:
            seconds = getattr(settings, 'TASK_REVIEW_GRACE_SECONDS', 10)
        self.seconds = seconds
        self.clock = clock

    def _key(self, project_id, task_id):
        return f"{self.key_prefix}:{project_id}:{task_id}"

    def record(self, project_id, task_id):
        cache.set(self._key(project_id, task_id), self.clock(), timeout=math.ceil(self.seconds) + 1)

    def active_ids(self, task_keys):
        """Subset of ``(projectId, taskId)`` pairs still inside the window"""
        keys = {self._key(*task_key): task_key for task_key in task_keys}
        now = self.clock()
        return {
            keys[key] for key, moved_at in cache.get_many(list(keys)).items()
            if now - moved_at < self.seconds
        }


def is_review_eligible(task):
    return task.get('status') == STATUS_IN_REVIEW and not task.get('completed')


def is_ongoing_incomplete(task):
    return task.get('status') == STATUS_ONGOING and not task.get('completed')


def is_rejected(task):
    return bool(task.get('rejected')) or task.get('status') == STATUS_REJECTED


def feedback_count(task):
    try:
        return max(int(task.get('feedbackCount') or 0), 0)
    except (TypeError, ValueError):
        return 0


def urgency_rank(task):
    # Rejected > Delayed > Feedback > normal
    if is_rejected(task):
        return 3
    if task.get('pushedBack'):
        return 2
    if feedback_count(task) > 0:
        return 1
    return 0


def tag_for(task, type_tags):
    if task.get('completed'):
        return 'Completed'
    if is_rejected(task):
        return 'Rejected'
    if feedback_count(task) > 0:
        return f"Feedback×{feedback_count(task)}"
    if task.get('pushedBack'):
        return 'Delayed'
    if type_tags:
        return type_tags[0]
    return 'General'


def _candidates(snapshot):
    """Flatten the snapshot into (entry, task, position, total) tuples in file order"""
    for entry in snapshot.project_tasks:
        if snapshot.is_completed(entry.get('projectId')):
            continue
        tasks = entry.get('tasks') or []
        for position, task in enumerate(tasks):
            yield entry, task, position, len(tasks)


def view_model(snapshot, entry, task, position, total, column):
    project_id = entry.get('projectId')
    paused = snapshot.is_paused(project_id)
    type_tags = snapshot.type_tags(entry)
    tag = tag_for(task, type_tags)
    if paused and column == UPCOMING:
        tag += PAUSED_SUFFIX

    return {
        'id': task.get('id'),
        'title': task.get('title'),
        'status': task.get('status'),
        'completed': bool(task.get('completed')),
        'rejected': bool(task.get('rejected')),
        'pushedBack': bool(task.get('pushedBack')),
        'feedbackCount': feedback_count(task),
        'dueDate': task.get('dueDate'),
        'important': is_rejected(task) or feedback_count(task) > 0,
        'projectId': project_id,
        'projectTitle': entry.get('title') or snapshot.project_info(project_id).get('title'),
        'projectLogo': snapshot.logo_for(entry),
        'projectTags': type_tags,
        'projectPaused': paused,
        'tag': tag,
        'columnId': column,
        'taskIndex': position + 1,
        'totalTasks': total,
    }


def classify(snapshot, suppressed_keys=()):
    """Bucket every task of the snapshot; returns ``{column: [view-model, ...]}``"""
    suppressed_keys = set(suppressed_keys)
    review, ongoing = [], []

    for entry, task, position, total in _candidates(snapshot):
        if is_review_eligible(task):
            review.append((entry, task, position, total))
        elif is_ongoing_incomplete(task) and (entry.get('projectId'), task.get('id')) not in suppressed_keys:
            # a task just submitted may still read as Ongoing in a stale snapshot
            ongoing.append((entry, task, position, total))

    # sorted() is stable, so equal urgency keeps file order
    active = [c for c in ongoing if not snapshot.is_paused(c[0].get('projectId'))]
    todo = sorted(active, key=lambda c: -urgency_rank(c[1]))[:TODO_LIMIT]

    todo_keys = {(c[0].get('projectId'), c[1].get('id')) for c in todo}
    rest = [c for c in ongoing if (c[0].get('projectId'), c[1].get('id')) not in todo_keys]
    upcoming = sorted(
        rest,
        key=lambda c: (snapshot.is_paused(c[0].get('projectId')), -urgency_rank(c[1])),
    )

    columns = {
        TODO: [view_model(snapshot, *c, TODO) for c in todo],
        UPCOMING: [view_model(snapshot, *c, UPCOMING) for c in upcoming],
        REVIEW: [view_model(snapshot, *c, REVIEW) for c in review],
    }
    logger.debug(
        f"Classified board: todo={len(columns[TODO])} upcoming={len(columns[UPCOMING])} "
        f"review={len(columns[REVIEW])}"
    )
    return columns


def classify_column(snapshot, column, suppressed_keys=()):
    if column not in COLUMNS:
        raise ValueError(f"Unknown column: {column}")
    return classify(snapshot, suppressed_keys)[column]


def task_ids(snapshot):
    """``(projectId, taskId)`` of every task; task ids repeat across projects"""
    return [
        (entry.get('projectId'), t.get('id'))
        for entry in snapshot.project_tasks for t in entry.get('tasks') or []
    ]


def membership(tasks):
    """Identity of a rendered column, used to detect changes between polls"""
    return tuple((t['projectId'], t['id']) for t in tasks)
