"""
Repositories over the flat-file store.

Records are kept in the camelCase shape the JSON files use. Nothing here checks
cross-file references such as ``organizationId``; callers assume they are valid.
"""
from django.utils import timezone

from .exceptions import EntityNotFound
from .storage import (
    GIG_APPLICATIONS, GIG_REQUESTS, GIGS, INVOICES, ORGANIZATIONS, PROJECT_TASKS, PROJECTS, PROPOSAL_DRAFTS,
    PROPOSALS, get_store,
)


def now_iso():
    return timezone.now().isoformat()


def next_numeric_id(records, key):
    ids = [r.get(key) for r in records if isinstance(r.get(key), int)]
    return max(ids) + 1 if ids else 1


class Repository:
    collection = None
    id_field = 'id'

    def __init__(self, store=None):
        self.store = store or get_store()

    def all(self):
        return self.store.read(self.collection)

    def filter(self, **criteria):
        return [
            r for r in self.all()
            if all(r.get(field) == value for field, value in criteria.items())
        ]

    def find(self, record_id):
        for record in self.all():
            if record.get(self.id_field) == record_id:
                return record
        return None

    def get(self, record_id):
        record = self.find(record_id)
        if record is None:
            raise EntityNotFound(f"{self.label} {record_id} not found")
        return record

    @property
    def label(self):
        return self.collection.rstrip('s').replace('-', ' ').capitalize()

    def save(self, record):
        """Insert or replace by id, assigning the next numeric id when missing"""
        def mutate(records):
            if record.get(self.id_field) is None:
                record[self.id_field] = next_numeric_id(records, self.id_field)
            for index, existing in enumerate(records):
                if existing.get(self.id_field) == record[self.id_field]:
                    records[index] = record
                    return
            records.append(record)

        self.store.update(self.collection, mutate)
        return record

    def delete(self, record_id):
        def mutate(records):
            return [r for r in records if r.get(self.id_field) != record_id]

        self.store.update(self.collection, mutate)


class ProjectRepository(Repository):
    collection = PROJECTS
    id_field = 'projectId'

    def for_user(self, user_id):
        return [
            p for p in self.all()
            if user_id in (p.get('freelancerId'), p.get('commissionerId'))
        ]


class OrganizationRepository(Repository):
    collection = ORGANIZATIONS

    def for_contact(self, user_id):
        for org in self.all():
            if org.get('contactPersonId') == user_id:
                return org
        return None


class ProjectTaskRepository(Repository):
    """``project-tasks.json``: one entry per project holding its ordered task list"""
    collection = PROJECT_TASKS
    id_field = 'projectId'

    def find_task(self, project_id, task_id):
        entry = self.find(project_id)
        if entry is None:
            return None, None
        for task in entry.get('tasks', []):
            if task.get('id') == task_id:
                return entry, task
        return entry, None

    def get_task(self, project_id, task_id):
        entry, task = self.find_task(project_id, task_id)
        if entry is None:
            raise EntityNotFound(f"Project {project_id} not found")
        if task is None:
            raise EntityNotFound(f"Task {task_id} not found")
        return entry, task

    def save_task(self, project_id, task):
        def mutate(records):
            for entry in records:
                if entry.get('projectId') != project_id:
                    continue
                tasks = entry.setdefault('tasks', [])
                for index, existing in enumerate(tasks):
                    if existing.get('id') == task.get('id'):
                        tasks[index] = task
                        return
                tasks.append(task)
                return
            raise EntityNotFound(f"Project {project_id} not found")

        self.store.update(self.collection, mutate)
        return task

    def next_task_id(self):
        task_ids = [
            t.get('id') for entry in self.all() for t in entry.get('tasks', [])
            if isinstance(t.get('id'), int)
        ]
        return max(task_ids) + 1 if task_ids else 1


class ProposalRepository(Repository):
    collection = PROPOSALS


class ProposalDraftRepository(Repository):
    collection = PROPOSAL_DRAFTS

    @property
    def label(self):
        return 'Draft'


class InvoiceRepository(Repository):
    collection = INVOICES
    id_field = 'invoiceNumber'

    def for_project(self, project_id):
        return self.filter(projectId=project_id)

    def for_user(self, user_id):
        return [
            inv for inv in self.all()
            if user_id in (inv.get('freelancerId'), inv.get('commissionerId'))
        ]


class GigRepository(Repository):
    collection = GIGS

    def open_gigs(self):
        return [g for g in self.all() if g.get('status') == 'Available']


class GigApplicationRepository(Repository):
    collection = GIG_APPLICATIONS

    def for_gig(self, gig_id):
        return self.filter(gigId=gig_id)


class GigRequestRepository(Repository):
    collection = GIG_REQUESTS
