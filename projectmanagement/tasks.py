import logging

from celery import shared_task

from core.repositories import ProjectRepository

from .board_events import notify_board_changed
from .services.task_service import TaskService, move_tasks_to_today

logger = logging.getLogger(__name__)


@shared_task
def move_tasks_to_today_task():
    """Periodic pass that fills today's queue from later tasks"""
    result = move_tasks_to_today()
    if result['moved']:
        project_ids = {t['projectId'] for t in result['moved_tasks']}
        freelancer_ids = {
            p.get('freelancerId') for p in ProjectRepository().all()
            if p.get('projectId') in project_ids and p.get('freelancerId') is not None
        }
        notify_board_changed(freelancer_ids)
    return f"Moved {len(result['moved_tasks'])} task(s) to today"


@shared_task
def sync_project_statuses():
    service = TaskService()
    changed = 0
    for project in service.projects.all():
        before = project.get('status')
        after = service.sync_project_status(project.get('projectId'))
        if after.get('status') != before:
            changed += 1
    logger.info(f"Project status sync finished, {changed} project(s) changed")
    return f"Synced project statuses, {changed} changed"
