import logging

from core.exceptions import PermissionDeniedError, TaskTransitionError
from core.repositories import ProjectRepository, ProjectTaskRepository, now_iso

from ..board_events import notify_board_changed
from ..status import COMPLETED, ONGOING, PAUSED, calculate_project_progress, calculate_project_status

logger = logging.getLogger(__name__)


class ProjectService:
    def __init__(self, store=None):
        self.projects = ProjectRepository(store)
        self.project_tasks = ProjectTaskRepository(store)

    def _tasks(self, project_id):
        entry = self.project_tasks.find(project_id) or {}
        return entry.get('tasks', [])

    def list_for_user(self, user_id):
        """Projects the user works on or commissioned, with live progress"""
        summaries = []
        for project in self.projects.for_user(user_id):
            tasks = self._tasks(project.get('projectId'))
            summaries.append(dict(
                project,
                progress=calculate_project_progress(tasks),
                totalTasks=len(tasks),
                role='freelancer' if project.get('freelancerId') == user_id else 'commissioner',
            ))
        return summaries

    def pause(self, project_id, commissioner_id, reason=None):
        project = self.projects.get(project_id)
        if project.get('commissionerId') != commissioner_id:
            raise PermissionDeniedError("Only the project commissioner can pause this project")
        if str(project.get('status', '')).lower() == COMPLETED:
            raise TaskTransitionError("A completed project cannot be paused")

        project.update({'status': PAUSED, 'pausedAt': now_iso(), 'updatedAt': now_iso()})
        if reason:
            project['pauseReason'] = reason
        logger.info(f"Project {project_id} paused by commissioner {commissioner_id}")
        project = self.projects.save(project)
        notify_board_changed([project.get('freelancerId')])
        return project

    def resume(self, project_id, commissioner_id):
        project = self.projects.get(project_id)
        if project.get('commissionerId') != commissioner_id:
            raise PermissionDeniedError("Only the project commissioner can resume this project")
        if str(project.get('status', '')).lower() != PAUSED:
            raise TaskTransitionError("Only paused projects can be resumed")

        derived = calculate_project_status(self._tasks(project_id))
        project.update({
            'status': ONGOING if derived == PAUSED else derived,
            'resumedAt': now_iso(),
            'updatedAt': now_iso(),
        })
        project.pop('pauseReason', None)
        logger.info(f"Project {project_id} resumed by commissioner {commissioner_id}")
        project = self.projects.save(project)
        notify_board_changed([project.get('freelancerId')])
        return project

    def request_pause(self, project_id, freelancer_id, reason=None):
        """A freelancer asks the commissioner to pause; logged, project left as is"""
        project = self.projects.get(project_id)
        if project.get('freelancerId') != freelancer_id:
            raise PermissionDeniedError("Only the project freelancer can request a pause")
        if str(project.get('status', '')).lower() != ONGOING:
            raise TaskTransitionError("Only ongoing projects can be paused")

        request = {
            'projectId': project_id,
            'freelancerId': freelancer_id,
            'commissionerId': project.get('commissionerId'),
            'reason': reason or '',
            'requestedAt': now_iso(),
        }
        logger.info(f"Pause requested for project {project_id} by freelancer {freelancer_id}: {reason or '-'}")
        return request
