from decimal import Decimal

from financeapp.services.budget_service import round_half_up

ONGOING = 'ongoing'
PAUSED = 'paused'
COMPLETED = 'completed'


def calculate_project_progress(tasks):
    """Percentage of approved tasks, rounded half up"""
    if not tasks:
        return 0
    approved = sum(1 for t in tasks if t.get('status') == 'Approved')
    return int(round_half_up(Decimal(approved) * 100 / len(tasks)))


def calculate_project_status(tasks):
    if not tasks:
        return PAUSED
    if all(t.get('status') == 'Approved' for t in tasks):
        return COMPLETED
    if any(t.get('status') in ('Ongoing', 'In review') for t in tasks):
        return ONGOING
    return PAUSED


def resolve_project_status(project, tasks):
    """Stored status wins for explicit pauses; otherwise derive it from the tasks"""
    stored = str(project.get('status') or '').lower()
    derived = calculate_project_status(tasks)
    if stored == PAUSED and derived != COMPLETED:
        return PAUSED
    return derived
