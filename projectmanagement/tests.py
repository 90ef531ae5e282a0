import asyncio
from datetime import date
from unittest import mock

from asgiref.sync import async_to_sync
from django.core.cache import cache
from django.test import SimpleTestCase

from core.exceptions import PermissionDeniedError, TaskTransitionError
from core.storage import INVOICES, ORGANIZATIONS, PROJECT_TASKS, PROJECTS, InMemoryStore

from .auto_movement import AutoMovementCoordinator, ColumnPoller
from .classifier import (
    FALLBACK_LOGO, REVIEW, TODO, UPCOMING, ReviewGraceWindow, Snapshot, classify, classify_column, tag_for,
    task_ids,
)
from .services.project_service import ProjectService
from .services.task_service import TaskService, load_board_snapshot, move_tasks_to_today
from .status import calculate_project_progress, calculate_project_status, resolve_project_status


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def ongoing(task_id, title=None, **extra):
    task = {'id': task_id, 'title': title or f"Task {task_id}", 'status': 'Ongoing', 'completed': False}
    task.update(extra)
    return task


def board_snapshot():
    """Five ongoing tasks, two rejected, one of them on a paused project"""
    return Snapshot(
        project_tasks=[
            {'projectId': 1, 'title': 'Festival poster', 'tasks': [
                ongoing(1, 'Thumbnails'),
                ongoing(2, 'Layout', rejected=True),
                ongoing(3, 'Type pass'),
                ongoing(4, 'Colour', rejected=True, feedbackCount=1),
            ]},
            {'projectId': 2, 'title': 'Menu redesign', 'tasks': [
                ongoing(5, 'Copy edit'),
                {'id': 6, 'title': 'Photo brief', 'status': 'In review', 'completed': False},
            ]},
        ],
        projects=[
            {'projectId': 1, 'status': 'ongoing', 'organizationId': 1, 'typeTags': ['Illustration']},
            {'projectId': 2, 'status': 'paused', 'organizationId': 2, 'typeTags': []},
        ],
        organizations=[{'id': 1, 'logo': '/logos/festival.png'}, {'id': 2}],
    )


class ClassifierTest(SimpleTestCase):
    def test_todo_takes_rejected_first_then_file_order(self):
        columns = classify(board_snapshot())
        self.assertEqual([t['id'] for t in columns[TODO]], [2, 4, 1])

    def test_paused_task_goes_last_in_upcoming(self):
        columns = classify(board_snapshot())
        self.assertEqual([t['id'] for t in columns[UPCOMING]], [3, 5])
        self.assertEqual(columns[UPCOMING][-1]['tag'], 'General (Paused Project)')
        self.assertTrue(columns[UPCOMING][-1]['projectPaused'])

    def test_paused_suffix_only_in_upcoming(self):
        snapshot = board_snapshot()
        snapshot.project_tasks[1]['tasks'][1]['status'] = 'In review'
        review = classify(snapshot)[REVIEW]
        self.assertEqual(review[0]['tag'], 'General')

    def test_review_holds_submitted_tasks(self):
        columns = classify(board_snapshot())
        self.assertEqual([t['id'] for t in columns[REVIEW]], [6])
        ids = [t['id'] for t in columns[TODO] + columns[UPCOMING]]
        self.assertNotIn(6, ids)

    def test_todo_never_exceeds_three(self):
        snapshot = Snapshot(
            project_tasks=[{'projectId': 1, 'tasks': [ongoing(i) for i in range(1, 9)]}],
            projects=[{'projectId': 1, 'status': 'ongoing'}],
        )
        columns = classify(snapshot)
        self.assertEqual(len(columns[TODO]), 3)
        self.assertEqual(len(columns[UPCOMING]), 5)

    def test_completed_project_is_hidden(self):
        snapshot = Snapshot(
            project_tasks=[{'projectId': 1, 'tasks': [ongoing(1)]}],
            projects=[{'projectId': 1, 'status': 'Completed'}],
        )
        self.assertEqual(classify(snapshot), {TODO: [], UPCOMING: [], REVIEW: []})

    def test_completed_tasks_are_not_shown(self):
        snapshot = Snapshot(
            project_tasks=[{'projectId': 1, 'tasks': [
                {'id': 1, 'status': 'Approved', 'completed': True},
                {'id': 2, 'status': 'In review', 'completed': True},
            ]}],
            projects=[{'projectId': 1, 'status': 'ongoing'}],
        )
        self.assertEqual(classify(snapshot), {TODO: [], UPCOMING: [], REVIEW: []})

    def test_suppressed_tasks_skip_todo_and_upcoming(self):
        columns = classify(board_snapshot(), suppressed_keys={(1, 2), (2, 5)})
        ids = [t['id'] for t in columns[TODO] + columns[UPCOMING]]
        self.assertNotIn(2, ids)
        self.assertNotIn(5, ids)
        self.assertEqual([t['id'] for t in columns[TODO]], [4, 1, 3])

    def test_view_model(self):
        task = classify(board_snapshot())[TODO][0]
        self.assertEqual(task['projectTitle'], 'Festival poster')
        self.assertEqual(task['projectLogo'], '/logos/festival.png')
        self.assertEqual(task['taskIndex'], 2)
        self.assertEqual(task['totalTasks'], 4)
        self.assertEqual(task['columnId'], TODO)
        self.assertTrue(task['important'])

    def test_fallback_logo(self):
        task = classify(board_snapshot())[UPCOMING][-1]
        self.assertEqual(task['projectLogo'], FALLBACK_LOGO)

    def test_unknown_column(self):
        with self.assertRaises(ValueError):
            classify_column(board_snapshot(), 'done')

    def test_tag_precedence(self):
        self.assertEqual(tag_for({'completed': True, 'rejected': True}, []), 'Completed')
        self.assertEqual(tag_for({'rejected': True, 'feedbackCount': 2}, []), 'Rejected')
        self.assertEqual(tag_for({'feedbackCount': 2, 'pushedBack': True}, []), 'Feedback×2')
        self.assertEqual(tag_for({'pushedBack': True}, ['Design']), 'Delayed')
        self.assertEqual(tag_for({}, ['Design', 'Print']), 'Design')
        self.assertEqual(tag_for({}, []), 'General')

    def test_urgency_order(self):
        snapshot = Snapshot(
            project_tasks=[{'projectId': 1, 'tasks': [
                ongoing(1),
                ongoing(2, feedbackCount=1),
                ongoing(3, pushedBack=True),
                ongoing(4, status='Rejected'),
            ]}],
            projects=[{'projectId': 1, 'status': 'ongoing'}],
        )
        # status 'Rejected' is not ongoing, so only 1-3 are candidates
        self.assertEqual([t['id'] for t in classify(snapshot)[TODO]], [3, 2, 1])


class ReviewGraceWindowTest(SimpleTestCase):
    def setUp(self):
        cache.clear()

    def test_window_expires(self):
        clock = FakeClock(1000.0)
        window = ReviewGraceWindow(seconds=10, clock=clock)
        window.record(1, 7)
        self.assertEqual(window.active_ids([(1, 7), (2, 7), (1, 8)]), {(1, 7)})
        clock.advance(9)
        self.assertEqual(window.active_ids([(1, 7), (2, 7), (1, 8)]), {(1, 7)})
        clock.advance(1)
        self.assertEqual(window.active_ids([(1, 7), (2, 7), (1, 8)]), set())


class StatusTest(SimpleTestCase):
    def test_progress(self):
        tasks = [{'status': 'Approved'}, {'status': 'Ongoing'}, {'status': 'Ongoing'}]
        self.assertEqual(calculate_project_progress(tasks), 33)
        self.assertEqual(calculate_project_progress(tasks[:2]), 50)
        self.assertEqual(calculate_project_progress([]), 0)

    def test_progress_rounds_half_up(self):
        tasks = [{'status': 'Approved'}] + [{'status': 'Ongoing'}] * 7
        # 12.5 -> 13
        self.assertEqual(calculate_project_progress(tasks), 13)

    def test_status(self):
        self.assertEqual(calculate_project_status([]), 'paused')
        self.assertEqual(calculate_project_status([{'status': 'Approved'}]), 'completed')
        self.assertEqual(calculate_project_status([{'status': 'Approved'}, {'status': 'In review'}]), 'ongoing')
        self.assertEqual(calculate_project_status([{'status': 'Rejected'}]), 'paused')

    def test_explicit_pause_sticks(self):
        tasks = [{'status': 'Ongoing'}]
        self.assertEqual(resolve_project_status({'status': 'Paused'}, tasks), 'paused')
        self.assertEqual(resolve_project_status({'status': 'paused'}, [{'status': 'Approved'}]), 'completed')


FREELANCER = 10
COMMISSIONER = 20


def task_store(invoicing_method='milestone'):
    return InMemoryStore({
        PROJECTS: [
            {'projectId': 1, 'title': 'Festival poster', 'freelancerId': FREELANCER,
             'commissionerId': COMMISSIONER, 'organizationId': 1, 'status': 'ongoing',
             'invoicingMethod': invoicing_method, 'totalBudget': 900, 'totalTasks': 3},
            {'projectId': 2, 'title': 'Menu redesign', 'freelancerId': FREELANCER,
             'commissionerId': COMMISSIONER, 'organizationId': 1, 'status': 'paused'},
            {'projectId': 3, 'title': 'Someone else', 'freelancerId': 11,
             'commissionerId': 21, 'organizationId': 2, 'status': 'ongoing'},
        ],
        PROJECT_TASKS: [
            {'projectId': 1, 'title': 'Festival poster', 'tasks': [
                ongoing(1, 'Thumbnails', dueDate='2026-01-10'),
                ongoing(2, 'Layout', dueDate='2026-01-15'),
                ongoing(3, 'Colour', dueDate='2026-01-20', rejected=True),
            ]},
            {'projectId': 2, 'title': 'Menu redesign', 'tasks': [
                ongoing(4, 'Copy edit', dueDate='2026-01-11'),
            ]},
            {'projectId': 3, 'tasks': [ongoing(5, dueDate='2026-01-12')]},
        ],
        ORGANIZATIONS: [
            {'id': 1, 'name': 'Harbour Arts', 'contactPersonId': COMMISSIONER},
            {'id': 2, 'name': 'Other', 'contactPersonId': 21},
        ],
    })


class TaskServiceTest(SimpleTestCase):
    def setUp(self):
        cache.clear()
        self.store = task_store()
        self.clock = FakeClock(500.0)
        self.window = ReviewGraceWindow(seconds=10, clock=self.clock)
        self.service = TaskService(self.store, grace_window=self.window)

    def test_submit_moves_to_review(self):
        task = self.service.submit(1, 2, FREELANCER, reference_url='https://example.com/layout')
        self.assertEqual(task['status'], 'In review')
        self.assertFalse(task['completed'])
        self.assertEqual(task['version'], 1)
        self.assertEqual(self.window.active_ids([(1, 2)]), {(1, 2)})

        columns = classify(load_board_snapshot(FREELANCER, self.store))
        self.assertEqual([t['id'] for t in columns[REVIEW]], [2])

    def test_transitions_notify_the_freelancer_board(self):
        with mock.patch('projectmanagement.services.task_service.notify_board_changed') as notify:
            self.service.submit(1, 1, FREELANCER)
            self.service.approve(1, 1, COMMISSIONER)
            self.service.submit(1, 2, FREELANCER)
            self.service.reject(1, 2, COMMISSIONER, feedback='Tighter margins')
        self.assertEqual(notify.call_args_list, [mock.call([FREELANCER])] * 4)

    def test_stale_snapshot_hides_submitted_task(self):
        stale = load_board_snapshot(FREELANCER, self.store)
        self.service.submit(1, 2, FREELANCER)
        columns = classify(stale, self.window.active_ids(task_ids(stale)))
        self.assertNotIn(2, [t['id'] for t in columns[TODO] + columns[UPCOMING]])

    def test_submit_needs_owner_and_state(self):
        with self.assertRaises(PermissionDeniedError):
            self.service.submit(1, 2, COMMISSIONER)
        self.service.submit(1, 2, FREELANCER)
        with self.assertRaises(TaskTransitionError):
            self.service.submit(1, 2, FREELANCER)

    def test_paused_project_cannot_submit(self):
        with self.assertRaises(TaskTransitionError):
            self.service.submit(2, 4, FREELANCER)

    def test_approve_syncs_project_and_invoices(self):
        self.service.submit(1, 1, FREELANCER)
        result = self.service.approve(1, 1, COMMISSIONER)
        self.assertEqual(result['task']['status'], 'Approved')
        self.assertTrue(result['task']['completed'])
        self.assertEqual(result['project']['progress'], 33)
        self.assertEqual(result['project']['status'], 'ongoing')
        self.assertEqual(result['invoice']['totalAmount'], 300)
        self.assertEqual(len(self.store.read(INVOICES)), 1)

    def test_approve_completion_project_has_no_invoice(self):
        service = TaskService(task_store('completion'), grace_window=self.window)
        service.submit(1, 1, FREELANCER)
        self.assertIsNone(service.approve(1, 1, COMMISSIONER)['invoice'])

    def test_approve_last_task_completes_project(self):
        for task_id in (1, 2, 3):
            self.service.submit(1, task_id, FREELANCER)
            result = self.service.approve(1, task_id, COMMISSIONER)
        self.assertEqual(result['project']['status'], 'completed')
        self.assertEqual(result['project']['progress'], 100)
        self.assertIn('completedAt', result['project'])

    def test_reject_returns_task_to_ongoing(self):
        self.service.submit(1, 2, FREELANCER)
        task = self.service.reject(1, 2, COMMISSIONER, feedback='Tighten the grid')
        self.assertEqual(task['status'], 'Ongoing')
        self.assertTrue(task['rejected'])
        self.assertFalse(task['completed'])
        self.assertEqual(task['feedbackCount'], 1)
        self.assertEqual(task['notes'][0]['feedback'], 'Tighten the grid')

    def test_review_needs_submitted_task(self):
        with self.assertRaises(TaskTransitionError):
            self.service.approve(1, 2, COMMISSIONER)
        with self.assertRaises(TaskTransitionError):
            self.service.reject(1, 2, COMMISSIONER)

    def test_only_commissioner_reviews(self):
        self.service.submit(1, 2, FREELANCER)
        with self.assertRaises(PermissionDeniedError):
            self.service.approve(1, 2, FREELANCER)

    def test_tasks_to_review(self):
        self.service.submit(1, 2, FREELANCER)
        review = self.service.tasks_to_review(COMMISSIONER)
        self.assertEqual([(t['projectId'], t['id']) for t in review], [(1, 2)])
        self.assertTrue(review[0]['important'])
        self.assertEqual(self.service.tasks_to_review(999), [])

    def test_board_snapshot_is_scoped(self):
        snapshot = load_board_snapshot(FREELANCER, self.store)
        self.assertEqual([e['projectId'] for e in snapshot.project_tasks], [1, 2])

    def test_submit_only_hides_the_submitted_project_task(self):
        store = InMemoryStore({
            PROJECTS: [
                {'projectId': 1, 'freelancerId': FREELANCER, 'commissionerId': COMMISSIONER, 'status': 'ongoing'},
                {'projectId': 2, 'freelancerId': FREELANCER, 'commissionerId': COMMISSIONER, 'status': 'ongoing'},
            ],
            PROJECT_TASKS: [
                {'projectId': 1, 'title': 'Festival poster', 'tasks': [ongoing(1, 'Thumbnails')]},
                {'projectId': 2, 'title': 'Menu redesign', 'tasks': [ongoing(1, 'Copy edit')]},
            ],
        })
        stale = load_board_snapshot(FREELANCER, store)
        TaskService(store, grace_window=self.window).submit(1, 1, FREELANCER)

        suppressed = self.window.active_ids(task_ids(stale))
        self.assertEqual(suppressed, {(1, 1)})
        columns = classify(stale, suppressed)
        self.assertEqual([(t['projectId'], t['id']) for t in columns[TODO]], [(2, 1)])
        self.assertEqual(columns[UPCOMING], [])


class MoveTasksToTodayTest(SimpleTestCase):
    def test_pulls_urgent_then_earliest(self):
        store = task_store()
        result = move_tasks_to_today(store, FREELANCER, today=date(2026, 1, 10))
        self.assertTrue(result['moved'])
        self.assertEqual([t['id'] for t in result['moved_tasks']], [3, 2])
        self.assertEqual(result['today_count'], 3)
        self.assertEqual(result['upcoming_count'], 0)

        tasks = {t['id']: t for t in store.read(PROJECT_TASKS)[0]['tasks']}
        self.assertEqual(tasks[3]['dueDate'], '2026-01-10T00:00:00.000Z')
        self.assertEqual(tasks[3]['originalDueDate'], '2026-01-20')
        # paused project untouched
        self.assertEqual(store.read(PROJECT_TASKS)[1]['tasks'][0]['dueDate'], '2026-01-11')

    def test_full_day_moves_nothing(self):
        store = task_store()
        result = move_tasks_to_today(store, FREELANCER, today=date(2026, 1, 10))
        result = move_tasks_to_today(store, FREELANCER, today=date(2026, 1, 10))
        self.assertFalse(result['moved'])
        self.assertEqual(result['today_count'], 3)

    def test_all_freelancers(self):
        store = task_store()
        result = move_tasks_to_today(store, today=date(2026, 1, 10))
        self.assertEqual(len(result['moved_tasks']), 2)
        self.assertEqual(result['upcoming_count'], 1)


class ProjectServiceTest(SimpleTestCase):
    def setUp(self):
        self.store = task_store()
        self.service = ProjectService(self.store)

    def test_pause_and_resume(self):
        project = self.service.pause(1, COMMISSIONER, reason='Budget review')
        self.assertEqual(project['status'], 'paused')
        self.assertEqual(project['pauseReason'], 'Budget review')
        project = self.service.resume(1, COMMISSIONER)
        self.assertEqual(project['status'], 'ongoing')
        self.assertNotIn('pauseReason', project)

    def test_pause_and_resume_notify_the_freelancer_board(self):
        with mock.patch('projectmanagement.services.project_service.notify_board_changed') as notify:
            self.service.pause(1, COMMISSIONER)
            self.service.resume(1, COMMISSIONER)
        self.assertEqual(notify.call_args_list, [mock.call([FREELANCER])] * 2)

    def test_resume_needs_paused_project(self):
        with self.assertRaises(TaskTransitionError):
            self.service.resume(1, COMMISSIONER)

    def test_pause_needs_commissioner(self):
        with self.assertRaises(PermissionDeniedError):
            self.service.pause(1, FREELANCER)

    def test_pause_request_is_not_persisted(self):
        request = self.service.request_pause(1, FREELANCER, reason='Family emergency')
        self.assertEqual(request['commissionerId'], COMMISSIONER)
        self.assertEqual(self.store.read(PROJECTS)[0]['status'], 'ongoing')


class PollerTest(SimpleTestCase):
    def setUp(self):
        self.snapshot = board_snapshot()
        self.changes = []

    async def fetch(self):
        return self.snapshot

    async def on_change(self, column, tasks):
        self.changes.append((column, [t['id'] for t in tasks]))

    def test_reports_only_membership_changes(self):
        poller = ColumnPoller(TODO, self.fetch, self.on_change)
        self.assertTrue(async_to_sync(poller.poll)())
        self.assertFalse(async_to_sync(poller.poll)())
        self.snapshot.project_tasks[0]['tasks'][0]['status'] = 'In review'
        self.assertTrue(async_to_sync(poller.poll)())
        self.assertEqual(self.changes, [(TODO, [2, 4, 1]), (TODO, [2, 4, 3])])

    def test_poll_while_in_flight_is_dropped(self):
        release = asyncio.Event()
        calls = []

        async def slow_fetch():
            calls.append(1)
            await release.wait()
            return self.snapshot

        poller = ColumnPoller(REVIEW, slow_fetch, self.on_change)

        async def scenario():
            first = asyncio.ensure_future(poller.poll())
            await asyncio.sleep(0)
            second = await poller.poll()
            release.set()
            return await first, second

        first, second = async_to_sync(scenario)()
        self.assertTrue(first)
        self.assertIsNone(second)
        self.assertEqual(poller.dropped, 1)
        self.assertEqual(len(calls), 1)
        self.assertFalse(poller.in_flight)

    def test_fetch_error_keeps_last_render(self):
        poller = ColumnPoller(TODO, self.fetch, self.on_change)
        async_to_sync(poller.poll)()

        async def broken_fetch():
            raise OSError('disk gone')

        poller.fetch_snapshot = broken_fetch
        with self.assertLogs('projectmanagement.auto_movement', level='ERROR'):
            self.assertIsNone(async_to_sync(poller.poll)())
        self.assertEqual(poller.rendered, ((1, 2), (1, 4), (1, 1)))
        self.assertFalse(poller.in_flight)

    def test_malformed_snapshot_keeps_last_render(self):
        poller = ColumnPoller(TODO, self.fetch, self.on_change)
        async_to_sync(poller.poll)()

        self.snapshot.project_tasks[0]['tasks'].append('not a task')
        with self.assertLogs('projectmanagement.auto_movement', level='ERROR'):
            self.assertIsNone(async_to_sync(poller.poll)())
        self.assertEqual(poller.rendered, ((1, 2), (1, 4), (1, 1)))
        self.assertFalse(poller.in_flight)
        self.assertEqual(len(self.changes), 1)


class CoordinatorTest(SimpleTestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.polled = []

        async def fetch():
            self.polled.append(self.clock())
            return board_snapshot()

        async def on_change(column, tasks):
            pass

        self.coordinator = AutoMovementCoordinator(
            fetch, on_change, intervals={TODO: 2, REVIEW: 5, UPCOMING: 30}, clock=self.clock,
        )

    def test_first_tick_polls_everything(self):
        results = async_to_sync(self.coordinator.run_due)()
        self.assertEqual(results, {TODO: True, REVIEW: True, UPCOMING: True})

    def test_columns_follow_their_intervals(self):
        async_to_sync(self.coordinator.run_due)()
        self.assertEqual(self.coordinator.due_columns(), [])
        self.assertEqual(self.coordinator.seconds_until_next(), 2)

        self.clock.advance(2)
        self.assertEqual(async_to_sync(self.coordinator.run_due)(), {TODO: False})

        self.clock.advance(3)
        self.assertEqual(sorted(self.coordinator.due_columns()), [REVIEW, TODO])

        self.clock.advance(25)
        self.assertEqual(sorted(self.coordinator.due_columns()), [REVIEW, TODO, UPCOMING])

    def test_request_refresh(self):
        async_to_sync(self.coordinator.run_due)()
        self.coordinator.request_refresh()
        self.assertEqual(sorted(self.coordinator.due_columns()), [REVIEW, TODO, UPCOMING])
        self.assertEqual(self.coordinator.seconds_until_next(), 0)

    def test_run_until_stopped(self):
        stop = asyncio.Event()
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)
            self.clock.advance(seconds)
            if len(sleeps) == 3:
                stop.set()

        async_to_sync(self.coordinator.run)(stop, sleep=fake_sleep)
        self.assertEqual(sleeps, [2, 2, 1])
        self.assertEqual(self.clock(), 5)

    def test_run_survives_a_failing_tick(self):
        stop = asyncio.Event()
        ticks = []

        async def flaky_on_change(column, tasks):
            raise ConnectionError('socket closed')

        async def fake_sleep(seconds):
            ticks.append(seconds)
            self.clock.advance(max(seconds, 2))
            if len(ticks) == 2:
                stop.set()

        coordinator = AutoMovementCoordinator(
            self.coordinator.pollers[TODO].fetch_snapshot, flaky_on_change,
            intervals={TODO: 2}, clock=self.clock,
        )
        with self.assertLogs('projectmanagement.auto_movement', level='ERROR'):
            async_to_sync(coordinator.run)(stop, sleep=fake_sleep)
        self.assertEqual(len(ticks), 2)
        self.assertEqual(len(self.polled), 2)
