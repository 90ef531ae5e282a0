from asgiref.sync import async_to_sync
from channels.routing import URLRouter
from channels.testing import WebsocketCommunicator
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import AccessToken

from core.storage import ORGANIZATIONS, PROJECT_TASKS, PROJECTS, PROPOSAL_DRAFTS, PROPOSALS, _memory_store
from projectmanagement.routing import websocket_urlpatterns


def seed_board(freelancer_id, commissioner_id):
    _memory_store.clear()
    _memory_store.write(ORGANIZATIONS, [{'id': 1, 'name': 'Harbour Arts', 'logo': '/logos/harbour.png'}])
    _memory_store.write(PROJECTS, [
        {'projectId': 1, 'title': 'Festival poster', 'freelancerId': freelancer_id,
         'commissionerId': commissioner_id, 'organizationId': 1, 'status': 'ongoing',
         'typeTags': ['Illustration']},
        {'projectId': 2, 'title': 'Menu redesign', 'freelancerId': freelancer_id,
         'commissionerId': commissioner_id, 'organizationId': 1, 'status': 'paused'},
    ])
    _memory_store.write(PROJECT_TASKS, [
        {'projectId': 1, 'title': 'Festival poster', 'tasks': [
            {'id': 1, 'title': 'Thumbnails', 'status': 'Ongoing', 'completed': False},
            {'id': 2, 'title': 'Layout', 'status': 'Ongoing', 'completed': False, 'rejected': True},
            {'id': 3, 'title': 'Type pass', 'status': 'Ongoing', 'completed': False},
            {'id': 4, 'title': 'Colour', 'status': 'Ongoing', 'completed': False, 'rejected': True},
        ]},
        {'projectId': 2, 'title': 'Menu redesign', 'tasks': [
            {'id': 5, 'title': 'Copy edit', 'status': 'Ongoing', 'completed': False},
        ]},
    ])


@override_settings(FLATFILE_BACKEND='memory')
class TaskBoardAPITest(TestCase):
    def setUp(self):
        cache.clear()
        User = get_user_model()
        self.freelancer = User.objects.create_user(username='amara', password='x')
        self.commissioner = User.objects.create_user(username='bayo', password='x')
        seed_board(self.freelancer.id, self.commissioner.id)
        self.client = APIClient()
        self.client.force_authenticate(self.freelancer)

    def test_todo_column(self):
        response = self.client.get('/api/freelancer/task-board/todo/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual([t['id'] for t in response.json()['tasks']], [2, 4, 1])

    def test_upcoming_column_puts_paused_last(self):
        response = self.client.get('/api/freelancer/task-board/upcoming/')
        tasks = response.json()['tasks']
        self.assertEqual([t['id'] for t in tasks], [3, 5])
        self.assertEqual(tasks[1]['tag'], 'General (Paused Project)')
        self.assertEqual(tasks[0]['tag'], 'Illustration')

    def test_unknown_column(self):
        response = self.client.get('/api/freelancer/task-board/done/')
        self.assertEqual(response.status_code, 400)
        self.assertIn('Unknown column', response.json()['error'])

    def test_submit_moves_task_to_review(self):
        response = self.client.post(
            '/api/freelancer/projects/1/tasks/2/submit/',
            {'referenceUrl': 'https://example.com/layout.pdf'}, format='json',
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['task']['status'], 'In review')

        board = self.client.get('/api/freelancer/task-board/').json()
        self.assertEqual([t['id'] for t in board['review']], [2])
        self.assertEqual([t['id'] for t in board['todo']], [4, 1, 3])

    def test_submit_twice_is_rejected(self):
        self.client.post('/api/freelancer/projects/1/tasks/2/submit/', {}, format='json')
        response = self.client.post('/api/freelancer/projects/1/tasks/2/submit/', {}, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertIn('cannot be submitted', response.json()['error'])

    def test_submit_missing_task(self):
        response = self.client.post('/api/freelancer/projects/1/tasks/99/submit/', {}, format='json')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['error'], 'Task 99 not found')

    def test_pause_request(self):
        response = self.client.post('/api/freelancer/projects/1/pause-request/', {'reason': 'Travel'}, format='json')
        self.assertEqual(response.status_code, 202)
        self.assertEqual(_memory_store.read(PROJECTS)[0]['status'], 'ongoing')

    def test_move_to_today_without_due_dates(self):
        response = self.client.post('/api/freelancer/tasks/move-to-today/')
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.json()['moved'])


@override_settings(FLATFILE_BACKEND='memory')
class ProposalAPITest(TestCase):
    def setUp(self):
        User = get_user_model()
        self.freelancer = User.objects.create_user(username='amara', password='x')
        self.commissioner = User.objects.create_user(username='bayo', password='x')
        _memory_store.clear()
        self.client = APIClient()
        self.client.force_authenticate(self.freelancer)

    def test_draft_autosave_upserts(self):
        first = self.client.post('/api/freelancer/proposals/drafts/', {'title': 'Poster'}, format='json').json()
        self.client.post(
            '/api/freelancer/proposals/drafts/', {'id': first['id'], 'title': 'Poster series'}, format='json',
        )
        drafts = self.client.get('/api/freelancer/proposals/drafts/').json()
        self.assertEqual(len(drafts), 1)
        self.assertEqual(drafts[0]['title'], 'Poster series')
        self.assertEqual(drafts[0]['freelancerId'], self.freelancer.id)

    def test_send_milestone_mismatch_is_blocked(self):
        response = self.client.post('/api/freelancer/proposals/send/', {
            'title': 'Poster series',
            'commissionerId': self.commissioner.id,
            'executionMethod': 'milestone',
            'totalBid': 1000,
            'milestones': [{'title': 'A', 'amount': 300}, {'title': 'B', 'amount': 300},
                           {'title': 'C', 'amount': 300}],
        }, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'Milestone total is $100 short of the total bid')
        self.assertEqual(_memory_store.read(PROPOSALS), [])

    def test_send_completion_proposal_removes_draft(self):
        draft = self.client.post('/api/freelancer/proposals/drafts/', {'title': 'Poster'}, format='json').json()
        response = self.client.post('/api/freelancer/proposals/send/', {
            'draftId': draft['id'],
            'title': 'Poster series',
            'commissionerId': self.commissioner.id,
            'executionMethod': 'completion',
            'totalBid': 1000,
        }, format='json')
        self.assertEqual(response.status_code, 201)
        proposal = response.json()
        self.assertEqual(proposal['status'], 'sent')
        self.assertEqual(proposal['upfrontAmount'], 120)
        self.assertEqual(_memory_store.read(PROPOSAL_DRAFTS), [])

    def test_send_with_someone_elses_draft_is_refused(self):
        _memory_store.write(PROPOSAL_DRAFTS, [
            {'id': 8, 'freelancerId': self.commissioner.id, 'title': 'Not mine', 'status': 'draft'},
        ])
        response = self.client.post('/api/freelancer/proposals/send/', {
            'draftId': 8,
            'title': 'Poster series',
            'commissionerId': self.commissioner.id,
            'executionMethod': 'completion',
            'totalBid': 1000,
        }, format='json')
        self.assertEqual(response.status_code, 403)
        self.assertEqual([d['id'] for d in _memory_store.read(PROPOSAL_DRAFTS)], [8])
        self.assertEqual(_memory_store.read(PROPOSALS), [])

    def test_send_hourly_proposal(self):
        response = self.client.post('/api/freelancer/proposals/send/', {
            'title': 'Retainer',
            'commissionerId': self.commissioner.id,
            'executionMethod': 'hourly',
            'startDate': '2026-03-02',
            'endDate': '2026-03-08',
            'hourlyRate': 50,
            'maxHoursPerDay': 4,
        }, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['totalBid'], 1000)

    def test_send_requires_title(self):
        response = self.client.post('/api/freelancer/proposals/send/', {
            'commissionerId': self.commissioner.id, 'totalBid': 1000,
        }, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertIn('title', response.json())


@override_settings(FLATFILE_BACKEND='memory')
class TaskBoardConsumerTest(SimpleTestCase):
    databases = {'default'}
    freelancer_id = 7

    def setUp(self):
        cache.clear()
        seed_board(self.freelancer_id, 999)
        self.application = URLRouter(websocket_urlpatterns)

    def token(self):
        token = AccessToken()
        token['user_id'] = self.freelancer_id
        return str(token)

    def test_pushes_every_column_on_connect(self):
        async def scenario():
            communicator = WebsocketCommunicator(
                self.application, f"/ws/freelancer/task-board/?token={self.token()}",
            )
            connected, _ = await communicator.connect()
            messages = [await communicator.receive_json_from(timeout=5) for _ in range(3)]
            await communicator.disconnect()
            return connected, messages

        connected, messages = async_to_sync(scenario)()
        self.assertTrue(connected)
        columns = {m['column']: [t['id'] for t in m['tasks']] for m in messages}
        self.assertEqual(columns, {'todo': [2, 4, 1], 'upcoming': [3, 5], 'review': []})

    def test_bad_token_is_refused(self):
        async def scenario():
            communicator = WebsocketCommunicator(self.application, "/ws/freelancer/task-board/?token=nope")
            connected, _ = await communicator.connect()
            return connected

        self.assertFalse(async_to_sync(scenario)())
