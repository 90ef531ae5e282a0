from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from core.storage import (
    GIG_APPLICATIONS, GIGS, INVOICES, ORGANIZATIONS, PROJECT_TASKS, PROJECTS, PROPOSALS, _memory_store,
)


@override_settings(FLATFILE_BACKEND='memory')
class ClientAPITestCase(TestCase):
    def setUp(self):
        cache.clear()
        _memory_store.clear()
        User = get_user_model()
        self.freelancer = User.objects.create_user(username='chidi', password='x')
        self.commissioner = User.objects.create_user(username='funmi', password='x')
        _memory_store.write(ORGANIZATIONS, [
            {'id': 3, 'name': 'Lagos Book Fair', 'contactPersonId': self.commissioner.id},
        ])
        self.client = APIClient()
        self.client.force_authenticate(self.commissioner)

    def as_freelancer(self):
        client = APIClient()
        client.force_authenticate(self.freelancer)
        return client


class ProposalResponseTest(ClientAPITestCase):
    def send_proposal(self, **fields):
        data = {
            'title': 'Book fair identity',
            'summary': 'Logo, signage and tickets',
            'commissionerId': self.commissioner.id,
            'organizationId': 3,
            'typeTags': ['Branding'],
            'executionMethod': 'completion',
            'totalBid': 2500,
            'milestones': [
                {'title': 'Logo', 'amount': 0, 'endDate': '2026-05-01'},
                {'title': 'Signage', 'amount': 0, 'endDate': '2026-05-15'},
            ],
        }
        data.update(fields)
        response = self.as_freelancer().post('/api/freelancer/proposals/send/', data, format='json')
        self.assertEqual(response.status_code, 201, response.content)
        return response.json()

    def test_accept_completion_proposal(self):
        proposal = self.send_proposal()
        response = self.client.post(f"/api/client/proposals/{proposal['id']}/accept/")
        self.assertEqual(response.status_code, 201)

        body = response.json()
        self.assertEqual(body['proposal']['status'], 'accepted')
        project = body['project']
        self.assertEqual(project['invoicingMethod'], 'completion')
        self.assertEqual(project['upfrontCommitment'], 300)
        self.assertEqual(project['totalTasks'], 2)

        entry = _memory_store.read(PROJECT_TASKS)[0]
        self.assertEqual(entry['projectId'], project['projectId'])
        self.assertEqual([t['title'] for t in entry['tasks']], ['Logo', 'Signage'])
        self.assertTrue(all(t['status'] == 'Ongoing' for t in entry['tasks']))

        invoice = _memory_store.read(INVOICES)[0]
        self.assertEqual(invoice['status'], 'paid')
        self.assertEqual(invoice['totalAmount'], 300)

    def test_accept_milestone_proposal_has_no_upfront_invoice(self):
        proposal = self.send_proposal(
            executionMethod='milestone', totalBid=1000,
            milestones=[{'title': 'Logo', 'amount': 400}, {'title': 'Signage', 'amount': 600}],
        )
        response = self.client.post(f"/api/client/proposals/{proposal['id']}/accept/")
        self.assertEqual(response.status_code, 201)
        self.assertIsNone(response.json()['invoice'])
        self.assertEqual(response.json()['project']['invoicingMethod'], 'milestone')

    def test_only_addressee_can_accept(self):
        proposal = self.send_proposal()
        response = self.as_freelancer().post(f"/api/client/proposals/{proposal['id']}/accept/")
        self.assertEqual(response.status_code, 403)

    def test_reject_then_accept_fails(self):
        proposal = self.send_proposal()
        response = self.client.post(
            f"/api/client/proposals/{proposal['id']}/reject/", {'reason': 'Over budget'}, format='json',
        )
        self.assertEqual(response.json()['proposal']['status'], 'rejected')
        response = self.client.post(f"/api/client/proposals/{proposal['id']}/accept/")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(_memory_store.read(PROJECTS), [])

    def test_unknown_proposal(self):
        response = self.client.post('/api/client/proposals/404/accept/')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(_memory_store.read(PROPOSALS), [])


class TaskReviewTest(ClientAPITestCase):
    def setUp(self):
        super().setUp()
        _memory_store.write(PROJECTS, [{
            'projectId': 12, 'title': 'Catalogue', 'freelancerId': self.freelancer.id,
            'commissionerId': self.commissioner.id, 'organizationId': 3, 'status': 'ongoing',
            'invoicingMethod': 'milestone', 'totalBudget': 600, 'totalTasks': 2,
        }])
        _memory_store.write(PROJECT_TASKS, [{'projectId': 12, 'title': 'Catalogue', 'tasks': [
            {'id': 30, 'title': 'Cover', 'status': 'In review', 'completed': False},
            {'id': 31, 'title': 'Spreads', 'status': 'Ongoing', 'completed': False},
        ]}])

    def test_tasks_to_review(self):
        response = self.client.get('/api/client/tasks-to-review/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual([t['id'] for t in response.json()['tasks']], [30])

    def test_approve_generates_invoice(self):
        response = self.client.post('/api/client/projects/12/tasks/30/review/', {'action': 'approve'}, format='json')
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['task']['status'], 'Approved')
        self.assertEqual(body['project']['progress'], 50)
        self.assertEqual(body['invoice']['totalAmount'], 300)

    def test_reject_with_feedback(self):
        response = self.client.post(
            '/api/client/projects/12/tasks/30/review/',
            {'action': 'reject', 'feedback': 'Cover type is too small'}, format='json',
        )
        task = response.json()['task']
        self.assertTrue(task['rejected'])
        self.assertEqual(task['feedbackCount'], 1)

        board = self.as_freelancer().get('/api/freelancer/task-board/todo/').json()
        self.assertEqual(board['tasks'][0]['id'], 30)
        self.assertEqual(board['tasks'][0]['tag'], 'Rejected')

    def test_review_ongoing_task_fails(self):
        response = self.client.post('/api/client/projects/12/tasks/31/review/', {'action': 'approve'}, format='json')
        self.assertEqual(response.status_code, 400)

    def test_bad_action(self):
        response = self.client.post('/api/client/projects/12/tasks/30/review/', {'action': 'skip'}, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertIn('action', response.json())

    def test_pause_hides_tasks_from_todo(self):
        response = self.client.post('/api/client/projects/12/pause/', {'reason': 'Waiting on copy'}, format='json')
        self.assertEqual(response.json()['project']['status'], 'paused')

        board = self.as_freelancer().get('/api/freelancer/task-board/').json()
        self.assertEqual(board['todo'], [])
        self.assertEqual([t['id'] for t in board['upcoming']], [31])

        response = self.client.post('/api/client/projects/12/resume/')
        self.assertEqual(response.json()['project']['status'], 'ongoing')

    def test_sync_status(self):
        response = self.client.post('/api/client/projects/12/sync-status/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'projectId': 12, 'status': 'ongoing', 'progress': 0})


class GigFlowTest(ClientAPITestCase):
    def post_gig(self, **fields):
        data = {
            'title': 'Festival wayfinding',
            'description': 'Signs for three stages',
            'tags': ['Signage'],
            'lowerBudget': 400,
            'upperBudget': 900,
        }
        data.update(fields)
        response = self.client.post('/api/client/gigs/', data, format='json')
        self.assertEqual(response.status_code, 201, response.content)
        return response.json()

    def apply(self, gig_id, client=None):
        client = client or self.as_freelancer()
        return client.post(
            f"/api/freelancer/gigs/{gig_id}/apply/",
            {'pitch': 'I did the 2025 book fair signs', 'sampleLinks': ['https://example.com/signs']},
            format='json',
        )

    def test_post_and_list_gigs(self):
        gig = self.post_gig()
        self.assertEqual(gig['status'], 'Available')
        self.assertEqual(gig['organizationId'], 3)
        self.assertEqual(gig['commissionerId'], self.commissioner.id)

        own = self.client.get('/api/client/gigs/').json()
        self.assertEqual([g['id'] for g in own], [gig['id']])
        open_gigs = self.as_freelancer().get('/api/freelancer/gigs/').json()
        self.assertEqual([g['title'] for g in open_gigs], ['Festival wayfinding'])

    def test_post_gig_needs_title(self):
        response = self.client.post('/api/client/gigs/', {'upperBudget': 900}, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertIn('title', response.json())

    def test_apply_then_list_applications(self):
        gig = self.post_gig()
        response = self.apply(gig['id'])
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['status'], 'pending')

        response = self.apply(gig['id'])
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['error'], 'You have already applied to this gig')

        body = self.client.get(f"/api/client/gigs/{gig['id']}/applications/").json()
        self.assertEqual(body['count'], 1)
        self.assertEqual(body['applications'][0]['freelancerId'], self.freelancer.id)

    def test_only_the_poster_sees_applications(self):
        gig = self.post_gig()
        response = self.as_freelancer().get(f"/api/client/gigs/{gig['id']}/applications/")
        self.assertEqual(response.status_code, 403)

    def test_apply_to_missing_gig(self):
        response = self.apply(404)
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['error'], 'Gig 404 not found')

    def test_accepting_an_application_fills_the_gig(self):
        gig = self.post_gig(milestones=[{'title': 'Stage A'}, {'title': 'Stage B'}])
        application = self.apply(gig['id']).json()

        response = self.client.post(f"/api/client/gig-applications/{application['id']}/accept/")
        self.assertEqual(response.status_code, 201)
        project = response.json()['project']
        self.assertEqual(project['freelancerId'], self.freelancer.id)
        self.assertEqual(project['gigId'], gig['id'])
        self.assertEqual(project['totalTasks'], 2)
        self.assertEqual(_memory_store.read(GIGS)[0]['status'], 'Unavailable')

        board = self.as_freelancer().get('/api/freelancer/task-board/todo/').json()
        self.assertEqual([t['title'] for t in board['tasks']], ['Stage A', 'Stage B'])
        self.assertEqual(self.as_freelancer().get('/api/freelancer/gigs/').json(), [])

    def test_rejected_applicant_waits_before_reapplying(self):
        gig = self.post_gig()
        application = self.apply(gig['id']).json()
        response = self.client.post(f"/api/client/gig-applications/{application['id']}/reject/")
        self.assertEqual(response.json()['application']['status'], 'rejected')

        response = self.apply(gig['id'])
        self.assertEqual(response.status_code, 409)
        self.assertIn('Please wait 21 more days', response.json()['error'])
        self.assertEqual(len(_memory_store.read(GIG_APPLICATIONS)), 1)

    def test_gig_request_to_a_freelancer(self):
        response = self.client.post('/api/client/gig-requests/', {
            'freelancerId': self.freelancer.id,
            'title': 'Ticket design',
            'notes': 'Two ticket tiers',
            'skills': ['Print'],
            'budget': {'min': 150, 'max': 300},
        }, format='json')
        self.assertEqual(response.status_code, 201, response.content)
        gig_request = response.json()
        self.assertEqual(gig_request['organizationId'], 3)
        self.assertIsNone(gig_request['gigId'])

        requests = self.as_freelancer().get('/api/freelancer/gig-requests/').json()
        self.assertEqual([r['id'] for r in requests], [gig_request['id']])
        self.assertEqual(self.client.get('/api/freelancer/gig-requests/').json(), [])

        response = self.as_freelancer().post(f"/api/freelancer/gig-requests/{gig_request['id']}/accept/")
        self.assertEqual(response.status_code, 201)
        project = response.json()['project']
        self.assertEqual(project['title'], 'Ticket design')
        self.assertEqual(project['totalBudget'], 300)
        self.assertEqual(project['gigRequestId'], gig_request['id'])

        response = self.as_freelancer().post(f"/api/freelancer/gig-requests/{gig_request['id']}/reject/")
        self.assertEqual(response.status_code, 409)

    def test_gig_request_for_another_freelancer(self):
        gig_request = self.client.post('/api/client/gig-requests/', {
            'freelancerId': self.commissioner.id, 'title': 'Ticket design',
        }, format='json').json()
        response = self.as_freelancer().post(f"/api/freelancer/gig-requests/{gig_request['id']}/reject/")
        self.assertEqual(response.status_code, 403)
