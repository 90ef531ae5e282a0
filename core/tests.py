import json
import tempfile
from datetime import timedelta
from pathlib import Path

from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIClient

from .exceptions import EntityNotFound, GigConflictError, GigError, PermissionDeniedError
from .repositories import (
    InvoiceRepository, OrganizationRepository, ProjectRepository, ProjectTaskRepository,
    ProposalDraftRepository,
)
from .services.gig_service import GigService
from .storage import (
    GIG_APPLICATIONS, GIGS, ORGANIZATIONS, PROJECT_TASKS, PROJECTS, InMemoryStore, JSONFileStore, _memory_store,
)


class JSONFileStoreTest(SimpleTestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.store = JSONFileStore(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def test_missing_file_reads_as_empty(self):
        self.assertEqual(self.store.read(PROJECTS), [])

    def test_corrupt_file_reads_as_empty(self):
        Path(self.tmp.name, 'projects.json').write_text('{not json', encoding='utf-8')
        with self.assertLogs('core.storage', level='ERROR'):
            self.assertEqual(self.store.read(PROJECTS), [])

    def test_non_list_file_reads_as_empty(self):
        Path(self.tmp.name, 'projects.json').write_text('{"projectId": 1}', encoding='utf-8')
        with self.assertLogs('core.storage', level='ERROR'):
            self.assertEqual(self.store.read(PROJECTS), [])

    def test_write_pretty_prints_utf8(self):
        self.store.write(ORGANIZATIONS, [{'id': 1, 'name': 'Café Lumière'}])
        text = Path(self.tmp.name, 'organizations.json').read_text(encoding='utf-8')
        self.assertIn('\n  {\n    "id": 1,', text)
        self.assertIn('Café Lumière', text)
        self.assertEqual(json.loads(text), [{'id': 1, 'name': 'Café Lumière'}])

    def test_update_rewrites_whole_collection(self):
        self.store.write(PROJECTS, [{'projectId': 1}, {'projectId': 2}])
        self.store.update(PROJECTS, lambda records: [r for r in records if r['projectId'] != 1])
        self.assertEqual(self.store.read(PROJECTS), [{'projectId': 2}])

    def test_creates_data_dir_on_first_write(self):
        store = JSONFileStore(Path(self.tmp.name) / 'nested' / 'data')
        store.write(PROJECTS, [])
        self.assertTrue((Path(self.tmp.name) / 'nested' / 'data' / 'projects.json').exists())


class InMemoryStoreTest(SimpleTestCase):
    def test_reads_are_copies(self):
        store = InMemoryStore({PROJECTS: [{'projectId': 1, 'title': 'A'}]})
        records = store.read(PROJECTS)
        records[0]['title'] = 'changed'
        self.assertEqual(store.read(PROJECTS)[0]['title'], 'A')

    def test_update_in_place(self):
        store = InMemoryStore()
        store.update(PROJECTS, lambda records: records.append({'projectId': 3}))
        self.assertEqual(store.read(PROJECTS), [{'projectId': 3}])


class RepositoryTest(SimpleTestCase):
    def setUp(self):
        self.store = InMemoryStore({
            PROJECTS: [
                {'projectId': 1, 'title': 'Brand kit', 'freelancerId': 10, 'commissionerId': 20},
                {'projectId': 4, 'title': 'Landing page', 'freelancerId': 11, 'commissionerId': 20},
            ],
            PROJECT_TASKS: [
                {'projectId': 1, 'tasks': [{'id': 5, 'title': 'Logo'}, {'id': 6, 'title': 'Palette'}]},
            ],
        })

    def test_save_assigns_next_numeric_id(self):
        project = ProjectRepository(self.store).save({'title': 'New'})
        self.assertEqual(project['projectId'], 5)

    def test_save_replaces_existing(self):
        repo = ProjectRepository(self.store)
        repo.save({'projectId': 1, 'title': 'Renamed'})
        self.assertEqual(repo.get(1)['title'], 'Renamed')
        self.assertEqual(len(repo.all()), 2)

    def test_get_missing_raises(self):
        with self.assertRaisesMessage(EntityNotFound, 'Project 99 not found'):
            ProjectRepository(self.store).get(99)

    def test_draft_label(self):
        with self.assertRaisesMessage(EntityNotFound, 'Draft 3 not found'):
            ProposalDraftRepository(self.store).get(3)

    def test_for_user_matches_either_side(self):
        repo = ProjectRepository(self.store)
        self.assertEqual([p['projectId'] for p in repo.for_user(20)], [1, 4])
        self.assertEqual([p['projectId'] for p in repo.for_user(11)], [4])

    def test_get_task(self):
        repo = ProjectTaskRepository(self.store)
        entry, task = repo.get_task(1, 6)
        self.assertEqual(task['title'], 'Palette')
        with self.assertRaisesMessage(EntityNotFound, 'Task 7 not found'):
            repo.get_task(1, 7)
        with self.assertRaisesMessage(EntityNotFound, 'Project 4 not found'):
            repo.get_task(4, 1)

    def test_save_task_keeps_order(self):
        repo = ProjectTaskRepository(self.store)
        repo.save_task(1, {'id': 5, 'title': 'Logo v2'})
        self.assertEqual([t['title'] for t in repo.find(1)['tasks']], ['Logo v2', 'Palette'])
        self.assertEqual(repo.next_task_id(), 7)

    def test_invoice_ids_are_invoice_numbers(self):
        repo = InvoiceRepository(self.store)
        repo.save({'invoiceNumber': 'INV-1-001', 'projectId': 1, 'freelancerId': 10})
        self.assertEqual(repo.get('INV-1-001')['projectId'], 1)
        self.assertEqual(len(repo.for_project(1)), 1)

    def test_organization_for_contact(self):
        repo = OrganizationRepository(InMemoryStore({ORGANIZATIONS: [{'id': 2, 'contactPersonId': 20}]}))
        self.assertEqual(repo.for_contact(20)['id'], 2)
        self.assertIsNone(repo.for_contact(21))


@override_settings(FLATFILE_BACKEND='memory')
class GigServiceTest(SimpleTestCase):
    def setUp(self):
        self.store = InMemoryStore({
            ORGANIZATIONS: [{'id': 4, 'name': 'Kano Textiles', 'contactPersonId': 30}],
            GIGS: [{'id': 1, 'title': 'Pattern book', 'commissionerId': 30, 'organizationId': 4,
                    'status': 'Available', 'upperBudget': 800, 'tags': ['Illustration']}],
        })
        self.service = GigService(self.store)

    def rejected_application(self, days_ago):
        rejected_at = timezone.now() - timedelta(days=days_ago)
        self.store.write(GIG_APPLICATIONS, [{
            'id': 1, 'gigId': 1, 'freelancerId': 40, 'status': 'rejected', 'rejectedAt': rejected_at.isoformat(),
        }])

    def test_reapply_inside_cooldown_is_refused(self):
        self.rejected_application(days_ago=20)
        with self.assertRaisesMessage(GigConflictError, 'Please wait 1 more day.'):
            self.service.apply(1, 40, {'pitch': 'Second try'})

    def test_reapply_after_cooldown(self):
        self.rejected_application(days_ago=22)
        application = self.service.apply(1, 40, {'pitch': 'Second try'})
        self.assertEqual(application['id'], 2)
        self.assertEqual(application['status'], 'pending')

    def test_post_gig_defaults_to_commissioner_organization(self):
        gig = self.service.post_gig(30, {'title': 'Swatch cards', 'lowerBudget': '100', 'upperBudget': '250.50'})
        self.assertEqual(gig['id'], 2)
        self.assertEqual(gig['organizationId'], 4)
        self.assertEqual((gig['lowerBudget'], gig['upperBudget']), (100, 250.5))

    def test_post_gig_budget_range(self):
        with self.assertRaises(GigError):
            self.service.post_gig(30, {'title': 'Swatch cards', 'lowerBudget': 500, 'upperBudget': 100})

    def test_request_for_someone_elses_gig(self):
        with self.assertRaises(PermissionDeniedError):
            self.service.send_request(31, {'freelancerId': 40, 'gigId': 1})

    def test_accepted_request_hires_for_the_gig(self):
        gig_request = self.service.send_request(30, {'freelancerId': 40, 'gigId': 1, 'title': ''})
        self.assertEqual(gig_request['title'], 'Pattern book')

        result = self.service.accept_request(gig_request['id'], 40)
        project = result['project']
        self.assertEqual(project['gigId'], 1)
        self.assertEqual(project['gigRequestId'], gig_request['id'])
        self.assertEqual(project['totalBudget'], 800)
        self.assertEqual(project['typeTags'], ['Illustration'])
        self.assertEqual(self.store.read(GIGS)[0]['status'], 'Unavailable')
        self.assertEqual([t['title'] for t in self.store.read(PROJECT_TASKS)[0]['tasks']], ['Pattern book'])

        with self.assertRaises(GigConflictError):
            self.service.apply(1, 41, {'pitch': 'Too late'})


@override_settings(FLATFILE_BACKEND='memory')
class CoreAPITest(TestCase):
    def setUp(self):
        _memory_store.clear()
        _memory_store.write(ORGANIZATIONS, [{'id': 1, 'name': 'Lagos Parks', 'contactPersonId': 99}])
        self.user = get_user_model().objects.create_user(username='ada', password='pass12345')
        _memory_store.write(PROJECTS, [
            {'projectId': 1, 'title': 'Park signage', 'freelancerId': self.user.id,
             'commissionerId': 99, 'status': 'ongoing'},
            {'projectId': 2, 'title': 'Mural', 'freelancerId': self.user.id,
             'commissionerId': 99, 'status': 'paused'},
        ])
        self.client = APIClient()
        self.client.force_authenticate(self.user)

    def test_requires_authentication(self):
        response = APIClient().get('/api/organizations/')
        self.assertEqual(response.status_code, 401)

    def test_organizations(self):
        response = self.client.get('/api/organizations/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()[0]['name'], 'Lagos Parks')

    def test_projects_filtered_by_status(self):
        response = self.client.get('/api/projects/', {'status': 'paused'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual([p['projectId'] for p in response.json()], [2])
        self.assertEqual(response.json()[0]['role'], 'freelancer')

    def test_token_pair(self):
        response = APIClient().post('/api/token/', {'username': 'ada', 'password': 'pass12345'}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertIn('access', response.json())
