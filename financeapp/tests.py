from datetime import date, timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework.test import APIClient

from core.exceptions import InvoiceError, PermissionDeniedError
from core.storage import INVOICES, PROJECT_TASKS, PROJECTS, InMemoryStore, _memory_store

from .services.budget_service import BudgetService, round_half_up, to_amount
from .services.invoice_service import InvoiceService


class BudgetHelpersTest(SimpleTestCase):
    def test_to_amount_clamps(self):
        self.assertEqual(to_amount(-5), 0)
        self.assertEqual(to_amount('abc'), 0)
        self.assertEqual(to_amount(float('nan')), 0)
        self.assertEqual(to_amount(float('inf')), 0)
        self.assertEqual(to_amount(None), 0)
        self.assertEqual(to_amount(True), 0)
        self.assertEqual(to_amount('1,250.50'), Decimal('1250.50'))

    def test_round_half_up(self):
        self.assertEqual(round_half_up(Decimal('2.5')), 3)
        self.assertEqual(round_half_up(Decimal('3.5')), 4)
        self.assertEqual(round_half_up(Decimal('1.005'), 2), Decimal('1.01'))


class CompletionBreakdownTest(SimpleTestCase):
    def test_upfront_is_twelve_percent(self):
        result = BudgetService.completion_breakdown(1000)
        self.assertEqual(result['upfront_amount'], 120)
        self.assertEqual(result['remaining_amount'], 880)
        self.assertEqual(result['upfront_percentage'], 12)

    def test_upfront_rounds_half_up(self):
        # 1012.5 * 0.12 = 121.5
        self.assertEqual(BudgetService.completion_breakdown(1012.5)['upfront_amount'], 122)

    def test_upfront_never_exceeds_bid(self):
        for bid in (0, 1, 3, 4, 99, 1000, 123456):
            result = BudgetService.completion_breakdown(bid)
            self.assertLessEqual(result['upfront_amount'], bid)

    def test_garbage_bid_is_zero(self):
        self.assertEqual(BudgetService.completion_breakdown('lots')['upfront_amount'], 0)


class MilestoneTest(SimpleTestCase):
    def test_matching_amounts_are_valid(self):
        milestones = [{'amount': 300}, {'amount': 300}, {'amount': 400}]
        result = BudgetService.validate_milestones(1000, milestones)
        self.assertTrue(result['is_valid'])
        self.assertEqual(result['difference'], 0)
        self.assertEqual(result['message'], '')

    def test_shortfall_reports_exact_delta(self):
        milestones = [{'amount': 300}, {'amount': 300}, {'amount': 300}]
        result = BudgetService.validate_milestones(1000, milestones)
        self.assertFalse(result['is_valid'])
        self.assertEqual(result['difference'], 100)
        self.assertEqual(result['direction'], 'short')
        self.assertEqual(result['message'], 'Milestone total is $100 short of the total bid')

    def test_excess_reports_exact_delta(self):
        result = BudgetService.validate_milestones(500, [{'amount': 350}, {'amount': 250}])
        self.assertEqual(result['difference'], 100)
        self.assertEqual(result['direction'], 'over')
        self.assertEqual(result['message'], 'Milestone total exceeds bid by $100')

    def test_auto_split_keeps_rounding_slack(self):
        milestones = BudgetService.auto_split(1000, [{'id': 1}, {'id': 2}, {'id': 3}])
        self.assertEqual([m['amount'] for m in milestones], [333, 333, 333])
        self.assertLess(abs(sum(m['amount'] for m in milestones) - 1000), len(milestones))

    def test_add_and_remove_recompute_every_milestone(self):
        milestones = BudgetService.add_milestone([{'id': 1, 'amount': 1000}], {'id': 2}, 1000)
        self.assertEqual([m['amount'] for m in milestones], [500, 500])
        milestones = BudgetService.add_milestone(milestones, {'id': 3}, 1000)
        self.assertEqual([m['amount'] for m in milestones], [333, 333, 333])
        milestones = BudgetService.remove_milestone(milestones, 2, 1000)
        self.assertEqual([(m['id'], m['amount']) for m in milestones], [(1, 500), (3, 500)])

    def test_completion_method_leaves_amounts_alone(self):
        milestones = BudgetService.add_milestone([{'id': 1}], {'id': 2}, 1000, execution_method='completion')
        self.assertNotIn('amount', milestones[0])


class HourlyTest(SimpleTestCase):
    def test_one_week(self):
        monday = date(2026, 3, 2)
        result = BudgetService.hourly_total(monday, monday + timedelta(days=6), 50, 4)
        self.assertEqual(result['work_days'], 5)
        self.assertEqual(result['total'], 1000)

    def test_iso_strings(self):
        result = BudgetService.hourly_total('2026-03-02', '2026-03-11T00:00:00.000Z', 40, 8)
        # 10 calendar days -> ceil(50 / 7) = 8
        self.assertEqual(result['work_days'], 8)
        self.assertEqual(result['total'], 2560)

    def test_missing_inputs_give_zero(self):
        self.assertEqual(BudgetService.hourly_total(None, '2026-03-08', 50, 4)['total'], 0)
        self.assertEqual(BudgetService.hourly_total('2026-03-02', '2026-03-08', 0, 4)['total'], 0)
        self.assertEqual(BudgetService.hourly_total('2026-03-02', '2026-03-08', 50, None)['total'], 0)
        self.assertEqual(BudgetService.hourly_total('2026-03-08', '2026-03-02', 50, 4)['total'], 0)

    def test_monotonic_in_each_input(self):
        base = BudgetService.hourly_total('2026-03-02', '2026-03-08', 50, 4)['total']
        self.assertGreaterEqual(BudgetService.hourly_total('2026-03-02', '2026-03-08', 60, 4)['total'], base)
        self.assertGreaterEqual(BudgetService.hourly_total('2026-03-02', '2026-03-08', 50, 5)['total'], base)
        self.assertGreaterEqual(BudgetService.hourly_total('2026-03-02', '2026-03-20', 50, 4)['total'], base)


def finance_store(invoicing_method='milestone', freelancer_id=10, commissioner_id=20):
    return InMemoryStore({
        PROJECTS: [{
            'projectId': 7, 'title': 'Poster series', 'freelancerId': freelancer_id,
            'commissionerId': commissioner_id, 'status': 'ongoing', 'invoicingMethod': invoicing_method,
            'totalBudget': 1000, 'upfrontCommitment': 120 if invoicing_method == 'completion' else 0,
            'totalTasks': 4,
        }],
        PROJECT_TASKS: [{'projectId': 7, 'tasks': [
            {'id': 1, 'title': 'Sketches', 'status': 'Approved', 'completed': True},
            {'id': 2, 'title': 'Inking', 'status': 'Approved', 'completed': True},
            {'id': 3, 'title': 'Colour', 'status': 'In review', 'completed': False},
            {'id': 4, 'title': 'Print files', 'status': 'Ongoing', 'completed': False},
        ]}],
    })


class InvoiceServiceTest(SimpleTestCase):
    def test_milestone_rate_is_budget_over_tasks(self):
        invoice = InvoiceService(finance_store()).generate_for_project(7, 10)
        self.assertEqual([line['taskId'] for line in invoice['milestones']], [1, 2])
        self.assertEqual(invoice['milestones'][0]['rate'], 250)
        self.assertEqual(invoice['totalAmount'], 500)
        self.assertEqual(invoice['status'], 'draft')
        self.assertEqual(invoice['invoiceNumber'], 'INV-7-001')

    def test_due_in_fourteen_days(self):
        invoice = InvoiceService(finance_store()).generate_for_project(7, 10)
        issued = date.fromisoformat(invoice['issueDate'])
        self.assertEqual(date.fromisoformat(invoice['dueDate']) - issued, timedelta(days=14))

    def test_completion_rate_splits_pool_after_upfront(self):
        invoice = InvoiceService(finance_store('completion')).generate_for_project(7, 10)
        self.assertEqual(invoice['milestones'][0]['rate'], 220)

    def test_tasks_are_invoiced_once(self):
        service = InvoiceService(finance_store())
        service.generate_for_project(7, 10)
        with self.assertRaisesMessage(InvoiceError, 'No available tasks to invoice'):
            service.generate_for_project(7, 10)

    def test_only_project_freelancer_can_invoice(self):
        with self.assertRaises(PermissionDeniedError):
            InvoiceService(finance_store()).generate_for_project(7, 11)

    def test_pay_within_tolerance(self):
        store = finance_store()
        service = InvoiceService(store)
        number = service.generate_for_project(7, 10)['invoiceNumber']
        service.send(number, 10)
        invoice = service.pay(number, 20, Decimal('499.995'))
        self.assertEqual(invoice['status'], 'paid')
        self.assertIn('paidDate', invoice)
        tasks = store.read(PROJECT_TASKS)[0]['tasks']
        self.assertTrue(tasks[0]['invoicePaid'])
        self.assertEqual(store.read(PROJECTS)[0]['paidToDate'], 500)

    def test_pay_rejects_wrong_amount(self):
        service = InvoiceService(finance_store())
        number = service.generate_for_project(7, 10)['invoiceNumber']
        with self.assertRaisesMessage(InvoiceError, 'does not match invoice total'):
            service.pay(number, 20, 480)

    def test_pay_twice(self):
        service = InvoiceService(finance_store())
        number = service.generate_for_project(7, 10)['invoiceNumber']
        service.pay(number, 20, 500)
        with self.assertRaisesMessage(InvoiceError, 'already paid'):
            service.pay(number, 20, 500)

    def test_pay_requires_owner(self):
        service = InvoiceService(finance_store())
        number = service.generate_for_project(7, 10)['invoiceNumber']
        with self.assertRaises(PermissionDeniedError):
            service.pay(number, 21, 500)

    def test_send_only_drafts(self):
        service = InvoiceService(finance_store())
        number = service.generate_for_project(7, 10)['invoiceNumber']
        service.send(number, 10)
        with self.assertRaises(InvoiceError):
            service.send(number, 10)

    def test_upfront_invoice_is_paid(self):
        store = finance_store('completion')
        project = store.read(PROJECTS)[0]
        invoice = InvoiceService(store).create_upfront_invoice(project, 120)
        self.assertEqual(invoice['status'], 'paid')
        self.assertEqual(invoice['invoiceType'], 'upfront')
        self.assertEqual(invoice['totalAmount'], 120)
        self.assertEqual(store.read(INVOICES)[0]['invoiceNumber'], 'UPF-7')


@override_settings(FLATFILE_BACKEND='memory')
class FinanceAPITest(TestCase):
    def setUp(self):
        User = get_user_model()
        self.freelancer = User.objects.create_user(username='kemi', password='x')
        self.commissioner = User.objects.create_user(username='tunde', password='x')
        _memory_store.clear()
        store = finance_store(freelancer_id=self.freelancer.id, commissioner_id=self.commissioner.id)
        for collection in (PROJECTS, PROJECT_TASKS):
            _memory_store.write(collection, store.read(collection))
        self.client = APIClient()

    def test_generate_send_and_pay(self):
        self.client.force_authenticate(self.freelancer)
        response = self.client.post('/api/finance/invoices/generate-for-project/', {'projectId': 7}, format='json')
        self.assertEqual(response.status_code, 201)
        number = response.json()['invoiceNumber']

        response = self.client.post(f'/api/finance/invoices/{number}/send/')
        self.assertEqual(response.json()['invoice']['status'], 'sent')

        self.client.force_authenticate(self.commissioner)
        response = self.client.post(f'/api/finance/invoices/{number}/pay/', {'amount': '400.00'}, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertIn('does not match', response.json()['error'])

        response = self.client.post(f'/api/finance/invoices/{number}/pay/', {'amount': '500.00'}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['invoice']['status'], 'paid')

        response = self.client.get('/api/finance/invoices/', {'status': 'paid'})
        self.assertEqual([inv['invoiceNumber'] for inv in response.json()], [number])

    def test_pay_unknown_invoice(self):
        self.client.force_authenticate(self.commissioner)
        response = self.client.post('/api/finance/invoices/INV-0-000/pay/', {'amount': '1'}, format='json')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['error'], 'Invoice INV-0-000 not found')

    def test_budget_breakdown_reports_mismatch(self):
        self.client.force_authenticate(self.freelancer)
        response = self.client.post('/api/finance/budget/breakdown/', {
            'executionMethod': 'milestone',
            'totalBid': 1000,
            'milestones': [{'amount': 300}, {'amount': 300}, {'amount': 300}],
        }, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.json()['validation']['is_valid'])
        self.assertEqual(response.json()['validation']['difference'], 100)
