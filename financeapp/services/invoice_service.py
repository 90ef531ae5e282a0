import logging
from datetime import timedelta
from decimal import Decimal

from django.utils import timezone

from core.exceptions import InvoiceError, PermissionDeniedError
from core.repositories import InvoiceRepository, ProjectRepository, ProjectTaskRepository, now_iso

from .budget_service import as_number, round_half_up, to_amount

logger = logging.getLogger(__name__)

PAYMENT_TOLERANCE = Decimal('0.01')
DUE_IN_DAYS = 14
PAYABLE_STATUSES = ('draft', 'sent')


class InvoiceService:
    """Invoices built from approved tasks, plus the upfront invoice of completion projects"""

    def __init__(self, store=None):
        self.store = store
        self.invoices = InvoiceRepository(store)
        self.projects = ProjectRepository(store)
        self.project_tasks = ProjectTaskRepository(store)

    def _next_number(self, project_id):
        return f"INV-{project_id}-{len(self.invoices.for_project(project_id)) + 1:03d}"

    def invoiced_task_ids(self, project_id):
        ids = set()
        for invoice in self.invoices.for_project(project_id):
            for line in invoice.get('milestones', []):
                if line.get('taskId') is not None:
                    ids.add(line['taskId'])
        return ids

    def rate_per_task(self, project):
        total_budget = to_amount(project.get('totalBudget'))
        total_tasks = int(project.get('totalTasks') or 0)
        if not total_budget or total_tasks <= 0:
            return Decimal('0')

        if project.get('invoicingMethod') != 'completion':
            return round_half_up(total_budget / total_tasks, 2)

        # completion: whatever is left after the upfront commitment, spread over unpaid tasks
        pool = total_budget - to_amount(project.get('upfrontCommitment'))
        paid_tasks = sum(
            len([line for line in inv.get('milestones', []) if line.get('taskId') is not None])
            for inv in self.invoices.for_project(project.get('projectId'))
            if inv.get('status') == 'paid'
        )
        remaining_tasks = max(1, total_tasks - paid_tasks)
        remaining_budget = pool - paid_tasks * (pool / total_tasks)
        return round_half_up(max(remaining_budget, Decimal('0')) / remaining_tasks, 2)

    def _build(self, project, number, lines, status='draft', invoice_type='milestone'):
        today = timezone.localdate()
        total = sum((to_amount(line['rate']) for line in lines), Decimal('0'))
        return {
            'invoiceNumber': number,
            'projectId': project.get('projectId'),
            'projectTitle': project.get('title'),
            'freelancerId': project.get('freelancerId'),
            'commissionerId': project.get('commissionerId'),
            'issueDate': today.isoformat(),
            'dueDate': (today + timedelta(days=DUE_IN_DAYS)).isoformat(),
            'totalAmount': as_number(total),
            'status': status,
            'invoiceType': invoice_type,
            'milestones': lines,
            'createdAt': now_iso(),
        }

    def generate_for_tasks(self, project, tasks):
        already = self.invoiced_task_ids(project.get('projectId'))
        available = [
            t for t in tasks
            if t.get('status') == 'Approved' and t.get('id') not in already and not t.get('invoicePaid')
        ]
        if not available:
            return None

        rate = as_number(self.rate_per_task(project))
        lines = [
            {
                'taskId': t.get('id'),
                'title': t.get('title') or f"Task {t.get('id')}",
                'description': t.get('description') or t.get('title') or f"Task {t.get('id')}",
                'rate': rate,
            }
            for t in available
        ]
        invoice = self._build(project, self._next_number(project.get('projectId')), lines)
        self.invoices.save(invoice)
        logger.info(f"Generated invoice {invoice['invoiceNumber']} for {len(lines)} task(s)")
        return invoice

    def generate_for_project(self, project_id, freelancer_id):
        project = self.projects.get(project_id)
        if project.get('freelancerId') != freelancer_id:
            raise PermissionDeniedError("Only the project freelancer can invoice this project")

        entry = self.project_tasks.find(project_id) or {}
        invoice = self.generate_for_tasks(project, entry.get('tasks', []))
        if invoice is None:
            raise InvoiceError("No available tasks to invoice")
        return invoice

    def create_upfront_invoice(self, project, amount):
        """Upfront commitment of a completion project; recorded as already paid"""
        lines = [{
            'taskId': None,
            'title': 'Upfront payment',
            'description': 'Upfront payment (12% of total project)',
            'rate': as_number(to_amount(amount)),
        }]
        invoice = self._build(
            project, f"UPF-{project.get('projectId')}", lines, status='paid', invoice_type='upfront',
        )
        invoice['dueDate'] = invoice['issueDate']
        invoice['paidDate'] = now_iso()
        self.invoices.save(invoice)
        logger.info(f"Recorded upfront invoice {invoice['invoiceNumber']} for {invoice['totalAmount']}")
        return invoice

    def send(self, invoice_number, freelancer_id):
        invoice = self.invoices.get(invoice_number)
        if invoice.get('freelancerId') != freelancer_id:
            raise PermissionDeniedError("You can only send your own invoices")
        if invoice.get('status') != 'draft':
            raise InvoiceError(f"Invoice is {invoice.get('status')}, only drafts can be sent")

        invoice.update({'status': 'sent', 'sentDate': now_iso()})
        return self.invoices.save(invoice)

    def pay(self, invoice_number, commissioner_id, amount):
        invoice = self.invoices.get(invoice_number)
        if invoice.get('commissionerId') != commissioner_id:
            raise PermissionDeniedError("Unauthorized: This invoice does not belong to you")
        if invoice.get('status') == 'paid':
            raise InvoiceError("Invoice is already paid")
        if invoice.get('status') not in PAYABLE_STATUSES:
            raise InvoiceError("Invoice must be sent or draft to be paid")

        expected = to_amount(invoice.get('totalAmount'))
        if abs(to_amount(amount) - expected) > PAYMENT_TOLERANCE:
            raise InvoiceError(
                f"Payment amount does not match invoice total: expected {as_number(expected)}, "
                f"received {as_number(to_amount(amount))}"
            )

        invoice.update({'status': 'paid', 'paidDate': now_iso(), 'paidAmount': as_number(expected)})
        self.invoices.save(invoice)
        self._mark_tasks_paid(invoice)
        self._add_to_paid_to_date(invoice.get('projectId'), expected)
        logger.info(f"Invoice {invoice_number} paid by commissioner {commissioner_id}")
        return invoice

    def _mark_tasks_paid(self, invoice):
        task_ids = {line.get('taskId') for line in invoice.get('milestones', []) if line.get('taskId') is not None}
        if not task_ids:
            return

        def mutate(records):
            for entry in records:
                if entry.get('projectId') != invoice.get('projectId'):
                    continue
                for task in entry.get('tasks', []):
                    if task.get('id') in task_ids:
                        task['invoicePaid'] = True

        self.project_tasks.store.update(self.project_tasks.collection, mutate)

    def _add_to_paid_to_date(self, project_id, amount):
        project = self.projects.find(project_id)
        if project is None:
            logger.warning(f"Paid invoice references missing project {project_id}")
            return
        project['paidToDate'] = as_number(to_amount(project.get('paidToDate')) + amount)
        self.projects.save(project)
