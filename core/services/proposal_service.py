import logging

from core.exceptions import PermissionDeniedError, ProposalError
from core.repositories import (
    ProjectRepository, ProjectTaskRepository, ProposalDraftRepository, ProposalRepository, now_iso,
)
from financeapp.services.budget_service import BudgetService, as_number, to_amount
from financeapp.services.invoice_service import InvoiceService

logger = logging.getLogger(__name__)

EXECUTION_METHODS = ('completion', 'milestone', 'hourly')

STATUS_SENT = 'sent'
STATUS_ACCEPTED = 'accepted'
STATUS_REJECTED = 'rejected'


class ProposalService:
    """Proposal lifecycle: auto-saved draft, sent, then accepted or rejected"""

    def __init__(self, store=None):
        self.store = store
        self.drafts = ProposalDraftRepository(store)
        self.proposals = ProposalRepository(store)

    def save_draft(self, freelancer_id, data):
        """Insert or replace a draft by id; a draft without id gets a fresh one"""
        draft = dict(data)
        draft_id = draft.get('id')
        if draft_id is not None:
            existing = self.drafts.find(draft_id)
            if existing is not None and existing.get('freelancerId') != freelancer_id:
                raise PermissionDeniedError("You can only edit your own drafts")

        draft.update({'freelancerId': freelancer_id, 'status': 'draft', 'lastSaved': now_iso()})
        return self.drafts.save(draft)

    def list_drafts(self, freelancer_id):
        return self.drafts.filter(freelancerId=freelancer_id)

    def delete_draft(self, draft_id, freelancer_id):
        draft = self.drafts.get(draft_id)
        if draft.get('freelancerId') != freelancer_id:
            raise PermissionDeniedError("You can only delete your own drafts")
        self.drafts.delete(draft_id)

    def price(self, proposal):
        """Fill in the money fields for the proposal's execution method.

        Raises ProposalError when explicit milestone amounts do not add up to
        the bid; the error carries the reconciler's message.
        """
        method = proposal.get('executionMethod') or 'completion'
        if method not in EXECUTION_METHODS:
            raise ProposalError(f"Unknown execution method: {method}")
        proposal['executionMethod'] = method

        if method == 'hourly':
            result = BudgetService.hourly_total(
                proposal.get('startDate') or proposal.get('customStartDate'),
                proposal.get('endDate'),
                proposal.get('hourlyRate'),
                proposal.get('maxHoursPerDay'),
            )
            if not result['total']:
                raise ProposalError("Hourly proposals need a start date, end date, rate and max hours per day")
            proposal.update({'totalBid': result['total'], 'workDays': result['work_days']})
            return proposal

        total_bid = to_amount(proposal.get('totalBid'))
        if not total_bid:
            raise ProposalError("Total bid must be greater than zero")
        proposal['totalBid'] = as_number(total_bid)

        if method == 'completion':
            breakdown = BudgetService.completion_breakdown(total_bid)
            proposal.update({
                'upfrontAmount': breakdown['upfront_amount'],
                'remainingAmount': breakdown['remaining_amount'],
            })
            return proposal

        milestones = proposal.get('milestones') or []
        if not milestones:
            raise ProposalError("Milestone proposals need at least one milestone")
        if proposal.get('autoSplit'):
            proposal['milestones'] = BudgetService.auto_split(total_bid, milestones)
            return proposal

        check = BudgetService.validate_milestones(total_bid, milestones)
        if not check['is_valid']:
            raise ProposalError(check['message'])
        return proposal

    def send(self, freelancer_id, data):
        proposal = dict(data)
        if not str(proposal.get('title') or '').strip():
            raise ProposalError("Proposal title is required")
        if proposal.get('commissionerId') is None:
            raise ProposalError("Proposal must be addressed to a commissioner")

        draft_id = proposal.pop('draftId', None)
        draft = self.drafts.find(draft_id) if draft_id is not None else None
        if draft is not None and draft.get('freelancerId') != freelancer_id:
            raise PermissionDeniedError("You can only send your own drafts")

        proposal.pop('id', None)
        proposal.pop('lastSaved', None)
        self.price(proposal)
        proposal.update({
            'freelancerId': freelancer_id,
            'status': STATUS_SENT,
            'sentAt': now_iso(),
            'createdAt': now_iso(),
        })
        self.proposals.save(proposal)

        if draft is not None:
            self.drafts.delete(draft_id)
        logger.info(f"Proposal {proposal['id']} sent by freelancer {freelancer_id}")
        return proposal

    def list_for_user(self, user_id):
        return [
            p for p in self.proposals.all()
            if user_id in (p.get('freelancerId'), p.get('commissionerId'))
        ]

    def _pending_for_commissioner(self, proposal_id, commissioner_id):
        proposal = self.proposals.get(proposal_id)
        if proposal.get('commissionerId') != commissioner_id:
            raise PermissionDeniedError("Only the commissioner this proposal was sent to can respond")
        if proposal.get('status') != STATUS_SENT:
            raise ProposalError(f"Proposal is already {proposal.get('status')}")
        return proposal

    def accept(self, proposal_id, commissioner_id):
        proposal = self._pending_for_commissioner(proposal_id, commissioner_id)
        proposal.update({'status': STATUS_ACCEPTED, 'acceptedAt': now_iso(), 'acceptedBy': commissioner_id})
        self.proposals.save(proposal)

        project = self.create_project(proposal)
        invoice = None
        upfront = to_amount(proposal.get('upfrontAmount'))
        if proposal.get('executionMethod') == 'completion' and upfront > 0:
            invoice = InvoiceService(self.store).create_upfront_invoice(project, upfront)

        logger.info(f"Proposal {proposal_id} accepted, project {project['projectId']} created")
        return {'proposal': proposal, 'project': project, 'invoice': invoice}

    def reject(self, proposal_id, commissioner_id, reason=None):
        proposal = self._pending_for_commissioner(proposal_id, commissioner_id)
        proposal.update({'status': STATUS_REJECTED, 'rejectedAt': now_iso()})
        if reason:
            proposal['rejectionReason'] = reason
        logger.info(f"Proposal {proposal_id} rejected by commissioner {commissioner_id}")
        return self.proposals.save(proposal)

    def create_project(self, proposal):
        """Project plus one Ongoing task per milestone; also used for accepted gigs"""
        milestones = proposal.get('milestones') or []
        total_bid = to_amount(proposal.get('totalBid'))
        upfront = to_amount(proposal.get('upfrontAmount'))
        method = proposal.get('executionMethod') or 'completion'

        project = ProjectRepository(self.store).save({
            'projectId': proposal.get('projectId'),
            'title': proposal.get('title'),
            'description': proposal.get('summary') or proposal.get('description'),
            'organizationId': proposal.get('organizationId'),
            'typeTags': proposal.get('typeTags') or [],
            'freelancerId': proposal.get('freelancerId'),
            'commissionerId': proposal.get('commissionerId'),
            'proposalId': proposal.get('id'),
            'status': 'ongoing',
            'invoicingMethod': 'completion' if method == 'completion' else 'milestone',
            'totalBudget': as_number(total_bid),
            'upfrontCommitment': as_number(upfront),
            'paidToDate': as_number(upfront),
            'totalTasks': len(milestones),
            'progress': 0,
            'dueDate': proposal.get('endDate'),
            'createdAt': now_iso(),
            'updatedAt': now_iso(),
        })

        task_repo = ProjectTaskRepository(self.store)
        next_id = task_repo.next_task_id()
        tasks = []
        for offset, milestone in enumerate(milestones):
            tasks.append({
                'id': next_id + offset,
                'title': milestone.get('title') or f"Milestone {offset + 1}",
                'description': milestone.get('description') or '',
                'status': 'Ongoing',
                'completed': False,
                'rejected': False,
                'pushedBack': False,
                'feedbackCount': 0,
                'order': offset + 1,
                'dueDate': milestone.get('endDate') or proposal.get('endDate'),
                'version': 1,
            })
        task_repo.save({
            'projectId': project['projectId'],
            'title': project['title'],
            'organizationId': project['organizationId'],
            'typeTags': project['typeTags'],
            'tasks': tasks,
        })
        return project
