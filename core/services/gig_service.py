"""
Gigs: open listings a commissioner posts, applications freelancers send to
them, and gig requests a commissioner sends straight to one freelancer.

A gig is ``Available`` until a freelancer is hired through it, then
``Unavailable``. Accepting an application or a request creates the project the
same way an accepted proposal does.
"""
import logging
from datetime import timedelta

from django.utils import timezone
from django.utils.dateparse import parse_datetime

from core.exceptions import GigConflictError, GigError, PermissionDeniedError
from core.repositories import (
    GigApplicationRepository, GigRepository, GigRequestRepository, OrganizationRepository, ProjectRepository,
    now_iso,
)
from financeapp.services.budget_service import as_number, to_amount
from projectmanagement.board_events import notify_board_changed

from .proposal_service import ProposalService

logger = logging.getLogger(__name__)

GIG_AVAILABLE = 'Available'
GIG_UNAVAILABLE = 'Unavailable'

PENDING = 'pending'
ACCEPTED = 'accepted'
REJECTED = 'rejected'

REAPPLY_COOLDOWN = timedelta(days=21)


class GigService:
    def __init__(self, store=None):
        self.store = store
        self.gigs = GigRepository(store)
        self.applications = GigApplicationRepository(store)
        self.requests = GigRequestRepository(store)

    def post_gig(self, commissioner_id, data):
        gig = dict(data)
        if not str(gig.get('title') or '').strip():
            raise GigError("Gig title is required")
        lower = to_amount(gig.get('lowerBudget'))
        upper = to_amount(gig.get('upperBudget'))
        if upper and lower > upper:
            raise GigError("Lower budget cannot be above the upper budget")

        if gig.get('organizationId') is None:
            org = OrganizationRepository(self.store).for_contact(commissioner_id)
            gig['organizationId'] = org.get('id') if org else None
        gig.pop('id', None)
        gig.update({
            'commissionerId': commissioner_id,
            'lowerBudget': as_number(lower),
            'upperBudget': as_number(upper),
            'status': GIG_AVAILABLE,
            'postedDate': now_iso(),
        })
        gig = self.gigs.save(gig)
        logger.info(f"Gig {gig['id']} posted by commissioner {commissioner_id}")
        return gig

    def list_open(self):
        return self.gigs.open_gigs()

    def list_for_commissioner(self, commissioner_id):
        return self.gigs.filter(commissionerId=commissioner_id)

    def _own_gig(self, gig_id, commissioner_id):
        gig = self.gigs.get(gig_id)
        if gig.get('commissionerId') != commissioner_id:
            raise PermissionDeniedError("Only the commissioner who posted this gig can do this")
        return gig

    def apply(self, gig_id, freelancer_id, data):
        gig = self.gigs.get(gig_id)
        if gig.get('status') != GIG_AVAILABLE:
            raise GigConflictError("This gig is no longer accepting applications")

        previous = [a for a in self.applications.for_gig(gig_id) if a.get('freelancerId') == freelancer_id]
        if previous:
            latest = previous[-1]
            if latest.get('status') in (PENDING, ACCEPTED, None):
                raise GigConflictError("You have already applied to this gig")
            rejected_at = parse_datetime(latest.get('rejectedAt') or '')
            if rejected_at is not None:
                cooldown_end = rejected_at + REAPPLY_COOLDOWN
                if timezone.now() < cooldown_end:
                    days = (cooldown_end - timezone.now()).days + 1
                    raise GigConflictError(
                        f"You cannot re-apply to this gig yet. Please wait {days} more day{'s' if days > 1 else ''}."
                    )

        application = self.applications.save({
            'gigId': gig_id,
            'freelancerId': freelancer_id,
            'pitch': data.get('pitch') or '',
            'sampleLinks': list(data.get('sampleLinks') or []),
            'skills': list(data.get('skills') or []),
            'tools': list(data.get('tools') or []),
            'status': PENDING,
            'submittedAt': now_iso(),
        })
        logger.info(f"Freelancer {freelancer_id} applied to gig {gig_id}")
        return application

    def list_applications(self, gig_id, commissioner_id):
        self._own_gig(gig_id, commissioner_id)
        return self.applications.for_gig(gig_id)

    def _pending_application(self, application_id, commissioner_id):
        application = self.applications.get(application_id)
        gig = self._own_gig(application.get('gigId'), commissioner_id)
        if application.get('status') != PENDING:
            raise GigError(f"Application is already {application.get('status')}")
        return application, gig

    def accept_application(self, application_id, commissioner_id):
        application, gig = self._pending_application(application_id, commissioner_id)
        if gig.get('status') != GIG_AVAILABLE:
            raise GigConflictError("This gig has already been filled")

        application.update({'status': ACCEPTED, 'acceptedAt': now_iso()})
        self.applications.save(application)
        project = self._hire(application.get('freelancerId'), gig=gig)
        logger.info(f"Application {application_id} accepted, project {project['projectId']} created")
        return {'application': application, 'project': project}

    def reject_application(self, application_id, commissioner_id):
        application, _ = self._pending_application(application_id, commissioner_id)
        application.update({'status': REJECTED, 'rejectedAt': now_iso()})
        logger.info(f"Application {application_id} rejected by commissioner {commissioner_id}")
        return self.applications.save(application)

    def send_request(self, commissioner_id, data):
        """Invite one freelancer directly, optionally for one of the commissioner's gigs"""
        request = dict(data)
        if request.get('freelancerId') is None:
            raise GigError("A gig request needs a freelancer")

        gig_id = request.get('gigId')
        if gig_id is not None:
            gig = self._own_gig(gig_id, commissioner_id)
            request['title'] = request.get('title') or gig.get('title')
            if request.get('organizationId') is None:
                request['organizationId'] = gig.get('organizationId')
        if not str(request.get('title') or '').strip():
            raise GigError("Gig request title is required")
        if request.get('organizationId') is None:
            org = OrganizationRepository(self.store).for_contact(commissioner_id)
            request['organizationId'] = org.get('id') if org else None

        request.pop('id', None)
        request.update({
            'commissionerId': commissioner_id,
            'gigId': gig_id,
            'status': GIG_AVAILABLE,
            'createdAt': now_iso(),
        })
        request = self.requests.save(request)
        logger.info(f"Gig request {request['id']} sent to freelancer {request['freelancerId']}")
        return request

    def list_requests(self, freelancer_id):
        return self.requests.filter(freelancerId=freelancer_id)

    def _open_request(self, request_id, freelancer_id):
        request = self.requests.get(request_id)
        if request.get('freelancerId') != freelancer_id:
            raise PermissionDeniedError("This gig request was sent to another freelancer")
        if request.get('status') != GIG_AVAILABLE:
            raise GigConflictError(f"This gig request has already been {str(request.get('status')).lower()}")
        return request

    def accept_request(self, request_id, freelancer_id):
        request = self._open_request(request_id, freelancer_id)
        gig = self.gigs.find(request.get('gigId')) if request.get('gigId') is not None else None
        if gig is not None and gig.get('status') != GIG_AVAILABLE:
            raise GigConflictError("This gig has already been filled")

        request.update({'status': 'Accepted', 'acceptedAt': now_iso()})
        self.requests.save(request)
        project = self._hire(freelancer_id, gig=gig, request=request)
        logger.info(f"Gig request {request_id} accepted, project {project['projectId']} created")
        return {'request': request, 'project': project}

    def reject_request(self, request_id, freelancer_id):
        request = self._open_request(request_id, freelancer_id)
        request.update({'status': 'Rejected', 'rejectedAt': now_iso()})
        logger.info(f"Gig request {request_id} declined by freelancer {freelancer_id}")
        return self.requests.save(request)

    def _hire(self, freelancer_id, gig=None, request=None):
        """Create the project for a gig or a standalone request and close the gig"""
        listing = gig or request
        milestones = listing.get('milestones') or [
            {'title': listing.get('title'), 'endDate': listing.get('endDate')},
        ]
        budget = to_amount(listing.get('upperBudget') or (listing.get('budget') or {}).get('max'))
        project = ProposalService(self.store).create_project({
            'title': listing.get('title'),
            'description': listing.get('description') or listing.get('notes'),
            'organizationId': listing.get('organizationId'),
            'typeTags': listing.get('tags') or listing.get('skills') or [],
            'freelancerId': freelancer_id,
            'commissionerId': listing.get('commissionerId'),
            'executionMethod': listing.get('executionMethod') or 'completion',
            'totalBid': as_number(budget),
            'milestones': milestones,
            'endDate': listing.get('endDate'),
        })

        if gig is not None:
            gig.update({'status': GIG_UNAVAILABLE, 'hiredFreelancerId': freelancer_id, 'filledAt': now_iso()})
            self.gigs.save(gig)
            project['gigId'] = gig.get('id')
        if request is not None:
            project['gigRequestId'] = request.get('id')
        project = ProjectRepository(self.store).save(project)
        notify_board_changed([freelancer_id])
        return project
