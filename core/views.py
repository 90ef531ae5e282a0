from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from projectmanagement.services.project_service import ProjectService

from .repositories import OrganizationRepository
from .services.proposal_service import ProposalService


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def organizations(request):
    return Response(OrganizationRepository().all())


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def my_projects(request):
    """Projects of the logged-in user, optionally narrowed by ?status="""
    projects = ProjectService().list_for_user(request.user.id)
    status_filter = request.GET.get('status')
    if status_filter:
        projects = [p for p in projects if str(p.get('status', '')).lower() == status_filter.lower()]
    return Response(projects)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def my_proposals(request):
    return Response(ProposalService().list_for_user(request.user.id))
