import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from core.services.gig_service import GigService
from core.services.proposal_service import ProposalService
from projectmanagement.services.project_service import ProjectService
from projectmanagement.services.task_service import TaskService

from .serializers import (
    GigPostSerializer, GigRequestSerializer, ProjectPauseSerializer, ProposalRejectSerializer, TaskReviewSerializer,
)

logger = logging.getLogger(__name__)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def tasks_to_review(request):
    tasks = TaskService().tasks_to_review(request.user.id)
    return Response({'count': len(tasks), 'tasks': tasks})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def review_task(request, project_id, task_id):
    """Approve or reject a submitted task"""
    serializer = TaskReviewSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    service = TaskService()
    if serializer.validated_data['action'] == 'approve':
        result = service.approve(project_id, task_id, request.user.id)
        return Response({
            'message': 'Task approved',
            'task': result['task'],
            'project': result['project'],
            'invoice': result['invoice'],
        })

    task = service.reject(project_id, task_id, request.user.id, serializer.validated_data.get('feedback'))
    return Response({'message': 'Task rejected', 'task': task})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def pause_project(request, project_id):
    serializer = ProjectPauseSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    project = ProjectService().pause(project_id, request.user.id, serializer.validated_data.get('reason'))
    return Response({'message': 'Project paused', 'project': project})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def resume_project(request, project_id):
    project = ProjectService().resume(project_id, request.user.id)
    return Response({'message': 'Project resumed', 'project': project})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def sync_project_status(request, project_id):
    service = TaskService()
    project = service.projects.get(project_id)
    if request.user.id not in (project.get('commissionerId'), project.get('freelancerId')):
        return Response({"error": "You are not part of this project"}, status=status.HTTP_403_FORBIDDEN)

    project = service.sync_project_status(project_id)
    return Response({'projectId': project_id, 'status': project['status'], 'progress': project['progress']})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def accept_proposal(request, proposal_id):
    result = ProposalService().accept(proposal_id, request.user.id)
    return Response({
        'message': 'Proposal accepted successfully and project created',
        'proposal': result['proposal'],
        'project': result['project'],
        'invoice': result['invoice'],
    }, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def reject_proposal(request, proposal_id):
    serializer = ProposalRejectSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    proposal = ProposalService().reject(proposal_id, request.user.id, serializer.validated_data.get('reason'))
    return Response({'message': 'Proposal rejected', 'proposal': proposal})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def gigs(request):
    """Gigs posted by the logged-in commissioner; POST posts a new one"""
    service = GigService()
    if request.method == 'GET':
        return Response(service.list_for_commissioner(request.user.id))

    serializer = GigPostSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    gig = service.post_gig(request.user.id, serializer.validated_data)
    return Response(gig, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def gig_applications(request, gig_id):
    applications = GigService().list_applications(gig_id, request.user.id)
    return Response({'count': len(applications), 'applications': applications})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def accept_gig_application(request, application_id):
    result = GigService().accept_application(application_id, request.user.id)
    return Response({
        'message': 'Application accepted and project created',
        'application': result['application'],
        'project': result['project'],
    }, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def reject_gig_application(request, application_id):
    application = GigService().reject_application(application_id, request.user.id)
    return Response({'message': 'Application rejected', 'application': application})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def send_gig_request(request):
    serializer = GigRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    gig_request = GigService().send_request(request.user.id, serializer.validated_data)
    return Response(gig_request, status=status.HTTP_201_CREATED)
