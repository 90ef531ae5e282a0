import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from core.services.gig_service import GigService
from core.services.proposal_service import ProposalService
from projectmanagement.classifier import COLUMNS, ReviewGraceWindow, classify_column, task_ids
from projectmanagement.services.project_service import ProjectService
from projectmanagement.services.task_service import TaskService, load_board_snapshot, move_tasks_to_today

from .serializers import GigApplySerializer, PauseRequestSerializer, ProposalSendSerializer, TaskSubmitSerializer

logger = logging.getLogger(__name__)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def task_board_column(request, column):
    """Tasks of one board column (todo, upcoming or review) for the logged-in freelancer"""
    if column not in COLUMNS:
        return Response(
            {"error": f"Unknown column '{column}', expected one of {', '.join(COLUMNS)}"},
            status=status.HTTP_400_BAD_REQUEST,
        )

    snapshot = load_board_snapshot(request.user.id)
    suppressed = ReviewGraceWindow().active_ids(task_ids(snapshot))
    tasks = classify_column(snapshot, column, suppressed)
    return Response({'column': column, 'count': len(tasks), 'tasks': tasks})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def task_board(request):
    snapshot = load_board_snapshot(request.user.id)
    suppressed = ReviewGraceWindow().active_ids(task_ids(snapshot))
    return Response({
        column: classify_column(snapshot, column, suppressed) for column in COLUMNS
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def submit_task(request, project_id, task_id):
    serializer = TaskSubmitSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    task = TaskService().submit(
        project_id, task_id, request.user.id,
        reference_url=serializer.validated_data.get('referenceUrl'),
    )
    return Response({'message': 'Task submitted for review', 'task': task})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def move_to_today(request):
    result = move_tasks_to_today(freelancer_id=request.user.id)
    return Response(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def request_project_pause(request, project_id):
    serializer = PauseRequestSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    pause_request = ProjectService().request_pause(
        project_id, request.user.id, serializer.validated_data.get('reason'),
    )
    return Response(
        {'message': 'Pause request sent to the commissioner', 'request': pause_request},
        status=status.HTTP_202_ACCEPTED,
    )


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def proposal_drafts(request):
    service = ProposalService()
    if request.method == 'GET':
        return Response(service.list_drafts(request.user.id))

    if not isinstance(request.data, dict):
        return Response({"error": "Draft must be a JSON object"}, status=status.HTTP_400_BAD_REQUEST)
    draft = service.save_draft(request.user.id, request.data)
    return Response(draft, status=status.HTTP_200_OK)


@api_view(['DELETE'])
@permission_classes([IsAuthenticated])
def delete_proposal_draft(request, draft_id):
    ProposalService().delete_draft(draft_id, request.user.id)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def send_proposal(request):
    serializer = ProposalSendSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    proposal = ProposalService().send(request.user.id, serializer.validated_data)
    return Response(proposal, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def open_gigs(request):
    """Gigs still accepting applications"""
    return Response(GigService().list_open())


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def apply_to_gig(request, gig_id):
    serializer = GigApplySerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    application = GigService().apply(gig_id, request.user.id, serializer.validated_data)
    return Response(application, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def gig_requests(request):
    return Response(GigService().list_requests(request.user.id))


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def accept_gig_request(request, request_id):
    result = GigService().accept_request(request_id, request.user.id)
    return Response({
        'message': 'Gig request accepted and project created',
        'request': result['request'],
        'project': result['project'],
    }, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def reject_gig_request(request, request_id):
    gig_request = GigService().reject_request(request_id, request.user.id)
    return Response({'message': 'Gig request declined', 'request': gig_request})
