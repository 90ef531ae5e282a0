import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from .serializers import BudgetBreakdownSerializer, GenerateInvoiceSerializer, InvoicePaySerializer
from .services.budget_service import BudgetService
from .services.invoice_service import InvoiceService

logger = logging.getLogger(__name__)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def list_invoices(request):
    """Invoices where the logged-in user is the freelancer or the commissioner"""
    invoices = InvoiceService().invoices.for_user(request.user.id)
    status_filter = request.GET.get('status')
    if status_filter:
        invoices = [inv for inv in invoices if inv.get('status') == status_filter]
    invoices.sort(key=lambda inv: inv.get('issueDate') or '', reverse=True)
    return Response(invoices)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def generate_invoice_for_project(request):
    serializer = GenerateInvoiceSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    invoice = InvoiceService().generate_for_project(serializer.validated_data['projectId'], request.user.id)
    return Response(invoice, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def send_invoice(request, invoice_number):
    invoice = InvoiceService().send(invoice_number, request.user.id)
    return Response({'message': 'Invoice sent', 'invoice': invoice})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def pay_invoice(request, invoice_number):
    serializer = InvoicePaySerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    invoice = InvoiceService().pay(invoice_number, request.user.id, serializer.validated_data['amount'])
    return Response({'message': 'Invoice paid', 'invoice': invoice})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def budget_breakdown(request):
    """Preview how a bid splits into payments; mismatches come back as data"""
    serializer = BudgetBreakdownSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    method = data['executionMethod']
    if method == 'hourly':
        result = BudgetService.hourly_total(
            data.get('startDate'), data.get('endDate'), data.get('hourlyRate'), data.get('maxHoursPerDay'),
        )
    elif method == 'milestone' and data['autoSplit']:
        milestones = BudgetService.auto_split(data['totalBid'], data['milestones'])
        result = BudgetService.breakdown(data['totalBid'], method, milestones)
    else:
        result = BudgetService.breakdown(data['totalBid'], method, data['milestones'])
    return Response(result)
