from rest_framework import serializers


class InvoicePaySerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=14, decimal_places=2)


class GenerateInvoiceSerializer(serializers.Serializer):
    projectId = serializers.IntegerField()


class BudgetBreakdownSerializer(serializers.Serializer):
    executionMethod = serializers.ChoiceField(choices=['completion', 'milestone', 'hourly'])
    totalBid = serializers.JSONField(required=False, default=0)
    milestones = serializers.ListField(child=serializers.DictField(), required=False, default=list)
    autoSplit = serializers.BooleanField(required=False, default=False)
    startDate = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    endDate = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    hourlyRate = serializers.JSONField(required=False)
    maxHoursPerDay = serializers.JSONField(required=False)
