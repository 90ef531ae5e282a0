from rest_framework import serializers

from core.services.proposal_service import EXECUTION_METHODS


class MilestoneSerializer(serializers.Serializer):
    id = serializers.JSONField(required=False)
    title = serializers.CharField(allow_blank=True, required=False, default='')
    description = serializers.CharField(allow_blank=True, required=False, default='')
    startDate = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    endDate = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    amount = serializers.JSONField(required=False, default=0)


class ProposalSendSerializer(serializers.Serializer):
    """Shape check only; money rules live in ProposalService.price"""
    draftId = serializers.JSONField(required=False)
    title = serializers.CharField()
    summary = serializers.CharField(allow_blank=True, required=False, default='')
    commissionerId = serializers.IntegerField()
    organizationId = serializers.JSONField(required=False)
    projectId = serializers.JSONField(required=False)
    typeTags = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    executionMethod = serializers.ChoiceField(choices=EXECUTION_METHODS, default='completion')
    totalBid = serializers.JSONField(required=False, default=0)
    autoSplit = serializers.BooleanField(required=False, default=False)
    milestones = MilestoneSerializer(many=True, required=False, default=list)
    hourlyRate = serializers.JSONField(required=False)
    maxHoursPerDay = serializers.JSONField(required=False)
    startType = serializers.CharField(required=False, allow_blank=True)
    startDate = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    customStartDate = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    endDate = serializers.CharField(required=False, allow_null=True, allow_blank=True)


class TaskSubmitSerializer(serializers.Serializer):
    referenceUrl = serializers.URLField(required=False, allow_blank=True)


class PauseRequestSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class GigApplySerializer(serializers.Serializer):
    pitch = serializers.CharField()
    sampleLinks = serializers.ListField(child=serializers.URLField(), required=False, default=list)
    skills = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    tools = serializers.ListField(child=serializers.CharField(), required=False, default=list)
