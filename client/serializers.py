from rest_framework import serializers

from freelancer.serializers import MilestoneSerializer


class TaskReviewSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=['approve', 'reject'])
    feedback = serializers.CharField(required=False, allow_blank=True, default='')


class ProjectPauseSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class ProposalRejectSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class GigPostSerializer(serializers.Serializer):
    title = serializers.CharField()
    description = serializers.CharField(allow_blank=True, required=False, default='')
    organizationId = serializers.IntegerField(required=False)
    category = serializers.CharField(allow_blank=True, required=False, default='')
    tags = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    lowerBudget = serializers.JSONField(required=False, default=0)
    upperBudget = serializers.JSONField(required=False, default=0)
    executionMethod = serializers.ChoiceField(choices=['completion', 'milestone'], default='completion')
    deliveryTimeWeeks = serializers.IntegerField(required=False, min_value=1)
    startType = serializers.CharField(allow_blank=True, required=False)
    customStartDate = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    endDate = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    milestones = MilestoneSerializer(many=True, required=False, default=list)


class GigBudgetSerializer(serializers.Serializer):
    min = serializers.JSONField(required=False, default=0)
    max = serializers.JSONField(required=False, default=0)
    currency = serializers.CharField(required=False, default='USD')


class GigRequestSerializer(serializers.Serializer):
    freelancerId = serializers.IntegerField()
    gigId = serializers.IntegerField(required=False)
    organizationId = serializers.IntegerField(required=False)
    title = serializers.CharField(required=False, allow_blank=True, default='')
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    skills = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    tools = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    budget = GigBudgetSerializer(required=False)
    executionMethod = serializers.ChoiceField(choices=['completion', 'milestone'], default='completion')
    endDate = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    milestones = MilestoneSerializer(many=True, required=False, default=list)
