from rest_framework import serializers

from .models import GenerationAttempt


class GenerationAttemptSerializer(serializers.ModelSerializer):
    ledger_entry_id = serializers.UUIDField(read_only=True, allow_null=True)

    class Meta:
        model = GenerationAttempt
        fields = [
            'id',
            'kind',
            'credits_reserved',
            'status',
            'error_detail',
            'ledger_entry_id',
            'metadata',
            'started_at',
            'completed_at',
            'duration_ms',
        ]
        read_only_fields = fields


class ActionCostSerializer(serializers.Serializer):
    key = serializers.CharField()
    kind = serializers.CharField()
    asset_type = serializers.CharField(allow_null=True)
    credits = serializers.IntegerField()
    affordable = serializers.SerializerMethodField()

    def get_affordable(self, obj):
        balance = self.context.get('balance')
        if balance is None:
            return None
        return balance >= obj.credits
