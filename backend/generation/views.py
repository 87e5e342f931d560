from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework.viewsets import ReadOnlyModelViewSet

from billing.pagination import BoundedPageNumberPagination
from billing.views import get_credit_account

from .filters import GenerationAttemptFilter
from .models import GenerationAttempt
from .serializers import ActionCostSerializer, GenerationAttemptSerializer
from .services.costs import list_action_costs


class CreditCostView(APIView):
    """Credit cost of each generation action and whether the caller can afford it."""

    permission_classes = [IsAuthenticated]

    def get(self, request):
        account = get_credit_account(request.user)
        serializer = ActionCostSerializer(
            list_action_costs(),
            many=True,
            context={'balance': account.credit_balance},
        )
        return Response({'credit_balance': account.credit_balance, 'actions': serializer.data})


class GenerationAttemptViewSet(ReadOnlyModelViewSet):
    serializer_class = GenerationAttemptSerializer
    permission_classes = [IsAuthenticated]
    pagination_class = BoundedPageNumberPagination
    filterset_class = GenerationAttemptFilter
    ordering_fields = ('started_at', 'completed_at', 'credits_reserved')
    ordering = ('-started_at',)

    def get_queryset(self):
        return (
            GenerationAttempt.objects.select_related('account')
            .filter(account__user=self.request.user)
            .order_by('-started_at')
        )
