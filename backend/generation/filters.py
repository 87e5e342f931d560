import django_filters

from .models import GenerationAttempt


class GenerationAttemptFilter(django_filters.FilterSet):
    status = django_filters.ChoiceFilter(field_name='status', choices=GenerationAttempt.STATUS_CHOICES)
    kind = django_filters.ChoiceFilter(field_name='kind', choices=GenerationAttempt.KIND_CHOICES)
    started_after = django_filters.DateTimeFilter(field_name='started_at', lookup_expr='gte')
    started_before = django_filters.DateTimeFilter(field_name='started_at', lookup_expr='lte')

    class Meta:
        model = GenerationAttempt
        fields = ['status', 'kind']
