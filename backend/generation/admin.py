from django.contrib import admin
from django.urls import reverse
from django.utils.html import format_html

from .models import GenerationAttempt


@admin.register(GenerationAttempt)
class GenerationAttemptAdmin(admin.ModelAdmin):
    list_display = ('id', 'account_link', 'kind', 'status', 'credits_reserved', 'duration_display', 'started_at')
    list_filter = ('kind', 'status', 'started_at')
    search_fields = ('id', 'account__id', 'account__user__email', 'error_detail')
    readonly_fields = (
        'id',
        'account',
        'kind',
        'credits_reserved',
        'status',
        'error_detail',
        'ledger_entry',
        'metadata',
        'started_at',
        'completed_at',
        'duration_ms',
    )
    ordering = ('-started_at',)
    list_select_related = ('account',)

    @admin.display(description="Account")
    def account_link(self, obj):
        url = reverse("admin:billing_creditaccount_change", args=[obj.account_id])
        return format_html('<a href="{}">{}</a>', url, obj.account_id)

    @admin.display(description="Duration")
    def duration_display(self, obj):
        if obj.duration_ms is None:
            return "-"
        return f"{obj.duration_ms / 1000:.1f}s"

    def has_add_permission(self, request):
        return False
