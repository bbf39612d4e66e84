"""Admin configuration for vacation management."""
from django.contrib import admin

from .models import Company, Member, Notification, VacationRequest


class MemberInline(admin.TabularInline):
    model = Member
    extra = 0
    fields = ("user", "role", "vacation_days_total", "vacation_days_used", "active")
    readonly_fields = ("vacation_days_total", "vacation_days_used")


@admin.register(Company)
class CompanyAdmin(admin.ModelAdmin):
    list_display = ("name", "access_code", "plan", "work_days", "vacation_days", "exclude_weekends")
    search_fields = ("name", "access_code")
    readonly_fields = ("created_at",)
    inlines = [MemberInline]


@admin.register(Member)
class MemberAdmin(admin.ModelAdmin):
    list_display = (
        "user",
        "company",
        "role",
        "vacation_days_total",
        "vacation_days_used",
        "available_days_display",
        "active",
    )
    list_filter = ("role", "active", "company")
    search_fields = ("user__username", "user__email", "company__name")
    autocomplete_fields = ("user", "company")
    # Balances move through the ledger: approvals and the vacation-days endpoint.
    readonly_fields = ("vacation_days_total", "vacation_days_used", "created_at")

    def available_days_display(self, obj):
        return obj.available_days

    available_days_display.short_description = "Available days"


@admin.register(VacationRequest)
class VacationRequestAdmin(admin.ModelAdmin):
    list_display = (
        "member",
        "start_date",
        "end_date",
        "days_count",
        "status",
        "manager",
        "updated_at",
    )
    list_filter = ("status", "start_date", "member__company")
    search_fields = ("member__user__username", "note")
    # The range, day count and status are fixed once the request is submitted.
    readonly_fields = (
        "member",
        "start_date",
        "end_date",
        "days_count",
        "status",
        "manager",
        "created_at",
        "updated_at",
    )
    ordering = ("-created_at",)

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ("member", "kind", "read", "created_at")
    list_filter = ("kind", "read")
    search_fields = ("member__user__username", "message")
