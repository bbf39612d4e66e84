"""URL routing for the vacation API."""
from django.urls import path

from . import views

app_name = "vacation_requests"

urlpatterns = [
    path("auth/register-admin/", views.RegisterAdminView.as_view(), name="register_admin"),
    path("auth/register/", views.RegisterView.as_view(), name="register"),
    path("auth/login/", views.LoginView.as_view(), name="login"),
    path("auth/logout/", views.LogoutView.as_view(), name="logout"),
    path("requests/", views.VacationRequestListView.as_view(), name="requests"),
    path("requests/<int:pk>/", views.VacationRequestDetailView.as_view(), name="request_detail"),
    path(
        "requests/<int:pk>/status/",
        views.VacationRequestDecisionView.as_view(),
        name="request_status",
    ),
    path(
        "requests/<int:pk>/cancel/",
        views.VacationRequestCancelView.as_view(),
        name="request_cancel",
    ),
    path("users/", views.MemberListView.as_view(), name="members"),
    path(
        "users/<int:pk>/vacation-days/",
        views.MemberVacationDaysView.as_view(),
        name="member_vacation_days",
    ),
    path("users/<int:pk>/role/", views.MemberRoleView.as_view(), name="member_role"),
    path(
        "users/<int:pk>/toggle-active/",
        views.MemberToggleActiveView.as_view(),
        name="member_toggle_active",
    ),
    path("company/", views.CompanyView.as_view(), name="company"),
    path("notifications/", views.NotificationListView.as_view(), name="notifications"),
    path("notifications/read/", views.NotificationReadView.as_view(), name="notifications_read"),
    path("stats/", views.StatsView.as_view(), name="stats"),
    path("calendar/", views.CalendarView.as_view(), name="calendar"),
]
