from django.apps import AppConfig


class VacationRequestsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "vacation_requests"
    verbose_name = "Vacation requests"
