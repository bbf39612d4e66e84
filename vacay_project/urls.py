"""Root URL configuration for vacay_project."""
from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/", include("vacation_requests.urls")),
]
