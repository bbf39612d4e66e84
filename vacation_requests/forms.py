"""Forms validating the JSON payloads of the vacation API."""
from __future__ import annotations

from typing import Any

from django import forms
from django.contrib.auth import get_user_model

from .models import Company, Member, VacationRequest

User = get_user_model()


class AccountForm(forms.Form):
    """Fields shared by both registration flows."""

    name = forms.CharField(max_length=150)
    email = forms.EmailField()
    password = forms.CharField(min_length=6, strip=False)

    def clean_email(self) -> str:
        email = self.cleaned_data["email"].lower()
        if User.objects.filter(username=email).exists():
            raise forms.ValidationError("An account with this e-mail already exists.")
        return email


class AdminRegistrationForm(AccountForm):
    """Registers a new company together with its first admin."""

    company_name = forms.CharField(max_length=255)


class JoinCompanyForm(AccountForm):
    """Joins an existing company with its access code."""

    access_code = forms.CharField(max_length=50)
    role = forms.ChoiceField(
        choices=[(Member.Role.EMPLOYEE, "Employee"), (Member.Role.MANAGER, "Manager")],
        required=False,
    )

    def clean_access_code(self) -> Company:
        code = self.cleaned_data["access_code"].strip().upper()
        try:
            return Company.objects.get(access_code=code)
        except Company.DoesNotExist:
            raise forms.ValidationError("Invalid access code.") from None

    def clean_role(self) -> str:
        return self.cleaned_data.get("role") or Member.Role.EMPLOYEE


class LoginForm(forms.Form):
    email = forms.EmailField()
    password = forms.CharField(strip=False)


class VacationRequestForm(forms.Form):
    """Dates and note an employee submits; day counting happens in the lifecycle."""

    start_date = forms.DateField()
    end_date = forms.DateField()
    note = forms.CharField(required=False, widget=forms.Textarea(attrs={"rows": 3}))

    def clean(self) -> dict[str, Any]:
        cleaned = super().clean()
        start = cleaned.get("start_date")
        end = cleaned.get("end_date")
        if start and end and end < start:
            raise forms.ValidationError("End date cannot be earlier than the start date.")
        return cleaned


class DecisionForm(forms.Form):
    """Approve or deny a pending request."""

    status = forms.ChoiceField(
        choices=[
            (VacationRequest.Status.APPROVED, "Approve"),
            (VacationRequest.Status.DENIED, "Deny"),
        ]
    )


class VacationDaysForm(forms.Form):
    vacation_days_total = forms.IntegerField(min_value=0)


class RoleForm(forms.Form):
    role = forms.ChoiceField(choices=Member.Role.choices)


class CompanySettingsForm(forms.ModelForm):
    """Company-wide policy an admin can edit."""

    class Meta:
        model = Company
        fields = ["name", "work_days", "vacation_days", "plan", "exclude_weekends"]

    def clean_work_days(self) -> int:
        work_days = self.cleaned_data["work_days"]
        if not 1 <= work_days <= 7:
            raise forms.ValidationError("Work days per week must be between 1 and 7.")
        return work_days


class CalendarFilterForm(forms.Form):
    year = forms.IntegerField(min_value=2000, max_value=2100, required=False)
    month = forms.IntegerField(min_value=1, max_value=12, required=False)
