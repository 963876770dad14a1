"""
Tests for leave statistics aggregation
"""
from datetime import date

import pytest
from hr_leave.core.exceptions import ValidationError
from hr_leave.schemas.leave_request import LeaveSubmitRequest
from hr_leave.services import leave_request_service, statistics_service

TODAY = date(2026, 3, 2)


@pytest.fixture
def leave_history(db, organization, employee, other_employee, manager_employee, hr_employee, make_leave_type):
    """
    Engineering (employee): AL 2 days approved, SL 1 day pending
    Sales (other_employee): AL 3 days rejected, AL 1 day in April cancelled
    """
    annual = make_leave_type()
    sick = make_leave_type(code="SL", name="Sick Leave")

    def submit(who, leave_type, start, end):
        data = LeaveSubmitRequest(leave_type_id=leave_type.id, start_date=start, end_date=end)
        return leave_request_service.submit_leave_request(db, who, data, today=TODAY)

    approved = submit(employee, annual, date(2026, 3, 10), date(2026, 3, 11))
    leave_request_service.approve_leave_request(db, approved.id, manager_employee, today=TODAY)
    submit(employee, sick, date(2026, 3, 20), date(2026, 3, 20))
    rejected = submit(other_employee, annual, date(2026, 3, 15), date(2026, 3, 17))
    leave_request_service.reject_leave_request(db, rejected.id, hr_employee, comments="Quarter end")
    cancelled = submit(other_employee, annual, date(2026, 4, 10), date(2026, 4, 10))
    leave_request_service.cancel_leave_request(db, cancelled.id, other_employee)
    return organization


def test_statistics_counts_and_distributions(db, leave_history):
    stats = statistics_service.get_leave_statistics(
        db, leave_history.id, date_from=date(2026, 3, 1), date_to=date(2026, 4, 30)
    )

    assert stats["total_requests"] == 4
    assert stats["pending_requests"] == 1
    assert stats["approved_requests"] == 1
    assert stats["rejected_requests"] == 1
    assert stats["cancelled_requests"] == 1
    assert stats["total_days_requested"] == 7.0
    assert stats["leave_type_distribution"] == {"AL": 3, "SL": 1}
    assert stats["department_distribution"] == {"Engineering": 2, "Sales": 2}
    assert stats["average_processing_hours"] is not None
    assert stats["average_processing_hours"] >= 0


def test_statistics_selects_by_start_date(db, leave_history):
    stats = statistics_service.get_leave_statistics(
        db, leave_history.id, date_from=date(2026, 3, 1), date_to=date(2026, 3, 31)
    )

    assert stats["total_requests"] == 3
    assert stats["cancelled_requests"] == 0


def test_statistics_filters(db, leave_history, employee, sales_department):
    by_department = statistics_service.get_leave_statistics(db, leave_history.id, department_id=sales_department.id)
    assert by_department["total_requests"] == 2
    assert by_department["department_distribution"] == {"Sales": 2}

    by_employee = statistics_service.get_leave_statistics(db, leave_history.id, employee_id=employee.id)
    assert by_employee["total_requests"] == 2

    scoped = statistics_service.get_leave_statistics(db, leave_history.id, employee_ids=[employee.id])
    assert scoped["leave_type_distribution"] == {"AL": 1, "SL": 1}


def test_statistics_empty_range(db, leave_history):
    stats = statistics_service.get_leave_statistics(
        db, leave_history.id, date_from=date(2027, 1, 1), date_to=date(2027, 12, 31)
    )

    assert stats["total_requests"] == 0
    assert stats["pending_requests"] == 0
    assert stats["total_days_requested"] == 0.0
    assert stats["average_processing_hours"] is None
    assert stats["leave_type_distribution"] == {}
    assert stats["department_distribution"] == {}


def test_statistics_rejects_inverted_range(db, organization):
    with pytest.raises(ValidationError):
        statistics_service.get_leave_statistics(
            db, organization.id, date_from=date(2026, 5, 1), date_to=date(2026, 4, 1)
        )
