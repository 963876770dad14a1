"""
Tests for the leave balance ledger: accrual, year close, carry-forward expiry
and manual adjustments
"""
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import update
from sqlalchemy.orm.exc import StaleDataError
from hr_leave.core.config import settings
from hr_leave.core.exceptions import InsufficientBalanceError, NotFoundError, ValidationError
from hr_leave.models.audit_log import AuditLog
from hr_leave.models.leave import (
    AccrualMethod,
    EmployeeLeaveBalance,
    LeaveTransaction,
    LeaveTransactionAction,
)
from hr_leave.schemas.leave_request import LeaveSubmitRequest
from hr_leave.schemas.leave_type import LeaveTypeUpdate
from hr_leave.services import ledger_service, leave_request_service, leave_type_service


def _transactions(db, ledger, action):
    return (
        db.query(LeaveTransaction)
        .filter(LeaveTransaction.ledger_id == ledger.id, LeaveTransaction.action == action.value)
        .order_by(LeaveTransaction.id)
        .all()
    )


@pytest.fixture
def monthly_type(make_leave_type):
    return make_leave_type(
        code="EL",
        name="Earned Leave",
        accrual_method=AccrualMethod.MONTHLY,
        accrual_rate=Decimal("1.5"),
        initial_balance=Decimal("0"),
        max_balance=Decimal("4"),
    )


def test_new_ledger_starts_at_initial_balance(db, employee, make_leave_type):
    leave_type = make_leave_type(initial_balance=Decimal("7"))

    ledger = ledger_service.ensure_ledger(db, employee, leave_type, opened_on=date(2025, 1, 1))
    db.commit()

    assert float(ledger.balance) == 7
    assert ledger.next_accrual_date is None
    opening = _transactions(db, ledger, LeaveTransactionAction.OPENING)
    assert len(opening) == 1
    assert float(opening[0].delta_days) == 7

    # second call returns the same row
    assert ledger_service.ensure_ledger(db, employee, leave_type).id == ledger.id


def test_first_accrual_is_one_period_after_opening(db, employee, monthly_type):
    ledger = ledger_service.ensure_ledger(db, employee, monthly_type, opened_on=date(2025, 1, 31))
    db.commit()

    assert ledger.next_accrual_date == date(2025, 2, 28)
    assert ledger.last_accrual_date is None


def test_accrual_catches_up_and_clamps_to_max_balance(db, organization, employee, monthly_type):
    ledger = ledger_service.ensure_ledger(db, employee, monthly_type, opened_on=date(2025, 1, 1))
    db.commit()

    summary = ledger_service.run_accrual(db, organization.id, as_of=date(2025, 4, 15))

    assert summary["failed"] == 0
    assert summary["credited"] == 1
    assert summary["total_days_credited"] == 4.0

    db.refresh(ledger)
    assert float(ledger.balance) == 4
    # only the credited part counts toward total_accrued
    assert float(ledger.total_accrued) == 4
    assert ledger.last_accrual_date == date(2025, 4, 1)
    assert ledger.next_accrual_date == date(2025, 5, 1)

    accruals = _transactions(db, ledger, LeaveTransactionAction.ACCRUAL)
    assert [float(t.delta_days) for t in accruals] == [1.5, 1.5, 1.0]
    assert [float(t.balance_after) for t in accruals] == [1.5, 3.0, 4.0]

    audit = db.query(AuditLog).filter(AuditLog.action == "ACCRUAL_RUN").first()
    assert audit.meta_json["credited"] == 1


def test_accrual_rerun_for_same_date_is_noop(db, organization, employee, monthly_type):
    ledger = ledger_service.ensure_ledger(db, employee, monthly_type, opened_on=date(2025, 1, 1))
    db.commit()

    ledger_service.run_accrual(db, organization.id, as_of=date(2025, 2, 10))
    summary = ledger_service.run_accrual(db, organization.id, as_of=date(2025, 2, 10))

    assert summary["credited"] == 0
    db.refresh(ledger)
    assert float(ledger.balance) == 1.5
    assert len(_transactions(db, ledger, LeaveTransactionAction.ACCRUAL)) == 1


def test_accrual_period_never_posted_twice(db, employee, monthly_type):
    ledger = ledger_service.ensure_ledger(db, employee, monthly_type, opened_on=date(2025, 1, 1))
    ledger_service.apply_accrual(db, ledger, as_of=date(2025, 3, 1))
    db.commit()
    assert float(ledger.balance) == 3

    # Rewind the schedule as if the date update had been lost
    ledger.last_accrual_date = date(2025, 2, 1)
    ledger.next_accrual_date = date(2025, 3, 1)
    db.commit()

    result = ledger_service.apply_accrual(db, ledger, as_of=date(2025, 3, 1))
    db.commit()

    assert result["periods"] == 0
    assert result["skipped_periods"] == 1
    assert float(ledger.balance) == 3
    assert ledger.next_accrual_date == date(2025, 4, 1)


def test_idempotency_key_derived_from_previous_accrual(db, employee, monthly_type):
    ledger = ledger_service.ensure_ledger(db, employee, monthly_type, opened_on=date(2025, 1, 1))
    assert ledger_service.accrual_idempotency_key(ledger) == f"ACCRUAL:{monthly_type.id}:{employee.id}:none"

    ledger_service.apply_accrual(db, ledger, as_of=date(2025, 2, 1))
    assert ledger_service.accrual_idempotency_key(ledger) == f"ACCRUAL:{monthly_type.id}:{employee.id}:2025-02-01"


def test_quarterly_accrual(db, employee, make_leave_type):
    leave_type = make_leave_type(
        code="QL", accrual_method=AccrualMethod.QUARTERLY, accrual_rate=Decimal("3"), initial_balance=Decimal("0")
    )
    ledger = ledger_service.ensure_ledger(db, employee, leave_type, opened_on=date(2025, 1, 1))

    result = ledger_service.apply_accrual(db, ledger, as_of=date(2025, 12, 31))
    db.commit()

    assert result["periods"] == 3
    assert float(ledger.balance) == 9
    assert ledger.next_accrual_date == date(2026, 1, 1)


def test_non_accruing_type_never_accrues(db, organization, employee, make_leave_type):
    leave_type = make_leave_type(accrual_method=AccrualMethod.NONE, accrual_rate=Decimal("2"))
    ledger = ledger_service.ensure_ledger(db, employee, leave_type, opened_on=date(2025, 1, 1))
    db.commit()

    summary = ledger_service.run_accrual(db, organization.id, as_of=date(2026, 1, 1))

    assert summary["processed"] == 0
    db.refresh(ledger)
    assert float(ledger.balance) == 10
    assert float(ledger.total_accrued) == 0


def _bump_version_concurrently(db, ledger_id):
    """Another writer commits a change between our locked read and our write"""
    table = EmployeeLeaveBalance.__table__
    db.execute(update(table).where(table.c.id == ledger_id).values(version=table.c.version + 1))


def test_run_with_retry_reruns_unit_after_stale_write(db, employee, make_leave_type, monkeypatch):
    monkeypatch.setattr(settings, "LEDGER_MAX_RETRIES", 3)
    leave_type = make_leave_type()
    ledger = ledger_service.ensure_ledger(db, employee, leave_type, opened_on=date(2025, 1, 1))
    db.commit()
    attempts = []

    def unit():
        attempts.append(1)
        locked = ledger_service._lock_ledger(db, ledger.id)
        if len(attempts) == 1:
            _bump_version_concurrently(db, ledger.id)
        locked.balance = Decimal(str(locked.balance)) + Decimal("1")
        return locked

    ledger_service.run_with_retry(db, unit)

    assert len(attempts) == 2
    db.refresh(ledger)
    # the first attempt was rolled back, only the retry landed
    assert float(ledger.balance) == 11


def test_run_with_retry_gives_up_after_max_retries(db, employee, make_leave_type, monkeypatch):
    monkeypatch.setattr(settings, "LEDGER_MAX_RETRIES", 3)
    leave_type = make_leave_type()
    ledger = ledger_service.ensure_ledger(db, employee, leave_type, opened_on=date(2025, 1, 1))
    db.commit()
    attempts = []

    def unit():
        attempts.append(1)
        locked = ledger_service._lock_ledger(db, ledger.id)
        _bump_version_concurrently(db, ledger.id)
        locked.balance = Decimal(str(locked.balance)) - Decimal("4")
        return locked

    with pytest.raises(StaleDataError):
        ledger_service.run_with_retry(db, unit)

    assert len(attempts) == 3
    db.refresh(ledger)
    assert float(ledger.balance) == 10


def test_run_with_retry_does_not_retry_domain_errors(db, monkeypatch):
    monkeypatch.setattr(settings, "LEDGER_MAX_RETRIES", 3)
    attempts = []

    def unit():
        attempts.append(1)
        raise ValidationError("bad input")

    with pytest.raises(ValidationError):
        ledger_service.run_with_retry(db, unit)

    assert len(attempts) == 1


def test_accrual_skips_period_already_posted(db, organization, employee, monthly_type):
    ledger = ledger_service.ensure_ledger(db, employee, monthly_type, opened_on=date(2025, 1, 1))
    db.commit()
    # A concurrent run already credited the first period
    db.add(LeaveTransaction(
        ledger_id=ledger.id,
        employee_id=employee.id,
        leave_type_id=monthly_type.id,
        delta_days=Decimal("1.5"),
        balance_after=Decimal("1.5"),
        action=LeaveTransactionAction.ACCRUAL.value,
        idempotency_key=ledger_service.accrual_idempotency_key(ledger),
    ))
    db.commit()

    summary = ledger_service.run_accrual(db, organization.id, as_of=date(2025, 2, 10))

    assert summary["credited"] == 0
    assert summary["failed"] == 0
    skipped = [d for d in summary["details"] if d["employee_id"] == employee.id]
    assert skipped == [{
        "employee_id": employee.id,
        "leave_type_id": monthly_type.id,
        "status": "SKIPPED",
        "skipped_periods": 1,
    }]
    db.refresh(ledger)
    assert float(ledger.balance) == 0
    assert ledger.next_accrual_date == date(2025, 3, 1)
    assert len(_transactions(db, ledger, LeaveTransactionAction.ACCRUAL)) == 1


def test_accrual_race_on_idempotency_key_is_reported_skipped(db, organization, employee, monthly_type, monkeypatch):
    ledger = ledger_service.ensure_ledger(db, employee, monthly_type, opened_on=date(2025, 1, 1))
    db.commit()
    journal = ledger_service._journal

    def journal_after_concurrent_run(db, ledger, delta, action, *args, **kwargs):
        if action == LeaveTransactionAction.ACCRUAL:
            # The other run inserts the same period between our check and our insert
            journal(db, ledger, delta, action, "concurrent run", idempotency_key=kwargs["idempotency_key"])
        return journal(db, ledger, delta, action, *args, **kwargs)

    monkeypatch.setattr(ledger_service, "_journal", journal_after_concurrent_run)

    summary = ledger_service.run_accrual(db, organization.id, as_of=date(2025, 2, 10))

    assert summary["credited"] == 0
    assert summary["failed"] == 0
    assert {"employee_id": employee.id, "leave_type_id": monthly_type.id, "status": "SKIPPED"} in summary["details"]
    db.refresh(ledger)
    assert float(ledger.balance) == 0
    assert ledger.next_accrual_date == date(2025, 2, 1)
    assert _transactions(db, ledger, LeaveTransactionAction.ACCRUAL) == []


def test_switching_type_to_monthly_starts_accrual_on_existing_ledgers(db, organization, employee, make_leave_type):
    leave_type = make_leave_type(initial_balance=Decimal("0"))
    ledger_service.get_balances(db, employee, today=date(2025, 1, 1))
    ledger = ledger_service.get_ledger(db, employee.id, leave_type.id)
    assert ledger.next_accrual_date is None
    assert ledger.opened_on == date(2025, 1, 1)

    leave_type_service.update_leave_type(
        db, organization.id, leave_type.id,
        LeaveTypeUpdate(accrual_method=AccrualMethod.MONTHLY, accrual_rate=Decimal("2")),
    )
    db.refresh(ledger)
    assert ledger.next_accrual_date == date(2025, 2, 1)

    summary = ledger_service.run_accrual(db, organization.id, as_of=date(2025, 6, 1))

    assert summary["failed"] == 0
    db.refresh(ledger)
    # Feb through Jun
    assert float(ledger.balance) == 10
    assert ledger.last_accrual_date == date(2025, 6, 1)
    assert len(_transactions(db, ledger, LeaveTransactionAction.ACCRUAL)) == 5


def test_switching_accrual_period_reschedules_from_last_accrual(db, organization, employee, monthly_type):
    ledger = ledger_service.ensure_ledger(db, employee, monthly_type, opened_on=date(2025, 1, 1))
    ledger_service.apply_accrual(db, ledger, as_of=date(2025, 3, 1))
    db.commit()
    assert ledger.next_accrual_date == date(2025, 4, 1)

    leave_type_service.update_leave_type(
        db, organization.id, monthly_type.id, LeaveTypeUpdate(accrual_method=AccrualMethod.QUARTERLY)
    )
    db.refresh(ledger)
    assert ledger.last_accrual_date == date(2025, 3, 1)
    assert ledger.next_accrual_date == date(2025, 6, 1)


def test_switching_yearly_to_monthly_reschedules_from_opening(db, organization, employee, make_leave_type):
    leave_type = make_leave_type(
        code="YL", accrual_method=AccrualMethod.YEARLY, accrual_rate=Decimal("12"), initial_balance=Decimal("0")
    )
    ledger = ledger_service.ensure_ledger(db, employee, leave_type, opened_on=date(2025, 1, 1))
    db.commit()
    assert ledger.next_accrual_date == date(2026, 1, 1)

    leave_type_service.update_leave_type(
        db, organization.id, leave_type.id, LeaveTypeUpdate(accrual_method=AccrualMethod.MONTHLY)
    )
    db.refresh(ledger)
    assert ledger.next_accrual_date == date(2025, 2, 1)


def test_switching_type_to_none_stops_accrual(db, organization, employee, monthly_type):
    ledger = ledger_service.ensure_ledger(db, employee, monthly_type, opened_on=date(2025, 1, 1))
    db.commit()

    leave_type_service.update_leave_type(
        db, organization.id, monthly_type.id, LeaveTypeUpdate(accrual_method=AccrualMethod.NONE)
    )
    db.refresh(ledger)
    assert ledger.next_accrual_date is None

    summary = ledger_service.run_accrual(db, organization.id, as_of=date(2025, 6, 1))
    assert summary["processed"] == 0
    db.refresh(ledger)
    assert float(ledger.balance) == 0


def test_run_accrual_opens_missing_ledgers(db, organization, employee, monthly_type):
    summary = ledger_service.run_accrual(db, organization.id, as_of=date(2025, 6, 1))

    # employee and their manager
    assert summary["processed"] == 2
    assert summary["skipped"] == 2
    ledger = ledger_service.get_ledger(db, employee.id, monthly_type.id)
    assert ledger is not None
    assert ledger.next_accrual_date == date(2025, 7, 1)


def test_year_close_carries_up_to_limit(db, organization, employee, make_leave_type):
    leave_type = make_leave_type(
        initial_balance=Decimal("8"), allow_carry_forward=True, carry_forward_limit=Decimal("5")
    )
    ledger = ledger_service.ensure_ledger(db, employee, leave_type, opened_on=date(2025, 1, 1))
    db.commit()

    summary = ledger_service.run_year_close(db, organization.id, 2025)

    assert summary["processed"] == 1
    assert summary["total_carried_forward"] == 5.0
    assert summary["total_forfeited"] == 3.0
    assert summary["total_encash_amount"] == 0.0

    db.refresh(ledger)
    assert float(ledger.balance) == 5
    assert float(ledger.carry_forward_balance) == 5
    assert ledger.carry_forward_expires_on is None
    assert ledger.last_rollover_year == 2025

    forfeits = _transactions(db, ledger, LeaveTransactionAction.YEAR_CLOSE_FORFEIT)
    assert len(forfeits) == 1
    assert float(forfeits[0].delta_days) == -3


def test_year_close_rerun_is_noop(db, organization, employee, make_leave_type):
    leave_type = make_leave_type(
        initial_balance=Decimal("8"), allow_carry_forward=True, carry_forward_limit=Decimal("5")
    )
    ledger = ledger_service.ensure_ledger(db, employee, leave_type, opened_on=date(2025, 1, 1))
    db.commit()

    ledger_service.run_year_close(db, organization.id, 2025)
    summary = ledger_service.run_year_close(db, organization.id, 2025)

    assert summary["processed"] == 0
    db.refresh(ledger)
    assert float(ledger.balance) == 5


def test_year_close_without_carry_forward_forfeits_all(db, organization, employee, make_leave_type):
    leave_type = make_leave_type(initial_balance=Decimal("6"))
    ledger = ledger_service.ensure_ledger(db, employee, leave_type, opened_on=date(2025, 1, 1))
    db.commit()

    ledger_service.run_year_close(db, organization.id, 2025)

    db.refresh(ledger)
    assert float(ledger.balance) == 0
    assert float(ledger.carry_forward_balance) == 0


def test_year_close_forfeiture_respects_min_balance(db, organization, employee, make_leave_type):
    leave_type = make_leave_type(initial_balance=Decimal("3"), min_balance=Decimal("1"))
    ledger = ledger_service.ensure_ledger(db, employee, leave_type, opened_on=date(2025, 1, 1))
    db.commit()

    summary = ledger_service.run_year_close(db, organization.id, 2025)

    assert summary["total_forfeited"] == 2.0
    db.refresh(ledger)
    assert float(ledger.balance) == 1


def test_year_close_reports_encashment(db, organization, employee, make_leave_type):
    leave_type = make_leave_type(
        code="EN", initial_balance=Decimal("4"), allow_encashment=True, encashment_rate=Decimal("100")
    )
    ledger = ledger_service.ensure_ledger(db, employee, leave_type, opened_on=date(2025, 1, 1))
    db.commit()

    summary = ledger_service.run_year_close(db, organization.id, 2025)

    assert summary["total_encashable_days"] == 4.0
    assert summary["total_encash_amount"] == 400.0
    detail = summary["details"][0]
    assert detail["leave_type_code"] == "EN"
    assert detail["balance_after"] == 0.0

    encashed = _transactions(db, ledger, LeaveTransactionAction.YEAR_CLOSE_ENCASH)
    assert len(encashed) == 1
    assert float(encashed[0].delta_days) == -4


def test_carry_forward_expiry_forfeits_unused_carried_days(db, organization, employee, make_leave_type):
    leave_type = make_leave_type(
        initial_balance=Decimal("6"),
        allow_carry_forward=True,
        carry_forward_expiry_months=3,
        requires_approval=False,
    )
    ledger = ledger_service.ensure_ledger(db, employee, leave_type, opened_on=date(2025, 6, 1))
    db.commit()

    ledger_service.run_year_close(db, organization.id, 2025)
    db.refresh(ledger)
    assert float(ledger.carry_forward_balance) == 6
    assert ledger.carry_forward_expires_on == date(2026, 4, 1)

    ledger_service.adjust_balance(db, organization.id, employee.id, leave_type.id, Decimal("3"), "Joining bonus")
    # auto-approved request consumes carried days first
    leave_request_service.submit_leave_request(
        db,
        employee,
        LeaveSubmitRequest(leave_type_id=leave_type.id, start_date=date(2026, 2, 10), end_date=date(2026, 2, 11)),
        today=date(2026, 2, 1),
    )
    db.refresh(ledger)
    assert float(ledger.balance) == 7
    assert float(ledger.carry_forward_balance) == 4

    early = ledger_service.expire_carry_forward(db, organization.id, as_of=date(2026, 3, 31))
    assert early["processed"] == 0

    summary = ledger_service.expire_carry_forward(db, organization.id, as_of=date(2026, 4, 1))

    assert summary["processed"] == 1
    assert summary["total_expired"] == 4.0
    db.refresh(ledger)
    assert float(ledger.balance) == 3
    assert float(ledger.carry_forward_balance) == 0
    assert ledger.carry_forward_expires_on is None
    assert len(_transactions(db, ledger, LeaveTransactionAction.CARRY_FORWARD_EXPIRY)) == 1


def test_adjust_balance_credits_and_journals(db, organization, employee, hr_employee, make_leave_type):
    leave_type = make_leave_type(max_balance=Decimal("12"))

    ledger = ledger_service.adjust_balance(
        db, organization.id, employee.id, leave_type.id, Decimal("2"), "Correction", actor_id=hr_employee.id
    )

    assert float(ledger.balance) == 12
    adjustments = _transactions(db, ledger, LeaveTransactionAction.MANUAL_ADJUST)
    assert len(adjustments) == 1
    assert adjustments[0].remarks == "Correction"
    assert adjustments[0].action_by_employee_id == hr_employee.id

    audit = db.query(AuditLog).filter(AuditLog.action == "LEAVE_BALANCE_ADJUST").first()
    assert audit.meta_json["balance_before"] == 10.0
    assert audit.meta_json["balance_after"] == 12.0


def test_adjust_balance_rejects_zero_delta(db, organization, employee, make_leave_type):
    leave_type = make_leave_type()
    with pytest.raises(ValidationError):
        ledger_service.adjust_balance(db, organization.id, employee.id, leave_type.id, Decimal("0"), "Nothing")


def test_adjust_balance_above_max_rejected(db, organization, employee, make_leave_type):
    leave_type = make_leave_type(max_balance=Decimal("10"))
    with pytest.raises(ValidationError):
        ledger_service.adjust_balance(db, organization.id, employee.id, leave_type.id, Decimal("1"), "Too much")

    ledger = ledger_service.get_ledger(db, employee.id, leave_type.id)
    assert ledger is None or float(ledger.balance) == 10


def test_adjust_balance_below_min_rejected(db, organization, employee, make_leave_type):
    leave_type = make_leave_type(initial_balance=Decimal("3"), min_balance=Decimal("1"))
    ledger_service.ensure_ledger(db, employee, leave_type)
    db.commit()

    with pytest.raises(InsufficientBalanceError) as exc_info:
        ledger_service.adjust_balance(db, organization.id, employee.id, leave_type.id, Decimal("-3"), "Too much")

    assert exc_info.value.error_code == "INSUFFICIENT_BALANCE"
    ledger = ledger_service.get_ledger(db, employee.id, leave_type.id)
    db.refresh(ledger)
    assert float(ledger.balance) == 3


def test_adjust_balance_unknown_employee(db, organization, make_leave_type):
    leave_type = make_leave_type()
    with pytest.raises(NotFoundError):
        ledger_service.adjust_balance(db, organization.id, 9999, leave_type.id, Decimal("1"), "Ghost")


def test_get_balances_opens_row_per_active_type(db, employee, make_leave_type):
    make_leave_type(code="SL", name="Sick Leave", initial_balance=Decimal("5"))
    make_leave_type(code="AL")
    make_leave_type(code="OL", name="Old Leave", active_flag=False)

    rows = ledger_service.get_balances(db, employee, today=date(2026, 1, 1))

    assert [row.leave_type.code for row in rows] == ["AL", "SL"]
    assert [float(row.balance) for row in rows] == [10, 5]
    assert db.query(EmployeeLeaveBalance).count() == 2


def test_accrual_status_lists_ledger_positions(db, organization, employee, monthly_type):
    ledger_service.ensure_ledger(db, employee, monthly_type, opened_on=date(2025, 1, 1))
    db.commit()

    status_rows = ledger_service.get_accrual_status(db, organization.id)

    assert len(status_rows) == 1
    row = status_rows[0]
    assert row["emp_code"] == "EMP001"
    assert row["leave_type_code"] == "EL"
    assert row["next_accrual_date"] == date(2025, 2, 1)


def test_accrual_endpoints_require_hr(client, employee, hr_employee, monthly_type, auth_headers):
    response = client.post("/api/v1/accrual/run", json={"as_of": "2025-06-01"}, headers=auth_headers("EMP001"))
    assert response.status_code == 403

    response = client.post("/api/v1/accrual/run", json={"as_of": "2025-06-01"}, headers=auth_headers("HR001"))
    assert response.status_code == 200, response.text
    assert response.json()["failed"] == 0

    response = client.post("/api/v1/accrual/year-close", json={"year": 2025}, headers=auth_headers("HR001"))
    assert response.status_code == 200, response.text
    assert response.json()["year"] == 2025

    response = client.get("/api/v1/accrual/status", headers=auth_headers("HR001"))
    assert response.status_code == 200
    assert len(response.json()) == 3
