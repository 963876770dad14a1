"""
Leave balance ledger - one employee_leaves row per (employee, leave type).

- Accrual: MONTHLY / QUARTERLY / YEARLY periods credited on next_accrual_date,
  clamped to max_balance, caught up period by period, never posted twice
  (unique idempotency key per period on leave_transactions).
- Year close: positive balance carried up to carry_forward_limit, the rest
  forfeited (reported as encashable when the type allows encashment).
- Carry-forward expiry: unused carried days lapse on carry_forward_expires_on.
- Debit on approval / credit-back on cancellation run inside the caller's
  transaction; nothing here commits except the batch jobs and adjust_balance.
- Every movement is journaled to leave_transactions.

Rows are read FOR UPDATE before mutation and carry a version column, so a
concurrent writer fails with StaleDataError; run_with_retry re-runs the whole
read-check-write unit up to LEDGER_MAX_RETRIES times.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, TypeVar

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from hr_leave.core.config import settings
from hr_leave.core.exceptions import InsufficientBalanceError, NotFoundError, ValidationError
from hr_leave.models.employee import Employee
from hr_leave.models.leave import (
    ACCRUAL_PERIOD_MONTHS,
    AccrualMethod,
    EmployeeLeaveBalance,
    LeaveRequest,
    LeaveTransaction,
    LeaveTransactionAction,
    LeaveType,
)
from hr_leave.services.audit_service import log_audit
from hr_leave.utils.datetime_utils import add_months, now_utc

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

T = TypeVar("T")


def _dec(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _period_months(leave_type: LeaveType) -> Optional[int]:
    """Months per accrual period, None when the type does not accrue"""
    if leave_type.accrual_method is None:
        return None
    return ACCRUAL_PERIOD_MONTHS.get(AccrualMethod(leave_type.accrual_method))


def accrual_idempotency_key(ledger: EmployeeLeaveBalance) -> str:
    """Key of the period about to be credited: derived from the previous accrual date"""
    previous = ledger.last_accrual_date.isoformat() if ledger.last_accrual_date else "none"
    return f"ACCRUAL:{ledger.leave_type_id}:{ledger.employee_id}:{previous}"


def run_with_retry(db: Session, operation: Callable[[], T]) -> T:
    """
    Run a ledger unit of work and commit it.

    The unit is re-run from scratch (it must re-read its rows) when a concurrent
    writer bumped the ledger version. Any other error rolls back and propagates.
    """
    attempts = settings.LEDGER_MAX_RETRIES
    for attempt in range(1, attempts + 1):
        try:
            result = operation()
            db.commit()
            return result
        except StaleDataError:
            db.rollback()
            if attempt >= attempts:
                logger.error("ledger write failed after %s attempts (concurrent updates)", attempts)
                raise
            logger.warning("ledger row changed concurrently, retrying (attempt %s/%s)", attempt, attempts)
        except Exception:
            db.rollback()
            raise
    raise RuntimeError("unreachable")


def _journal(
    db: Session,
    ledger: EmployeeLeaveBalance,
    delta: Decimal,
    action: LeaveTransactionAction,
    remarks: Optional[str] = None,
    actor_id: Optional[int] = None,
    leave_request_id: Optional[int] = None,
    idempotency_key: Optional[str] = None,
) -> LeaveTransaction:
    entry = LeaveTransaction(
        ledger_id=ledger.id,
        employee_id=ledger.employee_id,
        leave_type_id=ledger.leave_type_id,
        leave_request_id=leave_request_id,
        delta_days=delta,
        balance_after=_dec(ledger.balance),
        action=action.value,
        remarks=remarks,
        idempotency_key=idempotency_key,
        action_by_employee_id=actor_id,
        action_at=now_utc(),
    )
    db.add(entry)
    return entry


def get_ledger(db: Session, employee_id: int, leave_type_id: int) -> Optional[EmployeeLeaveBalance]:
    return db.query(EmployeeLeaveBalance).filter(
        EmployeeLeaveBalance.employee_id == employee_id,
        EmployeeLeaveBalance.leave_type_id == leave_type_id,
    ).first()


def _lock_ledger(db: Session, ledger_id: int) -> EmployeeLeaveBalance:
    return (
        db.query(EmployeeLeaveBalance)
        .filter(EmployeeLeaveBalance.id == ledger_id)
        .populate_existing()
        .with_for_update()
        .one()
    )


def ensure_ledger(
    db: Session,
    employee: Employee,
    leave_type: LeaveType,
    opened_on: Optional[date] = None,
    actor_id: Optional[int] = None,
) -> EmployeeLeaveBalance:
    """
    Return the ledger row for (employee, leave type), creating it if missing.

    A new row starts at the type's initial_balance; its first accrual falls one
    period after opened_on (default today). Flushes only.
    """
    ledger = get_ledger(db, employee.id, leave_type.id)
    if ledger:
        return ledger

    opened_on = opened_on or date.today()
    months = _period_months(leave_type)
    initial = _dec(leave_type.initial_balance)
    ledger = EmployeeLeaveBalance(
        organization_id=employee.organization_id,
        employee_id=employee.id,
        leave_type_id=leave_type.id,
        balance=initial,
        total_accrued=ZERO,
        total_consumed=ZERO,
        opened_on=opened_on,
        last_accrual_date=None,
        next_accrual_date=add_months(opened_on, months) if months else None,
        carry_forward_balance=ZERO,
    )
    db.add(ledger)
    db.flush()
    if initial != ZERO:
        _journal(db, ledger, initial, LeaveTransactionAction.OPENING, "Opening balance", actor_id)
    logger.info(
        "ledger opened: employee_id=%s leave_type_id=%s balance=%s next_accrual_date=%s",
        employee.id, leave_type.id, initial, ledger.next_accrual_date,
    )
    return ledger


def reschedule_accruals(db: Session, leave_type: LeaveType, today: Optional[date] = None) -> int:
    """
    Re-derive next_accrual_date on every ledger of a leave type after its
    accrual method changed.

    The next period is counted from the last accrual, or from the date the
    ledger was opened when it never accrued. Non-accruing types clear the
    date. Flushes only; returns the number of rows changed.
    """
    months = _period_months(leave_type)
    ledgers = (
        db.query(EmployeeLeaveBalance)
        .filter(EmployeeLeaveBalance.leave_type_id == leave_type.id)
        .populate_existing()
        .with_for_update()
        .all()
    )
    changed = 0
    for ledger in ledgers:
        if months:
            anchor = ledger.last_accrual_date or ledger.opened_on or today or date.today()
            next_accrual_date = add_months(anchor, months)
        else:
            next_accrual_date = None
        if ledger.next_accrual_date != next_accrual_date:
            ledger.next_accrual_date = next_accrual_date
            changed += 1
    db.flush()
    logger.info(
        "accrual schedule recomputed: leave_type_id=%s method=%s ledgers=%s changed=%s",
        leave_type.id, leave_type.accrual_method, len(ledgers), changed,
    )
    return changed


def _active_leave_types(db: Session, organization_id: int) -> List[LeaveType]:
    return (
        db.query(LeaveType)
        .filter(
            LeaveType.organization_id == organization_id,
            LeaveType.active_flag == True,  # noqa: E712
            LeaveType.delete_flag == False,  # noqa: E712
        )
        .order_by(LeaveType.id)
        .all()
    )


def get_balances(db: Session, employee: Employee, today: Optional[date] = None) -> List[EmployeeLeaveBalance]:
    """All ledger rows of an employee; rows for every active leave type are ensured first"""
    for leave_type in _active_leave_types(db, employee.organization_id):
        ensure_ledger(db, employee, leave_type, opened_on=today)
    db.commit()
    return (
        db.query(EmployeeLeaveBalance)
        .join(LeaveType, LeaveType.id == EmployeeLeaveBalance.leave_type_id)
        .filter(
            EmployeeLeaveBalance.employee_id == employee.id,
            LeaveType.delete_flag == False,  # noqa: E712
        )
        .order_by(LeaveType.code)
        .all()
    )


def apply_accrual(
    db: Session,
    ledger: EmployeeLeaveBalance,
    as_of: date,
    actor_id: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Credit every accrual period due on or before as_of.

    Each period credits accrual_rate, clamped so the balance does not exceed
    max_balance (the excess is forfeited); only the credited amount counts
    toward total_accrued. A period already journaled under its idempotency
    key is skipped. Flushes only.
    """
    leave_type = ledger.leave_type
    months = _period_months(leave_type)
    result = {"periods": 0, "skipped_periods": 0, "credited": ZERO, "forfeited": ZERO}
    if not months or ledger.next_accrual_date is None:
        return result

    rate = _dec(leave_type.accrual_rate)
    max_balance = _dec(leave_type.max_balance) if leave_type.max_balance is not None else None

    while ledger.next_accrual_date <= as_of:
        key = accrual_idempotency_key(ledger)
        already_posted = db.query(LeaveTransaction.id).filter(
            LeaveTransaction.idempotency_key == key
        ).first()

        if already_posted:
            result["skipped_periods"] += 1
        else:
            balance = _dec(ledger.balance)
            credit = rate
            if max_balance is not None:
                credit = max(min(rate, max_balance - balance), ZERO)
            forfeited = rate - credit
            ledger.balance = balance + credit
            ledger.total_accrued = _dec(ledger.total_accrued) + credit
            remarks = f"Accrual for period ending {ledger.next_accrual_date.isoformat()}"
            if forfeited > ZERO:
                remarks += f" ({forfeited} days over max balance forfeited)"
            _journal(db, ledger, credit, LeaveTransactionAction.ACCRUAL, remarks, actor_id, idempotency_key=key)
            result["periods"] += 1
            result["credited"] += credit
            result["forfeited"] += forfeited

        ledger.last_accrual_date = ledger.next_accrual_date
        ledger.next_accrual_date = add_months(ledger.next_accrual_date, months)

    db.flush()
    if result["periods"]:
        logger.info(
            "accrual applied: ledger_id=%s periods=%s credited=%s forfeited=%s balance_after=%s",
            ledger.id, result["periods"], result["credited"], result["forfeited"], ledger.balance,
        )
    return result


def run_accrual(
    db: Session,
    organization_id: int,
    as_of: date,
    actor_id: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Batch accrual for all active employees and accruing leave types of an organization.

    Each ledger row is processed in its own transaction; a failure on one row is
    reported and does not affect the others. Re-running for the same as_of is a no-op.
    """
    leave_types = [lt for lt in _active_leave_types(db, organization_id) if _period_months(lt)]
    employees = (
        db.query(Employee)
        .filter(Employee.organization_id == organization_id, Employee.active == True)  # noqa: E712
        .order_by(Employee.id)
        .all()
    )
    pairs = [(employee.id, lt.id) for employee in employees for lt in leave_types]

    processed = 0
    credited_rows = 0
    skipped = 0
    failed = 0
    total_credited = ZERO
    details = []

    for employee_id, leave_type_id in pairs:
        processed += 1

        def unit(employee_id=employee_id, leave_type_id=leave_type_id):
            employee = db.get(Employee, employee_id)
            leave_type = db.get(LeaveType, leave_type_id)
            ledger = ensure_ledger(db, employee, leave_type, opened_on=as_of, actor_id=actor_id)
            ledger = _lock_ledger(db, ledger.id)
            outcome = apply_accrual(db, ledger, as_of, actor_id=actor_id)
            outcome["balance_after"] = _dec(ledger.balance)
            return outcome

        try:
            outcome = run_with_retry(db, unit)
        except IntegrityError:
            # Another run posted the same period first
            skipped += 1
            details.append({"employee_id": employee_id, "leave_type_id": leave_type_id, "status": "SKIPPED"})
            continue
        except Exception as exc:
            failed += 1
            logger.exception("accrual failed: employee_id=%s leave_type_id=%s", employee_id, leave_type_id)
            details.append({
                "employee_id": employee_id,
                "leave_type_id": leave_type_id,
                "status": "FAILED",
                "detail": str(getattr(exc, "detail", exc)),
            })
            continue

        if outcome["periods"]:
            credited_rows += 1
            total_credited += outcome["credited"]
            details.append({
                "employee_id": employee_id,
                "leave_type_id": leave_type_id,
                "status": "CREDITED",
                "periods": outcome["periods"],
                "credited": float(outcome["credited"]),
                "forfeited": float(outcome["forfeited"]),
                "balance_after": float(outcome["balance_after"]),
            })
        else:
            skipped += 1
            if outcome["skipped_periods"]:
                details.append({
                    "employee_id": employee_id,
                    "leave_type_id": leave_type_id,
                    "status": "SKIPPED",
                    "skipped_periods": outcome["skipped_periods"],
                })

    summary = {
        "organization_id": organization_id,
        "as_of": as_of,
        "processed": processed,
        "credited": credited_rows,
        "skipped": skipped,
        "failed": failed,
        "total_days_credited": float(total_credited),
        "details": details,
    }
    logger.info(
        "accrual run: org=%s as_of=%s processed=%s credited=%s skipped=%s failed=%s",
        organization_id, as_of, processed, credited_rows, skipped, failed,
    )
    log_audit(
        db=db,
        actor_id=actor_id,
        action="ACCRUAL_RUN",
        entity_type="accrual",
        meta={k: v for k, v in summary.items() if k != "details"},
        organization_id=organization_id,
    )
    return summary


def _roll_over(
    db: Session,
    ledger: EmployeeLeaveBalance,
    year: int,
    actor_id: Optional[int] = None,
) -> Optional[Dict[str, Any]]:
    """Year close of one locked ledger row. Returns None when the row was already rolled."""
    if ledger.last_rollover_year is not None and ledger.last_rollover_year >= year:
        return None

    leave_type = ledger.leave_type
    balance = _dec(ledger.balance)
    carried = ZERO
    forfeited = ZERO
    expires_on = None

    if balance > ZERO:
        if leave_type.allow_carry_forward:
            limit = leave_type.carry_forward_limit
            carried = balance if limit is None else min(balance, _dec(limit))
        # Forfeiture never takes the balance below min_balance
        floor = max(_dec(leave_type.min_balance), ZERO)
        forfeited = max(min(balance - carried, balance - floor), ZERO)
        ledger.balance = balance - forfeited
        carried = min(carried, _dec(ledger.balance))

        if carried > ZERO and leave_type.carry_forward_expiry_months:
            expires_on = add_months(date(year + 1, 1, 1), leave_type.carry_forward_expiry_months)
        ledger.carry_forward_balance = carried
        ledger.carry_forward_expires_on = expires_on

    encashable = forfeited if leave_type.allow_encashment else ZERO
    encash_amount = encashable * _dec(leave_type.encashment_rate) if encashable else ZERO

    if forfeited > ZERO:
        if encashable > ZERO:
            action = LeaveTransactionAction.YEAR_CLOSE_ENCASH
            remarks = f"Year {year} close: {encashable} days encashable, amount {encash_amount}"
        else:
            action = LeaveTransactionAction.YEAR_CLOSE_FORFEIT
            remarks = f"Year {year} close: {forfeited} days forfeited"
        _journal(db, ledger, -forfeited, action, remarks, actor_id)

    ledger.last_rollover_year = year
    db.flush()
    return {
        "employee_id": ledger.employee_id,
        "leave_type_id": ledger.leave_type_id,
        "leave_type_code": leave_type.code,
        "balance_before": float(balance),
        "carried_forward": float(carried),
        "forfeited": float(forfeited),
        "encashable_days": float(encashable),
        "encash_amount": float(encash_amount),
        "carry_forward_expires_on": expires_on,
        "balance_after": float(_dec(ledger.balance)),
    }


def run_year_close(
    db: Session,
    organization_id: int,
    year: int,
    actor_id: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Carry-forward rollover for every ledger row of an organization not yet closed for year.

    Safe to re-run: rows already marked with last_rollover_year >= year are skipped.
    """
    ledger_ids = [
        row.id
        for row in db.query(EmployeeLeaveBalance.id)
        .join(LeaveType, LeaveType.id == EmployeeLeaveBalance.leave_type_id)
        .filter(
            EmployeeLeaveBalance.organization_id == organization_id,
            LeaveType.delete_flag == False,  # noqa: E712
            or_(
                EmployeeLeaveBalance.last_rollover_year.is_(None),
                EmployeeLeaveBalance.last_rollover_year < year,
            ),
        )
        .order_by(EmployeeLeaveBalance.id)
        .all()
    ]

    processed = 0
    failed = 0
    total_carried = ZERO
    total_forfeited = ZERO
    total_encashable = ZERO
    total_encash_amount = ZERO
    details = []

    for ledger_id in ledger_ids:
        try:
            outcome = run_with_retry(db, lambda ledger_id=ledger_id: _roll_over(db, _lock_ledger(db, ledger_id), year, actor_id))
        except Exception as exc:
            failed += 1
            logger.exception("year close failed: ledger_id=%s year=%s", ledger_id, year)
            details.append({"ledger_id": ledger_id, "status": "FAILED", "detail": str(getattr(exc, "detail", exc))})
            continue
        if outcome is None:
            continue
        processed += 1
        total_carried += _dec(outcome["carried_forward"])
        total_forfeited += _dec(outcome["forfeited"])
        total_encashable += _dec(outcome["encashable_days"])
        total_encash_amount += _dec(outcome["encash_amount"])
        details.append(outcome)

    summary = {
        "organization_id": organization_id,
        "year": year,
        "processed": processed,
        "failed": failed,
        "total_carried_forward": float(total_carried),
        "total_forfeited": float(total_forfeited),
        "total_encashable_days": float(total_encashable),
        "total_encash_amount": float(total_encash_amount),
        "details": details,
    }
    logger.info(
        "year close: org=%s year=%s processed=%s carried=%s forfeited=%s failed=%s",
        organization_id, year, processed, total_carried, total_forfeited, failed,
    )
    log_audit(
        db=db,
        actor_id=actor_id,
        action="YEAR_CLOSE",
        entity_type="accrual",
        meta={k: v for k, v in summary.items() if k != "details"},
        organization_id=organization_id,
    )
    return summary


def _expire_one(db: Session, ledger: EmployeeLeaveBalance, as_of: date, actor_id: Optional[int]) -> Optional[Dict[str, Any]]:
    if ledger.carry_forward_expires_on is None or ledger.carry_forward_expires_on > as_of:
        return None

    leave_type = ledger.leave_type
    balance = _dec(ledger.balance)
    unused = _dec(ledger.carry_forward_balance)
    expired = max(min(unused, balance - _dec(leave_type.min_balance)), ZERO)

    ledger.balance = balance - expired
    ledger.carry_forward_balance = ZERO
    ledger.carry_forward_expires_on = None
    if expired > ZERO:
        _journal(
            db, ledger, -expired, LeaveTransactionAction.CARRY_FORWARD_EXPIRY,
            f"Carried forward days expired on {as_of.isoformat()}", actor_id,
        )
    db.flush()
    return {
        "employee_id": ledger.employee_id,
        "leave_type_id": ledger.leave_type_id,
        "leave_type_code": leave_type.code,
        "expired": float(expired),
        "balance_after": float(_dec(ledger.balance)),
    }


def expire_carry_forward(
    db: Session,
    organization_id: int,
    as_of: date,
    actor_id: Optional[int] = None,
) -> Dict[str, Any]:
    """Forfeit carried-forward days not consumed by their expiry date"""
    ledger_ids = [
        row.id
        for row in db.query(EmployeeLeaveBalance.id)
        .filter(
            EmployeeLeaveBalance.organization_id == organization_id,
            EmployeeLeaveBalance.carry_forward_expires_on.isnot(None),
            EmployeeLeaveBalance.carry_forward_expires_on <= as_of,
        )
        .order_by(EmployeeLeaveBalance.id)
        .all()
    ]

    processed = 0
    failed = 0
    total_expired = ZERO
    details = []
    for ledger_id in ledger_ids:
        try:
            outcome = run_with_retry(db, lambda ledger_id=ledger_id: _expire_one(db, _lock_ledger(db, ledger_id), as_of, actor_id))
        except Exception as exc:
            failed += 1
            logger.exception("carry forward expiry failed: ledger_id=%s", ledger_id)
            details.append({"ledger_id": ledger_id, "status": "FAILED", "detail": str(getattr(exc, "detail", exc))})
            continue
        if outcome is None:
            continue
        processed += 1
        total_expired += _dec(outcome["expired"])
        details.append(outcome)

    summary = {
        "organization_id": organization_id,
        "as_of": as_of,
        "processed": processed,
        "failed": failed,
        "total_expired": float(total_expired),
        "details": details,
    }
    logger.info("carry forward expiry: org=%s as_of=%s processed=%s expired=%s", organization_id, as_of, processed, total_expired)
    log_audit(
        db=db,
        actor_id=actor_id,
        action="CARRY_FORWARD_EXPIRY",
        entity_type="accrual",
        meta={k: v for k, v in summary.items() if k != "details"},
        organization_id=organization_id,
    )
    return summary


def check_sufficient_balance(ledger: EmployeeLeaveBalance, leave_type: LeaveType, days) -> None:
    """Raise InsufficientBalanceError if taking days would leave the balance below min_balance"""
    balance = _dec(ledger.balance)
    minimum = _dec(leave_type.min_balance)
    if balance - _dec(days) < minimum:
        raise InsufficientBalanceError(requested=_dec(days), available=balance, min_balance=minimum)


def debit_for_request(
    db: Session,
    leave_request: LeaveRequest,
    actor_id: Optional[int] = None,
    today: Optional[date] = None,
) -> Decimal:
    """
    Take the request's total_days from the ledger (caller commits).

    Carried-forward days are consumed first. Records debited_days on the request.

    Raises:
        InsufficientBalanceError: balance - total_days would drop below min_balance;
            the ledger row is left untouched
    """
    leave_type = leave_request.leave_type
    ledger = ensure_ledger(db, leave_request.employee, leave_type, opened_on=today, actor_id=actor_id)
    ledger = _lock_ledger(db, ledger.id)
    days = _dec(leave_request.total_days)
    check_sufficient_balance(ledger, leave_type, days)

    ledger.balance = _dec(ledger.balance) - days
    ledger.total_consumed = _dec(ledger.total_consumed) + days
    ledger.carry_forward_balance = max(_dec(ledger.carry_forward_balance) - days, ZERO)
    leave_request.debited_days = days
    _journal(
        db, ledger, -days, LeaveTransactionAction.APPROVE_DEDUCT,
        f"Leave request {leave_request.id} approved", actor_id, leave_request_id=leave_request.id,
    )
    db.flush()
    logger.info(
        "ledger debit: ledger_id=%s leave_request_id=%s delta=-%s balance_after=%s",
        ledger.id, leave_request.id, days, ledger.balance,
    )
    return days


def credit_back_for_request(
    db: Session,
    leave_request: LeaveRequest,
    actor_id: Optional[int] = None,
) -> Decimal:
    """
    Restore exactly the days debited for the request (caller commits).

    debited_days is cleared so a second credit-back credits nothing.
    """
    days = _dec(leave_request.debited_days)
    if days <= ZERO:
        return ZERO

    ledger = get_ledger(db, leave_request.employee_id, leave_request.leave_type_id)
    if ledger is None:
        raise NotFoundError(
            f"No ledger for employee {leave_request.employee_id} and leave type {leave_request.leave_type_id}"
        )
    ledger = _lock_ledger(db, ledger.id)
    ledger.balance = _dec(ledger.balance) + days
    ledger.total_consumed = max(_dec(ledger.total_consumed) - days, ZERO)
    leave_request.debited_days = ZERO
    _journal(
        db, ledger, days, LeaveTransactionAction.CANCEL_RECREDIT,
        f"Leave request {leave_request.id} cancelled", actor_id, leave_request_id=leave_request.id,
    )
    db.flush()
    logger.info(
        "ledger credit-back: ledger_id=%s leave_request_id=%s delta=+%s balance_after=%s",
        ledger.id, leave_request.id, days, ledger.balance,
    )
    return days


def adjust_balance(
    db: Session,
    organization_id: int,
    employee_id: int,
    leave_type_id: int,
    delta,
    remarks: str,
    actor_id: Optional[int] = None,
    today: Optional[date] = None,
) -> EmployeeLeaveBalance:
    """
    Manual HR correction of a balance, journaled as MANUAL_ADJUST.

    Raises:
        InsufficientBalanceError: the adjustment would take the balance below min_balance
        ValidationError: zero delta or the result would exceed max_balance
    """
    delta = _dec(delta)
    if delta == ZERO:
        raise ValidationError("delta must not be zero")

    employee = db.query(Employee).filter(
        Employee.id == employee_id, Employee.organization_id == organization_id
    ).first()
    if not employee:
        raise NotFoundError(f"Employee with id {employee_id} not found")
    leave_type = db.query(LeaveType).filter(
        LeaveType.id == leave_type_id,
        LeaveType.organization_id == organization_id,
        LeaveType.delete_flag == False,  # noqa: E712
    ).first()
    if not leave_type:
        raise NotFoundError(f"Leave type with id {leave_type_id} not found")

    def unit():
        ledger = ensure_ledger(db, employee, leave_type, opened_on=today, actor_id=actor_id)
        ledger = _lock_ledger(db, ledger.id)
        balance = _dec(ledger.balance)
        new_balance = balance + delta
        if delta < ZERO:
            check_sufficient_balance(ledger, leave_type, -delta)
        if leave_type.max_balance is not None and new_balance > _dec(leave_type.max_balance):
            raise ValidationError(
                f"adjustment of {delta} days would exceed max balance {_dec(leave_type.max_balance)}"
            )
        ledger.balance = new_balance
        _journal(db, ledger, delta, LeaveTransactionAction.MANUAL_ADJUST, remarks, actor_id)
        return ledger.id, balance

    ledger_id, balance_before = run_with_retry(db, unit)
    ledger = db.get(EmployeeLeaveBalance, ledger_id)
    logger.info(
        "ledger manual adjust: ledger_id=%s delta=%s balance_after=%s actor=%s",
        ledger.id, delta, ledger.balance, actor_id,
    )
    log_audit(
        db=db,
        actor_id=actor_id,
        action="LEAVE_BALANCE_ADJUST",
        entity_type="employee_leaves",
        entity_id=ledger.id,
        meta={
            "employee_id": employee_id,
            "leave_type_id": leave_type_id,
            "delta": delta,
            "balance_before": balance_before,
            "balance_after": ledger.balance,
            "remarks": remarks,
        },
        organization_id=organization_id,
    )
    return ledger


def list_transactions(
    db: Session,
    employee_id: int,
    leave_type_id: Optional[int] = None,
    limit: int = 100,
) -> List[LeaveTransaction]:
    q = db.query(LeaveTransaction).filter(LeaveTransaction.employee_id == employee_id)
    if leave_type_id is not None:
        q = q.filter(LeaveTransaction.leave_type_id == leave_type_id)
    return q.order_by(LeaveTransaction.action_at.desc(), LeaveTransaction.id.desc()).limit(limit).all()


def get_accrual_status(db: Session, organization_id: int) -> List[Dict[str, Any]]:
    """Ledger position per active employee and leave type"""
    rows = (
        db.query(EmployeeLeaveBalance, Employee, LeaveType)
        .join(Employee, Employee.id == EmployeeLeaveBalance.employee_id)
        .join(LeaveType, LeaveType.id == EmployeeLeaveBalance.leave_type_id)
        .filter(
            EmployeeLeaveBalance.organization_id == organization_id,
            Employee.active == True,  # noqa: E712
            LeaveType.delete_flag == False,  # noqa: E712
        )
        .order_by(Employee.emp_code, LeaveType.code)
        .all()
    )
    return [
        {
            "employee_id": employee.id,
            "emp_code": employee.emp_code,
            "name": employee.name,
            "leave_type_id": leave_type.id,
            "leave_type_code": leave_type.code,
            "balance": float(_dec(ledger.balance)),
            "total_accrued": float(_dec(ledger.total_accrued)),
            "total_consumed": float(_dec(ledger.total_consumed)),
            "carry_forward_balance": float(_dec(ledger.carry_forward_balance)),
            "last_accrual_date": ledger.last_accrual_date,
            "next_accrual_date": ledger.next_accrual_date,
            "last_rollover_year": ledger.last_rollover_year,
        }
        for ledger, employee, leave_type in rows
    ]
