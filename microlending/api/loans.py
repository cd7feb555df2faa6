"""
Loan endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, status

from ..dates import format_date
from ..models import LoanStatus
from ..service import LendingSystem
from .dependencies import get_lending_system
from .schemas import CreateLoanRequest, QuoteRequest, SetAnchorRequest, SetWeekdayRequest


router = APIRouter()


def loan_response(system: LendingSystem, loan) -> dict:
    data = loan.to_dict()
    data["total_paid"] = f"{system.ledger.total_paid(loan.id):.2f}"
    return data


@router.post("/quote")
async def quote_loan(request: QuoteRequest):
    """Calculate total payable and weekly installment without creating a loan"""
    quote = LendingSystem.calculate_terms(
        request.principal, request.rate_percent, request.installment_count
    )
    return quote.to_dict()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_loan(
    request: CreateLoanRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Create a new weekly-installment loan"""
    loan = system.create_loan(
        principal=request.principal,
        rate_percent=request.rate_percent,
        installment_count=request.installment_count,
        loan_date=request.loan_date,
        mora_rate_percent=request.mora_rate_percent,
        client_id=request.client_id
    )
    return loan_response(system, loan)


@router.get("")
async def list_loans(
    status: Optional[LoanStatus] = None,
    system: LendingSystem = Depends(get_lending_system)
):
    """List loans, optionally filtered by status"""
    return {"loans": [loan_response(system, loan) for loan in system.list_loans(status)]}


@router.get("/due")
async def loans_due(
    day: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Collection list: unsettled loans with an installment due on ``day``"""
    loans = system.loans_due_on(day)
    return {"day": day, "loans": [loan_response(system, loan) for loan in loans]}


@router.get("/{loan_id}")
async def get_loan(
    loan_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Get loan details"""
    return loan_response(system, system.get_loan(loan_id))


@router.get("/{loan_id}/payments")
async def get_loan_payments(
    loan_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Payment history in ledger order"""
    return {"payments": [payment.to_dict() for payment in system.get_payments(loan_id)]}


@router.get("/{loan_id}/schedule")
async def get_loan_schedule(
    loan_id: str,
    anchor: Optional[str] = None,
    system: LendingSystem = Depends(get_lending_system)
):
    """Projected weekly schedule; ``anchor`` previews another first date without saving it"""
    anchor_date, schedule = system.anchored_schedule(loan_id, anchor)
    return {
        "anchor_date": format_date(anchor_date),
        "schedule": [entry.to_dict() for entry in schedule]
    }


@router.put("/{loan_id}/anchor")
async def set_loan_anchor(
    loan_id: str,
    request: SetAnchorRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Persist a custom first installment date"""
    loan = system.set_custom_anchor(loan_id, request.anchor_date, request.suppress)
    return loan_response(system, loan)


@router.put("/{loan_id}/weekday")
async def set_loan_weekday(
    loan_id: str,
    request: SetWeekdayRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Move the schedule onto a fixed weekday"""
    loan = system.set_payment_weekday(loan_id, request.weekday)
    return loan_response(system, loan)


@router.post("/{loan_id}/reconcile")
async def reconcile_loan(
    loan_id: str,
    apply: bool = True,
    system: LendingSystem = Depends(get_lending_system)
):
    """Rebuild the loan's aggregate from its ledger"""
    return system.reconcile(loan_id, apply=apply).to_dict()
