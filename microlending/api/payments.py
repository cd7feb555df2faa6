"""
Payment endpoints
"""

from fastapi import APIRouter, Depends, status

from ..service import LendingSystem
from .dependencies import get_lending_system
from .schemas import EditPaymentRequest, PostPaymentRequest


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def post_payment(
    request: PostPaymentRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Post a payment against a loan"""
    payment = system.post_payment(
        loan_id=request.loan_id,
        amount=request.amount,
        payment_date=request.payment_date,
        installment_number=request.installment_number
    )
    loan = system.get_loan(request.loan_id)
    return {
        "payment": payment.to_dict(),
        "loan_status": loan.status.value,
        "installments_paid_count": loan.installments_paid_count,
        "next_due_date": loan.next_due_date.isoformat()
    }


@router.patch("/{payment_id}")
async def edit_payment(
    payment_id: str,
    request: EditPaymentRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Amend the amount and/or date of a payment"""
    payment = system.edit_payment(payment_id, request.amount, request.payment_date)
    loan = system.get_loan(payment.loan_id)
    return {"payment": payment.to_dict(), "loan_status": loan.status.value}


@router.delete("/{payment_id}")
async def delete_payment(
    payment_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Reverse a payment"""
    system.delete_payment(payment_id)
    return {"payment_id": payment_id, "message": "Payment reversed successfully"}
