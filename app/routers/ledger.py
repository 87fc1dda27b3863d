from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter
from pydantic import BaseModel

from app.core.money import to_rupees
from app.services import ledger as ledger_service

router = APIRouter()


class DepositRequest(BaseModel):
    user_id: str
    amount: Decimal
    phone_number: str
    mode: str
    txn_id: str


class WithdrawalRequest(BaseModel):
    user_id: str
    amount: Decimal
    phone_number: str | None = None
    mode: str | None = None
    txn_id: str | None = None


class VerifyDepositRequest(BaseModel):
    user_id: str
    amount: Decimal
    requested_at: datetime


class VerifyWithdrawalRequest(BaseModel):
    user_id: str
    amount: Decimal
    txn_id: str | None = None
    requested_at: datetime


@router.post("/deposits")
async def submit_deposit(body: DepositRequest):
    """Record a deposit claim; balance changes only after verification."""
    entry = await ledger_service.submit_deposit(
        body.user_id, body.amount, body.phone_number, body.mode, body.txn_id
    )
    return {"message": "Balance request added successfully.", "requested_at": entry.requested_at}


@router.post("/withdrawals")
async def submit_withdrawal(body: WithdrawalRequest):
    """Record a withdrawal claim. Outside withdrawal hours: 200 with accepted=false and the reason."""
    return await ledger_service.submit_withdrawal(
        body.user_id, body.amount, body.phone_number, body.mode, body.txn_id
    )


@router.post("/deposits/verify")
async def verify_deposit(body: VerifyDepositRequest):
    balance = await ledger_service.verify_deposit(body.user_id, body.amount, body.requested_at)
    return {"message": "Deposit verified and balance added successfully", "balance": to_rupees(balance)}


@router.post("/withdrawals/verify")
async def verify_withdrawal(body: VerifyWithdrawalRequest):
    balance = await ledger_service.verify_withdrawal(
        body.user_id, body.amount, body.txn_id, body.requested_at
    )
    return {"message": "Withdrawal verified and balance deducted successfully", "balance": to_rupees(balance)}
