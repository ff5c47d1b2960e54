"""
Account transaction and statement endpoints

Each handler is registered under the English path and under the Portuguese
path existing clients call (/clientes/{id}/transacoes, /clientes/{id}/extrato).
"""

import re

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError

from ..errors import AccountNotFoundError, InvalidRequestError, MalformedRequestError
from .schemas import StatementResponse, TransactionRequest, TransactionResponse
from .system import LedgerSystem, get_ledger_system


router = APIRouter()

_ACCOUNT_ID = re.compile(r"[+-]?\d+")


def parse_account_id(raw: str) -> int:
    """Parse a path id; ValueError if it is not a plain integer"""
    if not _ACCOUNT_ID.fullmatch(raw):
        raise ValueError(f"Invalid account id: {raw!r}")
    return int(raw)


@router.post("/accounts/{account_id}/transactions", response_model=TransactionResponse)
@router.post("/clientes/{account_id}/transacoes", response_model=TransactionResponse,
             include_in_schema=False)
async def create_transaction(
    account_id: str,
    request: Request,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Apply a credit or debit to an account"""
    try:
        parsed_id = parse_account_id(account_id)
    except ValueError:
        raise AccountNotFoundError(account_id)

    # Out-of-domain ids are rejected before the body is read
    if parsed_id not in system.account_ids:
        raise AccountNotFoundError(parsed_id)

    try:
        body = await request.json()
    except ValueError:
        raise MalformedRequestError("Request body is not valid JSON")
    if not isinstance(body, dict):
        raise MalformedRequestError("Request body must be a JSON object")

    try:
        payload = TransactionRequest.model_validate(body)
    except ValidationError as e:
        raise MalformedRequestError(f"Request body could not be read: {e}")

    result = await run_in_threadpool(
        system.transactions.apply,
        parsed_id,
        payload.valor,
        payload.tipo,
        payload.descricao,
    )
    return TransactionResponse.from_balance(result)


@router.get("/accounts/{account_id}/statement", response_model=StatementResponse)
@router.get("/clientes/{account_id}/extrato", response_model=StatementResponse,
            include_in_schema=False)
def get_statement(
    account_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Get balance, limit and the most recent transactions of an account"""
    try:
        parsed_id = parse_account_id(account_id)
    except ValueError:
        raise InvalidRequestError("Account id must be an integer", field="account_id")

    snapshot = system.statements.statement(parsed_id)
    return StatementResponse.from_snapshot(snapshot)
