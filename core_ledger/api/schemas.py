"""
Pydantic schemas for API requests and responses
"""

from datetime import datetime
from typing import Any, List

from pydantic import AliasChoices, BaseModel, Field

from ..accounts import AccountBalance
from ..ledger import LedgerEntry
from ..statements import StatementSnapshot


class TransactionRequest(BaseModel):
    """
    Transaction body. Field types are checked by the transaction service so
    that a wrong type is reported as an invalid request, not a parse error.
    """
    valor: Any = Field(None, validation_alias=AliasChoices("valor", "magnitude"))
    tipo: Any = Field(None, validation_alias=AliasChoices("tipo", "direction"))
    descricao: Any = Field(None, validation_alias=AliasChoices("descricao", "description"))


class TransactionResponse(BaseModel):
    limite: int
    saldo: int

    @classmethod
    def from_balance(cls, balance: AccountBalance) -> "TransactionResponse":
        return cls(limite=balance.limit, saldo=balance.balance)


class BalanceModel(BaseModel):
    total: int
    data_extrato: datetime
    limite: int


class EntryModel(BaseModel):
    valor: int
    tipo: str
    descricao: str
    realizada_em: datetime

    @classmethod
    def from_entry(cls, entry: LedgerEntry) -> "EntryModel":
        return cls(
            valor=entry.magnitude,
            tipo=entry.direction.value,
            descricao=entry.description,
            realizada_em=entry.recorded_at,
        )


class StatementResponse(BaseModel):
    saldo: BalanceModel
    ultimas_transacoes: List[EntryModel]

    @classmethod
    def from_snapshot(cls, snapshot: StatementSnapshot) -> "StatementResponse":
        return cls(
            saldo=BalanceModel(
                total=snapshot.balance,
                data_extrato=snapshot.statement_at,
                limite=snapshot.limit,
            ),
            ultimas_transacoes=[EntryModel.from_entry(e) for e in snapshot.entries],
        )
