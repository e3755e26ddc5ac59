"""
Ledger Error Types

Every ledger failure is a failed precondition, never a system fault. All of
them derive from ValueError so callers that only care about "bad request"
semantics can catch them together.
"""

from typing import Any, Hashable, Optional


class LedgerError(ValueError):
    """Base class for ledger precondition failures"""


class InsufficientBalance(LedgerError):
    """The paying account holds less than the requested amount"""

    def __init__(self, account: Hashable, balance: int, needed: int,
                 message: str = "ERC20: transfer amount exceeds balance"):
        super().__init__(message)
        self.account = account
        self.balance = balance
        self.needed = needed


class InsufficientAllowance(LedgerError):
    """The spender's allowance from the owner is less than the requested amount"""

    def __init__(self, owner: Hashable, spender: Hashable, allowance: int, needed: int,
                 message: str = "ERC20: insufficient allowance"):
        super().__init__(message)
        self.owner = owner
        self.spender = spender
        self.allowance = allowance
        self.needed = needed


class AmountOutOfRange(LedgerError):
    """An amount that is not an unsigned integer of the ledger's width"""

    def __init__(self, value: Any, field_name: str = "amount", detail: Optional[str] = None):
        super().__init__(detail or f"{field_name} must be an integer in the unsigned 256-bit range, got {value!r}")
        self.value = value
        self.field_name = field_name
