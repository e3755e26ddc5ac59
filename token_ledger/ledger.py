"""
Token Ledger Engine

Core accounting engine for a fixed-supply fungible token. Tracks balances and
delegated-spending allowances, and guarantees that every operation preserves
the total supply: the sum of all balances always equals the amount minted at
construction.

Every operation is serialized by a single reentrant lock. Preconditions are
checked before any write, so a failed operation leaves no trace: no state
change, no notification, no audit record.
"""

import threading
from decimal import Decimal
from typing import Dict, Hashable, Optional, Tuple, Union

from .audit import AuditTrail, AuditEventType
from .config import (
    DEFAULT_TOKEN_DECIMALS, DEFAULT_TOKEN_NAME, DEFAULT_TOKEN_SYMBOL,
    TokenLedgerConfig, get_config
)
from .errors import AmountOutOfRange, InsufficientAllowance, InsufficientBalance, LedgerError
from .events import NULL_ACCOUNT, Approval, EventDispatcher, EventSink, LedgerEvent, Transfer
from .logging_config import get_logger, log_action
from .mappings import ZeroDefaultMap
from .units import UINT256_MAX, format_amount, to_base_units, validate_amount, validate_decimals

__all__ = [
    "TokenLedger", "BoundLedger", "LedgerError", "InsufficientBalance",
    "InsufficientAllowance", "AmountOutOfRange", "NULL_ACCOUNT",
]


class TokenLedger:
    """
    Fixed-supply token ledger

    The whole supply is credited to ``initial_owner`` on construction; every
    later operation only redistributes it.
    """

    def __init__(
        self,
        total_supply: int,
        initial_owner: Hashable,
        name: str = DEFAULT_TOKEN_NAME,
        symbol: str = DEFAULT_TOKEN_SYMBOL,
        decimals: int = DEFAULT_TOKEN_DECIMALS,
        event_sink: Optional[EventSink] = None,
        audit_trail: Optional[AuditTrail] = None
    ):
        self._total_supply = validate_amount(total_supply, "total_supply")
        self._decimals = validate_decimals(decimals)
        self._name = name
        self._symbol = symbol

        self._balances: ZeroDefaultMap[Hashable] = ZeroDefaultMap()
        self._allowances: ZeroDefaultMap[Tuple[Hashable, Hashable]] = ZeroDefaultMap()
        self._lock = threading.RLock()

        self.event_sink = event_sink if event_sink is not None else EventDispatcher()
        self.audit_trail = audit_trail
        self.logger = get_logger("token_ledger.ledger")

        with self._lock:
            self._balances.set(initial_owner, total_supply)
            self._emit(Transfer(NULL_ACCOUNT, initial_owner, total_supply))
            self._audit(AuditEventType.LEDGER_CREATED, "ledger", symbol, initial_owner, {
                "name": name,
                "symbol": symbol,
                "decimals": decimals,
                "total_supply": total_supply,
                "initial_owner": initial_owner,
            })

        log_action(
            self.logger, "info", f"Ledger created: {format_amount(total_supply, decimals, symbol)}",
            caller=initial_owner, action="initialize", resource=f"account:{initial_owner}",
            extra={"total_supply": str(total_supply), "name": name, "symbol": symbol}
        )

    @classmethod
    def from_config(
        cls,
        initial_owner: Hashable,
        total_supply: Optional[int] = None,
        config: Optional[TokenLedgerConfig] = None,
        event_sink: Optional[EventSink] = None,
        audit_trail: Optional[AuditTrail] = None
    ) -> "TokenLedger":
        """
        Build a ledger from configuration

        Metadata and, unless given, the supply come from ``config`` (the
        global configuration by default). An audit trail is attached when
        audit logging is enabled and none was passed in.
        """
        config = config or get_config()
        if audit_trail is None and config.enable_audit_logging:
            audit_trail = AuditTrail(config.audit_trail_name)
        return cls(
            total_supply=config.initial_supply if total_supply is None else total_supply,
            initial_owner=initial_owner,
            name=config.token_name,
            symbol=config.token_symbol,
            decimals=config.token_decimals,
            event_sink=event_sink,
            audit_trail=audit_trail
        )

    # Metadata

    @property
    def name(self) -> str:
        return self._name

    @property
    def symbol(self) -> str:
        return self._symbol

    @property
    def decimals(self) -> int:
        return self._decimals

    @property
    def total_supply(self) -> int:
        return self._total_supply

    # Queries

    def balance_of(self, account: Hashable) -> int:
        """Get an account's balance; zero for accounts never credited"""
        with self._lock:
            return self._balances.get(account)

    def allowance(self, owner: Hashable, spender: Hashable) -> int:
        """Get how much ``spender`` may still move out of ``owner``'s balance"""
        with self._lock:
            return self._allowances.get((owner, spender))

    def balances(self) -> Dict[Hashable, int]:
        """Snapshot of every recorded balance, including explicit zeros"""
        with self._lock:
            return self._balances.snapshot()

    def verify_supply(self) -> bool:
        """Check that the balances still sum to the total supply"""
        with self._lock:
            return self._balances.total() == self._total_supply

    def format_amount(self, amount: int) -> str:
        """Render base units using this token's decimals and symbol"""
        return format_amount(amount, self._decimals, self._symbol)

    def parse_amount(self, amount: Union[str, Decimal, int]) -> int:
        """Convert a human decimal amount ("1.5") to base units, truncating extra digits"""
        return to_base_units(amount, self._decimals)

    def connect(self, caller: Hashable) -> "BoundLedger":
        """Get a view of this ledger that acts as ``caller``"""
        return BoundLedger(self, caller)

    # Mutations

    def transfer(self, caller: Hashable, to: Hashable, amount: int) -> Transfer:
        """
        Move ``amount`` from ``caller`` to ``to``

        Args:
            caller: Identity of the paying account
            to: Receiving account; may equal ``caller``
            amount: Base units to move; zero is allowed

        Returns:
            The emitted Transfer notification

        Raises:
            InsufficientBalance: If caller holds less than ``amount``
            AmountOutOfRange: If ``amount`` is not a valid unsigned amount
        """
        with self._lock:
            try:
                validate_amount(amount)
                self._require_balance(caller, amount)
            except LedgerError as e:
                self._log_rejection("transfer", caller, e, to=to, amount=amount)
                raise

            self._move(caller, to, amount)
            event = Transfer(caller, to, amount)
            self._emit(event)
            self._audit(AuditEventType.TRANSFER, "account", caller, caller, {
                "from": caller, "to": to, "amount": amount
            })

        log_action(
            self.logger, "info", f"Transfer of {self.format_amount(amount)}",
            caller=caller, action="transfer", resource=f"account:{to}",
            extra={"from": str(caller), "to": str(to), "amount": str(amount)}
        )
        return event

    def approve(self, caller: Hashable, spender: Hashable, amount: int) -> Approval:
        """
        Set ``spender``'s allowance over ``caller``'s balance to ``amount``

        The previous allowance is replaced, not adjusted. Changing a non-zero
        allowance this way lets a spender front-run the change and use both
        values; prefer increase_allowance/decrease_allowance for adjustments.

        Raises:
            AmountOutOfRange: If ``amount`` is not a valid unsigned amount
        """
        with self._lock:
            try:
                validate_amount(amount)
            except LedgerError as e:
                self._log_rejection("approve", caller, e, spender=spender, amount=amount)
                raise

            self._write_allowance(caller, spender, amount)
            event = Approval(caller, spender, amount)
            self._emit(event)
            self._audit(AuditEventType.APPROVAL, "account", caller, caller, {
                "owner": caller, "spender": spender, "amount": amount
            })

        log_action(
            self.logger, "info", f"Allowance set to {self.format_amount(amount)}",
            caller=caller, action="approve", resource=f"allowance:{caller}:{spender}",
            extra={"owner": str(caller), "spender": str(spender), "amount": str(amount)}
        )
        return event

    def transfer_from(self, caller: Hashable, owner: Hashable, to: Hashable, amount: int) -> Transfer:
        """
        Move ``amount`` from ``owner`` to ``to``, spending ``caller``'s allowance

        The allowance is checked before the owner's balance, so an exhausted
        allowance is reported even when the owner is also short of funds.

        Returns:
            The emitted Transfer notification (an Approval carrying the
            remaining allowance is emitted just before it)

        Raises:
            InsufficientAllowance: If ``caller`` may not move ``amount`` from ``owner``
            InsufficientBalance: If ``owner`` holds less than ``amount``
            AmountOutOfRange: If ``amount`` is not a valid unsigned amount
        """
        with self._lock:
            try:
                validate_amount(amount)
                current = self._allowances.get((owner, caller))
                if current < amount:
                    raise InsufficientAllowance(owner, caller, current, amount)
                self._require_balance(owner, amount)
            except LedgerError as e:
                self._log_rejection("transfer_from", caller, e, owner=owner, to=to, amount=amount)
                raise

            # Commit every write before any subscriber can observe the ledger
            self._write_allowance(owner, caller, current - amount)
            self._move(owner, to, amount)
            event = Transfer(owner, to, amount)
            self._emit(Approval(owner, caller, current - amount))
            self._emit(event)
            self._audit(AuditEventType.TRANSFER_FROM, "account", owner, caller, {
                "from": owner, "to": to, "amount": amount,
                "spender": caller, "remaining_allowance": current - amount
            })

        log_action(
            self.logger, "info", f"Delegated transfer of {self.format_amount(amount)}",
            caller=caller, action="transfer_from", resource=f"account:{owner}",
            extra={"from": str(owner), "to": str(to), "amount": str(amount),
                   "remaining_allowance": str(current - amount)}
        )
        return event

    def increase_allowance(self, caller: Hashable, spender: Hashable, added: int) -> Approval:
        """
        Atomically raise ``spender``'s allowance by ``added``

        Raises:
            AmountOutOfRange: If ``added`` is invalid or the result would overflow
        """
        with self._lock:
            try:
                validate_amount(added)
                new_allowance = self._allowances.get((caller, spender)) + added
                if new_allowance > UINT256_MAX:
                    raise AmountOutOfRange(new_allowance, "allowance",
                                           "ERC20: allowance overflows the unsigned 256-bit range")
            except LedgerError as e:
                self._log_rejection("increase_allowance", caller, e, spender=spender, amount=added)
                raise

            self._write_allowance(caller, spender, new_allowance)
            event = Approval(caller, spender, new_allowance)
            self._emit(event)
            self._audit(AuditEventType.ALLOWANCE_INCREASED, "account", caller, caller, {
                "owner": caller, "spender": spender, "added": added, "amount": new_allowance
            })

        log_action(
            self.logger, "info", f"Allowance increased to {self.format_amount(new_allowance)}",
            caller=caller, action="increase_allowance", resource=f"allowance:{caller}:{spender}",
            extra={"added": str(added), "amount": str(new_allowance)}
        )
        return event

    def decrease_allowance(self, caller: Hashable, spender: Hashable, subtracted: int) -> Approval:
        """
        Atomically lower ``spender``'s allowance by ``subtracted``

        Raises:
            InsufficientAllowance: If the allowance is smaller than ``subtracted``
            AmountOutOfRange: If ``subtracted`` is not a valid unsigned amount
        """
        with self._lock:
            try:
                validate_amount(subtracted)
                current = self._allowances.get((caller, spender))
                if current < subtracted:
                    raise InsufficientAllowance(caller, spender, current, subtracted,
                                                "ERC20: decreased allowance below zero")
            except LedgerError as e:
                self._log_rejection("decrease_allowance", caller, e, spender=spender, amount=subtracted)
                raise

            new_allowance = current - subtracted
            self._write_allowance(caller, spender, new_allowance)
            event = Approval(caller, spender, new_allowance)
            self._emit(event)
            self._audit(AuditEventType.ALLOWANCE_DECREASED, "account", caller, caller, {
                "owner": caller, "spender": spender, "subtracted": subtracted, "amount": new_allowance
            })

        log_action(
            self.logger, "info", f"Allowance decreased to {self.format_amount(new_allowance)}",
            caller=caller, action="decrease_allowance", resource=f"allowance:{caller}:{spender}",
            extra={"subtracted": str(subtracted), "amount": str(new_allowance)}
        )
        return event

    # Internals; callers hold self._lock

    def _require_balance(self, account: Hashable, amount: int) -> None:
        balance = self._balances.get(account)
        if balance < amount:
            raise InsufficientBalance(account, balance, amount)

    def _move(self, sender: Hashable, recipient: Hashable, amount: int) -> None:
        # Debit first and re-read the recipient so a self-transfer nets to zero
        self._balances.set(sender, self._balances.get(sender) - amount)
        self._balances.set(recipient, self._balances.get(recipient) + amount)

    def _write_allowance(self, owner: Hashable, spender: Hashable, amount: int) -> None:
        self._allowances.set((owner, spender), amount)

    def _emit(self, event: LedgerEvent) -> None:
        try:
            self.event_sink.publish(event)
        except Exception:
            # The mutation is already committed; a broken sink cannot roll it back
            self.logger.exception(f"Error publishing {event.event_type.value} event")

    def _audit(self, event_type: AuditEventType, entity_type: str, entity_id: Hashable,
               caller: Hashable, metadata: dict) -> None:
        if self.audit_trail is not None:
            self.audit_trail.log_event(
                event_type=event_type,
                entity_type=entity_type,
                entity_id=entity_id,
                metadata=metadata,
                caller=caller
            )

    def _log_rejection(self, action: str, caller: Hashable, error: LedgerError, **details) -> None:
        log_action(
            self.logger, "warning", f"{action} rejected: {error}",
            caller=caller, action=action,
            extra={"error": type(error).__name__, **{k: str(v) for k, v in details.items()}}
        )


class BoundLedger:
    """
    A TokenLedger seen through one caller identity

    Mirrors the identity-source collaborator: every mutating call is made as
    the bound caller, so callers cannot act for anyone else by accident.
    """

    def __init__(self, ledger: TokenLedger, caller: Hashable):
        self._ledger = ledger
        self._caller = caller

    @property
    def caller(self) -> Hashable:
        return self._caller

    @property
    def ledger(self) -> TokenLedger:
        return self._ledger

    def connect(self, caller: Hashable) -> "BoundLedger":
        return BoundLedger(self._ledger, caller)

    def balance_of(self, account: Hashable) -> int:
        return self._ledger.balance_of(account)

    def allowance(self, owner: Hashable, spender: Hashable) -> int:
        return self._ledger.allowance(owner, spender)

    def transfer(self, to: Hashable, amount: int) -> Transfer:
        return self._ledger.transfer(self._caller, to, amount)

    def approve(self, spender: Hashable, amount: int) -> Approval:
        return self._ledger.approve(self._caller, spender, amount)

    def transfer_from(self, owner: Hashable, to: Hashable, amount: int) -> Transfer:
        return self._ledger.transfer_from(self._caller, owner, to, amount)

    def increase_allowance(self, spender: Hashable, added: int) -> Approval:
        return self._ledger.increase_allowance(self._caller, spender, added)

    def decrease_allowance(self, spender: Hashable, subtracted: int) -> Approval:
        return self._ledger.decrease_allowance(self._caller, spender, subtracted)
