# app/gateway/ledger.py
"""
In-memory balance ledger for gateway wallets.

Consumers and providers share one balance space. Money only moves
between two wallets through try_debit_and_credit(), whose funds check
and mutation run inside a single critical section, so concurrent calls
against the same payer can never overdraw it. Top-ups are the only way
new money enters the ledger.
"""
import logging
import threading
from decimal import Decimal, InvalidOperation
from typing import Dict, Optional, Tuple, Union

logger = logging.getLogger(__name__)

Amount = Union[Decimal, int, float, str]


class LedgerError(Exception):
    """Base class for ledger failures."""


class InvalidAmountError(LedgerError):
    """Raised when an amount is not a positive number."""


class InsufficientFundsError(LedgerError):
    """Raised when the payer cannot cover a transfer."""

    def __init__(self, identity: str, required: Decimal, available: Decimal):
        self.identity = identity
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient funds for {identity}: required {required}, available {available}"
        )


def to_decimal(value: Amount) -> Decimal:
    """
    Convert an amount to Decimal.

    Floats go through str() so 0.1 stays 0.1.

    Raises:
        InvalidAmountError: If the value is not a finite number
    """
    if isinstance(value, bool):
        raise InvalidAmountError(f"Invalid amount: {value!r}")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise InvalidAmountError(f"Invalid amount: {value!r}") from e
    if not amount.is_finite():
        raise InvalidAmountError(f"Invalid amount: {value!r}")
    return amount


def format_amount(amount: Decimal) -> str:
    """Plain string form of an amount for headers ("50", "0.25")."""
    normalized = amount.normalize()
    if normalized == normalized.to_integral_value():
        normalized = normalized.quantize(Decimal(1))
    return format(normalized, "f")


def as_number(amount: Decimal) -> Union[int, float]:
    """Render an amount as a JSON number (int when integral)."""
    if amount == amount.to_integral_value():
        return int(amount)
    return float(amount)


def parse_initial_balances(balance_string: Optional[str]) -> Dict[str, Decimal]:
    """
    Parse a comma-separated "wallet:amount" list into starting balances.

    Malformed items are skipped with a warning.

    Args:
        balance_string: e.g. "walletA:100,walletB:2.5"

    Returns:
        Dict of wallet -> balance
    """
    if not balance_string or not balance_string.strip():
        return {}

    result: Dict[str, Decimal] = {}
    for item in balance_string.split(","):
        item = item.strip()
        if not item:
            continue

        wallet, sep, raw_amount = item.rpartition(":")
        wallet = wallet.strip()
        if not sep or not wallet:
            logger.warning(f"Invalid initial balance entry in config: {item}")
            continue

        try:
            amount = to_decimal(raw_amount)
        except InvalidAmountError as e:
            logger.warning(f"Invalid initial balance entry in config: {item} - {e}")
            continue
        if amount <= 0:
            logger.warning(f"Ignoring non-positive initial balance for {wallet}: {amount}")
            continue

        result[wallet] = result.get(wallet, Decimal(0)) + amount

    return result


class Ledger:
    """
    Wallet balances guarded by one lock.

    Thread-safe: proxied calls settle from worker threads as well as
    from the event loop.
    """

    def __init__(self, initial_balances: Optional[Dict[str, Amount]] = None):
        self._balances: Dict[str, Decimal] = {}
        self._lock = threading.Lock()

        for identity, amount in (initial_balances or {}).items():
            self.top_up(identity, amount)

    def get_balance(self, identity: str) -> Decimal:
        """Balance of a wallet; 0 for wallets never seen."""
        with self._lock:
            return self._balances.get(identity, Decimal(0))

    def top_up(self, identity: str, amount: Amount) -> Decimal:
        """
        Credit a wallet unconditionally.

        Returns:
            The new balance

        Raises:
            InvalidAmountError: If amount is not a positive number
        """
        value = to_decimal(amount)
        if value <= 0:
            raise InvalidAmountError(f"Top-up amount must be positive, got {value}")

        with self._lock:
            new_balance = self._balances.get(identity, Decimal(0)) + value
            self._balances[identity] = new_balance

        logger.info(f"Ledger: topped up {identity} by {value} (balance {new_balance})")
        return new_balance

    def try_debit_and_credit(
        self,
        payer: str,
        payee: str,
        amount: Amount
    ) -> Tuple[Decimal, Decimal]:
        """
        Move amount from payer to payee atomically.

        Args:
            payer: Wallet to debit
            payee: Wallet to credit
            amount: Non-negative amount to move

        Returns:
            Tuple of (new_payer_balance, new_payee_balance)

        Raises:
            InvalidAmountError: If amount is negative or not a number
            InsufficientFundsError: If the payer's balance is below amount.
                No balance changes in that case.
        """
        value = to_decimal(amount)
        if value < 0:
            raise InvalidAmountError(f"Transfer amount must not be negative, got {value}")

        with self._lock:
            payer_balance = self._balances.get(payer, Decimal(0))
            if payer_balance < value:
                raise InsufficientFundsError(payer, value, payer_balance)

            payer_balance -= value
            self._balances[payer] = payer_balance
            payee_balance = self._balances.get(payee, Decimal(0)) + value
            self._balances[payee] = payee_balance

            # Self-payment leaves the balance where it was
            if payer == payee:
                payer_balance = payee_balance

        return payer_balance, payee_balance

    def snapshot(self) -> Dict[str, Decimal]:
        """Copy of all balances."""
        with self._lock:
            return dict(self._balances)

    def total(self) -> Decimal:
        """Sum of all balances."""
        with self._lock:
            return sum(self._balances.values(), Decimal(0))
