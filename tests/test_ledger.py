# tests/test_ledger.py
"""
Unit tests for the balance ledger.
"""
import random
import pytest
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

from app.gateway.ledger import (
    Ledger,
    InsufficientFundsError,
    InvalidAmountError,
    as_number,
    format_amount,
    parse_initial_balances,
    to_decimal,
)


class TestBalances:
    """Test balance lookups and top-ups."""

    def test_unknown_wallet_is_zero(self):
        """Unknown wallets have a zero balance and are not stored."""
        ledger = Ledger()
        assert ledger.get_balance("nobody") == Decimal(0)
        assert ledger.snapshot() == {}

    def test_top_up(self):
        """Top-up credits the wallet and returns the new balance."""
        ledger = Ledger()
        assert ledger.top_up("C1", 1000) == Decimal(1000)
        assert ledger.top_up("C1", "0.5") == Decimal("1000.5")
        assert ledger.get_balance("C1") == Decimal("1000.5")

    @pytest.mark.parametrize("amount", [0, -5, "abc", "NaN", "Infinity", True])
    def test_top_up_invalid_amount(self, amount):
        """Non-positive or non-numeric top-ups are rejected."""
        ledger = Ledger()
        with pytest.raises(InvalidAmountError):
            ledger.top_up("C1", amount)
        assert ledger.get_balance("C1") == Decimal(0)

    def test_initial_balances(self):
        """Initial balances are applied as top-ups."""
        ledger = Ledger({"demo": 100})
        assert ledger.get_balance("demo") == Decimal(100)


class TestDebitAndCredit:
    """Test transfers between wallets."""

    def test_successful_transfer(self):
        """Payer is debited and payee credited by exactly the amount."""
        ledger = Ledger({"C1": 1000})
        payer, payee = ledger.try_debit_and_credit("C1", "P1", 50)
        assert payer == Decimal(950)
        assert payee == Decimal(50)
        assert ledger.get_balance("C1") == Decimal(950)
        assert ledger.get_balance("P1") == Decimal(50)

    def test_exact_balance_allowed(self):
        """A transfer equal to the balance leaves zero."""
        ledger = Ledger({"C1": 50})
        payer, _ = ledger.try_debit_and_credit("C1", "P1", 50)
        assert payer == Decimal(0)

    def test_insufficient_funds_no_partial_effect(self):
        """A failed transfer changes nothing."""
        ledger = Ledger({"C1": 10})
        with pytest.raises(InsufficientFundsError) as exc_info:
            ledger.try_debit_and_credit("C1", "P1", 50)

        assert exc_info.value.required == Decimal(50)
        assert exc_info.value.available == Decimal(10)
        assert ledger.get_balance("C1") == Decimal(10)
        assert ledger.get_balance("P1") == Decimal(0)
        assert "P1" not in ledger.snapshot()

    def test_zero_amount_transfer(self):
        """Free calls settle without moving money."""
        ledger = Ledger()
        payer, payee = ledger.try_debit_and_credit("C1", "P1", 0)
        assert payer == Decimal(0)
        assert payee == Decimal(0)

    def test_negative_amount_rejected(self):
        """Negative transfers are rejected."""
        ledger = Ledger({"C1": 10})
        with pytest.raises(InvalidAmountError):
            ledger.try_debit_and_credit("C1", "P1", -5)

    def test_self_payment(self):
        """Paying yourself leaves the balance unchanged."""
        ledger = Ledger({"C1": 100})
        payer, payee = ledger.try_debit_and_credit("C1", "C1", 30)
        assert payer == payee == Decimal(100)
        assert ledger.get_balance("C1") == Decimal(100)

    def test_decimal_precision(self):
        """Fractional prices do not drift."""
        ledger = Ledger({"C1": "1"})
        for _ in range(10):
            ledger.try_debit_and_credit("C1", "P1", "0.1")
        assert ledger.get_balance("C1") == Decimal(0)
        assert ledger.get_balance("P1") == Decimal("1.0")


class TestConservation:
    """Money is neither created nor destroyed by settlement."""

    def test_settlement_preserves_total(self):
        """Total balance is unchanged by transfers and grows by top-ups."""
        ledger = Ledger()
        ledger.top_up("C1", 500)
        ledger.top_up("C2", 300)
        assert ledger.total() == Decimal(800)

        rng = random.Random(42)
        wallets = ["C1", "C2", "P1", "P2"]
        for _ in range(200):
            payer, payee = rng.choice(wallets), rng.choice(wallets)
            try:
                ledger.try_debit_and_credit(payer, payee, rng.choice([1, 5, 25, "0.5"]))
            except InsufficientFundsError:
                pass
            assert ledger.total() == Decimal(800)

        ledger.top_up("P2", 7)
        assert ledger.total() == Decimal(807)


class TestConcurrency:
    """The funds check and mutation are one atomic step."""

    @pytest.mark.parametrize("balance,price", [(1000, 50), (100, 30), (7, 1), (0, 5)])
    def test_successes_never_exceed_balance(self, balance, price):
        """Concurrent debits against one payer never exceed floor(B/P) successes."""
        ledger = Ledger({"C1": balance} if balance else None)
        attempts = 200

        def attempt(_):
            try:
                ledger.try_debit_and_credit("C1", "P1", price)
                return True
            except InsufficientFundsError:
                return False

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(attempt, range(attempts)))

        successes = sum(results)
        assert successes == min(attempts, balance // price)
        assert ledger.get_balance("C1") >= 0
        assert ledger.get_balance("C1") == Decimal(balance - successes * price)
        assert ledger.get_balance("P1") == Decimal(successes * price)

    def test_concurrent_topups_and_debits_conserve_money(self):
        """Interleaved top-ups and transfers keep the ledger consistent."""
        ledger = Ledger()

        def top_up(_):
            ledger.top_up("C1", 10)

        def debit(_):
            try:
                ledger.try_debit_and_credit("C1", "P1", 3)
            except InsufficientFundsError:
                pass

        with ThreadPoolExecutor(max_workers=8) as pool:
            futures = [pool.submit(top_up, i) for i in range(100)]
            futures += [pool.submit(debit, i) for i in range(300)]
            for future in futures:
                future.result()

        assert ledger.total() == Decimal(1000)
        assert ledger.get_balance("C1") >= 0


class TestHelpers:
    """Test amount helpers."""

    def test_to_decimal_from_float(self):
        """Floats convert through their string form."""
        assert to_decimal(0.1) == Decimal("0.1")

    def test_format_amount(self):
        """Amounts render without exponent or trailing zeros."""
        assert format_amount(Decimal("50")) == "50"
        assert format_amount(Decimal("950.00")) == "950"
        assert format_amount(Decimal("0.250")) == "0.25"
        assert format_amount(Decimal("0")) == "0"
        assert format_amount(Decimal("1000")) == "1000"

    def test_as_number(self):
        """Integral amounts become ints, others floats."""
        assert as_number(Decimal("50.0")) == 50
        assert isinstance(as_number(Decimal("50.0")), int)
        assert as_number(Decimal("0.5")) == 0.5

    def test_parse_initial_balances(self):
        """Parse "wallet:amount" lists, skipping bad items."""
        result = parse_initial_balances(" demo:100, other:2.5,bad,neg:-1,, x:abc,demo:1 ")
        assert result == {"demo": Decimal(101), "other": Decimal("2.5")}

    def test_parse_initial_balances_empty(self):
        """Empty config yields no balances."""
        assert parse_initial_balances(None) == {}
        assert parse_initial_balances("  ") == {}
