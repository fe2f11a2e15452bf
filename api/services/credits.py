"""
Credit ledger for Contact Card.

Each extraction or query costs one credit unless the user brings their own
API key. New installs get a one-time grant of free credits. Purchases are
handled elsewhere; this ledger only applies verified transactions.

Balance and the free-grant flag are stored in the app_state table of the
main database.
"""
import logging
import sqlite3
from dataclasses import dataclass
from typing import Iterable, Optional

from api.utils.db_paths import get_db_path
from config.fact_categories import CREDIT_PRODUCTS
from config.settings import settings

logger = logging.getLogger(__name__)

BALANCE_KEY = "credit_balance"
FREE_GRANTED_KEY = "has_granted_free_credits"
APPLIED_TRANSACTIONS_KEY_PREFIX = "transaction:"


class InsufficientCredits(Exception):
    """Raised when an action needs a credit and the balance is empty."""

    def __init__(self):
        super().__init__("You're out of credits. Buy more or add your own API key in Settings.")


@dataclass
class PurchaseTransaction:
    """A purchase reported by the store front."""
    transaction_id: str
    product_id: str
    verified: bool


class CreditLedger:
    """SQLite-backed credit balance."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or get_db_path()
        self._init_db()

    def _init_db(self):
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS app_state (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)
            conn.commit()
        finally:
            conn.close()

    def _get_connection(self) -> sqlite3.Connection:
        # isolation_level=None so BEGIN IMMEDIATE below controls the transaction
        return sqlite3.connect(self.db_path, isolation_level=None)

    @staticmethod
    def _read(conn: sqlite3.Connection, key: str) -> Optional[str]:
        row = conn.execute("SELECT value FROM app_state WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    @staticmethod
    def _write(conn: sqlite3.Connection, key: str, value: str) -> None:
        conn.execute(
            "INSERT INTO app_state (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, value)
        )

    @property
    def balance(self) -> int:
        conn = self._get_connection()
        try:
            value = self._read(conn, BALANCE_KEY)
            return int(value) if value else 0
        finally:
            conn.close()

    @property
    def has_credits(self) -> bool:
        return self.balance > 0

    @property
    def is_low(self) -> bool:
        balance = self.balance
        return 0 < balance <= settings.low_credit_threshold

    def _adjust(self, delta: int, allow_negative: bool = False) -> bool:
        conn = self._get_connection()
        try:
            conn.execute("BEGIN IMMEDIATE")
            value = self._read(conn, BALANCE_KEY)
            current = int(value) if value else 0
            if current + delta < 0 and not allow_negative:
                conn.execute("ROLLBACK")
                return False
            self._write(conn, BALANCE_KEY, str(current + delta))
            conn.execute("COMMIT")
            return True
        except Exception:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    def consume(self) -> bool:
        """Spend one credit. Returns False if the balance is empty."""
        return self._adjust(-1)

    def add(self, amount: int) -> int:
        """Add credits and return the new balance."""
        if amount <= 0:
            raise ValueError("Credit amount must be positive")
        self._adjust(amount)
        return self.balance

    def _apply_once(self, marker_key: str, marker_value: str, amount: int) -> bool:
        """
        Set a marker and add credits in one transaction.

        Returns False, changing nothing, if the marker was already set.
        """
        conn = self._get_connection()
        try:
            conn.execute("BEGIN IMMEDIATE")
            if self._read(conn, marker_key) is not None:
                conn.execute("ROLLBACK")
                return False
            self._write(conn, marker_key, marker_value)
            value = self._read(conn, BALANCE_KEY)
            current = int(value) if value else 0
            self._write(conn, BALANCE_KEY, str(current + amount))
            conn.execute("COMMIT")
            return True
        except Exception:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    def grant_free_credits_if_needed(self) -> bool:
        """Grant the one-time free credits. Returns True if granted now."""
        if not self._apply_once(FREE_GRANTED_KEY, "1", settings.free_credits):
            return False
        logger.info(f"Granted {settings.free_credits} free credits")
        return True

    def restore_purchases(self, transactions: Iterable[PurchaseTransaction]) -> int:
        """
        Apply verified purchases that have not been applied yet.

        Unverified transactions are skipped without error, and so are
        transactions for unknown products.

        Returns:
            Credits added
        """
        added = 0
        for txn in transactions:
            if not txn.verified:
                logger.debug(f"Skipping unverified transaction {txn.transaction_id}")
                continue
            credits = CREDIT_PRODUCTS.get(txn.product_id)
            if credits is None:
                logger.warning(f"Unknown product {txn.product_id!r} in transaction {txn.transaction_id}")
                continue

            key = APPLIED_TRANSACTIONS_KEY_PREFIX + txn.transaction_id
            if self._apply_once(key, txn.product_id, credits):
                added += credits

        if added:
            logger.info(f"Restored {added} credits from purchases")
        return added


# Singleton instance
_credit_ledger: Optional[CreditLedger] = None


def get_credit_ledger(db_path: Optional[str] = None) -> CreditLedger:
    """Get or create the singleton CreditLedger."""
    global _credit_ledger
    if _credit_ledger is None:
        _credit_ledger = CreditLedger(db_path)
    return _credit_ledger


def reset_credit_ledger() -> None:
    """Reset the singleton (for testing)."""
    global _credit_ledger
    _credit_ledger = None
