"""
Ledger system container and FastAPI dependency
"""

from datetime import date
from typing import Optional

from ..storage import StorageInterface, InMemoryStorage, SQLiteStorage
from ..audit import AuditTrail
from ..events import EventDispatcher
from ..customers import CustomerManager
from ..loans import LoanManager
from ..subscriptions import SubscriptionManager
from ..ledger_entries import LedgerEntryManager
from ..interest import QuarterlyInterestService
from ..summary import SummaryAggregator, SummarySnapshot
from ..config import get_config


class LedgerSystem:
    """Welfare ledger with all components wired to one storage backend"""

    def __init__(self, storage: Optional[StorageInterface] = None, use_sqlite: bool = True):
        config = get_config()

        if storage is not None:
            self.storage = storage
        elif use_sqlite:
            self.storage = SQLiteStorage(config.database_path)
        else:
            self.storage = InMemoryStorage()

        self.dispatcher = EventDispatcher()
        self.audit_trail = AuditTrail(self.storage) if config.enable_audit_logging else None

        self.customer_manager = CustomerManager(self.storage, self.audit_trail)
        self.loan_manager = LoanManager(self.storage, self.audit_trail, self.dispatcher)
        self.subscription_manager = SubscriptionManager(self.storage, self.audit_trail, self.dispatcher)
        self.entry_manager = LedgerEntryManager(self.storage, self.dispatcher, self.audit_trail)
        self.interest_service = QuarterlyInterestService(
            self.storage,
            self.customer_manager,
            self.subscription_manager,
            self.entry_manager,
            self.dispatcher,
            audit_trail=self.audit_trail,
            loan_manager=self.loan_manager
        )

    def snapshot(self) -> SummarySnapshot:
        """Read every active row the summary works on"""
        return SummarySnapshot(
            loans=self.loan_manager.list_loans(),
            installments=self.loan_manager.list_installments(),
            subscriptions=self.subscription_manager.list_subscriptions(),
            ledger_entries=self.entry_manager.list_entries(),
            interest_balances=self.interest_service.list_balances()
        )

    def aggregator(self, today: Optional[date] = None) -> SummaryAggregator:
        config = get_config()
        return SummaryAggregator(
            self.snapshot(),
            today=today or date.today(),
            page_size=config.breakdown_page_size,
            fiscal_year_floor=config.fiscal_year_floor
        )

    def close(self) -> None:
        self.storage.close()


_ledger_system: Optional[LedgerSystem] = None


def get_ledger_system() -> LedgerSystem:
    """Dependency returning the process-wide ledger system, created on first use"""
    global _ledger_system
    if _ledger_system is None:
        _ledger_system = LedgerSystem(use_sqlite=True)
    return _ledger_system
