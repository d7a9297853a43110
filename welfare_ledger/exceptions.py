"""Exception hierarchy for the welfare ledger engine."""


class LedgerError(Exception):
    """Base exception for all ledger engine errors."""


class ValidationError(LedgerError):
    """Raised when a record fails field validation (amounts, counts, types)."""


class EntityNotFoundError(LedgerError):
    """Raised when a referenced entity does not exist."""


class DataIntegrityError(LedgerError):
    """
    Raised when stored data is inconsistent: an installment pointing at a
    missing loan, a duplicate installment number, a deleted customer.

    Distinct from a business skip; it signals upstream data corruption.
    """

    def __init__(self, message: str, entity_type: str = None, entity_id: str = None):
        super().__init__(message)
        self.entity_type = entity_type
        self.entity_id = entity_id


class AllocationInvariantError(LedgerError):
    """Raised when the waterfall produces a negative principal or interest portion."""

    def __init__(self, message: str, loan_id: str = None, installment_id: str = None):
        super().__init__(f"{message} (loan={loan_id}, installment={installment_id})")
        self.loan_id = loan_id
        self.installment_id = installment_id


class InterestSanityError(LedgerError):
    """Raised when a computed quarterly interest charge exceeds the sanity cap."""
