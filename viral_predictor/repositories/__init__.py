from viral_predictor.repositories.usage_repo import UsageLedgerRepository

__all__ = ["UsageLedgerRepository"]
