class InvalidUsageError(ValueError):
    """Token counts or a query period that the ledger cannot accept."""


class PersistenceError(Exception):
    """The usage ledger could not be written to storage."""


class LLMConfigurationError(Exception):
    """The Anthropic client is missing its API key."""


class AnalysisError(Exception):
    """The model call failed or its reply could not be turned into an analysis."""
