"""GTFS cache error types."""


class GtfsCacheError(Exception):
    """Base class for all GTFS cache errors."""

    pass


class NotReadyError(GtfsCacheError):
    """Raised when the query engine is used before initialize()."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Stop cache not initialized, call initialize() before {operation}()")


class StoreNotFoundError(GtfsCacheError):
    """Raised when the store file to open does not exist."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        super().__init__(f"Store not found: {db_path}")


class SchemaMissingError(GtfsCacheError):
    """Raised when the schema definition cannot produce the required tables."""

    pass


class EnrichmentError(GtfsCacheError):
    """Raised when the live route-enrichment API call fails."""

    pass
