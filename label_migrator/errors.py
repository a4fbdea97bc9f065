class LabelMigrationError(Exception):
    """Base error for the project."""


class ConfigurationError(LabelMigrationError):
    """Missing or contradictory settings. Raised before any remote call."""


class EnumerationError(LabelMigrationError):
    """The index service failed while paging one partition."""


class IndexServiceError(EnumerationError):
    pass


class LoopDetected(EnumerationError):
    """The index service handed back the cursor it was just given."""


class ResolveError(LabelMigrationError):
    pass


class ReadError(LabelMigrationError):
    pass


class WriteError(LabelMigrationError):
    pass


class GraphRequestError(LabelMigrationError):
    def __init__(self, status_code: int, code: str, message: str):
        super().__init__(f"{status_code} {code}: {message}")
        self.status_code = status_code
        self.code = code
        self.message = message
