class QueryParamError(ValueError):
    """Raised when a query parameter object cannot be applied to a query."""
    def __init__(self, message):
        super().__init__(message)
