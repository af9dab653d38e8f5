class ValidationError(Exception):
    """Raised when a document fails schema validation.

    `errors` maps the full dotted path of every failing field
    (e.g. 'comments.0.body') to a human readable message.
    """
    def __init__(self, errors):
        self.errors = dict(errors)
        super().__init__(f"Validation failed: {', '.join(sorted(self.errors))}")
