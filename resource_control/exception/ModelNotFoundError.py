class ModelNotFoundError(LookupError):
    """Raised when a model name has not been compiled with `model()`."""
    def __init__(self, name):
        self.name = name
        super().__init__(f"Model '{name}' has not been registered")
