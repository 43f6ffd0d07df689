class ValidationError(Exception):
    """Malformed input. Raised before any state is touched; maps to HTTP 400."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)
