class PtelError(Exception):
    """Base error for conditions that make a whole input unusable."""


class NoCoordinateColumnsError(PtelError):
    """No X/Y columns could be identified in the table headers."""


class NoNumericValuesError(PtelError):
    """Coordinate columns exist but none of their values parse as numbers."""


class ConversionError(PtelError):
    """Reprojection produced a non-finite result."""


class ProviderError(PtelError):
    """An external geocoding provider answered with something unusable."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
