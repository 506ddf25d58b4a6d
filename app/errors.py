from typing import Optional


class SizingError(Exception):
    """Base class for errors that stop a sizing request."""

    error_code = "SIZING_ERROR"


class ValidationError(SizingError):
    """Malformed or out-of-range input, rejected before any computation."""

    error_code = "VALIDATION_ERROR"

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class ChartNotFoundError(SizingError):
    error_code = "CHART_NOT_FOUND"

    def __init__(self, sport: str, gender: str, product_type: str) -> None:
        super().__init__(f"No size chart for sport={sport!r} gender={gender!r} product_type={product_type!r}")
        self.sport = sport
        self.gender = gender
        self.product_type = product_type


class ChartDataError(SizingError):
    """Reference chart data failed validation while loading."""

    error_code = "CHART_DATA_ERROR"

    def __init__(self, message: str, key: Optional[str] = None) -> None:
        super().__init__(f"{key}: {message}" if key else message)
        self.key = key
