# forecast_tracker/core/errors.py


class ForecastError(Exception):
    """Base class for errors reported back to the caller."""


class NotFound(ForecastError):
    pass


class InvalidState(ForecastError):
    pass


class ValidationError(ForecastError):
    pass


class Forbidden(ForecastError):
    pass
