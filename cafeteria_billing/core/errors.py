"""Cafeteria billing error hierarchy."""


class BillingError(Exception):
    """Base error for all cafeteria billing operations."""


class InvalidConfiguration(BillingError):
    """A company billing configuration or timezone is not usable."""


class InvalidPeriod(BillingError):
    """A (year, month) billing period is malformed or out of range."""


class NotFoundError(BillingError):
    """A company, consumption or invoice does not exist."""


class DispatchError(BillingError):
    """Sending an invoice to the email endpoint failed."""
