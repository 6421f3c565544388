"""
Exceptions for transient infrastructure failures.
Business-rule rejections are never raised; see models.OfferResult.
"""


class StoreUnavailable(Exception):
    """The data store could not be reached or rejected the request. Safe to retry."""


class ProcedureError(Exception):
    """A server-side procedure could not be invoked or crashed. Safe to retry."""
