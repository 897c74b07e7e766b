"""Exceptions raised by txlens."""
from typing import List


class TxLensError(Exception):
    """Base class for txlens errors"""


class TransactionFetchError(TxLensError):
    """The RPC node could not be queried for a transaction"""


class PluginFetchError(TxLensError):
    """A remote plugin document could not be fetched or parsed"""


class PluginValidationError(TxLensError):
    """A plugin schema failed validation; nothing was installed"""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__(f"Invalid plugin schema: {', '.join(self.errors)}")
