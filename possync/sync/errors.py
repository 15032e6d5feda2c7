"""
Sync error taxonomy.

Configuration errors are raised before any network call so the calling layer can
tell "not configured" apart from "configured but failing". Record- and page-level
failures never surface as exceptions; they are collected into sync reports.
"""

from uuid import UUID


class SyncError(Exception):
    """Base class for errors raised out of a sync entry point."""


class SyncConfigurationError(SyncError):
    """A precondition for syncing a merchant is not met."""


class MerchantNotFoundError(SyncConfigurationError):
    def __init__(self, merchant_id: UUID):
        self.merchant_id = merchant_id
        super().__init__(f"Merchant not found: {merchant_id}")


class MerchantInactiveError(SyncConfigurationError):
    def __init__(self, merchant_id: UUID):
        self.merchant_id = merchant_id
        super().__init__(f"Merchant is inactive: {merchant_id}")


class CloverMerchantNotMappedError(SyncConfigurationError):
    def __init__(self, merchant_id: UUID):
        self.merchant_id = merchant_id
        super().__init__(f"No Clover merchant ID associated with merchant {merchant_id}")


class CloverTokenMissingError(SyncConfigurationError):
    def __init__(self, merchant_id: UUID):
        self.merchant_id = merchant_id
        super().__init__(f"No Clover token found for merchant {merchant_id}")


class CloverTokenExpiredError(SyncConfigurationError):
    def __init__(self, merchant_id: UUID):
        self.merchant_id = merchant_id
        super().__init__(f"Clover access token has expired for merchant {merchant_id}")


class SyncInProgressError(SyncError):
    """Another sync for the same merchant is already running."""

    def __init__(self, merchant_id: UUID):
        self.merchant_id = merchant_id
        super().__init__(f"A sync is already running for merchant {merchant_id}")
