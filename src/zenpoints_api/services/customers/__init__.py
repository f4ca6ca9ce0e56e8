"""Customer record store exports."""

from .store import (  # noqa: F401
    CustomerNotFoundError,
    CustomerRecord,
    CustomerRecordStore,
    CustomerStoreError,
    DuplicateCustomerError,
    StaleCustomerVersionError,
    StoreUnavailableError,
    bounded,
)
