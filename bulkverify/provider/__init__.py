"""Bouncify bulk verification provider client."""

from bulkverify.provider.client import (
    DOWNLOAD_FILTERS,
    BouncifyClient,
    close_bouncify_client,
    filter_categories,
    get_bouncify_client,
    reset_bouncify_client,
)
from bulkverify.provider.models import (
    RESULT_CATEGORIES,
    JobStatus,
    SingleLookupResult,
    SubmittedBatch,
)

__all__ = [
    "DOWNLOAD_FILTERS",
    "RESULT_CATEGORIES",
    "BouncifyClient",
    "JobStatus",
    "SingleLookupResult",
    "SubmittedBatch",
    "close_bouncify_client",
    "filter_categories",
    "get_bouncify_client",
    "reset_bouncify_client",
]
