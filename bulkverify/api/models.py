"""API models for bulk verification.

Pydantic models for API requests and responses. Request bodies accept
both snake_case names and the camelCase aliases used by the web client.
"""
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Request Models
# =============================================================================


class _AliasedRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SingleVerifyRequest(_AliasedRequest):
    """Request to verify one email address."""

    email: str = Field(..., description="Email address to verify")


class JobReferenceRequest(_AliasedRequest):
    """Identifies a bulk job by list ID or provider job ID."""

    list_id: Optional[str] = Field(None, alias="listId", description="Verification list ID")
    job_id: Optional[str] = Field(None, alias="jobId", description="Provider job ID")


class DownloadRequest(JobReferenceRequest):
    """Request to download verification results."""

    filter: str = Field(
        "all",
        description="deliverable, undeliverable, accept_all, unknown or all",
    )


class ShareRequest(_AliasedRequest):
    """Request to share lists with a member."""

    member_id: str = Field(..., alias="memberId", description="Identity receiving the grant")
    email_list_ids: list[str] = Field(
        ..., alias="emailListIds", description="Verification list IDs to share"
    )
    access_type: Optional[str] = Field(
        None,
        alias="accessType",
        description="Access level; anything containing 'read' is read-only",
    )


class RemoveMemberRequest(_AliasedRequest):
    """Request to revoke a member's grant."""

    member_id: str = Field(..., alias="memberId", description="Member to remove")


class ChangeAccessTypeRequest(_AliasedRequest):
    """Request to change a member's access level."""

    member_id: str = Field(..., alias="memberId", description="Member whose grant changes")
    access_type: str = Field(..., alias="accessType", description="New access level")


class PurchaseCreditsRequest(_AliasedRequest):
    """Request to record a credit purchase."""

    amount: int = Field(..., description="Number of credits purchased")
    reference: Optional[str] = Field(None, description="Payment reference")


# =============================================================================
# Response Models
# =============================================================================


class VerificationListResponse(BaseModel):
    """A verification list as seen by the actor."""

    id: str = Field(..., description="Verification list ID")
    owner_id: str = Field(..., description="Owning identity")
    name: str
    status: str = Field(..., description="uploading, unverified, processing or verified")
    job_id: Optional[str] = Field(None, description="Provider job ID")
    total_emails: int
    verified_count: int
    credit_consumed: int
    deliverable: int = 0
    undeliverable: int = 0
    accept_all: int = 0
    unknown: int = 0
    created_at: str = Field(..., description="Creation timestamp (ISO8601)")
    updated_at: str = Field(..., description="Last update timestamp (ISO8601)")


class UploadResponse(BaseModel):
    """Result of a bulk upload."""

    message: str
    verification_list: VerificationListResponse
    provider: dict[str, Any] = Field(default_factory=dict)


class JobActionResponse(BaseModel):
    """Result of starting a bulk job."""

    message: str
    owner: str = Field(..., description="Owner the operation was attributed to")
    verification_list: VerificationListResponse
    provider: dict[str, Any] = Field(default_factory=dict)


class JobStatusResponse(BaseModel):
    """Result of polling a bulk job."""

    owner: str
    remote_status: Optional[str] = Field(None, description="Status reported by the provider")
    verification_list: VerificationListResponse
    provider: dict[str, Any] = Field(default_factory=dict)


class DeleteResponse(BaseModel):
    """Result of deleting a list."""

    message: str
    list_id: str
    remote_deleted: bool
    remote_error: Optional[str] = None


class SingleVerifyResponse(BaseModel):
    """Result of a single address lookup."""

    email: str
    result: Optional[str] = None
    record_id: str
    provider: dict[str, Any] = Field(default_factory=dict)


class CreditBalanceResponse(BaseModel):
    """Credit balance for the acting identity."""

    credits_remaining: int
    credits_consumed: int
    credits_purchased: int
    total_count_of_email_lists: int


class PurchaseResponse(BaseModel):
    record_id: str
    credits_purchased: int


class StatusSummaryItem(BaseModel):
    value: str
    label: str
    count: int


class Pagination(BaseModel):
    """Pagination block shared by list and log views."""

    page: int
    limit: int
    total_count: int
    pages: int
    sort_by: str
    sort_order: str


class EmailListsResponse(BaseModel):
    """Dashboard view of verification lists."""

    items: list[VerificationListResponse]
    pagination: Pagination
    status_summary: list[StatusSummaryItem]


class PendingListItem(BaseModel):
    id: str
    name: str
    status: str


class MemberSummaryResponse(BaseModel):
    grant_id: str
    member: str
    access_type: str
    shared_on: str
    total_lists: int


class ShareStatsResponse(BaseModel):
    """Sharing counters for the dashboard cards."""

    lists_shared_by_you: int
    lists_shared_with_you: int
    members_added_by_you: int
    members: list[MemberSummaryResponse]


class ShareGrantResponse(BaseModel):
    """A share grant after a share or access change."""

    id: str
    shared_by: str
    member: str
    access_type: str
    shared_on: str
    list_ids: list[str]


class RevokeResponse(BaseModel):
    member: str
    revoked: bool


class AccessResponse(BaseModel):
    """Effective access of the actor to one list."""

    list_id: str
    owner: str
    can_write: bool


class VerificationLogItem(BaseModel):
    id: str
    source: str
    email: Optional[str] = None
    result: Optional[str] = None
    summary: Optional[str] = None
    credits: int
    list_id: Optional[str] = None
    created_at: str
    updated_at: str


class VerificationLogResponse(BaseModel):
    items: list[VerificationLogItem]
    pagination: Pagination


class ActivityLogItem(BaseModel):
    """One recorded action by the caller."""

    action: str
    principal: str
    resource: Optional[str] = None
    status: str
    details: Optional[dict[str, Any]] = None
    request_id: Optional[str] = None
    timestamp: str


class ActivityLogResponse(BaseModel):
    count: int
    events: list[ActivityLogItem]
    buffer_size: int
    max_buffer_size: int


class HealthResponse(BaseModel):
    """Health check response."""

    ok: bool
    database: bool = True


class ErrorResponse(BaseModel):
    """Error response."""

    error: str
    detail: Optional[str] = None
