# fee_ledger/core/dependencies.py

from dataclasses import dataclass

from fastapi import Header, HTTPException, status


@dataclass(frozen=True)
class TenantContext:
    """Branch scope resolved by the authentication layer in front of the service."""

    branch_id: int


def get_tenant_context(
    x_branch_id: int = Header(..., alias="X-Branch-Id", description="Branch the caller is scoped to."),
) -> TenantContext:
    """Read the already-authenticated branch scope from the request headers."""
    if x_branch_id <= 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Branch-Id must be a positive integer.",
        )
    return TenantContext(branch_id=x_branch_id)
