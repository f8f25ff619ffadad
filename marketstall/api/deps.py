from __future__ import annotations

from fastapi import Header, HTTPException, Request

from marketstall.services.events import Actor


def get_actor(
    request: Request,
    x_operator_id: str | None = Header(None),
    x_branch_id: str | None = Header(None),
) -> Actor:
    """Principal forwarded by the upstream identity layer.

    Authentication happens before requests reach this service; the headers
    are trusted as-is.
    """

    branch_id = None
    if x_branch_id is not None:
        try:
            branch_id = int(x_branch_id)
        except ValueError:
            raise HTTPException(status_code=422, detail="Invalid X-Branch-ID")

    return Actor(
        operator_id=x_operator_id,
        branch_id=branch_id,
        request_id=getattr(request.state, "request_id", None),
    )
