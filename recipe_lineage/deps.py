"""FastAPI dependencies for the lineage API.

Provides:
- Lineage store bound to the request's database session
- Owner resolution (header -> env fallback)
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from .db import get_db
from .services.lineage_store import SqlLineageStore
from .settings import settings


def get_store(db: Session = Depends(get_db)) -> SqlLineageStore:
    return SqlLineageStore(db)


def get_owner_id(
    x_owner_id: Optional[str] = Header(None, alias="X-Owner-Id"),
) -> str:
    """Resolve the acting owner.

    Authentication happens upstream; this only picks which owner's
    cookbook the request addresses.

    Resolution order:
    1. X-Owner-Id header (if present and non-blank)
    2. settings.default_owner_id
    """
    if x_owner_id is not None:
        owner_id = x_owner_id.strip()
        if not owner_id:
            raise HTTPException(status_code=400, detail="X-Owner-Id header is empty")
        return owner_id

    if settings.default_owner_id:
        return settings.default_owner_id

    raise HTTPException(status_code=401, detail="No owner could be resolved for this request")
