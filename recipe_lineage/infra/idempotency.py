"""Idempotency-Key handling for write endpoints.

A caller that timed out cannot know whether its write landed. Retrying with
the same Idempotency-Key replays the stored response instead of writing
again; a retry that arrives while the first request is still running gets 409.

Records live in Redis under lineage:idemp:{owner}:{route}:{key}:
    {"state": "processing" | "done", "request_hash": ..., "status": ..., "body": ..., "at": ...}
"""

import hashlib, json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from ..settings import settings
from .redis_client import get_redis

logger = logging.getLogger("lineage.idempotency")

IDEMPOTENCY_HEADER = "Idempotency-Key"
STILL_PROCESSING = "Request with this Idempotency-Key is still processing. Retry shortly."


@dataclass(frozen=True)
class IdempotencyClaim:
    """Held by the request that won the key; finish with store_response or release."""
    redis_key: str
    request_hash: str


def _hash_request(request: Request, body_bytes: bytes) -> str:
    h = hashlib.sha256()
    for part in (request.method.encode("utf-8"), request.url.path.encode("utf-8"), body_bytes or b""):
        h.update(part)
        h.update(b"|")
    return h.hexdigest()


def _redis_key(owner_id: str, route_key: str, idem_key: str) -> str:
    return f"lineage:idemp:{owner_id}:{route_key}:{idem_key}"


def _record(state: str, request_hash: str, *, status: Optional[int] = None, body: Optional[dict] = None) -> str:
    return json.dumps({
        "state": state,
        "request_hash": request_hash,
        "status": status,
        "body": body,
        "at": datetime.now(timezone.utc).isoformat(),
    })


async def claim_key(request: Request, *, owner_id: str, route_key: str) -> Union[IdempotencyClaim, JSONResponse]:
    """Claim the request's Idempotency-Key, or return the stored response to replay.

    Raises 400 without the header, 409 while another request holds the key or
    when the key was first used with a different payload.
    """
    idem_key = request.headers.get(IDEMPOTENCY_HEADER)
    if not idem_key:
        raise HTTPException(status_code=400, detail=f"Missing {IDEMPOTENCY_HEADER} header")

    request_hash = _hash_request(request, await request.body())
    rkey = _redis_key(owner_id, route_key, idem_key)
    r = await get_redis()

    raw = await r.get(rkey)
    if raw:
        data = json.loads(raw)
        if data.get("request_hash") != request_hash:
            raise HTTPException(status_code=409, detail=f"{IDEMPOTENCY_HEADER} reused with different request payload")
        if data.get("state") == "done":
            logger.info(f"Replaying stored response for {rkey}")
            return JSONResponse(content=data.get("body"), status_code=int(data.get("status") or 200))
        raise HTTPException(status_code=409, detail=STILL_PROCESSING)

    # SET NX: only one request moves the key into processing
    ok = await r.set(rkey, _record("processing", request_hash), ex=settings.idempotency_processing_ttl_sec, nx=True)
    if not ok:
        raise HTTPException(status_code=409, detail=STILL_PROCESSING)
    return IdempotencyClaim(redis_key=rkey, request_hash=request_hash)


async def store_response(claim: IdempotencyClaim, *, status: int, body: dict) -> None:
    r = await get_redis()
    await r.set(
        claim.redis_key,
        _record("done", claim.request_hash, status=int(status), body=body),
        ex=settings.idempotency_done_ttl_sec,
    )


async def release(claim: IdempotencyClaim) -> None:
    """Drop the key after a failed write so the caller can retry."""
    try:
        r = await get_redis()
        await r.delete(claim.redis_key)
    except RedisError as e:
        logger.warning(f"Failed to release idempotency key {claim.redis_key}: {e}")
