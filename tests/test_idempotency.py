import pytest
import uuid
import json
from unittest.mock import patch, AsyncMock
from fakeredis import FakeAsyncRedis
from recipe_lineage.infra.idempotency import IdempotencyClaim, claim_key, store_response, release
from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse

# --- Mocking Redis ---

@pytest.fixture
def fake_redis():
    return FakeAsyncRedis(decode_responses=True)

@pytest.fixture
def patch_redis_client(fake_redis):
    # Patch the get_redis used inside idempotency module
    with patch("recipe_lineage.infra.idempotency.get_redis", return_value=fake_redis):
        yield


def _request(idem_key, body=b'{"source_link_id": null}'):
    req = AsyncMock(spec=Request)
    req.headers = {"Idempotency-Key": idem_key}
    req.method = "POST"
    req.url.path = "/api/cook/sessions/s1/create-my-version"
    req.body = AsyncMock(return_value=body)
    return req

# --- Unit Tests for Logic ---

@pytest.mark.asyncio
async def test_claim_requires_header(patch_redis_client):
    req = AsyncMock(spec=Request)
    req.headers = {}

    with pytest.raises(HTTPException) as exc:
        await claim_key(req, owner_id="owner1", route_key="test")
    assert exc.value.status_code == 400

@pytest.mark.asyncio
async def test_claim_store_and_replay(fake_redis, patch_redis_client):
    idem_key = str(uuid.uuid4())
    req = _request(idem_key)

    # 1. First call -> claim to proceed
    claim = await claim_key(req, owner_id="owner1", route_key="create_my_version")
    assert isinstance(claim, IdempotencyClaim)
    assert claim.redis_key == f"lineage:idemp:owner1:create_my_version:{idem_key}"

    record = json.loads(await fake_redis.get(claim.redis_key))
    assert record["state"] == "processing"
    assert record["request_hash"] == claim.request_hash

    # 2. Concurrent call -> 409
    with pytest.raises(HTTPException) as exc:
        await claim_key(req, owner_id="owner1", route_key="create_my_version")
    assert exc.value.status_code == 409

    # 3. Store result
    await store_response(claim, status=200, body={"version_number": 2})
    record = json.loads(await fake_redis.get(claim.redis_key))
    assert record["state"] == "done"
    assert record["status"] == 200

    # 4. Replay
    replay = await claim_key(req, owner_id="owner1", route_key="create_my_version")
    assert isinstance(replay, JSONResponse)
    assert replay.status_code == 200
    assert json.loads(replay.body) == {"version_number": 2}

@pytest.mark.asyncio
async def test_key_reused_with_different_payload(patch_redis_client):
    idem_key = str(uuid.uuid4())
    claim = await claim_key(_request(idem_key), owner_id="owner1", route_key="r")
    await store_response(claim, status=200, body={"ok": True})

    with pytest.raises(HTTPException) as exc:
        await claim_key(_request(idem_key, body=b'{"source_link_id": "other"}'), owner_id="owner1", route_key="r")
    assert exc.value.status_code == 409

@pytest.mark.asyncio
async def test_keys_are_scoped_per_owner(patch_redis_client):
    idem_key = str(uuid.uuid4())
    first = await claim_key(_request(idem_key), owner_id="owner1", route_key="r")
    second = await claim_key(_request(idem_key), owner_id="owner2", route_key="r")
    assert isinstance(first, IdempotencyClaim) and isinstance(second, IdempotencyClaim)
    assert first.redis_key != second.redis_key

@pytest.mark.asyncio
async def test_release_allows_retry(fake_redis, patch_redis_client):
    idem_key = str(uuid.uuid4())
    claim = await claim_key(_request(idem_key), owner_id="owner1", route_key="r")
    await release(claim)
    assert await fake_redis.get(claim.redis_key) is None

    again = await claim_key(_request(idem_key), owner_id="owner1", route_key="r")
    assert isinstance(again, IdempotencyClaim)
