import uuid
import httpx
import pytest
from httpx import AsyncClient

from conftest import STORE, OTHER_STORE, EVIDENCE, RecordingChannel
from elderpoints.main import app
from elderpoints.security import make_access_token
from elderpoints.services.notifications import get_notification_channel


def auth(account):
    return {"Authorization": f"Bearer {make_access_token(str(account.id))}"}


@pytest.fixture
def recorded():
    channel = RecordingChannel()
    app.dependency_overrides[get_notification_channel] = lambda: channel
    yield channel
    app.dependency_overrides.pop(get_notification_channel, None)


def match_payload(red, yellow, scores=((5, 1), (3, 2)), store_id=STORE):
    return {
        "store_id": store_id,
        "red_team_ids": [str(a.id) for a in red],
        "yellow_team_ids": [str(a.id) for a in yellow],
        "rounds": [{"red_score": r, "yellow_score": y, "evidence_url": EVIDENCE} for r, y in scores],
    }


@pytest.mark.asyncio
async def test_settle_and_read_wallets(make_account, recorded):
    op = await make_account(role="operator")
    red, yellow = await make_account(), await make_account()
    cg = await make_account(role="caregiver")
    stranger = await make_account(role="caregiver")

    async with AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        r = await ac.post("/links", headers=auth(cg), json={"participant_id": str(red.id)})
        assert r.status_code == 201
        assert r.json()["is_primary"] is True

        r = await ac.post("/matches", headers=auth(op), json=match_payload([red], [yellow]))
        assert r.status_code == 201, r.text
        report = r.json()
        assert report["winner"] == "red" and report["failures"] == []
        match_id = report["match_id"]
        assert [m["recipient_id"] for m in recorded.sent] == [cg.id]

        w = (await ac.get("/wallet", headers=auth(red))).json()
        assert (w["honor_balance"], w["local_balance"]) == (100, 100)
        assert w["transactions"][0]["kind"] == "earned"

        w = (await ac.get(f"/wallet/{yellow.id}", headers=auth(op))).json()
        assert (w["honor_balance"], w["local_balance"]) == (10, 10)

        assert (await ac.get(f"/wallet/{red.id}", headers=auth(cg))).status_code == 200
        r = await ac.get(f"/wallet/{red.id}", headers=auth(stranger))
        assert r.status_code == 403
        assert r.json()["code"] == "permission_denied"

        detail = (await ac.get(f"/matches/{match_id}", headers=auth(cg))).json()
        assert detail["red_total"] == 8 and len(detail["ends"]) == 2

        rep = (await ac.get(f"/wallet/{red.id}/reconcile", headers=auth(op))).json()
        assert rep["consistent"] is True

        r = await ac.post(f"/matches/{match_id}/recredit", headers=auth(op))
        assert r.status_code == 200
        assert all(o["already_credited"] for o in r.json()["results"])

        r = await ac.put(f"/matches/{match_id}/ends", headers=auth(op),
                         json={"rounds": [{"red_score": 1, "yellow_score": 1, "evidence_url": EVIDENCE}]})
        assert r.status_code == 200
        assert r.json()["winner"] is None and r.json()["revision"] == 1
        w = (await ac.get("/wallet", headers=auth(yellow))).json()
        assert (w["honor_balance"], w["local_balance"]) == (50, 50)

        assert (await ac.delete(f"/matches/{match_id}", headers=auth(op))).status_code == 204
        assert (await ac.get(f"/matches/{match_id}", headers=auth(op))).status_code == 404


@pytest.mark.asyncio
async def test_settlement_errors_map_to_status_codes(make_account, recorded):
    op = await make_account(role="operator")
    far_op = await make_account(role="operator", store_id=OTHER_STORE)
    red, yellow = await make_account(), await make_account()

    async with AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        payload = match_payload([red], [yellow])
        payload["rounds"][0]["evidence_url"] = None
        r = await ac.post("/matches", headers=auth(op), json=payload)
        assert r.status_code == 422
        assert r.json()["code"] == "EVIDENCE_REQUIRED"

        r = await ac.post("/matches", headers=auth(op), json=match_payload([red], [red]))
        assert r.status_code == 422
        assert r.json()["code"] == "duplicate_participant"

        r = await ac.post("/matches", headers=auth(far_op), json=match_payload([red], [yellow]))
        assert r.status_code == 403

        r = await ac.post("/matches", headers=auth(red), json=match_payload([red], [yellow]))
        assert r.status_code == 403

        # scores above 10 never reach the engine
        r = await ac.post("/matches", headers=auth(op), json=match_payload([red], [yellow], scores=((11, 0),)))
        assert r.status_code == 422

        assert (await ac.get(f"/matches/{uuid.uuid4()}", headers=auth(op))).status_code == 404


@pytest.mark.asyncio
async def test_grant_and_redeem_endpoints(make_account, recorded):
    op = await make_account(role="operator")
    far_op = await make_account(role="operator", store_id=OTHER_STORE)
    p = await make_account()

    async with AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        body = {"account_id": str(p.id), "local_amount": 120, "reason": "volunteered", "store_id": STORE}
        r = await ac.post("/points/grant", headers=auth(op), json=body)
        assert r.status_code == 200, r.text
        assert r.json()["new_balance"] == 120 and r.json()["honor_balance"] == 0

        r = await ac.post("/points/grant", headers=auth(far_op), json=body)
        assert r.status_code == 403

        r = await ac.post("/points/grant", headers=auth(op), json={**body, "local_amount": 0})
        assert r.status_code == 422
        assert r.json()["code"] == "invalid_amount"

        r = await ac.post("/points/redeem", headers=auth(op),
                          json={"account_id": str(p.id), "local_amount": 500, "description": "scarf"})
        assert r.status_code == 402
        assert r.json()["code"] == "insufficient_funds"

        r = await ac.post("/points/redeem", headers=auth(op),
                          json={"account_id": str(p.id), "local_amount": 20, "description": "scarf"})
        assert r.json()["new_balance"] == 100


@pytest.mark.asyncio
async def test_auth_is_required(make_account):
    async with AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        assert (await ac.get("/wallet")).status_code == 401
        r = await ac.get("/wallet", headers={"Authorization": "Bearer not-a-jwt"})
        assert r.status_code == 401
        assert r.json()["code"] == "unauthorized"
        ghost = {"Authorization": f"Bearer {make_access_token(str(uuid.uuid4()))}"}
        assert (await ac.get("/wallet", headers=ghost)).status_code == 401
