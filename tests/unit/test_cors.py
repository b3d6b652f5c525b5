from fastapi import FastAPI
from fastapi.testclient import TestClient

from signal_hub.middleware import CORSMiddleware


def _client():
    app = FastAPI()
    app.add_middleware(CORSMiddleware, allowed_origins=["http://localhost:3000"])

    @app.get("/presence")
    async def presence():
        return {"online": []}

    return TestClient(app)


def test_allowed_origin_gets_headers():
    response = _client().get("/presence", headers={"Origin": "http://localhost:3000"})

    assert response.status_code == 200
    assert response.headers["Access-Control-Allow-Origin"] == "http://localhost:3000"
    assert response.headers["Access-Control-Allow-Credentials"] == "true"


def test_disallowed_origin_served_without_headers():
    response = _client().get("/presence", headers={"Origin": "http://evil.example"})

    assert response.status_code == 200
    assert "Access-Control-Allow-Origin" not in response.headers


def test_preflight():
    client = _client()

    ok = client.options("/presence", headers={"Origin": "http://localhost:3000"})
    rejected = client.options("/presence", headers={"Origin": "http://evil.example"})

    assert ok.status_code == 204
    assert "GET" in ok.headers["Access-Control-Allow-Methods"]
    assert rejected.status_code == 403
