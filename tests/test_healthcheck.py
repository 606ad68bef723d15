def test_health_check(client, monkeypatch):
    monkeypatch.setenv("PAWAPAY_API_TOKEN", "token")
    monkeypatch.delenv("TWILIO_ACCOUNT_SID", raising=False)
    response = client.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["database"] == "connected"
    assert data["providers"] == {"pawapay": True, "twilio": False}


def test_root(client):
    assert client.get("/").json() == {"message": "DULU Payments API deployed."}
