"""HTTP tests for the brokerage API."""

from src.integrations.contracts.interfaces import ActorContext, Role

ADMIN = ActorContext(user_id=1, role=Role.ADMINISTRATOR)
BROKER = ActorContext(user_id=3, role=Role.BROKER, broker_id=1)
OTHER_BROKER = ActorContext(user_id=4, role=Role.BROKER, broker_id=2)


def _offer_body(**overrides):
    body = {
        "client_id": 1,
        "product_id": 1,
        "start_date": "2025-07-01",
        "end_date": "2026-06-30",
        "sum_insured": 10000,
        "premium": 200.0,
        "gdpr_consent": True,
    }
    body.update(overrides)
    return body


def test_health_endpoints(api_client):
    assert api_client.get("/").json()["status"] == "healthy"
    assert api_client.get("/health").json()["database"]["store"] == "postgres"


def test_calculate_premium_for_registered_client(api_client, headers):
    resp = api_client.post(
        "/api/v1/premium/calculate",
        json={"product_id": 1, "sum_insured": 10000, "start_date": "2025-07-01", "end_date": "2026-06-30", "client_id": 1},
        headers=headers(BROKER),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["premium"] == 200.0
    assert body["breakdown"]["factors"] == []


def test_calculate_premium_with_age_factor(api_client, headers):
    resp = api_client.post(
        "/api/v1/premium/calculate",
        json={
            "product_id": 1,
            "sum_insured": 10000,
            "start_date": "2025-07-01",
            "end_date": "2026-06-30",
            "client_cnp": "1600101123456",
        },
        headers=headers(BROKER),
    )
    assert resp.json()["premium"] == 250.0
    assert resp.json()["breakdown"]["factors"][0]["name"] == "Age Factor"


def test_calculate_premium_validation_errors(api_client, headers):
    resp = api_client.post(
        "/api/v1/premium/calculate",
        json={"product_id": 2, "sum_insured": 0, "start_date": "2025-05-01", "end_date": "2026-06-30"},
        headers=headers(BROKER),
    )
    assert resp.status_code == 422
    body = resp.json()
    assert body["error"] == "ValidationError"
    assert set(body["field_errors"]) == {"sum_insured", "fuel", "start_date"}


def test_unauthenticated_request_is_forbidden(api_client):
    resp = api_client.get("/api/v1/clients")
    assert resp.status_code == 403
    assert resp.json()["error"] == "PermissionDeniedError"


def test_unknown_role_is_rejected(api_client):
    resp = api_client.get("/api/v1/clients", headers={"X-User-Role": "OWNER"})
    assert resp.status_code == 400


def test_offer_to_policy_flow(api_client, headers):
    created = api_client.post("/api/v1/offers", json=_offer_body(), headers=headers(BROKER))
    assert created.status_code == 201
    offer = created.json()
    assert offer["status"] == "PENDING"
    assert offer["broker_id"] == 1
    assert offer["offer_number"] == "OFF-2025-00001"

    policy = api_client.post(
        "/api/v1/policies",
        json={"offer_id": offer["id"], "payment_method": "BANK_TRANSFER"},
        headers=headers(BROKER),
    )
    assert policy.status_code == 201
    policy_id = policy.json()["id"]
    assert policy.json()["status"] == "AWAITING_PAYMENT"

    again = api_client.post(
        "/api/v1/policies",
        json={"offer_id": offer["id"], "payment_method": "BANK_TRANSFER"},
        headers=headers(BROKER),
    )
    assert again.status_code == 409

    upload = api_client.post(
        f"/api/v1/policies/{policy_id}/upload-proof",
        files={"file": ("transfer.pdf", b"%PDF-1.4", "application/pdf")},
        headers=headers(BROKER),
    )
    assert upload.status_code == 200
    assert upload.json()["status"] == "AWAITING_VALIDATION"

    download = api_client.get(f"/api/v1/policies/{policy_id}/download-proof", headers=headers(BROKER))
    assert download.status_code == 200
    assert download.content == b"%PDF-1.4"

    forbidden = api_client.post(f"/api/v1/policies/{policy_id}/validate-payment", headers=headers(BROKER))
    assert forbidden.status_code == 403

    validated = api_client.post(f"/api/v1/policies/{policy_id}/validate-payment", headers=headers(ADMIN))
    assert validated.json()["status"] == "ACTIVE"
    assert validated.json()["payment_status"] == "VALIDATED"

    commissions = api_client.get("/api/v1/commissions", headers=headers(BROKER)).json()
    assert len(commissions) == 1
    assert commissions[0]["amount"] == 20.0

    paid = api_client.post(f"/api/v1/commissions/{commissions[0]['id']}/pay", headers=headers(ADMIN))
    assert paid.json()["status"] == "PAID"

    logs = api_client.get(
        "/api/v1/activity-logs",
        params={"entityType": "policy", "entityId": policy_id},
        headers=headers(BROKER),
    ).json()
    assert [e["activity_type"] for e in logs] == [
        "POLICY_CREATED",
        "PAYMENT_UPLOADED",
        "PAYMENT_VALIDATED",
        "COMMISSION_PAID",
    ]


def test_offer_without_consent_is_refused(api_client, headers):
    resp = api_client.post("/api/v1/offers", json=_offer_body(gdpr_consent=False), headers=headers(BROKER))
    assert resp.status_code == 422
    assert resp.json()["error"] == "ConsentRequiredError"


def test_expired_offer_conversion_returns_gone(api_client, headers, clock):
    offer = api_client.post("/api/v1/offers", json=_offer_body(), headers=headers(BROKER)).json()
    clock.advance(days=31)
    resp = api_client.post(
        f"/api/v1/offers/{offer['id']}/convert",
        json={"payment_method": "CARD_ONLINE"},
        headers=headers(BROKER),
    )
    assert resp.status_code == 410
    assert resp.json()["error"] == "OfferExpiredError"


def test_convert_endpoint_returns_all_three_records(api_client, headers):
    offer = api_client.post("/api/v1/offers", json=_offer_body(), headers=headers(BROKER)).json()
    resp = api_client.post(
        f"/api/v1/offers/{offer['id']}/convert",
        json={"payment_method": "CARD_ONLINE"},
        headers=headers(BROKER),
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["offer"]["status"] == "ACCEPTED"
    assert body["policy"]["status"] == "ACTIVE"
    assert body["commission"]["policy_id"] == body["policy"]["id"]


def test_delete_offer_rejects_it(api_client, headers):
    offer = api_client.post("/api/v1/offers", json=_offer_body(), headers=headers(BROKER)).json()
    resp = api_client.delete(f"/api/v1/offers/{offer['id']}", headers=headers(ADMIN))
    assert resp.status_code == 200
    assert resp.json()["status"] == "REJECTED"


def test_cancel_policy_requires_reason(api_client, headers):
    offer = api_client.post("/api/v1/offers", json=_offer_body(), headers=headers(BROKER)).json()
    policy = api_client.post(
        "/api/v1/policies", json={"offer_id": offer["id"], "payment_method": "CASH"}, headers=headers(BROKER)
    ).json()

    missing = api_client.post(f"/api/v1/policies/{policy['id']}/cancel", json={}, headers=headers(ADMIN))
    assert missing.status_code == 422
    assert "cancellation_reason" in missing.json()["field_errors"]

    done = api_client.post(
        f"/api/v1/policies/{policy['id']}/cancel",
        json={"cancellation_reason": "Client request"},
        headers=headers(ADMIN),
    )
    assert done.json()["status"] == "CANCELLED"
    assert done.json()["cancellation_reason"] == "Client request"


def test_scope_hides_other_brokers_records(api_client, headers):
    assert [c["id"] for c in api_client.get("/api/v1/clients", headers=headers(BROKER)).json()] == [1]
    resp = api_client.get("/api/v1/clients/2", headers=headers(BROKER))
    assert resp.status_code == 403
    assert api_client.get("/api/v1/clients/99", headers=headers(ADMIN)).status_code == 404


def test_manager_show_all_query_parameter(api_client, headers):
    manager = ActorContext(user_id=2, role=Role.BROKER_MANAGER, broker_id=3)
    assert api_client.get("/api/v1/clients", headers=headers(manager)).json() == []
    everything = api_client.get("/api/v1/clients", params={"showAll": "true"}, headers=headers(manager)).json()
    assert [c["id"] for c in everything] == [1, 2]


def test_client_crud(api_client, headers):
    created = api_client.post(
        "/api/v1/clients",
        json={"first_name": "Andrei", "last_name": "Dumitru", "cnp": "1850505123456"},
        headers=headers(OTHER_BROKER),
    )
    assert created.status_code == 201
    client_id = created.json()["id"]
    assert created.json()["broker_id"] == 2

    updated = api_client.put(f"/api/v1/clients/{client_id}", json={"phone": "0721 000 111"}, headers=headers(OTHER_BROKER))
    assert updated.json()["phone"] == "0721000111"

    assert api_client.delete(f"/api/v1/clients/{client_id}", headers=headers(OTHER_BROKER)).status_code == 403
    assert api_client.delete(f"/api/v1/clients/{client_id}", headers=headers(ADMIN)).status_code == 204


def test_products_and_brokers(api_client, headers):
    products = api_client.get("/api/v1/products", params={"activeOnly": "true"}, headers=headers(BROKER)).json()
    assert [p["code"] for p in products] == ["LIFE-BASIC", "AUTO-COMFORT"]
    assert products[1]["custom_fields"][0]["factor_condition"] == "value === 'diesel'"
    assert "condition" not in products[1]["custom_fields"][0]

    created = api_client.post(
        "/api/v1/products",
        json={"name": "Travel", "code": "trv", "category": "TRAVEL", "base_rate": 0.01},
        headers=headers(ADMIN),
    )
    assert created.status_code == 201
    assert created.json()["code"] == "TRV"

    assert api_client.get("/api/v1/brokers", headers=headers(BROKER)).status_code == 403
    assert len(api_client.get("/api/v1/brokers", headers=headers(ADMIN)).json()) == 3


def test_dashboard_stats(api_client, headers):
    offer = api_client.post("/api/v1/offers", json=_offer_body(), headers=headers(BROKER)).json()
    api_client.post("/api/v1/policies", json={"offer_id": offer["id"], "payment_method": "CARD_ONLINE"}, headers=headers(BROKER))

    stats = api_client.get("/api/v1/dashboard/stats", headers=headers(BROKER)).json()
    assert stats["total_clients"] == 1
    assert stats["active_policies"] == 1
    assert stats["total_premium"] == 200.0
    assert stats["pending_commissions"] == 20.0


def test_api_key_gate(api_client, monkeypatch, headers):
    monkeypatch.setenv("API_KEYS", "k1,k2")
    assert api_client.get("/api/v1/clients", headers=headers(ADMIN)).status_code == 401
    assert api_client.get("/api/v1/clients", headers={**headers(ADMIN), "X-API-KEY": "k2"}).status_code == 200
    assert api_client.get("/health").status_code == 200


def test_unexpected_errors_return_generic_500(api_client, headers, db, monkeypatch):
    def _broken():
        raise RuntimeError("connection reset")

    monkeypatch.setattr(db, "list_clients", _broken)
    resp = api_client.get("/api/v1/clients", headers=headers(ADMIN))
    assert resp.status_code == 500
    assert resp.json()["error"] == "InternalError"
    assert "connection reset" not in resp.text


def test_checkout_with_unknown_proof_reference_is_refused(api_client, headers):
    offer = api_client.post("/api/v1/offers", json=_offer_body(), headers=headers(BROKER)).json()
    resp = api_client.post(
        "/api/v1/policies",
        json={"offer_id": offer["id"], "payment_method": "CASH", "proof_of_payment": "made-up.pdf"},
        headers=headers(BROKER),
    )
    assert resp.status_code == 422
    assert "proof_of_payment" in resp.json()["field_errors"]
    assert api_client.get(f"/api/v1/offers/{offer['id']}", headers=headers(BROKER)).json()["status"] == "PENDING"


def test_insurer_register(api_client, headers):
    insurers = api_client.get("/api/v1/insurers", headers=headers(BROKER)).json()
    assert [i["code"] for i in insurers] == ["CARP", "DANUBE"]

    assert api_client.post("/api/v1/insurers", json={"name": "Olt", "code": "olt"}, headers=headers(BROKER)).status_code == 403
    created = api_client.post("/api/v1/insurers", json={"name": "Olt", "code": "olt"}, headers=headers(ADMIN))
    assert created.status_code == 201
    insurer_id = created.json()["id"]

    updated = api_client.put(f"/api/v1/insurers/{insurer_id}", json={"active": False}, headers=headers(ADMIN))
    assert updated.json()["active"] is False
    active = api_client.get("/api/v1/insurers", params={"activeOnly": "true"}, headers=headers(BROKER)).json()
    assert [i["code"] for i in active] == ["CARP", "DANUBE"]

    assert api_client.delete("/api/v1/insurers/1", headers=headers(ADMIN)).status_code == 409
    assert api_client.delete(f"/api/v1/insurers/{insurer_id}", headers=headers(ADMIN)).status_code == 204
    assert api_client.get(f"/api/v1/insurers/{insurer_id}", headers=headers(ADMIN)).status_code == 404


def test_renewal_flow(api_client, headers):
    offer = api_client.post("/api/v1/offers", json=_offer_body(), headers=headers(BROKER)).json()
    policy = api_client.post(
        "/api/v1/policies", json={"offer_id": offer["id"], "payment_method": "CARD_ONLINE"}, headers=headers(BROKER)
    ).json()

    created = api_client.post("/api/v1/renewals", json={"policy_id": policy["id"], "new_premium": 210}, headers=headers(BROKER))
    assert created.status_code == 201
    renewal = created.json()
    assert renewal["renewal_date"] == "2026-07-01"
    assert renewal["status"] == "PENDING"

    again = api_client.post("/api/v1/renewals", json={"policy_id": policy["id"], "new_premium": 220}, headers=headers(BROKER))
    assert again.status_code == 409
    assert api_client.get("/api/v1/renewals", headers=headers(OTHER_BROKER)).json() == []
    assert api_client.get("/api/v1/dashboard/stats", headers=headers(BROKER)).json()["pending_renewals"] == 1

    done = api_client.post(f"/api/v1/renewals/{renewal['id']}/complete", headers=headers(BROKER))
    assert done.status_code == 200
    assert done.json()["status"] == "COMPLETED"
    assert api_client.post(f"/api/v1/renewals/{renewal['id']}/decline", headers=headers(BROKER)).status_code == 409

    assert api_client.delete(f"/api/v1/renewals/{renewal['id']}", headers=headers(BROKER)).status_code == 403
    assert api_client.delete(f"/api/v1/renewals/{renewal['id']}", headers=headers(ADMIN)).status_code == 204
