from typing import Any

from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from ipgeo.errors import UpstreamServiceError
from ipgeo.history_store import HistoryStore
from ipgeo.main import app, get_history_store
from ipgeo.models.db_models import SearchHistory, User
from tests.common import GOOGLE_DNS_GEO, SELF_GEO, FakeGeolocationClient, bearer


class _FailingHistoryStore(HistoryStore):
    """Test double whose every operation fails like an unreachable database."""

    def __init__(self) -> None:
        pass

    def _fail(self, *args: Any, **kwargs: Any) -> Any:
        raise OperationalError("SELECT", {}, Exception("unable to open database file"))

    insert = _fail
    list_by_owner = _fail
    delete_by_owner_and_ids = _fail
    missing_ids = _fail


def _seed(session_factory: sessionmaker[Session], owner: User, ip: str) -> int:
    with session_factory() as session:
        return HistoryStore(session).insert(owner.id, ip, {"ip": ip}).id


def test_health(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_protected_routes_require_a_token(client: TestClient) -> None:
    for method, path in [("GET", "/geolocation"), ("GET", "/history"), ("DELETE", "/history"), ("GET", "/user")]:
        response = client.request(method, path)

        assert response.status_code == 401, path
        assert response.json() == {"success": False, "message": "Unauthenticated."}


def test_unknown_token_is_rejected(client: TestClient, token: str) -> None:
    token_id, _, _ = token.partition("|")

    assert client.get("/history", headers=bearer(f"{token_id}|not-the-secret")).status_code == 401
    assert client.get("/history", headers=bearer("garbage")).status_code == 401
    assert client.get("/history", headers=bearer(token)).status_code == 200


def test_lookup_records_history(
    client: TestClient, token: str, user: User, provider: FakeGeolocationClient
) -> None:
    response = client.get("/geolocation", params={"ip": "8.8.8.8"}, headers=bearer(token))

    assert response.status_code == 200
    assert response.json() == {"success": True, "data": GOOGLE_DNS_GEO}
    assert provider.calls == ["8.8.8.8"]

    history = client.get("/history", headers=bearer(token)).json()
    assert history["success"] is True
    assert len(history["data"]) == 1
    record = history["data"][0]
    assert record["ip_address"] == "8.8.8.8"
    assert record["user_id"] == user.id
    assert record["geo_data"] == GOOGLE_DNS_GEO
    assert set(record) == {"id", "user_id", "ip_address", "geo_data", "created_at", "updated_at"}


def test_self_lookup_is_not_recorded(client: TestClient, token: str, provider: FakeGeolocationClient) -> None:
    response = client.get("/geolocation", headers=bearer(token))

    assert response.status_code == 200
    assert response.json()["data"] == SELF_GEO
    assert provider.calls == [None]
    assert client.get("/history", headers=bearer(token)).json()["data"] == []


def test_empty_ip_parameter_means_self_lookup(
    client: TestClient, token: str, provider: FakeGeolocationClient
) -> None:
    response = client.get("/geolocation", params={"ip": ""}, headers=bearer(token))

    assert response.status_code == 200
    assert provider.calls == [None]


def test_ipv6_lookup_is_accepted(client: TestClient, token: str, provider: FakeGeolocationClient) -> None:
    provider.payloads["2001:db8::1"] = {"ip": "2001:db8::1", "bogon": True}

    response = client.get("/geolocation", params={"ip": "2001:db8::1"}, headers=bearer(token))

    assert response.status_code == 200
    assert response.json()["data"] == {"ip": "2001:db8::1", "bogon": True}


def test_provider_failure_returns_400_without_history(
    client: TestClient, token: str, provider: FakeGeolocationClient
) -> None:
    provider.error = UpstreamServiceError("IP provider returned HTTP 503")

    response = client.get("/geolocation", params={"ip": "8.8.8.8"}, headers=bearer(token))

    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "Failed to fetch geolocation data"}
    assert client.get("/history", headers=bearer(token)).json()["data"] == []


def test_invalid_ip_is_rejected_before_lookup(
    client: TestClient, token: str, provider: FakeGeolocationClient
) -> None:
    response = client.get("/geolocation", params={"ip": "999.999.999.999"}, headers=bearer(token))

    assert response.status_code == 422
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Validation error"
    assert "ip" in body["errors"]
    assert provider.calls == []


def test_unexpected_lookup_error_returns_500(
    client: TestClient, token: str, provider: FakeGeolocationClient
) -> None:
    provider.error = RuntimeError("boom")

    response = client.get("/geolocation", params={"ip": "8.8.8.8"}, headers=bearer(token))

    assert response.status_code == 500
    assert response.json() == {"success": False, "message": "Error: boom"}


def test_history_insert_failure_does_not_fail_the_lookup(client: TestClient, token: str) -> None:
    app.dependency_overrides[get_history_store] = _FailingHistoryStore

    response = client.get("/geolocation", params={"ip": "8.8.8.8"}, headers=bearer(token))

    assert response.status_code == 200
    assert response.json() == {"success": True, "data": GOOGLE_DNS_GEO}


def test_history_is_newest_first_and_owner_scoped(
    client: TestClient,
    token: str,
    user: User,
    other_user: User,
    session_factory: sessionmaker[Session],
) -> None:
    first = _seed(session_factory, user, "1.1.1.1")
    _seed(session_factory, other_user, "4.4.4.4")
    second = _seed(session_factory, user, "8.8.8.8")

    response = client.get("/history", headers=bearer(token))

    assert response.status_code == 200
    assert [item["id"] for item in response.json()["data"]] == [second, first]


def test_history_storage_failure_returns_500(client: TestClient, token: str) -> None:
    app.dependency_overrides[get_history_store] = _FailingHistoryStore

    response = client.get("/history", headers=bearer(token))

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert body["message"].startswith("Error fetching history: ")


def test_delete_skips_records_of_other_users(
    client: TestClient,
    token: str,
    user: User,
    other_user: User,
    session_factory: sessionmaker[Session],
) -> None:
    mine = _seed(session_factory, user, "8.8.8.8")
    theirs = _seed(session_factory, other_user, "9.9.9.9")

    response = client.request("DELETE", "/history", json={"ids": [mine, theirs]}, headers=bearer(token))

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "History deleted successfully", "deleted_count": 1}
    with session_factory() as session:
        assert session.get(SearchHistory, mine) is None
        assert session.get(SearchHistory, theirs) is not None


def test_delete_requires_non_empty_ids(
    client: TestClient, token: str, user: User, session_factory: sessionmaker[Session]
) -> None:
    record_id = _seed(session_factory, user, "8.8.8.8")

    for body in [{"ids": []}, {}, {"ids": "1"}]:
        response = client.request("DELETE", "/history", json=body, headers=bearer(token))

        assert response.status_code == 422, body
        assert response.json()["success"] is False
        assert "ids" in response.json()["errors"]

    with session_factory() as session:
        assert session.get(SearchHistory, record_id) is not None


def test_delete_rejects_non_integer_ids(client: TestClient, token: str) -> None:
    response = client.request("DELETE", "/history", json={"ids": [1, "abc"]}, headers=bearer(token))

    assert response.status_code == 422
    assert "ids.1" in response.json()["errors"]


def test_delete_rejects_unknown_ids_without_deleting(
    client: TestClient, token: str, user: User, session_factory: sessionmaker[Session]
) -> None:
    record_id = _seed(session_factory, user, "8.8.8.8")

    response = client.request("DELETE", "/history", json={"ids": [record_id, 4242]}, headers=bearer(token))

    assert response.status_code == 422
    assert response.json()["errors"] == {"ids.1": ["The selected ids.1 is invalid."]}
    with session_factory() as session:
        assert session.get(SearchHistory, record_id) is not None


def test_delete_storage_failure_returns_500(client: TestClient, token: str) -> None:
    app.dependency_overrides[get_history_store] = _FailingHistoryStore

    response = client.request("DELETE", "/history", json={"ids": [1]}, headers=bearer(token))

    assert response.status_code == 500
    assert response.json()["message"].startswith("Error deleting history: ")


def test_delete_rejects_out_of_range_and_non_positive_ids(
    client: TestClient, token: str, user: User, session_factory: sessionmaker[Session]
) -> None:
    record_id = _seed(session_factory, user, "8.8.8.8")

    for bad_id in [2**70, 2**63, 0, -1]:
        response = client.request("DELETE", "/history", json={"ids": [bad_id, record_id]}, headers=bearer(token))

        assert response.status_code == 422, bad_id
        assert response.json()["success"] is False
        assert list(response.json()["errors"]) == ["ids.0"]

    with session_factory() as session:
        assert session.get(SearchHistory, record_id) is not None


def test_delete_rejects_boolean_ids(
    client: TestClient, token: str, user: User, session_factory: sessionmaker[Session]
) -> None:
    record_id = _seed(session_factory, user, "8.8.8.8")

    response = client.request("DELETE", "/history", json={"ids": [True]}, headers=bearer(token))

    assert response.status_code == 422
    assert list(response.json()["errors"]) == ["ids.0"]
    with session_factory() as session:
        assert session.get(SearchHistory, record_id) is not None
