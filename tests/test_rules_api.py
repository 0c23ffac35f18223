# tests/test_rules_api.py
from http import HTTPStatus

from occupancy_engine.models.schedule_rule import ScheduleRule


def _thanksgiving_payload(**overrides) -> dict:
    payload = {
        "name": "Thanksgiving",
        "is_closed": True,
        "recurrence": {
            "type": "nth_weekday",
            "month": 11,
            "weekday": "thursday",
            "occurrence": 4,
        },
        "effective_from_date": "2024-01-01",
        "created_by": "ops@example.com",
    }
    payload.update(overrides)
    return payload


def _sunday_payload() -> dict:
    return {
        "name": "Sunday Hours",
        "open_time": "12:00:00",
        "close_time": "17:00:00",
        "recurrence": {"type": "weekly_days", "days": ["sunday"]},
        "effective_from_date": "2024-05-01",
    }


def test_create_rule_success(api):
    site = api.seed_site()

    response = api.client.post(f"/sites/{site.id}/rules", json=_thanksgiving_payload())

    assert response.status_code == HTTPStatus.CREATED
    data = response.json()
    assert data["rule_type"] == "nth_weekday"
    assert data["recurrence"]["occurrence"] == 4
    assert data["is_closed"] is True
    assert data["retired"] is False
    assert isinstance(data["id"], int)


def test_create_rule_validation_error_names_field(api):
    site = api.seed_site()

    response = api.client.post(
        f"/sites/{site.id}/rules",
        json={"name": "Late Night", "recurrence": {"type": "single", "date": "2024-08-01"}},
    )

    assert response.status_code == HTTPStatus.UNPROCESSABLE_ENTITY
    assert response.json()["field"] == "open_time"


def test_create_rule_rejects_unknown_recurrence_type(api):
    site = api.seed_site()

    response = api.client.post(
        f"/sites/{site.id}/rules",
        json=_thanksgiving_payload(recurrence={"type": "lunar", "phase": "full"}),
    )

    assert response.status_code == HTTPStatus.UNPROCESSABLE_ENTITY


def test_create_rule_for_missing_site(api):
    response = api.client.post("/sites/999/rules", json=_thanksgiving_payload())

    assert response.status_code == HTTPStatus.NOT_FOUND
    assert "not found" in response.json()["detail"]


def test_list_rules_hides_retired_by_default(api):
    site = api.seed_site()
    kept = api.client.post(f"/sites/{site.id}/rules", json=_thanksgiving_payload()).json()
    gone = api.client.post(f"/sites/{site.id}/rules", json=_sunday_payload()).json()
    api.client.delete(f"/rules/{gone['id']}")

    active = api.client.get(f"/sites/{site.id}/rules").json()
    everything = api.client.get(f"/sites/{site.id}/rules", params={"include_retired": True}).json()

    assert [rule["id"] for rule in active] == [kept["id"]]
    assert {rule["id"] for rule in everything} == {kept["id"], gone["id"]}


def test_occurrence_listing_splits_past_and_upcoming(api):
    site = api.seed_site()
    api.client.post(f"/sites/{site.id}/rules", json=_sunday_payload())

    response = api.client.get(
        f"/sites/{site.id}/occurrences",
        params={"from_date": "2024-06-01", "to_date": "2024-06-30"},
    )

    assert response.status_code == HTTPStatus.OK
    data = response.json()
    assert data["today"] == "2024-06-12"
    assert [o["occurrence_date"] for o in data["past"]] == ["2024-06-02", "2024-06-09"]
    assert [o["occurrence_date"] for o in data["upcoming"]] == ["2024-06-16", "2024-06-23", "2024-06-30"]
    assert {o["origin"] for o in data["past"]} == {"frozen"}
    assert {o["origin"] for o in data["upcoming"]} == {"live"}


def test_occurrence_listing_default_window(api):
    site = api.seed_site()
    api.client.post(f"/sites/{site.id}/rules", json=_thanksgiving_payload())

    data = api.client.get(f"/sites/{site.id}/occurrences").json()

    assert data["start_date"] == "2023-01-01"
    assert data["end_date"] == "2025-12-31"
    # effective_from 2024-01-01 drops 2023.
    assert [o["occurrence_date"] for o in data["occurrences"]] == ["2024-11-28", "2025-11-27"]


def test_occurrence_listing_rejects_inverted_range(api):
    site = api.seed_site()

    response = api.client.get(
        f"/sites/{site.id}/occurrences",
        params={"from_date": "2024-06-30", "to_date": "2024-06-01"},
    )

    assert response.status_code == HTTPStatus.UNPROCESSABLE_ENTITY
    assert response.json()["field"] == "end_date"


def test_patch_rule_is_forward_only(api):
    site = api.seed_site()
    rule = api.client.post(f"/sites/{site.id}/rules", json=_sunday_payload()).json()

    response = api.client.patch(f"/rules/{rule['id']}", json={"close_time": "15:00:00"})
    assert response.status_code == HTTPStatus.OK
    assert response.json()["close_time"] == "15:00:00"

    data = api.client.get(
        f"/sites/{site.id}/occurrences",
        params={"from_date": "2024-06-01", "to_date": "2024-06-30"},
    ).json()
    assert {o["close_time"] for o in data["past"]} == {"17:00:00"}
    assert {o["close_time"] for o in data["upcoming"]} == {"15:00:00"}

    rejected = api.client.patch(f"/rules/{rule['id']}", json={"effective_from_date": "2024-07-01"})
    assert rejected.status_code == HTTPStatus.UNPROCESSABLE_ENTITY
    assert rejected.json()["field"] == "effective_from_date"


def test_delete_rule_partial(api):
    site = api.seed_site()
    rule = api.client.post(f"/sites/{site.id}/rules", json=_sunday_payload()).json()

    response = api.client.delete(f"/rules/{rule['id']}", params={"from_date": "2024-07-01"})

    assert response.status_code == HTTPStatus.OK
    data = response.json()
    assert data["mode"] == "partial_delete"
    assert data["cap_date"] == "2024-06-30"
    assert data["retired"] is False
    assert data["removed_count"] > 0

    stored = api.fetch(ScheduleRule, rule["id"])
    assert stored.effective_to_date.isoformat() == "2024-06-30"


def test_delete_rule_past_from_date_rejected(api):
    site = api.seed_site()
    rule = api.client.post(f"/sites/{site.id}/rules", json=_sunday_payload()).json()

    response = api.client.delete(f"/rules/{rule['id']}", params={"from_date": "2024-06-01"})

    assert response.status_code == HTTPStatus.UNPROCESSABLE_ENTITY
    assert response.json()["field"] == "from_date"


def test_delete_missing_rule(api):
    response = api.client.delete("/rules/4242")
    assert response.status_code == HTTPStatus.NOT_FOUND


def test_override_occurrence(api):
    site = api.seed_site()
    rule = api.client.post(f"/sites/{site.id}/rules", json=_sunday_payload()).json()

    response = api.client.put(
        f"/rules/{rule['id']}/occurrences/2024-06-16",
        json={"name": "Father's Day", "open_time": "10:00:00", "close_time": "14:00:00"},
    )

    assert response.status_code == HTTPStatus.OK
    assert response.json()["origin"] == "override"

    data = api.client.get(
        f"/sites/{site.id}/occurrences",
        params={"from_date": "2024-06-16", "to_date": "2024-06-16"},
    ).json()
    assert data["occurrences"][0]["name"] == "Father's Day"
    assert data["occurrences"][0]["is_override"] is True

    log = api.client.get(f"/sites/{site.id}/change-log").json()
    assert log[0]["action"] == "occurrence_override"
