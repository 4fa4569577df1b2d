from datetime import date

import schemas
from utils import ledger
from utils.currency import MAX_AMOUNT

from conftest import add_member, create_auth_headers, create_user


def create_expense(client, headers, group_id, **overrides):
    payload = {
        "description": "Beach shack dinner",
        "amount": 30000,
        "category": "food",
        "split_method": "EQUAL",
    }
    payload.update(overrides)
    return client.post(f"/groups/{group_id}/expenses", headers=headers, json=payload)


def test_create_expense_equal_split(client, auth_headers, trip):
    a, b, c = trip["a"], trip["b"], trip["c"]
    response = create_expense(
        client, auth_headers, trip["group_id"],
        paid_by=a.id, split_between=[a.id, b.id, c.id]
    )
    assert response.status_code == 200
    data = response.json()
    assert data["amount"] == 30000
    assert data["split_type"] == "EQUAL"
    assert data["status"] == "pending"
    assert data["currency"] == "INR"
    assert data["created_by_id"] == a.id
    assert [(s["user_id"], s["amount_owed"]) for s in data["splits"]] == [
        (a.id, 10000), (b.id, 10000), (c.id, 10000)
    ]
    assert [s["user_name"] for s in data["splits"]] == ["Test User", "B", "C"]
    assert all(not s["settled"] for s in data["splits"])


def test_equal_split_defaults_to_whole_group(client, auth_headers, trip):
    response = create_expense(client, auth_headers, trip["group_id"], amount=10000)
    assert response.status_code == 200
    splits = response.json()["splits"]
    assert [s["amount_owed"] for s in splits] == [3334, 3333, 3333]
    assert response.json()["payer_id"] == trip["a"].id


def test_create_expense_percentage_split(client, auth_headers, trip):
    a, b, c = trip["a"], trip["b"], trip["c"]
    response = create_expense(
        client, auth_headers, trip["group_id"],
        amount=10001,
        split_method="PERCENTAGE",
        custom_splits=[
            {"user_id": a.id, "percentage": 50},
            {"user_id": b.id, "percentage": 25},
            {"user_id": c.id, "percentage": 25},
        ]
    )
    assert response.status_code == 200
    splits = response.json()["splits"]
    assert sum(s["amount_owed"] for s in splits) == 10001
    assert abs(sum(s["percentage"] for s in splits) - 100) <= 0.01


def test_create_expense_custom_split(client, auth_headers, trip):
    a, b = trip["a"], trip["b"]
    response = create_expense(
        client, auth_headers, trip["group_id"],
        amount=10000,
        split_method="CUSTOM",
        custom_splits=[
            {"user_id": a.id, "amount": 2500},
            {"user_id": b.id, "amount": 7500},
        ]
    )
    assert response.status_code == 200
    splits = {s["user_id"]: s["amount_owed"] for s in response.json()["splits"]}
    assert splits == {a.id: 2500, b.id: 7500}


def test_custom_split_total_mismatch_is_rejected(client, auth_headers, trip):
    a, b = trip["a"], trip["b"]
    response = create_expense(
        client, auth_headers, trip["group_id"],
        amount=10000,
        split_method="CUSTOM",
        custom_splits=[
            {"user_id": a.id, "amount": 5000},
            {"user_id": b.id, "amount": 4999},
        ]
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "splits total ₹99.99 must equal expense amount ₹100.00"


def test_zero_amount_is_rejected(client, auth_headers, trip):
    response = create_expense(client, auth_headers, trip["group_id"], amount=0)
    assert response.status_code == 400


def test_unknown_split_method_is_rejected(client, auth_headers, trip):
    response = create_expense(client, auth_headers, trip["group_id"], split_method="SHARES")
    assert response.status_code == 422


def test_payer_must_be_group_member(client, auth_headers, db_session, trip):
    outsider = create_user(db_session, "outsider@example.com", "Outsider")
    response = create_expense(client, auth_headers, trip["group_id"], paid_by=outsider.id)
    assert response.status_code == 400
    assert "not a member" in response.json()["detail"]


def test_participants_must_be_group_members(client, auth_headers, db_session, trip):
    outsider = create_user(db_session, "outsider@example.com", "Outsider")
    response = create_expense(
        client, auth_headers, trip["group_id"],
        split_between=[trip["a"].id, outsider.id]
    )
    assert response.status_code == 400


def test_non_member_cannot_create_expense(client, db_session, trip):
    outsider = create_user(db_session, "outsider@example.com", "Outsider")
    response = create_expense(client, create_auth_headers(outsider), trip["group_id"])
    assert response.status_code == 403


def test_create_expense_in_unknown_group(client, auth_headers):
    response = create_expense(client, auth_headers, 999)
    assert response.status_code == 404


def test_get_expense(client, auth_headers, trip):
    expense_id = create_expense(client, auth_headers, trip["group_id"], notes="Fish thali").json()["id"]
    response = client.get(f"/expenses/{expense_id}", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["notes"] == "Fish thali"
    assert response.json()["date"] == str(date.today())

    assert client.get("/expenses/999", headers=auth_headers).status_code == 404


def test_update_expense_fields(client, auth_headers, trip):
    expense_id = create_expense(client, auth_headers, trip["group_id"]).json()["id"]
    response = client.put(f"/expenses/{expense_id}", headers=auth_headers, json={
        "description": "Shack dinner + drinks",
        "category": "activities",
        "notes": "Includes cover charge",
        "receipt_image": "receipts/42.jpg"
    })
    assert response.status_code == 200
    data = response.json()
    assert data["description"] == "Shack dinner + drinks"
    assert data["category"] == "activities"
    assert data["notes"] == "Includes cover charge"
    assert data["receipt_image"] == "receipts/42.jpg"
    assert data["amount"] == 30000


def test_update_amount_recomputes_equal_split(client, auth_headers, trip):
    expense_id = create_expense(client, auth_headers, trip["group_id"]).json()["id"]
    response = client.put(f"/expenses/{expense_id}", headers=auth_headers, json={"amount": 10000})
    assert response.status_code == 200
    assert [s["amount_owed"] for s in response.json()["splits"]] == [3334, 3333, 3333]


def test_update_amount_recomputes_percentage_split(client, auth_headers, trip):
    a, b = trip["a"], trip["b"]
    expense_id = create_expense(
        client, auth_headers, trip["group_id"],
        amount=10000,
        split_method="PERCENTAGE",
        custom_splits=[{"user_id": a.id, "percentage": 40}, {"user_id": b.id, "percentage": 60}]
    ).json()["id"]

    response = client.put(f"/expenses/{expense_id}", headers=auth_headers, json={"amount": 20000})
    assert response.status_code == 200
    splits = response.json()["splits"]
    assert [s["amount_owed"] for s in splits] == [8000, 12000]
    assert [s["percentage"] for s in splits] == [40, 60]


def test_update_amount_scales_custom_split(client, auth_headers, trip):
    a, b = trip["a"], trip["b"]
    expense_id = create_expense(
        client, auth_headers, trip["group_id"],
        amount=10000,
        split_method="CUSTOM",
        custom_splits=[{"user_id": a.id, "amount": 2500}, {"user_id": b.id, "amount": 7500}]
    ).json()["id"]

    response = client.put(f"/expenses/{expense_id}", headers=auth_headers, json={"amount": 5000})
    assert [s["amount_owed"] for s in response.json()["splits"]] == [1250, 3750]


def test_update_amount_after_settlement_conflicts(client, auth_headers, trip):
    expense_id = create_expense(client, auth_headers, trip["group_id"]).json()["id"]
    client.put(f"/expenses/{expense_id}/settle/{trip['b'].id}", headers=auth_headers)

    response = client.put(f"/expenses/{expense_id}", headers=auth_headers, json={"amount": 60000})
    assert response.status_code == 409

    # Non-amount edits are still allowed
    response = client.put(f"/expenses/{expense_id}", headers=auth_headers, json={"description": "Dinner"})
    assert response.status_code == 200
    assert response.json()["amount"] == 30000


def test_other_member_cannot_edit(client, auth_headers, trip):
    expense_id = create_expense(client, auth_headers, trip["group_id"]).json()["id"]
    response = client.put(
        f"/expenses/{expense_id}",
        headers=create_auth_headers(trip["c"]),
        json={"description": "Hijacked"}
    )
    assert response.status_code == 403


def test_recreate_split(client, auth_headers, trip):
    a, b, c = trip["a"], trip["b"], trip["c"]
    expense_id = create_expense(client, auth_headers, trip["group_id"]).json()["id"]

    response = client.post(f"/expenses/{expense_id}/split", headers=auth_headers, json={
        "split_method": "CUSTOM",
        "entries": [
            {"user_id": b.id, "amount": 20000},
            {"user_id": c.id, "amount": 10000},
        ]
    })
    assert response.status_code == 200
    data = response.json()
    assert data["split_type"] == "CUSTOM"
    assert [(s["user_id"], s["amount_owed"]) for s in data["splits"]] == [(b.id, 20000), (c.id, 10000)]

    # Same participants again, now equally
    response = client.post(f"/expenses/{expense_id}/split", headers=auth_headers, json={
        "split_method": "EQUAL",
        "split_between": [a.id, b.id, c.id]
    })
    assert response.status_code == 200
    assert [s["amount_owed"] for s in response.json()["splits"]] == [10000, 10000, 10000]


def test_recreate_split_validates(client, auth_headers, trip):
    expense_id = create_expense(client, auth_headers, trip["group_id"]).json()["id"]
    response = client.post(f"/expenses/{expense_id}/split", headers=auth_headers, json={
        "split_method": "PERCENTAGE",
        "entries": [{"user_id": trip["a"].id, "percentage": 80}]
    })
    assert response.status_code == 400

    # Existing splits untouched
    splits = client.get(f"/expenses/{expense_id}", headers=auth_headers).json()["splits"]
    assert len(splits) == 3


def test_recreate_split_after_settlement_conflicts(client, auth_headers, trip):
    expense_id = create_expense(client, auth_headers, trip["group_id"]).json()["id"]
    client.put(f"/expenses/{expense_id}/settle/{trip['c'].id}", headers=auth_headers)

    response = client.post(f"/expenses/{expense_id}/split", headers=auth_headers, json={
        "split_method": "EQUAL",
        "split_between": [trip["a"].id, trip["b"].id]
    })
    assert response.status_code == 409

    # Resetting to pending unlocks it
    client.put(f"/expenses/{expense_id}/status", headers=auth_headers, json={"status": "pending"})
    response = client.post(f"/expenses/{expense_id}/split", headers=auth_headers, json={
        "split_method": "EQUAL",
        "split_between": [trip["a"].id, trip["b"].id]
    })
    assert response.status_code == 200


def test_delete_expense(client, auth_headers, trip):
    expense_id = create_expense(client, auth_headers, trip["group_id"]).json()["id"]
    response = client.delete(f"/expenses/{expense_id}", headers=auth_headers)
    assert response.status_code == 204
    assert client.get(f"/expenses/{expense_id}", headers=auth_headers).status_code == 404
    assert client.get(f"/groups/{trip['group_id']}/expenses", headers=auth_headers).json() == []


def test_only_creator_or_admin_can_delete(client, auth_headers, trip):
    b_headers = create_auth_headers(trip["b"])
    expense_id = create_expense(client, b_headers, trip["group_id"]).json()["id"]

    assert client.delete(f"/expenses/{expense_id}", headers=create_auth_headers(trip["c"])).status_code == 403
    # Test user created the group, so is an admin
    assert client.delete(f"/expenses/{expense_id}", headers=auth_headers).status_code == 204


def test_list_expenses_with_filters(client, auth_headers, trip):
    group_id = trip["group_id"]
    create_expense(client, auth_headers, group_id, description="Hotel Baga", category="accommodation",
                   amount=90000, date="2025-01-10")
    create_expense(client, auth_headers, group_id, description="Scooter rental", category="transport",
                   amount=6000, date="2025-01-11", notes="two scooters")
    settled_id = create_expense(client, auth_headers, group_id, description="Dinner", category="food",
                                amount=3000, date="2025-01-12").json()["id"]
    client.put(f"/expenses/{settled_id}/settle", headers=auth_headers)

    url = f"/groups/{group_id}/expenses"
    all_expenses = client.get(url, headers=auth_headers).json()
    assert [e["description"] for e in all_expenses] == ["Dinner", "Scooter rental", "Hotel Baga"]

    by_category = client.get(url, headers=auth_headers, params={"category": "transport"}).json()
    assert [e["description"] for e in by_category] == ["Scooter rental"]

    by_status = client.get(url, headers=auth_headers, params={"status": "settled"}).json()
    assert [e["id"] for e in by_status] == [settled_id]

    by_notes = client.get(url, headers=auth_headers, params={"search": "SCOOTERS"}).json()
    assert [e["description"] for e in by_notes] == ["Scooter rental"]

    by_date = client.get(url, headers=auth_headers, params={
        "date_start": "2025-01-10", "date_end": "2025-01-11"
    }).json()
    assert [e["description"] for e in by_date] == ["Scooter rental", "Hotel Baga"]


def test_list_expenses_requires_membership(client, db_session, trip):
    outsider = create_user(db_session, "outsider@example.com", "Outsider")
    response = client.get(f"/groups/{trip['group_id']}/expenses", headers=create_auth_headers(outsider))
    assert response.status_code == 403


def test_removed_member_keeps_historical_split(client, auth_headers, db_session, trip):
    group_id = trip["group_id"]
    d = create_user(db_session, "d@example.com", "D")
    add_member(db_session, group_id, d)
    expense_id = create_expense(client, auth_headers, group_id, amount=40000).json()["id"]

    assert client.delete(f"/groups/{group_id}/members/{d.id}", headers=auth_headers).status_code == 204

    splits = client.get(f"/expenses/{expense_id}", headers=auth_headers).json()["splits"]
    assert [(s["user_id"], s["amount_owed"]) for s in splits][-1] == (d.id, 10000)


def test_nan_percentage_is_rejected_and_nothing_saved(client, auth_headers, trip):
    a, b = trip["a"], trip["b"]
    response = create_expense(
        client, auth_headers, trip["group_id"],
        amount=10000,
        split_method="PERCENTAGE",
        custom_splits=[{"user_id": a.id, "percentage": 100}, {"user_id": b.id, "percentage": "NaN"}]
    )
    assert response.status_code == 422
    assert client.get(f"/groups/{trip['group_id']}/expenses", headers=auth_headers).json() == []


def test_amount_above_cap_is_rejected(client, auth_headers, trip):
    response = create_expense(client, auth_headers, trip["group_id"], amount=10 ** 20)
    assert response.status_code == 400
    assert client.get(f"/groups/{trip['group_id']}/expenses", headers=auth_headers).json() == []

    expense_id = create_expense(client, auth_headers, trip["group_id"]).json()["id"]
    response = client.put(f"/expenses/{expense_id}", headers=auth_headers, json={"amount": MAX_AMOUNT + 1})
    assert response.status_code == 400


def test_bad_date_leaves_expense_untouched(client, auth_headers, trip):
    expense_id = create_expense(client, auth_headers, trip["group_id"]).json()["id"]
    response = client.put(f"/expenses/{expense_id}", headers=auth_headers, json={
        "amount": 60000,
        "date": "not-a-date"
    })
    assert response.status_code == 400

    data = client.get(f"/expenses/{expense_id}", headers=auth_headers).json()
    assert data["amount"] == 30000
    assert [s["amount_owed"] for s in data["splits"]] == [10000, 10000, 10000]


def test_search_treats_wildcards_literally(client, auth_headers, trip):
    group_id = trip["group_id"]
    create_expense(client, auth_headers, group_id, description="50% off spa")
    create_expense(client, auth_headers, group_id, description="500 rupee tip")
    create_expense(client, auth_headers, group_id, description="snack_bar")
    create_expense(client, auth_headers, group_id, description="snacksbar")

    url = f"/groups/{group_id}/expenses"
    percent = client.get(url, headers=auth_headers, params={"search": "50%"}).json()
    assert [e["description"] for e in percent] == ["50% off spa"]

    underscore = client.get(url, headers=auth_headers, params={"search": "k_b"}).json()
    assert [e["description"] for e in underscore] == ["snack_bar"]


def test_iter_expenses_pages_and_restarts(db_session, trip, monkeypatch):
    monkeypatch.setattr(ledger, "PAGE_SIZE", 2)
    group_id = trip["group_id"]
    created = [
        ledger.create_expense(db_session, group_id, trip["a"].id, schemas.ExpenseCreate(
            description=f"Day {day}", amount=1000 * day, date=f"2025-04-0{day}"
        )).id
        for day in range(1, 6)
    ]

    expenses = ledger.iter_expenses(db_session, group_id)
    assert next(expenses).id == created[-1]

    ids = [e.id for e in ledger.iter_expenses(db_session, group_id)]
    assert ids == list(reversed(created))
    assert len(set(ids)) == 5
    # A fresh iteration runs the queries again and sees the same rows
    assert [e.id for e in ledger.iter_expenses(db_session, group_id)] == ids

    filtered = ledger.iter_expenses(db_session, group_id, ledger.ExpenseFilters(date_start="2025-04-03"))
    assert [e.description for e in filtered] == ["Day 5", "Day 4", "Day 3"]
