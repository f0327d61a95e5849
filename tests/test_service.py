import re

import pytest
from fastapi.testclient import TestClient

from caseboard.main import app

from conftest import AUTH


@pytest.fixture
def client():
    return TestClient(app)


def create_board(client, columns=None):
    body = {"name": "Field service"}
    if columns is not None:
        body["columns"] = columns
    response = client.post("/v1/boards", json=body, headers=AUTH)
    assert response.status_code == 201
    return response.json()


def create_case(client, board, **fields):
    body = {"boardId": board["id"], "title": "Case", **fields}
    response = client.post("/v1/cases", json=body, headers=AUTH)
    assert response.status_code == 201, response.text
    return response.json()


def fetch(client, board):
    return client.get(f"/v1/boards/{board['id']}", headers=AUTH).json()


def test_auth_required(client):
    assert client.post("/v1/boards", json={"name": "x"}).status_code == 401
    assert client.post("/v1/boards", json={"name": "x"}, headers={"Authorization": "Token x"}).status_code == 401


def test_default_columns(client):
    board = create_board(client)
    columns = board["columns"]
    assert [c["name"] for c in columns] == ["To Do", "In Progress", "Done"]
    assert [c["position"] for c in columns] == [0, 1, 2]
    assert [c["isFinal"] for c in columns] == [False, False, True]


def test_unknown_board(client):
    assert client.get("/v1/boards/missing", headers=AUTH).json() == {"detail": "board_not_found"}


def test_create_case_defaults_to_first_column(client):
    board = create_board(client)
    case = create_case(client, board, caseType="quote")
    assert case["columnId"] == board["columns"][0]["id"]
    assert case["caseType"] == "QUOTE"
    assert case["priority"] == "Medium"
    assert re.fullmatch(r"[A-Z0-9]{8}", case["quoteId"])


def test_create_case_validates_type_and_board(client):
    board = create_board(client)
    response = client.post("/v1/cases", json={"boardId": board["id"], "title": "x", "caseType": "RFQ"}, headers=AUTH)
    assert response.status_code == 422
    response = client.post("/v1/cases", json={"boardId": "nope", "title": "x"}, headers=AUTH)
    assert response.status_code == 404


def test_move_case_renumbers(client):
    board = create_board(client)
    todo, doing, _ = (c["id"] for c in board["columns"])
    first = create_case(client, board, title="A")
    second = create_case(client, board, title="B")

    moved = client.post(f"/v1/cases/{first['id']}/move", json={"columnId": doing}, headers=AUTH).json()

    assert moved["columnId"] == doing
    assert moved["position"] == 0
    columns = fetch(client, board)["columns"]
    assert [c["id"] for c in columns[0]["cases"]] == [second["id"]]
    assert columns[0]["cases"][0]["position"] == 0
    bad = client.post(f"/v1/cases/{first['id']}/move", json={"columnId": "nowhere"}, headers=AUTH)
    assert bad.status_code == 409
    assert bad.json()["detail"] == "invalid_move"


def test_escalate_and_deescalate(client):
    board = create_board(client)
    case = create_case(client, board, title="Leaking valve", caseType="SR")

    response = client.post(f"/v1/cases/{case['id']}/escalate", headers=AUTH)

    assert response.status_code == 201
    mirror = response.json()
    assert mirror["title"] == "[ESCALATED] Leaking valve"
    columns = fetch(client, board)["columns"]
    queue = columns[-1]
    assert queue["name"] == "Escalations"
    assert queue["role"] == "escalations"
    assert queue["color"] == "#ef4444"
    assert mirror["columnId"] == queue["id"]
    source = columns[0]["cases"][0]
    assert source["escalatedToId"] == mirror["id"]

    result = client.post(f"/v1/cases/{case['id']}/deescalate", headers=AUTH).json()

    assert result == {"message": "De-escalated successfully", "id": mirror["id"]}
    columns = fetch(client, board)["columns"]
    assert columns[-1]["name"] == "De-escalated"
    assert columns[-1]["cases"][0]["id"] == mirror["id"]
    assert columns[0]["cases"][0]["escalatedToId"] == mirror["id"]


def test_deleting_source_removes_mirror(client):
    board = create_board(client)
    case = create_case(client, board)
    mirror = client.post(f"/v1/cases/{case['id']}/escalate", headers=AUTH).json()

    assert client.delete(f"/v1/cases/{case['id']}", headers=AUTH).status_code == 204

    assert client.post(f"/v1/cases/{mirror['id']}/deescalate", headers=AUTH).status_code == 404
    assert all(not c["cases"] for c in fetch(client, board)["columns"])


def test_deleting_mirror_clears_link(client):
    board = create_board(client)
    case = create_case(client, board)
    mirror = client.post(f"/v1/cases/{case['id']}/escalate", headers=AUTH).json()

    client.delete(f"/v1/cases/{mirror['id']}", headers=AUTH)

    source = fetch(client, board)["columns"][0]["cases"][0]
    assert source["escalatedToId"] is None


def test_update_case_moves_and_archives(client):
    board = create_board(client)
    doing = board["columns"][1]["id"]
    case = create_case(client, board, caseType="QUOTE", title="Pumps")

    response = client.put(
        f"/v1/cases/{case['id']}",
        json={"caseType": "ORDER", "columnId": doing, "title": "Pumps (Ref: X)", "archivedAt": "2024-03-01T00:00:00Z"},
        headers=AUTH,
    )

    body = response.json()
    assert body["caseType"] == "ORDER"
    assert body["columnId"] == doing
    assert body["archivedAt"].startswith("2024-03-01")


def test_column_endpoints(client):
    board = create_board(client, ["One", "Two"])
    one, two = (c["id"] for c in board["columns"])
    create_case(client, board, title="Doomed")

    inserted = client.post(
        f"/v1/boards/{board['id']}/columns",
        json={"name": "Zero", "position": 0},
        headers=AUTH,
    ).json()
    assert inserted["position"] == 0
    assert [c["name"] for c in fetch(client, board)["columns"]] == ["Zero", "One", "Two"]

    renamed = client.put(f"/v1/boards/{board['id']}/columns/{two}", json={"name": " Later "}, headers=AUTH).json()
    assert renamed["name"] == "Later"

    assert client.delete(f"/v1/boards/{board['id']}/columns/{one}", headers=AUTH).status_code == 204
    columns = fetch(client, board)["columns"]
    assert [(c["name"], c["position"]) for c in columns] == [("Zero", 0), ("Later", 1)]
    assert all(not c["cases"] for c in columns)
    assert client.delete(f"/v1/boards/{board['id']}/columns/{one}", headers=AUTH).status_code == 404


def test_case_on_empty_board(client):
    board = create_board(client, ["Only"])
    client.delete(f"/v1/boards/{board['id']}/columns/{board['columns'][0]['id']}", headers=AUTH)
    response = client.post("/v1/cases", json={"boardId": board["id"], "title": "x"}, headers=AUTH)
    assert response.status_code == 400
    assert response.json()["detail"] == "board_has_no_columns"


def test_create_column_rejects_unknown_role(client):
    board = create_board(client)
    response = client.post(
        f"/v1/boards/{board['id']}/columns",
        json={"name": "Z", "role": "bogus"},
        headers=AUTH,
    )
    assert response.status_code == 422


def test_create_column_with_role(client):
    board = create_board(client)
    column = client.post(
        f"/v1/boards/{board['id']}/columns",
        json={"name": "Hot", "role": "escalations"},
        headers=AUTH,
    ).json()
    assert column["role"] == "escalations"
    assert column["color"] == "#ef4444"
