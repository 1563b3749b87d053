"""HTTP surface tests through FastAPI's TestClient."""

import logging


def import_people(client, people_csv):
    response = client.post("/import", json={"file_path": people_csv})
    assert response.status_code == 200
    return response.json()


class TestDatasetEndpoints:
    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert "running" in response.json()["message"]

    def test_dataset_is_null_before_import(self, client):
        assert client.get("/dataset").json() is None

    def test_import_and_read(self, client, people_csv):
        meta = import_people(client, people_csv)
        assert meta["name"] == "people.csv"
        assert meta["row_count"] == 5

        page = client.get("/data", params={"offset": 3, "limit": 5}).json()
        assert page["total_rows"] == 5
        assert [row[0] for row in page["rows"]] == ["Dee", "Eve"]

    def test_import_missing_file(self, client, tmp_path):
        response = client.post("/import", json={"file_path": str(tmp_path / "none.csv")})
        assert response.status_code == 404
        assert response.json()["error"] == "io_error"

    def test_data_without_dataset(self, client):
        response = client.get("/data")
        assert response.status_code == 404
        assert response.json()["error"] == "no_dataset"

    def test_negative_offset(self, client, people_csv):
        import_people(client, people_csv)
        assert client.get("/data", params={"offset": -1}).status_code == 400

    def test_clear(self, client, people_csv):
        import_people(client, people_csv)
        assert client.delete("/dataset").status_code == 200
        assert client.get("/dataset").json() is None

    def test_column_stats(self, client, people_csv):
        import_people(client, people_csv)
        stats = client.get("/column-stats/score").json()
        assert stats["max"] == 92.0
        assert stats["null_count"] == 1
        assert client.get("/column-stats/ghost").status_code == 422

    def test_sheets_missing_file(self, client, tmp_path):
        response = client.get("/sheets", params={"file_path": str(tmp_path / "book.xlsx")})
        assert response.status_code == 404


class TestOperations:
    def test_apply_operation(self, client, people_csv):
        import_people(client, people_csv)
        response = client.post("/apply-operation", json={"type": "DropNulls", "subset": ["age"]})
        assert response.status_code == 200
        assert response.json()["row_count"] == 3

    def test_cast_through_api(self, client, people_csv):
        import_people(client, people_csv)
        meta = client.post("/apply-operation", json={"type": "CastTypes", "mapping": {"age": "Float64"}}).json()
        assert {c["name"]: c["dtype"] for c in meta["columns"]}["age"] == "Float64"

    def test_malformed_operation(self, client, people_csv):
        import_people(client, people_csv)
        response = client.post("/apply-operation", json={"type": "Explode", "column": "age"})
        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    def test_error_carries_operation_description(self, client, people_csv):
        import_people(client, people_csv)
        response = client.post("/apply-operation", json={"type": "Sort", "column": "ghost"})
        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "schema_error"
        assert body["operation"] == "Sort by ghost (ascending, nulls last)"

    def test_filter_syntax_error(self, client, people_csv):
        import_people(client, people_csv)
        response = client.post("/apply-operation", json={"type": "Filter", "expression": "age >"})
        assert response.status_code == 400
        assert response.json()["error"] == "parse_error"


class TestHistoryEndpoints:
    def test_undo_redo_and_history(self, client, people_csv):
        import_people(client, people_csv)
        applied = client.post("/apply-operation", json={"type": "Sort", "column": "age"}).json()

        history = client.get("/history").json()
        assert history["current_index"] == 1
        assert history["can_undo"] and not history["can_redo"]
        assert [e["description"] for e in history["entries"]] == [
            "Import file: people.csv", "Sort by age (ascending, nulls last)",
        ]

        assert client.post("/undo").status_code == 200
        assert client.post("/redo").json() == applied
        assert client.post("/redo").status_code == 409

    def test_jump_and_reset(self, client, people_csv):
        imported = import_people(client, people_csv)
        client.post("/apply-operation", json={"type": "DropAllNulls"})
        first_id = client.get("/history").json()["entries"][0]["id"]

        assert client.post(f"/jump/{first_id}").json() == imported
        assert client.post("/jump/unknown").status_code == 409
        assert client.post("/reset").json() == imported
        assert len(client.get("/history").json()["entries"]) == 1

    def test_export(self, client, people_csv, tmp_path):
        import_people(client, people_csv)
        target = str(tmp_path / "out.parquet")
        response = client.post("/export", json={"output_path": target, "format": "parquet"})
        assert response.status_code == 200
        assert response.json() == {"path": target}
        assert (tmp_path / "out.parquet").exists()

    def test_history_commands_without_dataset(self, client):
        for path in ("/undo", "/redo", "/reset", "/jump/unknown"):
            response = client.post(path)
            assert response.status_code == 409
            assert response.json()["error"] == "history_error"

    def test_history_without_dataset(self, client):
        assert client.get("/history").json() == {
            "entries": [], "current_index": None, "can_undo": False, "can_redo": False,
        }

    def test_apply_logs_operation_once(self, client, people_csv, caplog):
        import_people(client, people_csv)
        caplog.set_level(logging.INFO, logger="tidyroom")
        client.post("/apply-operation", json={"type": "Sort", "column": "age"})
        messages = [r.getMessage() for r in caplog.records if "Sort by age" in r.getMessage()]
        assert messages == ["Applied operation: Sort by age (ascending, nulls last) -> 5 rows x 4 columns"]
