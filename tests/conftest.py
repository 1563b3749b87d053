import polars as pl
import pytest
from fastapi.testclient import TestClient

from tidyroom.main import create_app
from tidyroom.services.store import DatasetStore

PEOPLE_CSV = (
    "name,age,score,city\n"
    "Ann,31,88.5,Oslo\n"
    "Bob,,92.0,Rome\n"
    "Cid,45,,\n"
    "Dee,28,75.0,Oslo\n"
    "Eve,,60.5,Lima\n"
)


@pytest.fixture
def people_df():
    return pl.DataFrame({
        "name": ["Ann", "Bob", "Cid", "Dee", "Eve"],
        "age": [31, None, 45, 28, None],
        "score": [88.5, 92.0, None, 75.0, 60.5],
        "city": ["Oslo", "Rome", None, "Oslo", "Lima"],
    })


@pytest.fixture
def people_csv(tmp_path):
    path = tmp_path / "people.csv"
    path.write_text(PEOPLE_CSV)
    return str(path)


@pytest.fixture
def store():
    return DatasetStore(max_history=50)


@pytest.fixture
def loaded_store(store, people_csv):
    store.import_file(people_csv)
    return store


@pytest.fixture
def client(store):
    return TestClient(create_app(store))
