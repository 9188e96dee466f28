import pytest

from db.database import SCHEMA_VERSION, init_database
from db.schema import ServiceMetadata


@pytest.mark.unit
class TestInitDatabase:
    def test_creates_parent_directory_and_schema_version(self, tmp_path):
        db_path = tmp_path / "nested" / "lifecycle.db"
        session_factory = init_database(str(db_path))

        assert db_path.exists()
        with session_factory() as session:
            metadata = session.get(ServiceMetadata, "schema_version")
            assert metadata.value == SCHEMA_VERSION

    def test_reinitialize_is_idempotent(self, temp_sqlite_db):
        init_database(str(temp_sqlite_db))
        session_factory = init_database(str(temp_sqlite_db))

        with session_factory() as session:
            assert session.query(ServiceMetadata).count() == 1
