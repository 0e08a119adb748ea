"""
Fixtures for integration tests against a real MongoDB server.

``MONGODB_TEST_URI`` points the tests at an existing server. Without it a
MongoDB container is started through testcontainers; when neither is
available the tests are skipped.
"""

import os
import uuid

import pytest

from mdb_odm.datasource import Connection, ConnectionManager


@pytest.fixture(scope="session")
def mongodb_connection_string():
    uri = os.getenv("MONGODB_TEST_URI")
    if uri:
        yield uri
        return

    try:
        from testcontainers.mongodb import MongoDbContainer
    except ImportError:
        pytest.skip("Set MONGODB_TEST_URI or install testcontainers: pip install -e '.[test]'")

    with MongoDbContainer(image="mongo:7") as container:
        exposed_port = container.get_exposed_port(27017)
        yield f"mongodb://localhost:{exposed_port}/?directConnection=true"


@pytest.fixture
def real_connection(mongodb_connection_string):
    """
    A connection to a throwaway database, registered as the default connection.

    The database is dropped after the test.
    """
    db_name = f"mdb_odm_test_{uuid.uuid4().hex[:12]}"
    connection = Connection(
        {
            "uri": mongodb_connection_string,
            "database": db_name,
            "server_selection_timeout_ms": 5000,
        },
        name="default",
    )
    if not connection.ping():
        pytest.skip(f"MongoDB not reachable at {mongodb_connection_string}")

    ConnectionManager.configure("default", connection)
    yield connection

    connection.client.drop_database(db_name)
    connection.close()
