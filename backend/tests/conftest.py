import os

import pytest

# Set environment for testing
os.environ["ENVIRONMENT"] = "local"
os.environ["DYNAMODB_TABLE_NAME"] = "moneymind-test"
os.environ.setdefault("MONTHLY_BUDGET_CENTS", "50000")

from core.database import DynamoDBSetup


TEST_USER_ID = "test-user-kl"


@pytest.fixture(scope="session")
def test_db():
    """Create a test database instance."""
    db_setup = DynamoDBSetup()

    try:
        db_setup.create_table_if_not_exists()
        yield db_setup
    finally:
        db_setup.get_table().delete()


@pytest.fixture
def clean_db(test_db):
    """Provide a clean database for each test."""
    table = test_db.get_table()

    response = table.scan()
    for item in response["Items"]:
        table.delete_item(Key={"PK": item["PK"], "SK": item["SK"]})

    yield table


@pytest.fixture
def user_id():
    return TEST_USER_ID


@pytest.fixture
def sample_expense_data():
    """Sample expense payload as the API receives it."""
    return {
        "description": "Nasi Kandar Pelita",
        "amount": 1250,
        "date": "2025-01-15",
        "merchant": "Pelita",
        "location": "Jalan Ampang",
        "payment_method": "touch_n_go",
    }


@pytest.fixture
def sample_expenses_data():
    """A handful of typical Malaysian expenses across categories."""
    return [
        {"description": "Nasi Kandar Pelita", "amount": 1250, "date": "2025-01-15"},
        {"description": "Grab ride to KLCC", "amount": 1800, "date": "2025-01-14"},
        {"description": "Starbucks Venti Latte", "amount": 1650, "date": "2025-01-13"},
        {"description": "Petronas RON95", "amount": 4500, "date": "2025-01-12"},
        {"description": "AEON grocery shopping", "amount": 8750, "date": "2025-01-11"},
    ]
