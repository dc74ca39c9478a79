import pytest
from fastapi.testclient import TestClient

from database import MemoryStore, get_store
from main import app
from security import create_access_token, hash_password

ADMIN_ID = "u-admin"
ALICE_ID = "u-alice"
BOB_ID = "u-bob"

EARBUDS_ID = "p-earbuds"
CABLE_ID = "p-cable"

BOB_ORDER_ID = "o-bob"


def bearer(user_id: str, role: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id, role)}"}


@pytest.fixture(scope="session")
def password_hashes():
    # bcrypt at 12 rounds is slow, hash once per session
    return {"admin": hash_password("admin123"), "customer": hash_password("secret123")}


@pytest.fixture
def document(password_hashes):
    return {
        "users": [
            {
                "id": ADMIN_ID,
                "username": "admin",
                "email": "admin@example.com",
                "password": password_hashes["admin"],
                "role": "admin",
                "fullName": "Store Admin",
                "createdAt": "2024-01-01T00:00:00+00:00",
            },
            {
                "id": ALICE_ID,
                "username": "alice",
                "email": "alice@example.com",
                "password": password_hashes["customer"],
                "role": "customer",
                "fullName": "Alice Johnson",
                "createdAt": "2024-01-02T00:00:00+00:00",
            },
            {
                "id": BOB_ID,
                "username": "bob",
                "email": "bob@example.com",
                "password": password_hashes["customer"],
                "role": "customer",
                "fullName": "Bob Smith",
                "createdAt": "2024-01-03T00:00:00+00:00",
            },
        ],
        "products": [
            {
                "id": EARBUDS_ID,
                "name": "Wireless Earbuds",
                "description": "Bluetooth earbuds",
                "price": 10.0,
                "category": "Audio",
                "stock": 10,
                "imageUrl": "https://example.com/earbuds.jpg",
                "createdAt": "2024-01-01T00:00:00+00:00",
            },
            {
                "id": CABLE_ID,
                "name": "USB Cable",
                "description": "1m braided cable",
                "price": 5.005,
                "category": "Accessories",
                "stock": 3,
                "imageUrl": "https://example.com/cable.jpg",
                "createdAt": "2024-01-01T00:00:00+00:00",
            },
        ],
        "orders": [
            {
                "id": BOB_ORDER_ID,
                "orderNumber": 1001,
                "userId": BOB_ID,
                "items": [
                    {
                        "productId": EARBUDS_ID,
                        "productName": "Wireless Earbuds",
                        "price": 10.0,
                        "quantity": 1,
                        "subtotal": 10.0,
                    }
                ],
                "totalAmount": 10.0,
                "shippingAddress": "1 Bob Street",
                "status": "pending",
                "createdAt": "2024-02-01T00:00:00+00:00",
            }
        ],
    }


@pytest.fixture
def store(document):
    return MemoryStore(document)


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return bearer(ADMIN_ID, "admin")


@pytest.fixture
def alice_headers():
    return bearer(ALICE_ID, "customer")


@pytest.fixture
def bob_headers():
    return bearer(BOB_ID, "customer")
