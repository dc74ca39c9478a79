import logging
import os
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError as SchemaValidationError

from database import DocumentStore, find_by_id, get_store, new_id, store as default_store
from errors import AuthenticationError, AuthorizationError, ConflictError, NotFoundError, install_exception_handlers
from orders import place_order, update_order_status
from schemas import (
    LoginInput,
    PlaceOrderInput,
    Product as ProductSchema,
    ProductIn,
    RegisterInput,
    Role,
    StatusUpdate,
    User as UserSchema,
    UserUpdate,
    timestamp,
)
from security import (
    check_ownership,
    create_access_token,
    get_current_user,
    hash_password,
    require_admin,
    require_ownership,
    sanitize_user,
    verify_password,
)

DEFAULT_IMAGE_URL = "https://images.pexels.com/photos/90946/pexels-photo-90946.jpeg?auto=compress&cs=tinysrgb&w=400"

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Online Store API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_exception_handlers(app)


def email_taken(users: list, email: str, exclude_id: Optional[str] = None) -> bool:
    email = email.lower()
    return any(u.get("email", "").lower() == email and u.get("id") != exclude_id for u in users)


def ensure_admin(store: DocumentStore) -> None:
    """Create the bootstrap admin from ADMIN_USERNAME/ADMIN_PASSWORD if it is missing."""
    username = os.getenv("ADMIN_USERNAME")
    password = os.getenv("ADMIN_PASSWORD")
    if not username or not password:
        return
    email = os.getenv("ADMIN_EMAIL", f"{username}@example.com")
    try:
        admin = UserSchema(
            id=new_id(),
            username=username,
            email=email,
            password=hash_password(password),
            role=Role.admin,
            full_name="Administrator",
        )
    except SchemaValidationError:
        logger.error("Cannot create admin %r: %r is not a valid email, set ADMIN_EMAIL", username, email)
        return
    with store.transaction():
        data = store.load()
        if any(u.get("username") == username for u in data["users"]):
            return
        if email_taken(data["users"], admin.email):
            logger.error("Cannot create admin %r: email %s is already in use", username, admin.email)
            return
        data["users"].append(admin.to_document())
        store.save(data)
    logger.info("Created admin account %s", username)


@app.on_event("startup")
def bootstrap_admin():
    ensure_admin(default_store)


# Routes
@app.get("/")
def read_root():
    return {
        "message": "Welcome to the Online Store API",
        "version": app.version,
        "endpoints": {
            "auth": {"login": "POST /api/login", "register": "POST /api/register"},
            "users": "GET /api/users (admin only)",
            "products": "GET /api/products",
            "orders": {
                "getAll": "GET /api/orders (admin only)",
                "getUserOrders": "GET /api/orders/user/:userId",
                "placeOrder": "POST /api/orders/placeOrder",
            },
        },
    }


# Auth
@app.post("/api/login")
def login(payload: LoginInput, store: DocumentStore = Depends(get_store)):
    users = store.load()["users"]
    user = next((u for u in users if u.get("username") == payload.username), None)
    if not user or not verify_password(payload.password, user.get("password", "")):
        logger.warning("Failed login for %s", payload.username)
        raise AuthenticationError("Invalid username or password")
    token = create_access_token(user["id"], user.get("role"), username=user["username"])
    return {"message": "Login successful", "token": token, "user": sanitize_user(user)}


@app.post("/api/register", status_code=201)
def register(payload: RegisterInput, store: DocumentStore = Depends(get_store)):
    password_hash = hash_password(payload.password)
    with store.transaction():
        data = store.load()
        if any(u.get("username") == payload.username for u in data["users"]):
            raise ConflictError("Username already exists")
        if email_taken(data["users"], payload.email):
            raise ConflictError("Email already in use")
        user = UserSchema(
            id=new_id(),
            username=payload.username,
            email=payload.email,
            password=password_hash,
            role=Role.customer,
            full_name=payload.full_name,
        ).to_document()
        data["users"].append(user)
        store.save(data)
    token = create_access_token(user["id"], user["role"], username=user["username"])
    return {"message": "User registered successfully", "token": token, "user": sanitize_user(user)}


# Users
@app.get("/api/users")
def list_users(current_user: dict = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    return [sanitize_user(u) for u in store.load()["users"]]


@app.get("/api/users/{userId}")
def get_user(userId: str, current_user: dict = Depends(require_ownership), store: DocumentStore = Depends(get_store)):
    user = find_by_id(store.load()["users"], userId)
    if not user:
        raise NotFoundError("User not found")
    return sanitize_user(user)


@app.patch("/api/users/{userId}")
def update_user(
    userId: str,
    payload: UserUpdate,
    current_user: dict = Depends(require_ownership),
    store: DocumentStore = Depends(get_store),
):
    password_hash = hash_password(payload.password) if payload.password is not None else None
    with store.transaction():
        data = store.load()
        user = find_by_id(data["users"], userId)
        if not user:
            raise NotFoundError("User not found")
        updates: Dict[str, Any] = {}
        if payload.email is not None:
            if email_taken(data["users"], payload.email, exclude_id=userId):
                raise ConflictError("Email already in use")
            updates["email"] = payload.email
        if payload.full_name is not None:
            updates["fullName"] = payload.full_name
        if password_hash is not None:
            updates["password"] = password_hash
        user.update(updates, updatedAt=timestamp())
        store.save(data)
    return {"message": "User updated successfully", "user": sanitize_user(user)}


# Products
@app.get("/api/products")
def list_products(store: DocumentStore = Depends(get_store)):
    return store.load()["products"]


@app.get("/api/products/{productId}")
def get_product(productId: str, store: DocumentStore = Depends(get_store)):
    product = find_by_id(store.load()["products"], productId)
    if not product:
        raise NotFoundError("Product not found")
    return product


@app.post("/api/products", status_code=201)
def create_product(data: ProductIn, current_user: dict = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    product = ProductSchema(
        id=new_id(),
        **data.model_dump(exclude={"image_url"}),
        image_url=data.image_url or DEFAULT_IMAGE_URL,
    ).to_document()
    with store.transaction():
        document = store.load()
        document["products"].append(product)
        store.save(document)
    return {"message": "Product created successfully", "product": product}


@app.put("/api/products/{productId}")
def update_product(
    productId: str,
    data: ProductIn,
    current_user: dict = Depends(require_admin),
    store: DocumentStore = Depends(get_store),
):
    with store.transaction():
        document = store.load()
        product = find_by_id(document["products"], productId)
        if not product:
            raise NotFoundError("Product not found")
        updated = ProductSchema(
            id=productId,
            **data.model_dump(exclude={"image_url"}),
            image_url=data.image_url or product.get("imageUrl") or DEFAULT_IMAGE_URL,
            created_at=product.get("createdAt") or timestamp(),
            updated_at=timestamp(),
        ).to_document()
        product.clear()
        product.update(updated)
        store.save(document)
    return {"message": "Product updated successfully", "product": product}


@app.delete("/api/products/{productId}")
def delete_product(productId: str, current_user: dict = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    with store.transaction():
        document = store.load()
        product = find_by_id(document["products"], productId)
        if not product:
            raise NotFoundError("Product not found")
        document["products"].remove(product)
        store.save(document)
    return {"message": "Product deleted successfully"}


# Orders
@app.get("/api/orders")
def list_orders(current_user: dict = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    return store.load()["orders"]


@app.get("/api/orders/user/{userId}")
def list_user_orders(userId: str, current_user: dict = Depends(require_ownership), store: DocumentStore = Depends(get_store)):
    return [o for o in store.load()["orders"] if o.get("userId") == userId]


@app.post("/api/orders/placeOrder", status_code=201)
def create_order(
    payload: PlaceOrderInput,
    current_user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    order = place_order(store, current_user["id"], payload.items, payload.shipping_address)
    return {"message": "Order placed successfully", "order": order}


@app.get("/api/orders/{orderId}")
def get_order(orderId: str, current_user: dict = Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    order = find_by_id(store.load()["orders"], orderId)
    if not order:
        raise NotFoundError("Order not found")
    if not check_ownership(current_user, order.get("userId")):
        raise AuthorizationError("Access denied: You can only access your own orders")
    return order


@app.patch("/api/orders/{orderId}/status")
def set_order_status(
    orderId: str,
    payload: StatusUpdate,
    current_user: dict = Depends(require_admin),
    store: DocumentStore = Depends(get_store),
):
    order = update_order_status(store, orderId, payload.status)
    return {"message": "Order status updated successfully", "order": order}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
