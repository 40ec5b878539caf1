import os
from typing import Annotated, List, Optional

import structlog
from fastapi import Depends, FastAPI, Path, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field

import accounts
import cart as cart_engine
import catalog
import database
import orders
from database import get_db
from errors import CartNotCleared, StoreError, Unauthenticated, ValidationFailed
from identity import current_seller, current_subject, optional_subject
from schemas import OBJECT_ID_PATTERN, Address, Brand, Category, ObjectIdStr, OrderStatus, Product, ProductStatus

logger = structlog.get_logger(__name__)

app = FastAPI(title="Electronics Store API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ObjectIdPath = Annotated[str, Path(pattern=OBJECT_ID_PATTERN)]


# Error responses
def _error_body(exc: StoreError) -> dict:
    body = {"error": exc.message}
    if isinstance(exc, ValidationFailed):
        body["errors"] = exc.errors
    if isinstance(exc, CartNotCleared):
        body["order_created"] = True
        body["order"] = jsonable_encoder(exc.order)
    return body


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    if exc.status_code >= 500:
        logger.error("Request failed", method=request.method, path=request.url.path, error=exc.message)
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthenticated) else None
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc), headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"path": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"error": "Validation failed", "errors": errors})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error", method=request.method, path=request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# Auth models
class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=100)
    is_seller: bool = False


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=3, max_length=50)
    address: Optional[Address] = None


# Product models
class ProductIn(Product):
    model_config = {"extra": "forbid"}

    def to_document(self) -> dict:
        return self.model_dump(mode="json", exclude={"created_by", "is_deleted"})


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=3, max_length=100)
    price: Optional[float] = Field(None, ge=1, le=1_000_000)
    description: Optional[str] = Field(None, min_length=10, max_length=500)
    brand: Optional[Brand] = None
    category: Optional[Category] = None
    status: Optional[ProductStatus] = None
    stock: Optional[int] = Field(None, ge=0)
    images: Optional[List[str]] = None


# Cart / order models
class AddToCartRequest(BaseModel):
    product: ObjectIdStr
    quantity: int = Field(1, ge=1)


class UpdateQuantityRequest(BaseModel):
    quantity: int = Field(..., ge=1)


class UpdateStatusRequest(BaseModel):
    status: OrderStatus


@app.get("/")
async def root():
    return {"message": "Electronics Store API running"}


@app.get("/test")
def test_database():
    db = database.db
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
    }
    try:
        if db is not None:
            response["database"] = "✅ Connected"
            response["collections"] = db.list_collection_names()[:10]
    except Exception as e:
        response["database"] = f"⚠️ {str(e)[:80]}"
    return response


# Auth endpoints
@app.post("/auth/register", status_code=201)
def register(req: RegisterRequest, db=Depends(get_db)):
    return accounts.register(db, req.name, req.email, req.password, req.is_seller)


@app.post("/auth/login")
def login(req: LoginRequest, db=Depends(get_db)):
    token = accounts.login(db, req.email, req.password)
    return {"message": "Login successful", "token": token, "token_type": "bearer"}


@app.get("/user")
def get_user(user_id: str = Depends(current_subject), db=Depends(get_db)):
    return accounts.get_profile(db, user_id)


@app.patch("/user")
def update_user(payload: ProfileUpdate, user_id: str = Depends(current_subject), db=Depends(get_db)):
    return accounts.update_profile(db, user_id, payload.name, payload.address)


# Products
@app.post("/products", status_code=201)
def create_product(p: ProductIn, seller: dict = Depends(current_seller), db=Depends(get_db)):
    return catalog.create_product(db, str(seller["_id"]), p.to_document())


@app.post("/products/bulk", status_code=201)
def create_products(items: List[ProductIn], seller: dict = Depends(current_seller), db=Depends(get_db)):
    products = catalog.create_products(db, str(seller["_id"]), [p.to_document() for p in items])
    return {"message": "Products inserted", "inserted": len(products), "products": products}


@app.get("/products")
def list_products(
    search: Optional[str] = None,
    sort_by: Optional[str] = Query(None, pattern="^(name|price|created_at|category)$"),
    sort_order: str = Query("asc", pattern="^(asc|desc)$"),
    category: Optional[Category] = None,
    brand: Optional[Brand] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    db=Depends(get_db),
):
    return catalog.list_products(
        db,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        category=category.value if category else None,
        brand=brand.value if brand else None,
        page=page,
        page_size=page_size,
    )


@app.get("/products/{product_id}")
def get_product(product_id: ObjectIdPath, user_id: Optional[str] = Depends(optional_subject), db=Depends(get_db)):
    return catalog.get_product(db, product_id, user_id)


@app.patch("/products/{product_id}")
def update_product(
    product_id: ObjectIdPath,
    payload: ProductUpdate,
    seller: dict = Depends(current_seller),
    db=Depends(get_db),
):
    updates = payload.model_dump(mode="json", exclude_none=True)
    return catalog.update_product(db, product_id, updates)


@app.delete("/products/{product_id}")
def delete_product(product_id: ObjectIdPath, seller: dict = Depends(current_seller), db=Depends(get_db)):
    catalog.delete_product(db, product_id)
    return {"message": "Product deleted"}


# Cart
@app.post("/cart/items", status_code=201)
def add_to_cart(req: AddToCartRequest, user_id: str = Depends(current_subject), db=Depends(get_db)):
    cart = cart_engine.add_item(db, user_id, req.product, req.quantity)
    return {"message": "Product added in cart", "cart": cart}


@app.get("/cart")
def get_cart(user_id: str = Depends(current_subject), db=Depends(get_db)):
    return {"cart": cart_engine.get_cart(db, user_id)}


@app.patch("/cart/items/{line_id}")
def update_cart_item(
    line_id: ObjectIdPath,
    req: UpdateQuantityRequest,
    user_id: str = Depends(current_subject),
    db=Depends(get_db),
):
    cart = cart_engine.update_quantity(db, user_id, line_id, req.quantity)
    return {"message": "Updated product quantity", "cart": cart}


@app.delete("/cart/items/{line_id}")
def remove_cart_item(line_id: ObjectIdPath, user_id: str = Depends(current_subject), db=Depends(get_db)):
    cart = cart_engine.remove_item(db, user_id, line_id)
    return {"message": "Deleted product", "cart": cart}


@app.delete("/cart/items")
def clear_cart(user_id: str = Depends(current_subject), db=Depends(get_db)):
    cart, already_empty = cart_engine.clear(db, user_id)
    return {"message": "Cart already empty" if already_empty else "Cart cleared", "cart": cart}


# Orders
@app.post("/orders/place", status_code=201)
def place_order(user_id: str = Depends(current_subject), db=Depends(get_db)):
    order = orders.place_order(db, user_id)
    return {"message": "Order placed successfully", "order": order}


@app.get("/orders")
def list_orders(user_id: str = Depends(current_subject), db=Depends(get_db)):
    user = accounts.get_profile(db, user_id)
    return {"orders": orders.list_orders(db, user_id, user.get("is_seller", False))}


@app.get("/orders/{order_id}")
def get_order(order_id: ObjectIdPath, user_id: str = Depends(current_subject), db=Depends(get_db)):
    user = accounts.get_profile(db, user_id)
    return {"order": orders.get_order(db, order_id, user_id, user.get("is_seller", False))}


@app.patch("/orders/{order_id}/status")
def update_order_status(
    order_id: ObjectIdPath,
    payload: UpdateStatusRequest,
    user_id: str = Depends(current_subject),
    db=Depends(get_db),
):
    order = orders.update_status(db, order_id, payload.status, user_id)
    return {"message": "Order status updated", "order": order}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
