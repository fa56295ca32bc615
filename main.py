import logging
from datetime import datetime
from typing import List, Optional

from fastapi import FastAPI, Depends, Query
from fastapi.middleware.cors import CORSMiddleware

import admins
import config
import dashboard
import database
import orders
from database import BOOKS, create_document, delete_document, get_document_by_id, get_documents, serialize, \
    update_document
from errors import NotFoundError, ValidationError, register_handlers
from schemas import (
    AdminCreate,
    AdminOut,
    AdminSaved,
    AdminUpdate,
    BookCreate,
    BookOut,
    BookUpdate,
    DISCOUNT_ERROR,
    DashboardStats,
    LoginRequest,
    LoginResponse,
    Message,
    OrderCreate,
    OrderOut,
    OrderPlaced,
    OrderStatusUpdate,
    PasswordChange,
    PaymentStatusUpdate,
    ProfileUpdate,
    SalesBucket,
    StatusCount,
    TokenAdmin,
    TokenClaims,
    VerifyResponse,
    discount_is_valid,
)
from security import CurrentAdmin, authenticate, bootstrap_super_admin, get_live_claims, require_admin, \
    require_super_admin

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Bookshop API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_handlers(app)


# ------------------------- Startup ----------------------------
@app.on_event("startup")
def prepare_database():
    if database.db is None:
        logger.warning("DATABASE_URL/DATABASE_NAME not set; running without a database")
        return
    database.ensure_indexes()
    bootstrap_super_admin()


# ------------------------- Basic Routes -----------------------
@app.get("/")
def root():
    return {"message": "Bookshop API is running"}


@app.get("/test")
def test_database():
    if database.db is None:
        return {"database": "❌ Not configured", "database_name": None, "collections": []}
    try:
        collections = database.db.list_collection_names()
    except Exception as e:
        logger.exception("Database check failed")
        return {"database": f"⚠️  Connected but Error: {str(e)[:50]}", "database_name": database.db.name,
                "collections": []}
    return {"database": "✅ Connected & Working", "database_name": database.db.name, "collections": collections}


# ------------------------- Auth Endpoints ---------------------
@app.post("/auth/login", response_model=LoginResponse)
def admin_login(payload: LoginRequest):
    token, admin = authenticate(payload.email, payload.password)
    profile = TokenAdmin(id=str(admin["_id"]), email=admin["email"], username=admin.get("username", ""),
                         role=admin["role"])
    return LoginResponse(message="Login successful", token=token, admin=profile)


@app.post("/auth/verify", response_model=VerifyResponse)
def verify_token(claims: TokenClaims = Depends(get_live_claims)):
    return VerifyResponse(valid=True, admin=claims)


# ------------------------- Books ------------------------------
@app.get("/books", response_model=List[BookOut])
def list_books(available: Optional[bool] = None):
    query = {} if available is None else {"is_available": available}
    return [serialize(b) for b in get_documents(BOOKS, query, sort=[("created_at", -1)])]


@app.get("/books/{book_id}", response_model=BookOut)
def get_book(book_id: str):
    doc = get_document_by_id(BOOKS, book_id)
    if not doc:
        raise NotFoundError("Book not found")
    return serialize(doc)


@app.post("/books", response_model=BookOut, status_code=201)
def create_book(payload: BookCreate, current: CurrentAdmin = Depends(require_admin)):
    new_id = create_document(BOOKS, payload)
    logger.info("Book %s created by %s", new_id, current.claims.email)
    return serialize(get_document_by_id(BOOKS, new_id))


@app.put("/books/{book_id}", response_model=BookOut)
def update_book(book_id: str, payload: BookUpdate, current: CurrentAdmin = Depends(require_admin)):
    stored = get_document_by_id(BOOKS, book_id)
    if not stored:
        raise NotFoundError("Book not found")
    changes = payload.model_dump(exclude_none=True)
    merged = {**stored, **changes}
    if not discount_is_valid(merged["price"], merged.get("discount_price")):
        raise ValidationError(DISCOUNT_ERROR)
    update_document(BOOKS, book_id, changes)
    logger.info("Book %s updated by %s", book_id, current.claims.email)
    return serialize(get_document_by_id(BOOKS, book_id))


@app.delete("/books/{book_id}", response_model=Message)
def delete_book(book_id: str, current: CurrentAdmin = Depends(require_admin)):
    if not delete_document(BOOKS, book_id):
        raise NotFoundError("Book not found")
    logger.info("Book %s deleted by %s", book_id, current.claims.email)
    return Message(message="Book deleted successfully")


# ------------------------- Orders -----------------------------
@app.post("/orders", response_model=OrderPlaced, status_code=201)
def create_order(payload: OrderCreate):
    order = orders.place_order(payload)
    return {"message": "Order created successfully", "order": order}


@app.get("/orders/track/{order_id}", response_model=OrderOut)
def track_order(order_id: str):
    return orders.track_order(order_id)


@app.get("/orders", response_model=List[OrderOut])
def list_orders(
    status: Optional[str] = None,
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    current: CurrentAdmin = Depends(require_admin),
):
    return orders.find_orders(status, start_date, end_date)


@app.get("/orders/{order_id}", response_model=OrderOut)
def get_order(order_id: str, current: CurrentAdmin = Depends(require_admin)):
    return orders.get_order(order_id)


@app.patch("/orders/{order_id}/status", response_model=OrderOut)
def update_order_status(order_id: str, payload: OrderStatusUpdate, current: CurrentAdmin = Depends(require_admin)):
    return orders.update_order_status(order_id, payload.order_status)


@app.patch("/orders/{order_id}/payment-status", response_model=OrderOut)
def update_payment_status(order_id: str, payload: PaymentStatusUpdate,
                          current: CurrentAdmin = Depends(require_admin)):
    return orders.update_payment_status(order_id, payload.payment_status)


# ------------------------- Dashboard Widgets ------------------
@app.get("/admin/dashboard/stats", response_model=DashboardStats)
def get_dashboard_stats(current: CurrentAdmin = Depends(require_admin)):
    return dashboard.dashboard_stats()


@app.get("/admin/dashboard/recent-orders", response_model=List[OrderOut])
def get_recent_orders(limit: int = Query(10, ge=1, le=100), current: CurrentAdmin = Depends(require_admin)):
    return dashboard.recent_orders(limit)


@app.get("/admin/analytics/sales", response_model=List[SalesBucket])
def get_sales_analytics(period: str = "monthly", current: CurrentAdmin = Depends(require_admin)):
    return dashboard.sales_analytics(period)


@app.get("/admin/analytics/order-status", response_model=List[StatusCount])
def get_order_status_distribution(current: CurrentAdmin = Depends(require_admin)):
    return dashboard.order_status_distribution()


# ------------------------- Admin Accounts ---------------------
@app.get("/admin/profile", response_model=AdminOut)
def get_profile(current: CurrentAdmin = Depends(require_admin)):
    return admins.get_admin(current.id)


@app.put("/admin/profile", response_model=AdminSaved)
def update_profile(payload: ProfileUpdate, current: CurrentAdmin = Depends(require_admin)):
    admin = admins.update_profile(current.id, payload)
    return {"message": "Profile updated successfully", "admin": admin}


@app.put("/admin/change-password", response_model=Message)
def change_password(payload: PasswordChange, current: CurrentAdmin = Depends(require_admin)):
    admins.change_password(current.id, payload)
    return Message(message="Password changed successfully")


@app.get("/admin", response_model=List[AdminOut])
def list_admins(current: CurrentAdmin = Depends(require_super_admin)):
    return admins.list_admins()


@app.post("/admin", response_model=AdminSaved, status_code=201)
def create_admin(payload: AdminCreate, current: CurrentAdmin = Depends(require_super_admin)):
    admin = admins.create_admin(payload)
    return {"message": "Admin created successfully", "admin": admin}


@app.put("/admin/{admin_id}", response_model=AdminSaved)
def update_admin(admin_id: str, payload: AdminUpdate, current: CurrentAdmin = Depends(require_super_admin)):
    admin = admins.update_admin(admin_id, payload, acting_admin_id=current.id)
    return {"message": "Admin updated successfully", "admin": admin}


@app.delete("/admin/{admin_id}", response_model=Message)
def delete_admin(admin_id: str, current: CurrentAdmin = Depends(require_super_admin)):
    admins.delete_admin(admin_id, acting_admin_id=current.id)
    return Message(message="Admin deleted successfully")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
