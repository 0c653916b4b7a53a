import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator

import stripe
from bson import ObjectId
from bson.errors import InvalidId
from fastapi import FastAPI, Depends, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import DuplicateKeyError, PyMongoError

from auth import issue_token, require_self, verify_admin, verify_teacher, verify_token
from database import (
    Store,
    connect_store,
    delete_summary,
    get_store,
    insert_summary,
    oid,
    serialize_doc,
    update_summary,
)
from errors import BadRequest, Internal, NotFound
from payments import create_payment_intent
from schemas import (
    AssignmentCreate,
    ClassCreate,
    ClassUpdate,
    PaymentCreate,
    PaymentIntentRequest,
    TeacherRequestCreate,
    Role,
    Status,
    TokenRequest,
    UserCreate,
    normalize_email,
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="SkillHorizon API")
app.state.store = None

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def now() -> datetime:
    return datetime.now(timezone.utc)


# ----------------------
# Error mapping
# ----------------------
@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    # the rejected input is left out; it may not be JSON serializable (NaN)
    errors = [{k: v for k, v in e.items() if k != "input"} for e in exc.errors()]
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(errors)})


@app.exception_handler(PyMongoError)
async def database_error(request: Request, exc: PyMongoError):
    logger.error("Database error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.exception_handler(stripe.StripeError)
async def payment_processor_error(request: Request, exc: stripe.StripeError):
    logger.error("Payment processor error on %s", request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Payment processor unavailable"})


# ----------------------
# Lifecycle
# ----------------------
def seed_admin(store: Store):
    admin_email = os.getenv("ADMIN_EMAIL")
    if not admin_email:
        return
    admin_email = normalize_email(admin_email)
    if store.users.find_one({"email": admin_email}):
        return
    store.users.insert_one(
        {"name": "Administrator", "email": admin_email, "role": "Admin", "created_at": now()}
    )
    logger.info("Seeded admin user %s", admin_email)


@app.on_event("startup")
def open_store():
    if app.state.store is None:
        app.state.store = connect_store()
    try:
        app.state.store.ensure_indexes()
        seed_admin(app.state.store)
    except PyMongoError:
        # the app still starts; requests fail until the database is reachable
        logger.exception("Database setup failed at startup")


@app.on_event("shutdown")
def close_store():
    if app.state.store is not None:
        app.state.store.close()
        app.state.store = None


# ----------------------
# Basic routes
# ----------------------
@app.get("/")
def root():
    return {"message": "SkillHorizon is going to blast! Are you ready?"}


@app.get("/test")
def test_database(request: Request):
    response = {
        "backend": "Running",
        "database": "Not Available",
        "database_url": "Set" if os.getenv("DATABASE_URL") else "Not Set",
        "database_name": "Set" if os.getenv("DATABASE_NAME") else "Not Set",
        "collections": [],
    }
    store = request.app.state.store
    if store is None:
        return response
    try:
        store.ping()
        response["database"] = "Connected"
        response["collections"] = store.db.list_collection_names()
    except PyMongoError as exc:
        response["database"] = f"Connected but error: {str(exc)[:80]}"
    return response


# ----------------------
# Auth & users
# ----------------------
@app.post("/jwt")
def create_token(body: TokenRequest):
    return {"token": issue_token(body.model_dump(exclude_none=True))}


@app.post("/users")
def create_user(body: UserCreate, store: Store = Depends(get_store)):
    already_exists = {"message": "User already exists!", "inserted_id": None}
    if store.users.find_one({"email": body.email}):
        return already_exists
    doc = {**body.model_dump(exclude_none=True), "role": "Student", "created_at": now()}
    try:
        res = store.users.insert_one(doc)
    except DuplicateKeyError:
        # lost a race with a concurrent sign-up for the same email
        return already_exists
    return insert_summary(res)


@app.get("/users/role/{email}")
def user_role(email: str, store: Store = Depends(get_store)):
    email = normalize_email(email)
    user = store.users.find_one({"email": email})
    return {"role": user.get("role") if user else None}


@app.get("/users/{email}")
def user_info(email: str, decoded=Depends(verify_token), store: Store = Depends(get_store)):
    email = normalize_email(email)
    require_self(decoded, email)
    return [serialize_doc(u) for u in store.users.find({"email": email})]


# ----------------------
# Teacher requests
# ----------------------
@app.post("/teacher-requests")
def create_teacher_request(
    body: TeacherRequestCreate, decoded=Depends(verify_token), store: Store = Depends(get_store)
):
    doc = {
        **body.model_dump(exclude_none=True),
        "email": decoded["email"],
        "status": "Pending",
        "created_at": now(),
    }
    return insert_summary(store.teachers.insert_one(doc))


@app.get("/teacher-requests/{email}")
def get_teacher_request(email: str, decoded=Depends(verify_token), store: Store = Depends(get_store)):
    email = normalize_email(email)
    require_self(decoded, email)
    request_doc = store.teachers.find_one({"email": email})
    if not request_doc:
        raise NotFound("Teacher request not found")
    return serialize_doc(request_doc)


@app.patch("/teacher-requests/{email}")
def resubmit_teacher_request(email: str, decoded=Depends(verify_token), store: Store = Depends(get_store)):
    email = normalize_email(email)
    require_self(decoded, email)
    res = store.teachers.update_one({"email": email}, {"$set": {"status": "Pending", "updated_at": now()}})
    if res.matched_count == 0:
        raise NotFound("Teacher request not found")
    return update_summary(res)


# ----------------------
# Teacher endpoints
# ----------------------
@app.post("/classes")
def create_class(body: ClassCreate, decoded=Depends(verify_teacher), store: Store = Depends(get_store)):
    doc = {
        **body.model_dump(exclude_none=True),
        "email": decoded["email"],
        "status": "Pending",
        "created_at": now(),
    }
    return insert_summary(store.classes.insert_one(doc))


@app.get("/classes/{email}")
def teacher_classes(email: str, decoded=Depends(verify_teacher), store: Store = Depends(get_store)):
    email = normalize_email(email)
    require_self(decoded, email)
    return [serialize_doc(c) for c in store.classes.find({"email": email})]


@app.patch("/classes/{class_id}")
def update_class(
    class_id: str, body: ClassUpdate, decoded=Depends(verify_teacher), store: Store = Depends(get_store)
):
    data = body.model_dump(exclude_none=True)
    if not data:
        raise BadRequest("Nothing to update")
    data["updated_at"] = now()
    res = store.classes.update_one({"_id": oid(class_id), "email": decoded["email"]}, {"$set": data})
    if res.matched_count == 0:
        raise NotFound("Class not found")
    return update_summary(res)


@app.delete("/classes/{class_id}")
def delete_class(class_id: str, decoded=Depends(verify_teacher), store: Store = Depends(get_store)):
    res = store.classes.delete_one({"_id": oid(class_id), "email": decoded["email"]})
    if res.deleted_count == 0:
        raise NotFound("Class not found")
    return delete_summary(res)


@app.post("/assignments")
def create_assignment(body: AssignmentCreate, decoded=Depends(verify_teacher), store: Store = Depends(get_store)):
    if not store.classes.find_one({"_id": oid(body.class_id), "email": decoded["email"]}):
        raise NotFound("Class not found")
    doc = {**body.model_dump(exclude_none=True), "email": decoded["email"], "created_at": now()}
    return insert_summary(store.assignments.insert_one(doc))


@app.get("/assignments/{email}/{class_id}")
def class_assignments(
    email: str, class_id: str, decoded=Depends(verify_teacher), store: Store = Depends(get_store)
):
    email = normalize_email(email)
    require_self(decoded, email)
    query = {"email": email, "class_id": class_id}
    return [serialize_doc(a) for a in store.assignments.find(query)]


# ----------------------
# Public catalog
# ----------------------
@app.get("/all-classes")
def accepted_classes(store: Store = Depends(get_store)):
    return [serialize_doc(c) for c in store.classes.find({"status": "Accepted"})]


@app.get("/all-classes/{class_id}")
def accepted_class(class_id: str, store: Store = Depends(get_store)):
    doc = store.classes.find_one({"_id": oid(class_id), "status": "Accepted"})
    if not doc:
        raise NotFound("Class not found")
    return serialize_doc(doc)


# ----------------------
# Payments & enrollment
# ----------------------
@app.post("/create-payment-intent")
def payment_intent(body: PaymentIntentRequest):
    return {"clientSecret": create_payment_intent(body.price)}


@app.post("/payments")
def create_payment(body: PaymentCreate, decoded=Depends(verify_token), store: Store = Depends(get_store)):
    doc = {**body.model_dump(exclude_none=True), "email": decoded["email"], "date": now()}
    return insert_summary(store.payments.insert_one(doc))


@app.get("/payments/{email}")
def payment_history(email: str, decoded=Depends(verify_token), store: Store = Depends(get_store)):
    email = normalize_email(email)
    require_self(decoded, email)
    return [serialize_doc(p) for p in store.payments.find({"email": email})]


def iter_enrolled_classes(store: Store, payments: Iterable[Dict[str, Any]]) -> Iterator[Dict[str, Any]]:
    """Yield the class behind each payment, in payment order.

    A payment whose class no longer exists yields ``None`` fields.
    """
    for payment in payments:
        class_id = payment.get("class_id")
        try:
            doc = store.classes.find_one({"_id": ObjectId(class_id)})
        except (InvalidId, TypeError):
            doc = None
        if doc is None:
            logger.warning("Payment %s references missing class %s", payment.get("_id"), class_id)
            doc = {}
        yield {
            "class_id": class_id,
            "title": doc.get("title"),
            "image": doc.get("image"),
            "email": doc.get("email"),
        }


@app.get("/enrolled-classes/{email}")
def enrolled_classes(email: str, decoded=Depends(verify_token), store: Store = Depends(get_store)):
    email = normalize_email(email)
    require_self(decoded, email)
    return list(iter_enrolled_classes(store, store.payments.find({"email": email})))


# ----------------------
# Admin endpoints
# ----------------------
@app.get("/users")
def list_users(admin=Depends(verify_admin), store: Store = Depends(get_store)):
    return [serialize_doc(u) for u in store.users.find()]


@app.get("/teachers")
def list_teacher_requests(admin=Depends(verify_admin), store: Store = Depends(get_store)):
    return [serialize_doc(t) for t in store.teachers.find()]


@app.get("/classes")
def list_classes(admin=Depends(verify_admin), store: Store = Depends(get_store)):
    return [serialize_doc(c) for c in store.classes.find()]


@app.patch("/users/admin/{user_id}")
def make_admin(user_id: str, admin=Depends(verify_admin), store: Store = Depends(get_store)):
    res = store.users.update_one({"_id": oid(user_id)}, {"$set": {"role": "Admin"}})
    return update_summary(res)


def transition_teacher(store: Store, email: str, status: Status, role: Role) -> Dict[str, Any]:
    """Set a teacher request's status and the matching user's role.

    These are two separate writes. If the second one fails the first is
    not undone, and the pair is left out of step.
    """
    if not email.strip():
        raise BadRequest("Email is required")
    email = normalize_email(email)
    query = {"email": email}
    try:
        request_result = store.teachers.update_one(query, {"$set": {"status": status}})
    except PyMongoError:
        logger.exception("Failed to set teacher request %s to %s", email, status)
        raise Internal("Failed to update user role")
    try:
        user_result = store.users.update_one(query, {"$set": {"role": role}})
    except PyMongoError:
        logger.exception(
            "Teacher request %s is %s but setting role %s failed; records are out of step",
            email,
            status,
            role,
        )
        raise Internal("Failed to update user role")
    if user_result.matched_count == 0:
        raise NotFound("User not found")
    return {"teacher_request": update_summary(request_result), "user": update_summary(user_result)}


@app.patch("/users/teacher-approve/{email}")
def approve_teacher(email: str, admin=Depends(verify_admin), store: Store = Depends(get_store)):
    return transition_teacher(store, email, "Accepted", "Teacher")


@app.patch("/users/teacher-reject/{email}")
def reject_teacher(email: str, admin=Depends(verify_admin), store: Store = Depends(get_store)):
    return transition_teacher(store, email, "Rejected", "Student")


def transition_class(store: Store, class_id: str, status: Status) -> Dict[str, Any]:
    if not class_id.strip():
        raise BadRequest("Something went wrong.")
    query = {"_id": oid(class_id)}
    try:
        res = store.classes.update_one(query, {"$set": {"status": status}})
    except PyMongoError:
        logger.exception("Failed to set class %s to %s", class_id, status)
        raise Internal("Failed to update class status")
    return update_summary(res)


@app.patch("/admin/approve-class/{class_id}")
def approve_class(class_id: str, admin=Depends(verify_admin), store: Store = Depends(get_store)):
    return transition_class(store, class_id, "Accepted")


@app.patch("/admin/reject-class/{class_id}")
def reject_class(class_id: str, admin=Depends(verify_admin), store: Store = Depends(get_store)):
    return transition_class(store, class_id, "Rejected")


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
