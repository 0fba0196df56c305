import logging
import math
import os
import re
from typing import Dict, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import PlainTextResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError
from pymongo import ReturnDocument
from pymongo.database import Database

from api import join_fish
from config import Settings
from database import create_document, get_db, now, serialize_doc, to_object_id
from schemas import ORDER_STATUSES, CamelModel, Fish, OrderStatus
from security import get_settings, require_admin_session, verify_password
from uploads import UploadRejected, has_file, plan_upload, save_upload

logger = logging.getLogger(__name__)

templates = Jinja2Templates(directory=os.path.join(os.path.dirname(os.path.abspath(__file__)), "templates"))

DASHBOARD_LIMIT = 20
USERS_PER_PAGE = 10

# Login/logout are open; everything on `console` needs an admin session.
router = APIRouter()
console = APIRouter(dependencies=[Depends(require_admin_session)])


class StatusBody(CamelModel):
    status: OrderStatus


def name_filter(search: str) -> dict:
    return {"name": {"$regex": re.escape(search), "$options": "i"}} if search else {}


def form_errors(exc: ValidationError) -> Dict[str, str]:
    errors = {}
    for err in exc.errors():
        field = str(err["loc"][0]) if err["loc"] else "form"
        errors.setdefault(field, err["msg"].removeprefix("Value error, "))
    return errors


def parse_price(raw: Optional[str]):
    """Form prices arrive as text; leave bad input for the schema to reject."""
    if raw is None or raw.strip() == "":
        return None
    try:
        return float(raw)
    except ValueError:
        return raw


def plan_media(photo: Optional[UploadFile], video: Optional[UploadFile], settings: Settings):
    """Return ({field: (upload, stored_name)}, {field: error}) for the uploaded media."""
    max_bytes = settings.max_upload_mb * 1024 * 1024
    planned, errors = {}, {}
    for field, upload, kind in (("photo", photo, "image"), ("video", video, "video")):
        if not has_file(upload):
            continue
        try:
            planned[field] = (upload, plan_upload(upload, kind, max_bytes))
        except UploadRejected as e:
            errors[field] = str(e)
    return planned, errors


def not_found(what: str):
    return PlainTextResponse(f"{what} not found", status_code=404)


# ----------------------- Login -----------------------
@router.get("/")
def login_form(request: Request):
    return templates.TemplateResponse(request, "login.html", {"error": None})


@router.post("/")
def login(request: Request, email: str = Form(""), password: str = Form(""), db: Database = Depends(get_db)):
    admin = db["admin"].find_one({"email": email.strip().lower()})
    if admin and verify_password(password, admin.get("password_hash")):
        request.session["is_admin_logged_in"] = True
        request.session["admin_email"] = admin["email"]
        return RedirectResponse("/home", status_code=303)
    return templates.TemplateResponse(request, "login.html", {"error": "Invalid email or password"})


@router.get("/logout")
def logout(request: Request):
    request.session.clear()
    response = RedirectResponse("/", status_code=303)
    response.delete_cookie("session")
    return response


# ----------------------- Dashboard -----------------------
@console.get("/home")
def home(request: Request, search: str = "", db: Database = Depends(get_db)):
    fishes = db["fish"].find(name_filter(search)).sort("timestamp", -1).limit(DASHBOARD_LIMIT)
    orders_count = db["order"].count_documents({"status": "pending"})
    return templates.TemplateResponse(
        request,
        "fish/home.html",
        {"fishes": [serialize_doc(f) for f in fishes], "search": search, "orders_count": orders_count},
    )


# ----------------------- Fish CRUD -----------------------
@console.get("/create_fish")
def create_fish_form(request: Request):
    return templates.TemplateResponse(request, "fish/create.html", {"errors": {}, "form": {}})


@console.post("/create_fish")
def create_fish(
    request: Request,
    name: str = Form(""),
    price: Optional[str] = Form(None),
    type: str = Form(""),
    photo: Optional[UploadFile] = File(None),
    video: Optional[UploadFile] = File(None),
    settings: Settings = Depends(get_settings),
):
    form = {"name": name, "price": price, "type": type}
    planned, errors = plan_media(photo, video, settings)

    fish = None
    try:
        fish = Fish(
            name=name,
            price=parse_price(price),
            type=type,
            photo=f"/uploads/{planned['photo'][1]}" if "photo" in planned else "",
            video=f"/uploads/{planned['video'][1]}" if "video" in planned else None,
        )
    except ValidationError as e:
        for field, msg in form_errors(e).items():
            errors.setdefault(field, msg)

    if errors:
        return templates.TemplateResponse(
            request, "fish/create.html", {"errors": errors, "form": form}, status_code=400
        )

    for upload, filename in planned.values():
        save_upload(upload, settings.upload_dir, filename)
    fish_id = create_document("fish", fish)
    logger.info("Created fish %s (%s)", fish.name, fish_id)
    return RedirectResponse("/home", status_code=303)


@console.get("/retrieve_fish")
def retrieve_fish(request: Request, db: Database = Depends(get_db)):
    data = db["fish"].find({}).sort("timestamp", -1)
    return templates.TemplateResponse(request, "fish/retrieve.html", {"data": [serialize_doc(f) for f in data]})


def find_fish(db: Database, fish_id: str) -> Optional[dict]:
    oid = to_object_id(fish_id)
    return db["fish"].find_one({"_id": oid}) if oid else None


@console.get("/update_fish/{fish_id}")
def update_fish_form(request: Request, fish_id: str, db: Database = Depends(get_db)):
    fish = find_fish(db, fish_id)
    if not fish:
        return not_found("Fish")
    return templates.TemplateResponse(request, "fish/update.html", {"fish": serialize_doc(fish), "errors": {}})


@console.post("/update_fish/{fish_id}")
def update_fish(
    request: Request,
    fish_id: str,
    name: str = Form(""),
    price: Optional[str] = Form(None),
    type: str = Form(""),
    photo: Optional[UploadFile] = File(None),
    video: Optional[UploadFile] = File(None),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    existing = find_fish(db, fish_id)
    if not existing:
        return not_found("Fish")

    planned, errors = plan_media(photo, video, settings)

    fish = None
    try:
        # Media paths are only replaced when a new file came with this request.
        fish = Fish(
            name=name,
            price=parse_price(price),
            type=type,
            photo=f"/uploads/{planned['photo'][1]}" if "photo" in planned else existing.get("photo", ""),
            video=f"/uploads/{planned['video'][1]}" if "video" in planned else existing.get("video"),
        )
    except ValidationError as e:
        for field, msg in form_errors(e).items():
            errors.setdefault(field, msg)

    if errors:
        shown = serialize_doc(existing)
        shown.update({"name": name, "price": price, "type": type})
        return templates.TemplateResponse(
            request, "fish/update.html", {"fish": shown, "errors": errors}, status_code=400
        )

    for upload, filename in planned.values():
        save_upload(upload, settings.upload_dir, filename)
    update = fish.model_dump(include={"name", "price", "type", "photo", "video"})
    db["fish"].update_one({"_id": existing["_id"]}, {"$set": update})
    logger.info("Updated fish %s", fish_id)
    return RedirectResponse("/home", status_code=303)


@console.get("/delete_fish/{fish_id}")
def delete_fish_form(request: Request, fish_id: str, db: Database = Depends(get_db)):
    fish = find_fish(db, fish_id)
    if not fish:
        return not_found("Fish")
    return templates.TemplateResponse(request, "fish/delete.html", {"fish": serialize_doc(fish)})


@console.post("/delete_fish/{fish_id}")
def delete_fish(fish_id: str, db: Database = Depends(get_db)):
    fish = find_fish(db, fish_id)
    if not fish:
        return not_found("Fish")
    db["fish"].delete_one({"_id": fish["_id"]})
    logger.info("Deleted fish %s", fish_id)
    return RedirectResponse("/home", status_code=303)


# ----------------------- Users -----------------------
@console.get("/userlist")
def userlist(request: Request, page: int = 1, search: str = "", db: Database = Depends(get_db)):
    page = max(page, 1)
    filt = name_filter(search)
    total_users = db["user"].count_documents(filt)
    total_pages = math.ceil(total_users / USERS_PER_PAGE)
    users = (
        db["user"]
        .find(filt, {"password_hash": 0})
        .sort("created_at", -1)
        .skip((page - 1) * USERS_PER_PAGE)
        .limit(USERS_PER_PAGE)
    )
    return templates.TemplateResponse(
        request,
        "userlist.html",
        {
            "users": [serialize_doc(u) for u in users],
            "current_page": page,
            "total_pages": total_pages,
            "total_users": total_users,
            "search": search,
        },
    )


def set_user_active(db: Database, user_id: str, active: bool):
    """Best effort: failures are logged and the admin is sent back to the list anyway."""
    try:
        oid = to_object_id(user_id)
        if oid is None:
            raise ValueError(f"invalid user id {user_id!r}")
        db["user"].update_one({"_id": oid}, {"$set": {"is_active": active}})
        logger.info("User %s %s", user_id, "unblocked" if active else "blocked")
    except Exception:
        logger.exception("Could not set is_active=%s for user %s", active, user_id)


@console.get("/user/block/{user_id}")
def block_user(user_id: str, db: Database = Depends(get_db)):
    set_user_active(db, user_id, False)
    return RedirectResponse("/userlist", status_code=303)


@console.get("/user/unblock/{user_id}")
def unblock_user(user_id: str, db: Database = Depends(get_db)):
    set_user_active(db, user_id, True)
    return RedirectResponse("/userlist", status_code=303)


# ----------------------- Orders -----------------------
BUYER_FIELDS = {"name": 1, "email": 1, "phone": 1}


def join_buyer(db: Database, order: dict, fields: dict = BUYER_FIELDS) -> dict:
    order["user"] = db["user"].find_one({"_id": order.get("user_id")}, fields)
    return order


@console.get("/orders")
def orders(request: Request, db: Database = Depends(get_db)):
    docs = [join_fish(db, join_buyer(db, o)) for o in db["order"].find({}).sort("created_at", -1)]
    total_revenue = sum(o.get("total_amount", 0) for o in docs)
    pending_count = sum(1 for o in docs if o.get("status") == "pending")
    return templates.TemplateResponse(
        request,
        "orders.html",
        {
            "orders": [serialize_doc(o) for o in docs],
            "total_revenue": total_revenue,
            "pending_count": pending_count,
        },
    )


@console.get("/orders/{order_id}")
def order_detail(request: Request, order_id: str, db: Database = Depends(get_db)):
    oid = to_object_id(order_id)
    order = db["order"].find_one({"_id": oid}) if oid else None
    if not order:
        return not_found("Order")
    order = join_fish(db, join_buyer(db, order, {**BUYER_FIELDS, "address": 1}))
    return templates.TemplateResponse(
        request, "order_detail.html", {"order": serialize_doc(order), "statuses": ORDER_STATUSES}
    )


@console.post("/orders/{order_id}/status")
def update_order_status(order_id: str, body: StatusBody, db: Database = Depends(get_db)):
    # Any status is accepted from any status; there is no transition table.
    oid = to_object_id(order_id)
    order = None
    if oid:
        order = db["order"].find_one_and_update(
            {"_id": oid},
            {"$set": {"status": body.status, "updated_at": now()}},
            return_document=ReturnDocument.AFTER,
        )
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    logger.info("Order %s -> %s", order.get("order_number", order_id), body.status)
    order = join_fish(db, join_buyer(db, order))
    return {"message": f"Order updated to {body.status}", "order": serialize_doc(order)}
