from __future__ import annotations

import logging
from typing import Tuple

from flask import Blueprint, request, jsonify, abort
from sqlalchemy import func

from models import storage
from models.category import Category
from models.schemas.category import (
    CategoryCreateSchema,
    CategoryUpdateSchema,
    CategoryOutSchema,
)
from utils.decorators import admin_session_required
from utils.errors import AppError, ErrorKind, Message
from utils.tokens import AccessRecord

logger = logging.getLogger(__name__)

bp = Blueprint("categories", __name__)

create_schema = CategoryCreateSchema()
update_schema = CategoryUpdateSchema()
out_schema = CategoryOutSchema()
out_list_schema = CategoryOutSchema(many=True)

MAX_LIMIT = 100

MSG_CATEGORY_NOT_FOUND = Message("store.category.get.app_error", "category not found")
MSG_CATEGORY_EXISTS = Message("store.category.save.unique.app_error", "category name or slug already exists")


def parse_pagination() -> Tuple[int, int]:
    try:
        page = int(request.args.get("page", "1"))
        limit = int(request.args.get("limit", "20"))
        page = max(page, 1)
        limit = max(1, min(limit, MAX_LIMIT))
        return page, limit
    except ValueError:
        abort(400, description="page and limit must be integers")


def parse_sort(default="name"):
    sort = request.args.get("sort", default)
    desc = sort.startswith("-")
    key = sort[1:] if desc else sort
    if key != "name":
        abort(400, description="Unsupported sort field. Allowed: name")
    return (Category.name.desc() if desc else Category.name.asc(),)


def exists_case_insensitive(session, name: str, slug: str | None, exclude_id: int | None = None) -> bool:
    cond = func.lower(Category.name) == name.lower()
    if slug:
        cond = cond | (Category.slug == slug)
    q = session.query(Category).filter(cond)
    if exclude_id:
        q = q.filter(Category.id != exclude_id)
    # Only active categories count for name uniqueness
    q = q.filter(Category.deleted_at.is_(None))
    return session.query(q.exists()).scalar()


def get_active_or_404(category_id: int) -> Category:
    c = storage.get(Category, category_id)
    if not c or c.is_deleted:
        raise AppError("api.getCategory", ErrorKind.NOT_FOUND, MSG_CATEGORY_NOT_FOUND, 404)
    return c


@bp.post("/categories")
@admin_session_required
def create_category(access: AccessRecord):
    """
    Create a category - admin
    ---
    tags: [Categories]
    security:
      - Bearer: []
    consumes: [application/json]
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          properties:
            name: { type: string, maxLength: 64 }
            slug: { type: string, maxLength: 64 }
            description: { type: string }
            is_featured: { type: boolean }
            properties: { type: object }
    responses:
      201: { description: Created }
      403: { description: Forbidden }
      409: { description: Name already exists }
      422: { description: Validation error }
    """
    session = storage.get_session()
    data = create_schema.load(request.get_json(silent=True) or {})
    if exists_case_insensitive(session, data["name"], data["slug"]):
        raise AppError("api.createCategory", ErrorKind.CONFLICT, MSG_CATEGORY_EXISTS, 409)
    c = Category(**data)
    storage.new(c)
    storage.save()
    logger.info("admin %s created category %s", access.user_id, c.id)
    return jsonify({"data": out_schema.dump(c)}), 201


@bp.get("/categories")
def list_categories():
    """
    List categories (pagination, sorting, q search, featured filter)
    ---
    tags: [Categories]
    parameters:
      - in: query
        name: page
        type: integer
        default: 1
      - in: query
        name: limit
        type: integer
        default: 20
      - in: query
        name: sort
        type: string
        default: name
        description: "Allowed: name or -name"
      - in: query
        name: q
        type: string
      - in: query
        name: featured
        type: boolean
        default: false
    responses:
      200: { description: OK }
    """
    session = storage.get_session()
    page, limit = parse_pagination()
    order_by = parse_sort()

    featured = request.args.get("featured", "false").lower() in ("1", "true", "yes")
    q = request.args.get("q")

    query = session.query(Category).filter(Category.deleted_at.is_(None))
    if featured:
        query = query.filter(Category.is_featured.is_(True))
    if q:
        qnorm = f"%{q.strip().lower()}%"
        query = query.filter(func.lower(Category.name).like(qnorm))

    total = query.count()
    rows = query.order_by(*order_by).offset((page - 1) * limit).limit(limit).all()
    return jsonify({"data": out_list_schema.dump(rows), "meta": {"page": page, "limit": limit, "total": total}})


@bp.get("/categories/<int:category_id>")
def get_category(category_id: int):
    """
    Get a category by id
    ---
    tags: [Categories]
    parameters:
      - in: path
        name: category_id
        type: integer
        required: true
    responses:
      200: { description: OK }
      404: { description: Not found }
    """
    return jsonify({"data": out_schema.dump(get_active_or_404(category_id))})


@bp.patch("/categories/<int:category_id>")
@admin_session_required
def update_category(category_id: int, access: AccessRecord):
    """
    Update a category (partial) - admin
    ---
    tags: [Categories]
    security:
      - Bearer: []
    parameters:
      - in: path
        name: category_id
        type: integer
        required: true
      - in: body
        name: body
        required: true
        schema:
          type: object
          properties:
            name: { type: string, maxLength: 64 }
            slug: { type: string, maxLength: 64 }
            description: { type: string }
            is_featured: { type: boolean }
    responses:
      200: { description: OK }
      404: { description: Not found }
      409: { description: Name already exists }
      422: { description: Validation error }
    """
    session = storage.get_session()
    c = get_active_or_404(category_id)
    data = update_schema.load(request.get_json(silent=True) or {})
    if "name" in data or "slug" in data:
        name = data.get("name", c.name)
        if exists_case_insensitive(session, name, data.get("slug"), exclude_id=c.id):
            raise AppError("api.patchCategory", ErrorKind.CONFLICT, MSG_CATEGORY_EXISTS, 409)
    for key, value in data.items():
        setattr(c, key, value)
    storage.new(c)
    storage.save()
    return jsonify({"data": out_schema.dump(c)})


@bp.delete("/categories/<int:category_id>")
@admin_session_required
def delete_category(category_id: int, access: AccessRecord):
    """
    Soft delete a category (sets deleted_at) - admin
    ---
    tags: [Categories]
    security:
      - Bearer: []
    parameters:
      - in: path
        name: category_id
        type: integer
        required: true
    responses:
      204: { description: Deleted }
      404: { description: Not found }
    """
    c = get_active_or_404(category_id)
    c.delete()  # Soft delete via mixin
    logger.info("admin %s deleted category %s", access.user_id, c.id)
    return ("", 204)


@bp.post("/categories/<int:category_id>/restore")
@admin_session_required
def restore_category(category_id: int, access: AccessRecord):
    """
    Restore a soft deleted category - admin
    ---
    tags: [Categories]
    security:
      - Bearer: []
    parameters:
      - in: path
        name: category_id
        type: integer
        required: true
    responses:
      200: { description: Restored }
      404: { description: Not found or not deleted }
      409: { description: An active category already uses the name or slug }
    """
    session = storage.get_session()
    c = storage.get(Category, category_id)
    if not c or not c.is_deleted:
        raise AppError("api.restoreCategory", ErrorKind.NOT_FOUND, MSG_CATEGORY_NOT_FOUND, 404)
    if exists_case_insensitive(session, c.name, c.slug, exclude_id=c.id):
        raise AppError("api.restoreCategory", ErrorKind.CONFLICT, MSG_CATEGORY_EXISTS, 409)
    c.restore()
    logger.info("admin %s restored category %s", access.user_id, c.id)
    return jsonify({"data": out_schema.dump(c)})
