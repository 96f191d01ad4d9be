from functools import wraps

from flask import Blueprint, request, jsonify
from extensions import db
from models import User, RoleEnum
from flask_jwt_extended import (
    create_access_token,
    get_jwt,
    get_jwt_identity,
    jwt_required,
    set_access_cookies,
    unset_jwt_cookies,
    verify_jwt_in_request,
)
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt import PyJWTError
from sqlalchemy import func

from schemas import UserSchema

bp = Blueprint("auth", __name__, url_prefix="/api/auth")

user_schema = UserSchema()


def current_user():
    """Return the user behind the request's JWT, or ``None``."""

    try:
        verify_jwt_in_request(optional=True)
    except (JWTExtendedException, PyJWTError):  # invalid or expired tokens count as anonymous
        return None
    identity = get_jwt_identity()
    if identity is None:
        return None
    try:
        user = db.session.get(User, int(identity))
    except (TypeError, ValueError):
        return None
    if user is None or not user.active:
        return None
    return user


def is_authenticated() -> bool:
    return current_user() is not None


def require_role(*roles: RoleEnum) -> bool:
    """Return ``True`` if the current JWT belongs to one of the roles."""

    claims = get_jwt()
    try:
        current_role = RoleEnum(claims.get("role"))
    except (ValueError, TypeError):
        return False
    return current_role in roles


def roles_required(*roles: RoleEnum, message: str = "Not allowed"):
    """Reject the request with 403 unless the JWT carries one of ``roles``."""

    def decorator(fn):
        @wraps(fn)
        @jwt_required()
        def wrapper(*args, **kwargs):
            if not require_role(*roles):
                return jsonify({"msg": message}), 403
            return fn(*args, **kwargs)

        return wrapper

    return decorator


@bp.post("/register")
@jwt_required()  # only admins can register
def register():
    if not require_role(RoleEnum.admin):
        return jsonify({"msg": "Admins only"}), 403

    data = request.get_json() or {}
    email = (data.get("email") or "").strip().lower()
    name = (data.get("name") or "").strip()
    role = data.get("role")
    password = data.get("password")

    if not email or not name or not role or not password:
        return jsonify({"msg": "Name, email, role, and password are required"}), 400

    try:
        role_enum = RoleEnum(role)
    except ValueError:
        return jsonify({"msg": "Invalid role"}), 400

    if User.query.filter(func.lower(User.email) == email).first():
        return jsonify({"msg": "Email already registered"}), 409

    u = User(name=name, email=email, role=role_enum)
    u.set_password(password)
    db.session.add(u)
    db.session.commit()
    return jsonify({"id": u.id}), 201

@bp.post("/login")
def login():
    payload = request.get_json(silent=True)
    if not payload:
        payload = request.form.to_dict() if request.form else {}

    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""

    if not email or not password:
        return jsonify({"msg": "Email and password are required"}), 400

    u = User.query.filter(func.lower(User.email) == email).first()
    if not u or not u.check_password(password) or not u.active:
        return jsonify({"msg": "Invalid email or password"}), 401

    token = create_access_token(identity=str(u.id), additional_claims={"role": u.role.value})
    response = jsonify(access_token=token, user=user_schema.dump(u))
    set_access_cookies(response, token)
    return response


@bp.get("/me")
@jwt_required()
def me():
    user = current_user()
    if user is None:
        return jsonify({"msg": "User not found"}), 404
    return jsonify(user_schema.dump(user))


@bp.post("/logout")
def logout():
    response = jsonify({"msg": "Logged out"})
    unset_jwt_cookies(response)
    return response
