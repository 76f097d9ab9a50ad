import logging
import re
from typing import Any, Dict, List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sweetshop import auth, models
from sweetshop.errors import AuthenticationError, Conflict, ValidationError
from sweetshop.schemas import UserResponse

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 8
MAX_NAME_LENGTH = 255
MAX_EMAIL_LENGTH = 255
DUPLICATE_EMAIL = "An account with this email already exists."
BAD_CREDENTIALS = "Invalid email or password."


def register_user(db: Session, payload: Dict[str, Any]) -> dict:
    name = payload.get("name")
    email = payload.get("email")
    password = payload.get("password")
    role = payload.get("role")

    errors: List[Dict[str, str]] = []
    if not isinstance(name, str) or name.strip() == "":
        errors.append({"field": "name", "message": "Name is required."})
    elif len(name.strip()) > MAX_NAME_LENGTH:
        errors.append({"field": "name", "message": f"Name must be at most {MAX_NAME_LENGTH} characters."})

    if not isinstance(email, str) or email.strip() == "":
        errors.append({"field": "email", "message": "Email is required."})
    elif len(email.strip()) > MAX_EMAIL_LENGTH:
        errors.append({"field": "email", "message": f"Email must be at most {MAX_EMAIL_LENGTH} characters."})
    elif not EMAIL_RE.fullmatch(email.strip()):
        errors.append({"field": "email", "message": "Please provide a valid email address."})

    if not isinstance(password, str) or password == "":
        errors.append({"field": "password", "message": "Password is required."})
    elif len(password) < MIN_PASSWORD_LENGTH:
        errors.append({
            "field": "password",
            "message": f"Password is too weak. It must be at least {MIN_PASSWORD_LENGTH} characters long.",
        })

    if role is not None and role not in models.ROLES:
        errors.append({"field": "role", "message": "Role must be either 'ADMIN' or 'CUSTOMER'."})

    if errors:
        raise ValidationError(f"Invalid input for {errors[0]['field']}.", data=errors)

    processed_email = email.strip().lower()
    if db.query(models.User).filter(models.User.email == processed_email).first():
        raise Conflict(DUPLICATE_EMAIL)

    user = models.User(
        name=name.strip(),
        email=processed_email,
        password=auth.get_password_hash(password),
        role=role or models.ROLE_CUSTOMER,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict(DUPLICATE_EMAIL)
    db.refresh(user)

    logger.info("Registered user %s with role %s", user.id, user.role)
    return UserResponse.model_validate(user).to_json()


def login_user(db: Session, payload: Dict[str, Any]) -> dict:
    email = payload.get("email")
    password = payload.get("password")

    if not isinstance(email, str) or not isinstance(password, str) \
            or email.strip() == "" or password.strip() == "":
        raise ValidationError("Email and password are required.")

    processed_email = email.strip().lower()
    if not EMAIL_RE.fullmatch(processed_email):
        raise ValidationError("Please provide a valid email address.")

    user = db.query(models.User).filter(models.User.email == processed_email).first()
    if not user or not auth.verify_password(password, user.password):
        raise AuthenticationError(BAD_CREDENTIALS)

    token = auth.create_access_token(user.id, user.role)
    return {
        "user": UserResponse.model_validate(user).to_json(),
        "token": token,
    }


def get_verified_user(db: Session, claims: auth.TokenClaims) -> dict:
    user = db.query(models.User).filter(models.User.id == claims.id).first()
    if not user:
        raise AuthenticationError("User not found.", data={"valid": False, "user": None})
    return {"valid": True, "user": UserResponse.model_validate(user).to_json()}
