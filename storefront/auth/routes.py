from flask import current_app
from werkzeug.security import generate_password_hash, check_password_hash
from flask_jwt_extended import create_access_token
from sqlalchemy.exc import IntegrityError

from . import bp
from ..model import User
from ..extensions import db
from ..errors import EmailTaken, InvalidCredential, ValidationError
from ..utils.api import json_body, ok

MIN_PASSWORD_LENGTH = 6


def _credentials(data):
    email = data.get("email")
    password = data.get("password")
    email = email.strip().lower() if isinstance(email, str) else ""
    password = password if isinstance(password, str) else ""
    return email, password


@bp.post("/register")
def register():
    data = json_body()
    email, password = _credentials(data)
    name = data.get("name")
    name = name.strip() if isinstance(name, str) else None

    if not email or "@" not in email:
        raise ValidationError("A valid email is required")
    if len(email) > 255:
        raise ValidationError("email must be at most 255 characters")
    if name and len(name) > 180:
        raise ValidationError("name must be at most 180 characters")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password required, min {MIN_PASSWORD_LENGTH} chars")
    if User.query.filter_by(email=email).first():
        raise EmailTaken()

    user = User(email=email, password_hash=generate_password_hash(password), name=name or None)
    try:
        db.session.add(user)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise EmailTaken() from None

    current_app.logger.info("user %s registered", user.id)
    return ok(user.as_dict(), 201)


@bp.post("/login")
def login():
    data = json_body()
    email, password = _credentials(data)
    if not email or not password:
        raise ValidationError("Email and password are required")

    user = User.query.filter_by(email=email).first()
    if not user or not check_password_hash(user.password_hash, password):
        raise InvalidCredential()

    token = create_access_token(identity=str(user.id), additional_claims={"email": user.email})
    return ok({"token": token, "user": user.as_dict()})
