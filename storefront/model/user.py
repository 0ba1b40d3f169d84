# --- storefront/model/user.py ---

from ..extensions import db
from ..utils.parse import utcnow


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(180), nullable=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False, default="")
    created_at = db.Column(db.DateTime, default=utcnow)

    def as_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            }
