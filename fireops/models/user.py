"""User (staff profile) and team models.

Stores authentication credentials, role and team membership.
Flask-Login integration via UserMixin.
"""

import uuid

from flask_login import UserMixin

from fireops.extensions import db


class Team(db.Model):
    __tablename__ = "teams"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    manager_id = db.Column(db.String(36), nullable=True)  # user id, not enforced
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    members = db.relationship("User", back_populates="team", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "manager_id": self.manager_id,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Team {self.name}>"


class User(UserMixin, db.Model):
    __tablename__ = "users"

    ROLES = ["admin", "manager", "technician", "inspector"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(255))
    phone = db.Column(db.String(50), nullable=True)
    role = db.Column(
        db.String(20), nullable=False, default="technician"
    )  # admin | manager | technician | inspector
    team_id = db.Column(
        db.String(36), db.ForeignKey("teams.id"), nullable=True
    )
    is_active = db.Column(db.Boolean, default=True)
    last_login = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    team = db.relationship("Team", back_populates="members")
    assignments = db.relationship(
        "JobAssignment", back_populates="user", lazy="dynamic"
    )

    @property
    def is_admin(self):
        return self.role == "admin"

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "phone": self.phone,
            "role": self.role,
            "team_id": self.team_id,
            "is_active": self.is_active,
            "last_login": self.last_login.isoformat() if self.last_login else None,
        }

    def __repr__(self):
        return f"<User {self.email} ({self.role})>"
