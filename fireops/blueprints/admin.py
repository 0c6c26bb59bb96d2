"""Admin blueprint — /api/admin/*

Staff invitations and team management.

Route Map:
  GET   /api/admin/invite          — List staff profiles (admin)
  POST  /api/admin/invite          — Invite a staff member (admin)
  GET   /api/admin/teams           — List teams (office)
  POST  /api/admin/teams           — Create team (admin)
  PATCH /api/admin/teams/<id>      — Update team (admin)
"""

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user

from fireops.decorators import ADMIN, OFFICE, role_required
from fireops.errors import NotFound, ValidationFailed
from fireops.extensions import db
from fireops.models.user import Team, User
from fireops.services import invite_service
from fireops.validation import sanitize

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")

TEAM_FIELDS = ["name", "description", "manager_id", "is_active"]


# ══════════════════════════════════════════════
#  STAFF
# ══════════════════════════════════════════════

@admin_bp.route("/invite", methods=["GET"])
@role_required(*ADMIN)
def list_staff():
    query = User.query
    if request.args.get("team_id"):
        query = query.filter(User.team_id == request.args["team_id"])
    if request.args.get("role"):
        query = query.filter(User.role == request.args["role"])
    if request.args.get("is_active") is not None:
        is_active = request.args["is_active"].lower() in ("true", "1", "yes")
        query = query.filter(User.is_active == is_active)

    users = query.order_by(User.created_at.desc()).all()
    return jsonify({"success": True, "data": [u.to_dict() for u in users]})


@admin_bp.route("/invite", methods=["POST"])
@role_required(*ADMIN)
def invite_staff():
    """Create an inactive staff profile and email them an invite link."""
    user, invite = invite_service.invite_staff(
        request.get_json(silent=True) or {}, invited_by=current_user.id
    )
    db.session.commit()
    logger.info(f"Staff invite for {user.email} ({user.role}) sent by {current_user.email}")

    return jsonify({
        "success": True,
        "message": f"Invitation sent to {user.email}",
        "data": {
            "user": user.to_dict(),
            "invite_url": invite_service.invite_url(invite),
            "expires_at": invite.expires_at.isoformat(),
        },
    }), 201


# ══════════════════════════════════════════════
#  TEAMS
# ══════════════════════════════════════════════

@admin_bp.route("/teams", methods=["GET"])
@role_required(*OFFICE)
def list_teams():
    teams = Team.query.order_by(Team.name.asc()).all()
    data = []
    for team in teams:
        item = team.to_dict()
        item["member_count"] = team.members.count()
        data.append(item)
    return jsonify({"success": True, "data": data})


@admin_bp.route("/teams", methods=["POST"])
@role_required(*ADMIN)
def create_team():
    data = request.get_json(silent=True) or {}
    name = sanitize(data.get("name"))
    if not name:
        raise ValidationFailed("Team name is required")

    team = Team(
        name=name,
        description=sanitize(data.get("description")) or None,
        manager_id=data.get("manager_id") or None,
    )
    db.session.add(team)
    db.session.commit()
    return jsonify({"success": True, "data": team.to_dict()}), 201


@admin_bp.route("/teams/<team_id>", methods=["PATCH"])
@role_required(*ADMIN)
def update_team(team_id):
    team = db.session.get(Team, team_id)
    if team is None:
        raise NotFound("Team not found")

    data = request.get_json(silent=True) or {}
    updates = {k: v for k, v in data.items() if k in TEAM_FIELDS}
    if not updates:
        raise ValidationFailed("No fields to update")

    if "name" in updates:
        updates["name"] = sanitize(updates["name"])
        if not updates["name"]:
            raise ValidationFailed("Team name cannot be empty")
    if "description" in updates:
        updates["description"] = sanitize(updates["description"]) or None
    if "is_active" in updates:
        updates["is_active"] = bool(updates["is_active"])

    for key, value in updates.items():
        setattr(team, key, value)
    db.session.commit()
    return jsonify({"success": True, "data": team.to_dict()})
