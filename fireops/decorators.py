"""
Route decorators for access control.

One declarative policy for every API handler:

    @role_required(*OFFICE)
    @role_required(*STAFF, assigned_job=True)

- Login is required (Flask-Login; JSON 401 when missing).
- The caller's role must be in the allow-list (403 otherwise).
- With assigned_job=True the job named by the ``job_id`` URL argument is
  loaded into ``g.job`` (404 when missing). Field roles must hold an
  assignment on it, and a manager who leads a team only reaches that
  team's jobs (403 either way).
"""

from functools import wraps

from flask import g
from flask_login import current_user, login_required

from fireops.errors import AccessDenied, NotFound

ADMIN = ("admin",)
OFFICE = ("admin", "manager")
FIELD = ("technician", "inspector")
STAFF = OFFICE + FIELD


def is_field_role(user):
    return user.role in FIELD


def role_required(*roles, assigned_job=False):
    """Require login, one of ``roles``, and optionally a job assignment."""

    def decorator(f):
        @wraps(f)
        @login_required
        def decorated(*args, **kwargs):
            if current_user.role not in roles:
                raise AccessDenied("Insufficient permissions")

            if assigned_job:
                from fireops.extensions import db
                from fireops.models.job import Job, JobAssignment

                job = db.session.get(Job, kwargs.get("job_id"))
                if job is None:
                    raise NotFound("Job not found")

                if (
                    current_user.role == "manager"
                    and current_user.team_id
                    and job.team_id != current_user.team_id
                ):
                    raise AccessDenied("Job belongs to another team")

                if is_field_role(current_user):
                    assignment = JobAssignment.query.filter_by(
                        job_id=job.id, user_id=current_user.id
                    ).first()
                    if assignment is None:
                        raise AccessDenied("Not assigned to this job")

                g.job = job

            return f(*args, **kwargs)

        return decorated

    return decorator
