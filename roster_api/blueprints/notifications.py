from flask import Blueprint, request, current_app

from roster_api.common.auth import requires_roles
from roster_api.common.errors import NotFoundError, ValidationError
from roster_api.common.http import ok
from roster_api.common.paging import page_limit
from roster_api.extensions import db
from roster_api.models.notification import NotificationJob, JOB_STATUSES, JOB_FAILED
from roster_api.services.notifications import NotificationQueue

bp = Blueprint("notifications", __name__, url_prefix="/api/v1/notifications")


@bp.get("/jobs")
@requires_roles("admin")
def list_jobs():
    """?status=pending|retrying|sent|failed&page=&size="""
    status = (request.args.get("status") or "").strip().lower() or None
    if status and status not in JOB_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(JOB_STATUSES)}")
    page, size = page_limit()

    q = NotificationJob.query
    if status:
        q = q.filter(NotificationJob.status == status)
    total = q.count()
    items = q.order_by(NotificationJob.id.desc()).offset((page - 1) * size).limit(size).all()
    return ok([j.to_dict() for j in items], page=page, size=size, total=total)


@bp.post("/jobs/<int:job_id>/retry")
@requires_roles("admin")
def retry_job(job_id: int):
    job = db.session.get(NotificationJob, job_id)
    if not job:
        raise NotFoundError("Notification job not found")
    if job.status != JOB_FAILED:
        raise ValidationError("Only failed jobs can be retried")
    cfg = current_app.extensions["notify_config"]
    fresh = NotificationQueue(cfg.max_attempts, cfg.backoff_seconds).retry_failed(job)
    worker = current_app.extensions.get("notification_worker")
    if worker is not None:
        worker.wake()
    return ok(fresh.to_dict(), status=201)


@bp.get("/recipients")
@requires_roles("admin")
def list_recipients():
    cfg = current_app.extensions["notify_config"]
    return ok({
        "recipients": dict(cfg.recipients),
        "employee_copy": cfg.employee_copy,
        "aggregate": cfg.aggregate,
    })
