"""
nORM - Cron Routes
Scheduler-triggered jobs, authenticated with the shared cron secret
"""
from flask import Blueprint, jsonify

from norm.errors import NotFoundError
from norm.routes.auth import cron_required
from norm.services.cron_service import JOBS, run_job

cron_bp = Blueprint('cron', __name__)


@cron_bp.route('/<job_name>', methods=['POST'])
@cron_required
def trigger_job(job_name):
    """
    POST /api/cron/<job_name>
    Authorization: Bearer <CRON_SECRET>

    Jobs: check-serp, calculate-reputation, sync-social, scrape-news,
    send-alerts, auto-generate-content
    """
    if job_name not in JOBS:
        raise NotFoundError('Cron job', job_name)

    result = run_job(job_name)
    return jsonify(result.to_dict())


@cron_bp.route('', methods=['GET'])
@cron_required
def list_jobs():
    """Registered jobs and, when the in-process scheduler runs, their next run times"""
    from norm.services.scheduler_service import get_scheduler_status

    return jsonify({
        'jobs': sorted(JOBS.keys()),
        'scheduler': get_scheduler_status()
    })
