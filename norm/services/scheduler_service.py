"""
nORM - Background Scheduler
Runs the cron jobs in-process with APScheduler when no external cron is wired up
"""
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = None

SCHEDULE = [
    ('check-serp', CronTrigger(hour=5, minute=0), 'Daily SERP Check'),
    ('calculate-reputation', CronTrigger(hour=6, minute=0), 'Daily Reputation Score'),
    ('sync-social', IntervalTrigger(hours=2), 'Social Mentions Sync'),
    ('scrape-news', IntervalTrigger(hours=6), 'News Scrape'),
    ('send-alerts', CronTrigger(minute=0), 'Hourly Alert Emails'),
    ('auto-generate-content', CronTrigger(hour=7, minute=0), 'Daily Counter-Content'),
]


def init_scheduler(app):
    """Initialize the background scheduler with the Flask app context"""
    global scheduler

    if scheduler is not None:
        logger.info("Scheduler already initialized")
        return scheduler

    scheduler = BackgroundScheduler(
        job_defaults={
            'coalesce': True,  # Combine missed runs into one
            'max_instances': 1,
            'misfire_grace_time': 3600
        }
    )

    for job_name, trigger, label in SCHEDULE:
        scheduler.add_job(
            func=run_scheduled_job,
            trigger=trigger,
            id=job_name,
            name=label,
            replace_existing=True,
            kwargs={'app': app, 'job_name': job_name}
        )

    scheduler.start()
    logger.info(f"Scheduled jobs added: {', '.join(name for name, _, _ in SCHEDULE)}")

    return scheduler


def run_scheduled_job(app, job_name):
    """Run one cron job inside the app context"""
    from norm.services.cron_service import run_job

    with app.app_context():
        try:
            result = run_job(job_name)
            logger.info(f"Scheduled {job_name} done: {result.to_dict()}")
        except Exception as e:
            logger.error(f"Scheduled {job_name} failed: {e}", exc_info=True)


def get_scheduler_status():
    """Get current scheduler status and job list"""
    if scheduler is None:
        return {'status': 'not_initialized', 'jobs': []}

    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            'id': job.id,
            'name': job.name,
            'next_run': job.next_run_time.isoformat() if job.next_run_time else None,
            'trigger': str(job.trigger)
        })

    return {
        'status': 'running' if scheduler.running else 'stopped',
        'jobs': jobs
    }
