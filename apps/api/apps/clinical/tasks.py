"""
Celery tasks for the appointment engine.
"""
from celery import shared_task


@shared_task(name='apps.clinical.tasks.scan_appointment_reminders', ignore_result=True)
def scan_appointment_reminders():
    """
    Periodic reminder scan (scheduled by CELERY_BEAT_SCHEDULE).

    Returns:
        dict: scan summary
    """
    from apps.clinical.reminders import scan_appointment_reminders as scan

    return scan()
