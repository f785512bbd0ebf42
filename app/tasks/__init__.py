from app.tasks.cleanup import cleanup_old_logs, maybe_schedule_cleanup

__all__ = [
    'cleanup_old_logs',
    'maybe_schedule_cleanup'
]
