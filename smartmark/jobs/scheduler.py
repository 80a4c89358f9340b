import os

from apscheduler.schedulers.background import BackgroundScheduler

from smartmark.services.changes import prune_change_feed


scheduler = BackgroundScheduler()


def run_change_feed_sweep(app):
    with app.app_context():
        events_removed, subscriptions_removed = prune_change_feed(
            retention_hours=app.config["CHANGE_EVENT_RETENTION_HOURS"],
            idle_minutes=app.config["SUBSCRIPTION_IDLE_MINUTES"],
        )
        if events_removed or subscriptions_removed:
            app.logger.info(
                "Pruned %s change events and %s idle subscriptions",
                events_removed,
                subscriptions_removed,
            )


def start_scheduler(app):
    if not app.config.get("SCHEDULER_ENABLED", True):
        return
    if os.environ.get("WERKZEUG_RUN_MAIN") == "false":
        return

    if not scheduler.get_jobs():
        scheduler.add_job(
            run_change_feed_sweep,
            "interval",
            minutes=app.config["CHANGE_SWEEP_INTERVAL_MINUTES"],
            kwargs={"app": app},
            id="change_feed_sweep",
            replace_existing=True,
        )
        scheduler.start()
