from celery import Celery

# Worker and beat both load the schedule from app.config.celeryconfig
celery = Celery("taskpulse")
celery.config_from_object("app.config.celeryconfig")
