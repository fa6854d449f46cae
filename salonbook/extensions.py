"""Shared Flask extensions for the application."""
from __future__ import annotations

from celery import Celery, Task
from flask import Flask
from flask_sqlalchemy import SQLAlchemy

# SQLAlchemy database instance shared across the app.
db = SQLAlchemy()


def celery_init_app(app: Flask) -> Celery:
    """Bind a Celery application to ``app`` so tasks run inside its context."""

    class FlaskTask(Task):
        def __call__(self, *args: object, **kwargs: object) -> object:
            with app.app_context():
                return self.run(*args, **kwargs)

    celery_app = Celery(app.name, task_cls=FlaskTask)
    celery_app.config_from_object(app.config["CELERY"])
    celery_app.set_default()
    app.extensions["celery"] = celery_app
    return celery_app
