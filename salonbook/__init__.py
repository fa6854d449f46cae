from collections.abc import Mapping

from flask import Flask
from flask_cors import CORS

from .availability import AvailabilityEngine
from .booking import BookingWorkflow
from .config import Config
from .extensions import celery_init_app, db
from .gateway import StoreGateway
from .ratings import RatingAggregator
from .routes import register_routes
from .tasks import TaskNotifier


def create_app(config_object=None):
    app = Flask(__name__, instance_relative_config=True)

    app.config.from_object(Config)
    app.config.from_envvar("APP_SETTINGS", silent=True)
    if isinstance(config_object, Mapping):
        app.config.from_mapping(config_object)
    elif config_object:
        app.config.from_object(config_object)

    app.logger.setLevel(app.config["LOG_LEVEL"])

    db.init_app(app)
    celery_init_app(app)

    # Allow the browser front end to talk to the backend
    CORS(app,
         origins=app.config["CORS_ORIGINS"],
         supports_credentials=True,
         allow_headers=["Content-Type", "Authorization"],
         methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"]
    )

    # Services share one gateway; nothing is created at import time.
    gateway = StoreGateway(db)
    availability = AvailabilityEngine(
        gateway,
        slot_minutes=app.config["SLOT_MINUTES"],
        reject_past_dates=app.config["REJECT_PAST_DATES"],
    )
    app.extensions["gateway"] = gateway
    app.extensions["availability"] = availability
    app.extensions["booking"] = BookingWorkflow(gateway, availability, TaskNotifier())
    app.extensions["ratings"] = RatingAggregator(gateway)

    register_routes(app)

    return app
