from flask import Flask
from flask_cors import CORS

from .core import BookingCore
from .extensions import db
from .routes import bp


def create_app(config_object=None, **capabilities):
    """Build the Flask app.

    ``capabilities`` are passed to :meth:`BookingCore.build` so callers can
    swap the payment processor, notifier or clock.
    """
    app = Flask(__name__, instance_relative_config=True)

    if config_object:
        app.config.from_object(config_object)
    else:
        app.config.from_object("salonbook.config.Config")
        app.config.from_envvar("APP_SETTINGS", silent=True)

    db.init_app(app)

    CORS(app,
         origins=["*"],
         supports_credentials=True,
         allow_headers=["Content-Type"],
         methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"]
    )

    app.register_blueprint(bp)
    app.extensions["salonbook"] = BookingCore.build(app.config, **capabilities)

    with app.app_context():
        db.create_all()

    return app
