import random

from flask import Flask, jsonify

from bookshare.config import Config
from bookshare.extensions import db, migrate, jwt, mail


def init_services(app, clock=None, push_service=None, rng: random.Random | None = None):
    """Builds the service graph once per app and keeps it in ``app.extensions``."""
    from bookshare.repositories.book_repo import BookRepo
    from bookshare.repositories.notification_repo import NotificationRepo
    from bookshare.repositories.transaction_repo import TransactionRepo
    from bookshare.repositories.user_repo import UserRepo
    from bookshare.services.notification_service import NotificationService
    from bookshare.services.otp_service import OTPService
    from bookshare.services.push_service import PushService
    from bookshare.services.sweep_service import SweepService
    from bookshare.services.transaction_service import TransactionService
    from bookshare.utils.clock import SystemClock

    clock = clock or SystemClock()
    push_service = push_service or PushService.from_config(app.config)

    transactions = TransactionRepo()
    notifications = NotificationRepo()
    users = UserRepo()

    dispatcher = NotificationService(notifications, users, push_service, clock)
    otp = OTPService(clock, ttl_minutes=app.config["OTP_TTL_MINUTES"], rng=rng)

    app.extensions["clock"] = clock
    app.extensions["notification_service"] = dispatcher
    app.extensions["transaction_service"] = TransactionService(
        transactions, users, BookRepo(), otp, dispatcher, clock
    )
    app.extensions["sweep_service"] = SweepService(
        transactions,
        notifications,
        dispatcher,
        clock,
        due_soon_days=app.config["DUE_SOON_DAYS"],
        retention_days=app.config["NOTIFICATION_RETENTION_DAYS"],
    )


def create_app(config_object=Config, clock=None, push_service=None, rng=None):
    app = Flask(__name__)
    app.config.from_object(config_object)

    # 1) extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    mail.init_app(app)

    # 2) models must be imported before migrations / create_all see the metadata
    from bookshare.models import book, delivery_log, notification, transaction, user  # noqa: F401

    # 3) services
    init_services(app, clock=clock, push_service=push_service, rng=rng)

    # 4) API blueprints
    from bookshare.controllers.transaction_controller import transaction_bp
    from bookshare.controllers.notification_controller import notif_bp
    app.register_blueprint(transaction_bp, url_prefix="/transactions")
    app.register_blueprint(notif_bp, url_prefix="/notifications")

    @app.get("/health")
    def health():
        return jsonify({"ok": True})

    @app.cli.command("init-db")
    def init_db():
        """Create all tables (use `flask db upgrade` once migrations exist)."""
        db.create_all()
        app.logger.info("[init-db] Tables created.")

    # 5) sweep scheduler
    from bookshare.tasks.scheduler import start_scheduler
    start_scheduler(app)

    return app
