import click
from flask import Flask

from smartmark.api import api_bp
from smartmark.auth import auth_bp
from smartmark.config import Config
from smartmark.extensions import db, login_manager
from smartmark.jobs.scheduler import start_scheduler
from smartmark.models import User
from smartmark.web import web_bp


def create_app(config_object=Config):
    app = Flask(__name__, template_folder="../templates", static_folder="../static")
    app.config.from_object(config_object)

    db.init_app(app)
    login_manager.init_app(app)

    app.register_blueprint(auth_bp)
    app.register_blueprint(web_bp)
    app.register_blueprint(api_bp)

    @app.cli.command("init-db")
    def init_db_command():
        db.create_all()
        print("Initialized SmartMark database.")

    @app.cli.command("create-user")
    @click.argument("username")
    @click.password_option()
    def create_user_command(username, password):
        if User.query.filter_by(username=username).first():
            raise click.ClickException(f"User {username!r} already exists.")
        user = User(username=username, is_active=True)
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        print(f"Created user {username} (id {user.id}).")

    @app.context_processor
    def inject_globals():
        return {"app_name": "SmartMark"}

    with app.app_context():
        db.create_all()

    start_scheduler(app)
    return app
