from urllib.parse import urlparse

from flask import current_app, flash, redirect, render_template, request, url_for
from flask_login import current_user, login_required, login_user, logout_user

from smartmark.auth import auth_bp
from smartmark.extensions import db
from smartmark.models import User


def _library_url(target: str | None) -> str:
    """Post-sign-in destination; only same-site paths are honored."""
    parsed = urlparse(target or "")
    if target and not parsed.scheme and not parsed.netloc and target.startswith("/"):
        return target
    return url_for("web.dashboard")


@auth_bp.route("/bootstrap", methods=["GET", "POST"])
def bootstrap_account():
    # Only reachable until the first library owner exists.
    if User.query.count() > 0:
        return redirect(url_for("auth.login"))

    username = ""
    if request.method == "POST":
        username = (request.form.get("username") or "").strip()
        password = request.form.get("password") or ""

        if not username or not password:
            flash("Choose a username and a password", "error")
        elif password != (request.form.get("confirm_password") or ""):
            flash("The two passwords differ", "error")
        else:
            owner = User(username=username, is_active=True)
            owner.set_password(password)
            db.session.add(owner)
            db.session.commit()
            current_app.logger.info("Created first SmartMark account %s", username)
            login_user(owner)
            flash("Library created", "success")
            return redirect(url_for("web.dashboard"))

    return render_template("bootstrap.html", username=username)


@auth_bp.route("/login", methods=["GET", "POST"])
def login():
    next_url = request.values.get("next")
    if current_user.is_authenticated:
        return redirect(_library_url(next_url))

    username = ""
    if request.method == "POST":
        username = (request.form.get("username") or "").strip()
        user = User.query.filter_by(username=username).first()
        if user and user.is_active and user.check_password(request.form.get("password") or ""):
            login_user(user)
            return redirect(_library_url(next_url))
        current_app.logger.info("Rejected sign-in for %r", username)
        flash("Wrong username or password", "error")

    return render_template("login.html", username=username, next_url=next_url or "")


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    flash("Signed out", "success")
    return redirect(url_for("web.home"))
