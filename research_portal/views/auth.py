"""Auth related view functions

Authentication itself is delegated to the deployment's identity
provider; sessions arrive already bound to a user.  Only the unit test
backdoor and logout live here.
"""
from flask import Blueprint, abort, current_app, jsonify, request
from flask_login import login_user, logout_user

from ..database import db
from ..models.user import User, current_user

auth = Blueprint('auth', __name__)


@auth.route('/test/login')
def login_test_backdoor():
    """unit test backdoor

    Logs in the user named by the ``user_id`` query parameter.  Only
    available when the app is testing, 404 otherwise.
    """
    if not current_app.testing:
        abort(404)
    user_id = request.args.get('user_id', type=int)
    user = db.session.get(User, user_id) if user_id else None
    if user is None:
        abort(404, "User not found")
    login_user(user)
    return jsonify(user=user.as_json())


@auth.route('/logout')
def logout():
    """Terminate the session of the current user, if any"""
    user = current_user()
    if user:
        current_app.logger.debug("logout %s", user)
    logout_user()
    return jsonify(message='ok')
