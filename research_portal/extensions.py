"""Extensions used at application level

Generally the objects instantiated here are needed for imports
throughout the system, but require factory pattern initialization
once the flask `app` comes to life.

Defined here to break the circular dependencies.  See
`factories/app.py` for additional configuration of objects defined
herein.

"""
# Flask-Login tracks the authenticated principal per request
from flask_login import LoginManager

from .models.user import load_user

login_manager = LoginManager()
login_manager.user_loader(load_user)
