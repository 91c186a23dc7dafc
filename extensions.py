from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager

# PERSISTENCE ENGINE
# Declarative base for the snippet, user and session tables. Engines are
# created per Flask app by database.open_database; nothing connects here.
db = SQLAlchemy()

# AUTHENTICATED USER LOOKUP
# Reads the user id that login stored in the server-side session.
# The user loader is registered in routes.
login_manager = LoginManager()
