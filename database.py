"""Process-wide SQLAlchemy handle bound to the app with ``init_app``."""
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
