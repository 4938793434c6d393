"""
Taskflow: SQLAlchemy database handle.

The ``db`` object is bound to an application in ``create_app`` via
``db.init_app(app)``; model modules import it from here.
"""

from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def _utcnow():
    return datetime.now(timezone.utc)
