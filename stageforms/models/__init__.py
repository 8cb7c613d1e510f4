"""SQLAlchemy handle shared by the persistence models.

Usage:
    from stageforms.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
