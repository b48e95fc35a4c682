"""
Shared Flask-SQLAlchemy handle.

Models declare against db.Model. The statistics services never use
Model.query; they take an explicit Session so they also run outside a
Flask app context (CLI jobs, background warm-up, tests).
"""
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
