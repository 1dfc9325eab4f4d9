"""
Compliance Orchestration Engine
SQLAlchemy model package.

All models share the single ``db`` extension instance created here and
bound to the Flask app in ``app.create_app``.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
