"""
Models package - SQLAlchemy models (read-only view of the back-office schema)
"""
from models.database import db
from models.district import District
from models.user import User
from models.case import Case, CaseApplicant
from models.property import Property
from models.applicant import Applicant
from models.association import Association

__all__ = [
    'db',
    'District',
    'User',
    'Case',
    'CaseApplicant',
    'Property',
    'Applicant',
    'Association',
]
