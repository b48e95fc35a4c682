"""
Root pytest configuration for backend tests.

Provides:
- backend/ on sys.path
- An in-memory SQLite engine with the models' tables, per test
- A DataFactory for districts, users, cases, properties, applicants and
  associations
- A Flask app bound to its own in-memory database
"""

import sys
from datetime import date, datetime
from pathlib import Path

# Add backend directory to Python path so imports like
# `from services.statistics.periods import ...` and `from utils.normalize import ...` work
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from constants import GENDER_MALE, STATUS_ACTIVE, ROLE_SUPER_ADMIN
from models import (
    db, District, User, Case, CaseApplicant, Property, Applicant, Association,
)

# Wednesday. Week = Mon 2024-06-10 .. Sun 2024-06-16
NOW = datetime(2024, 6, 12, 10, 30, 0)


class TestConfig:
    TESTING = True
    SECRET_KEY = 'test'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        'poolclass': StaticPool,
        'connect_args': {'check_same_thread': False},
    }
    REPORTING_TIMEZONE = 'Indian/Antananarivo'
    STATS_CACHE_URL = ''
    STATS_CACHE_MAX_ENTRIES = 100


COMPLETE_PROPERTY_FIELDS = {
    'lot': 'LOT-1',
    'title': 'TN-001',
    'parent_title': 'TM-001',
    'owner': 'Etat',
    'situation': 'Bord de route',
    'operation_type': 'morcellement',
    'charge': 'Aucune',
    'fn_number': 'FN-01',
    'requisition_number': 'REQ-01',
    'dep_vol': 'DV-01',
    'dep_vol_number': '12',
    'parent_property': 'PM-01',
}

COMPLETE_APPLICANT_FIELDS = {
    'title': 'Monsieur',
    'last_name': 'RAKOTO',
    'first_name': 'Jean',
    'national_id': '101011000001',
    'address': 'Lot II A 12',
    'birth_place': 'Antananarivo',
    'occupation': 'Cultivateur',
    'marital_status': 'Marie',
    'matrimonial_regime': 'Communaute',
    'nationality': 'Malagasy',
    'father_name': 'RAKOTO Paul',
    'mother_name': 'RASOA Marie',
    'spouse_name': 'RABE Lova',
    'phone': '0340000000',
    'id_issue_place': 'Antananarivo',
    'duplicate_issue_place': 'Antananarivo',
    'marriage_place': 'Antananarivo',
    'id_issue_date': date(2000, 1, 1),
    'duplicate_issue_date': date(2010, 1, 1),
    'marriage_date': date(2005, 1, 1),
}


class DataFactory:
    """Builds rows directly on a session and flushes after each one."""

    def __init__(self, session):
        self.session = session

    def _add(self, obj):
        self.session.add(obj)
        self.session.flush()
        return obj

    def district(self, name='Antananarivo Renivohitra', region_id=1):
        return self._add(District(name=name, region_id=region_id))

    def user(self, district=None, role=ROLE_SUPER_ADMIN, status=True, name='Agent'):
        count = self.session.query(User).count()
        return self._add(User(
            name=name,
            email=f"user{count + 1}@example.test",
            role=role,
            district_id=district.id if district is not None else None,
            status=status,
        ))

    def case(self, district, opened_on=date(2024, 6, 3), closed_on=None, commune='Commune A',
             locality='Fokontany A', commune_type='urbaine', created_at=None):
        return self._add(Case(
            name=f"Dossier {commune}",
            district_id=district.id,
            opened_on=opened_on,
            closed_on=closed_on,
            commune=commune,
            locality=locality,
            commune_type=commune_type,
            created_at=created_at or datetime.combine(opened_on, datetime.min.time()),
        ))

    def property(self, case, area=1000, nature='immatriculation', vocation='habitation',
                 complete=True, created_at=None, **fields):
        values = dict(COMPLETE_PROPERTY_FIELDS) if complete else {}
        values.update(fields)
        return self._add(Property(
            case_id=case.id,
            area=area,
            nature=nature,
            vocation=vocation,
            created_at=created_at or case.created_at,
            **values,
        ))

    def applicant(self, cases=(), gender=GENDER_MALE, birth_date=date(1980, 1, 1),
                  complete=True, created_at=None, **fields):
        values = dict(COMPLETE_APPLICANT_FIELDS) if complete else {}
        values.update(fields)
        first_case = cases[0] if cases else None
        applicant = self._add(Applicant(
            gender=gender,
            birth_date=birth_date,
            created_at=created_at or (first_case.created_at if first_case else datetime(2024, 1, 1)),
            **values,
        ))
        for case in cases:
            self._add(CaseApplicant(case_id=case.id, applicant_id=applicant.id))
        return applicant

    def associate(self, applicant, prop, status=STATUS_ACTIVE, rank=1, total_price=0):
        return self._add(Association(
            applicant_id=applicant.id,
            property_id=prop.id,
            status=status,
            rank=rank,
            total_price=total_price,
        ))


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def engine():
    engine = create_engine(
        'sqlite://',
        poolclass=StaticPool,
        connect_args={'check_same_thread': False},
    )
    db.metadata.create_all(engine)
    yield engine
    db.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    session = Session(bind=engine)
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def factory(session):
    return DataFactory(session)


@pytest.fixture
def app():
    """Create test Flask application with its own in-memory database."""
    from app import create_app

    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
