"""
Case Model - Maps to the dossiers table

A case (dossier) groups properties and applicants under one district.
A case is closed once date_fermeture is set.

Column Mapping:
  DB Column         → Attribute       Notes
  ─────────────────────────────────────────────────────
  nom_dossier       → name
  id_district       → district_id     Tenant boundary
  date_ouverture    → opened_on       Reporting windows filter on this
  date_fermeture    → closed_on       NULL = open
  commune           → commune
  fokontany         → locality
  type_commune      → commune_type
"""
from datetime import datetime

from models.database import db


class Case(db.Model):
    __tablename__ = 'dossiers'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column('nom_dossier', db.String(100), nullable=False)
    district_id = db.Column('id_district', db.Integer, db.ForeignKey('districts.id'), nullable=False, index=True)

    opened_on = db.Column('date_ouverture', db.Date, index=True)
    closed_on = db.Column('date_fermeture', db.Date, index=True)

    commune = db.Column(db.String(100))
    locality = db.Column('fokontany', db.String(100))
    commune_type = db.Column('type_commune', db.String(50))

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Case {self.id} district={self.district_id} opened={self.opened_on}>"


class CaseApplicant(db.Model):
    """Join table linking applicants to cases (contenir)."""
    __tablename__ = 'contenir'
    __table_args__ = (
        db.UniqueConstraint('id_dossier', 'id_demandeur', name='contenir_dossier_demandeur_unique'),
    )

    id = db.Column(db.Integer, primary_key=True)
    case_id = db.Column('id_dossier', db.Integer, db.ForeignKey('dossiers.id'), nullable=False, index=True)
    applicant_id = db.Column('id_demandeur', db.Integer, db.ForeignKey('demandeurs.id'), nullable=False, index=True)
