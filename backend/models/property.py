"""
Property Model - Maps to the proprietes table

A land parcel belonging to exactly one case. Its state (available /
acquired / unlinked) is derived from its associations, never stored.
"""
from datetime import datetime

from models.database import db


class Property(db.Model):
    __tablename__ = 'proprietes'

    id = db.Column(db.Integer, primary_key=True)
    case_id = db.Column('id_dossier', db.Integer, db.ForeignKey('dossiers.id'), nullable=False, index=True)

    # === Classification fields ===
    nature = db.Column(db.String(50))
    vocation = db.Column(db.String(50))  # Land-use category
    area = db.Column('contenance', db.BigInteger)  # m², NULL treated as 0

    # === Descriptive fields (completeness scoring) ===
    lot = db.Column(db.String(15))
    title = db.Column('titre', db.String(50))
    parent_title = db.Column('titre_mere', db.String(50))
    owner = db.Column('proprietaire', db.String(100))
    situation = db.Column(db.Text)
    operation_type = db.Column('type_operation', db.String(50))
    charge = db.Column(db.String(255))
    fn_number = db.Column('numero_FN', db.String(30))
    requisition_number = db.Column('numero_requisition', db.String(50))
    dep_vol = db.Column(db.String(50))
    dep_vol_number = db.Column('numero_dep_vol', db.String(50))
    parent_property = db.Column('propriete_mere', db.String(50))

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Property {self.id} case={self.case_id} lot={self.lot}>"
