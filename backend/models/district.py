"""
District Model - The tenant boundary

Every case belongs to exactly one district. Users bound to a district only
see that district's cases (see services.statistics.access_scope).
"""
from models.database import db


class District(db.Model):
    __tablename__ = 'districts'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column('nom_district', db.String(100), nullable=False, index=True)
    region_id = db.Column('id_region', db.Integer, index=True)

    def __repr__(self):
        return f"<District {self.id} {self.name}>"
