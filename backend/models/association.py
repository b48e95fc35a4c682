"""
Association Model - Maps to the demander table

Links one applicant to one property. At most one row per
(applicant, property) pair.

status: 'active' (claim in progress) or 'archive' (claim settled/acquired)
rank:   1 = principal applicant, 2+ = co-applicants (consorts)
"""
from models.database import db
from constants import STATUS_ACTIVE


class Association(db.Model):
    __tablename__ = 'demander'
    __table_args__ = (
        db.UniqueConstraint('id_demandeur', 'id_propriete', name='demander_demandeur_propriete_unique'),
    )

    id = db.Column(db.Integer, primary_key=True)
    applicant_id = db.Column('id_demandeur', db.Integer, db.ForeignKey('demandeurs.id'), nullable=False, index=True)
    property_id = db.Column('id_propriete', db.Integer, db.ForeignKey('proprietes.id'), nullable=False, index=True)

    status = db.Column(db.String(20), nullable=False, default=STATUS_ACTIVE, index=True)
    rank = db.Column('ordre', db.SmallInteger, nullable=False, default=1)
    total_price = db.Column('total_prix', db.BigInteger, nullable=False, default=0)

    def __repr__(self):
        return f"<Association applicant={self.applicant_id} property={self.property_id} {self.status}>"
