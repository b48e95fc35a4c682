"""
Applicant Model - Maps to the demandeurs table

A person claiming interest in one or more properties. Linked to cases
through contenir and to properties through demander (Association).
"""
from datetime import datetime

from models.database import db


class Applicant(db.Model):
    __tablename__ = 'demandeurs'

    id = db.Column(db.Integer, primary_key=True)

    # === Identity ===
    title = db.Column('titre_demandeur', db.String(20))
    last_name = db.Column('nom_demandeur', db.String(100))
    first_name = db.Column('prenom_demandeur', db.String(100))
    gender = db.Column('sexe', db.String(10))  # 'Homme' / 'Femme'
    birth_date = db.Column('date_naissance', db.Date)
    birth_place = db.Column('lieu_naissance', db.String(100))
    occupation = db.Column(db.String(100))
    father_name = db.Column('nom_pere', db.Text)
    mother_name = db.Column('nom_mere', db.Text)

    # === Identity document ===
    national_id = db.Column('cin', db.String(15))
    id_issue_date = db.Column('date_delivrance', db.Date)
    id_issue_place = db.Column('lieu_delivrance', db.String(100))
    duplicate_issue_date = db.Column('date_delivrance_duplicata', db.Date)
    duplicate_issue_place = db.Column('lieu_delivrance_duplicata', db.String(100))

    # === Civil status ===
    address = db.Column('domiciliation', db.String(150))
    marital_status = db.Column('situation_familiale', db.String(50))
    matrimonial_regime = db.Column('regime_matrimoniale', db.String(50))
    nationality = db.Column('nationalite', db.String(50))
    phone = db.Column('telephone', db.String(15))
    marriage_date = db.Column('date_mariage', db.Date)
    marriage_place = db.Column('lieu_mariage', db.String(100))
    spouse_name = db.Column('marie_a', db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Applicant {self.id} {self.last_name}>"
