"""
User Model - Back-office accounts (read-only here)

Role decides visibility:
- 'super_admin', 'central_user' → every district
- 'admin_district', 'user_district' → own district only (district_id)

Authentication and account management live in the surrounding system.
"""
from models.database import db


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    role = db.Column(db.String(50), nullable=False, default='user_district', index=True)
    district_id = db.Column('id_district', db.Integer, db.ForeignKey('districts.id'), nullable=True)
    status = db.Column(db.Boolean, default=True, index=True)  # False = disabled account

    def __repr__(self):
        return f"<User {self.id} {self.role} district={self.district_id}>"
