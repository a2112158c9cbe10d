# models.py

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()

# --- Database Models ---
class Engineer(db.Model):
    __tablename__ = 'engineers'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), unique=True, nullable=False)

class Roster(db.Model):
    __tablename__ = 'roster'
    __table_args__ = (db.UniqueConstraint('date', 'engineer_id', name='uq_roster_date_engineer'),)
    id = db.Column(db.Integer, primary_key=True)
    date = db.Column(db.String(10), nullable=False, index=True)
    engineer_id = db.Column(db.Integer, db.ForeignKey('engineers.id'), nullable=False)
    shift_type = db.Column(db.String(64), nullable=False)
    engineer = db.relationship('Engineer')
    def to_dict(self):
        return { "date": self.date, "engineer_name": self.engineer.name, "shift_type": self.shift_type }

class Setting(db.Model):
    __tablename__ = 'settings'
    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(50), unique=True, nullable=False)
    value = db.Column(db.Text)
