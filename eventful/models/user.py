"""
User model with role-based access.
EVENTEE users buy tickets, CREATOR users organize events and scan tickets.
"""
from enum import Enum
from datetime import datetime
from werkzeug.security import generate_password_hash, check_password_hash

from eventful.extensions import db


class UserRole(str, Enum):
    """Roles that gate the API surface."""
    ADMIN = "ADMIN"          # Platform administration
    CREATOR = "CREATOR"      # Organizes events, manages promo codes, checks tickets in
    EVENTEE = "EVENTEE"      # Buys tickets, joins waitlists


ROLE_LABELS = {
    UserRole.ADMIN: "Administrator",
    UserRole.CREATOR: "Event creator",
    UserRole.EVENTEE: "Attendee",
}


class User(db.Model):
    """User account."""

    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    first_name = db.Column(db.String(50), nullable=False)
    last_name = db.Column(db.String(50), nullable=False)
    role = db.Column(
        db.Enum(UserRole, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=UserRole.EVENTEE,
    )
    is_active = db.Column(db.Boolean, default=True)

    # Master switch for transactional emails
    receive_emails = db.Column(db.Boolean, default=True, nullable=False)

    # Timestamps
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f'<User {self.email}>'

    @property
    def full_name(self):
        """Return user's full name."""
        return f'{self.first_name} {self.last_name}'

    @property
    def role_label(self):
        return ROLE_LABELS.get(self.role, str(self.role))

    def set_password(self, password):
        """Hash and set the user's password."""
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        """Check if provided password matches hash."""
        return check_password_hash(self.password_hash, password)

    def has_role(self, *roles):
        """Check if the user holds one of the given roles (admins pass every check)."""
        return self.role == UserRole.ADMIN or self.role in roles

    def is_organizer_of(self, event):
        """True when this user created the event."""
        return event is not None and event.creator_id == self.id
