"""
Notification model for in-app notifications.
"""
from datetime import datetime
from eventful.extensions import db


class NotificationType:
    """Notification severity."""
    INFO = 'info'
    SUCCESS = 'success'
    WARNING = 'warning'
    ERROR = 'error'


class NotificationCategory:
    """What area of the product a notification belongs to."""
    PAYMENT = 'payment'
    TICKET = 'ticket'
    WAITLIST = 'waitlist'
    REMINDER = 'reminder'
    SYSTEM = 'system'


class Notification(db.Model):
    """
    In-app notification.

    Written alongside the transactional emails so the buyer sees the same
    event in the app feed.
    """
    __tablename__ = 'notifications'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)

    type = db.Column(db.String(20), default=NotificationType.INFO)
    category = db.Column(db.String(50), default=NotificationCategory.SYSTEM)

    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text)
    link = db.Column(db.String(500))

    is_read = db.Column(db.Boolean, default=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    read_at = db.Column(db.DateTime)

    user = db.relationship('User', backref=db.backref('notifications', lazy='dynamic',
                                                       order_by='Notification.created_at.desc()'))

    def __repr__(self):
        return f'<Notification {self.id}: {self.title[:30]}>'

    def mark_as_read(self):
        if not self.is_read:
            self.is_read = True
            self.read_at = datetime.utcnow()
            db.session.commit()

    @classmethod
    def for_user(cls, user_id):
        return cls.query.filter_by(user_id=user_id).order_by(cls.created_at.desc(), cls.id.desc())

    @classmethod
    def get_unread_count(cls, user_id):
        return cls.query.filter_by(user_id=user_id, is_read=False).count()

    @classmethod
    def mark_all_read(cls, user_id):
        """Mark every unread notification of a user as read. Returns how many changed."""
        rows = cls.query.filter_by(user_id=user_id, is_read=False).update({
            'is_read': True,
            'read_at': datetime.utcnow(),
        }, synchronize_session=False)
        db.session.commit()
        return rows
