from parkease_api.models.base import db, generate_uuid, utcnow, isoformat


class SystemLog(db.Model):
    """Audit trail of admin mutations."""
    __tablename__ = 'system_logs'
    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    timestamp = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    log_type = db.Column(db.String(50), nullable=False, default='admin_action')
    action = db.Column(db.String(255), nullable=False)  # e.g. 'create_slot', 'toggle_user_status'
    details = db.Column(db.JSON)
    # Kept when the acting admin is later removed
    user_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='SET NULL'))
    ip_address = db.Column(db.String(45))

    actor = db.relationship('User', lazy='joined')

    def to_dict(self):
        return {
            'id': self.id,
            'timestamp': isoformat(self.timestamp),
            'log_type': self.log_type,
            'action': self.action,
            'details': self.details,
            'user': self.actor.to_summary() if self.actor else None,
            'ip_address': self.ip_address
        }

    def __repr__(self):
        return f'<SystemLog {self.action} by {self.user_id}>'
