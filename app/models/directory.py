"""
Compliance Orchestration Engine
Directory models — people who can be assigned orchestration tasks.

The directory itself is owned by the surrounding identity system; this table
is the local projection the DirectoryProvider reads candidate profiles from.
"""

from datetime import datetime, timezone

from app.models import db


class DirectoryUser(db.Model):
    """
    Candidate assignee with capacity, skill and recent-performance signals.

    Performance signals are rolling figures maintained by the directory:
    completion_rate and on_time_rate are percentages, quality_score is 0–5.
    """

    __tablename__ = "directory_users"

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, nullable=False, index=True)

    email = db.Column(db.String(200), nullable=False)
    first_name = db.Column(db.String(100), default="")
    last_name = db.Column(db.String(100), default="")
    role = db.Column(db.String(50), default="compliance_analyst")

    skill_tags = db.Column(db.JSON, default=list, comment="Framework / control family tags")
    weekly_capacity_hours = db.Column(db.Float, nullable=False, default=40.0)
    availability = db.Column(
        db.Float, nullable=False, default=90.0,
        comment="Share of the coming week the person is free (0–100)",
    )

    completion_rate = db.Column(db.Float, nullable=True)
    quality_score = db.Column(db.Float, nullable=True, comment="0–5 scale")
    on_time_rate = db.Column(db.Float, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("organization_id", "email", name="uq_directory_user_org_email"),
    )

    @property
    def display_name(self):
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or self.email

    def to_dict(self):
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "email": self.email,
            "display_name": self.display_name,
            "role": self.role,
            "skill_tags": list(self.skill_tags or []),
            "weekly_capacity_hours": self.weekly_capacity_hours,
            "availability": self.availability,
            "completion_rate": self.completion_rate,
            "quality_score": self.quality_score,
            "on_time_rate": self.on_time_rate,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<DirectoryUser {self.id}: {self.email}>"
