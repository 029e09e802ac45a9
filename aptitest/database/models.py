"""
Attempt ORM Model

Table ``test_attempts`` holds one row per attempt. A partial unique index on
(user_id, test_id) restricted to completed rows keeps a user from ever
completing the same test twice, even across processes.
"""

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, JSON, String, text

from aptitest.database.base import ModelBase

COMPLETED_ONLY = text("status = 'completed'")


class AttemptRecord(ModelBase):
    """Persistent form of :class:`aptitest.assessments.engine.models.Attempt`."""

    __tablename__ = 'test_attempts'

    id = Column(String(36), primary_key=True)
    user_id = Column(String(255), nullable=False)
    test_id = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default='in_progress')
    started_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    answers = Column(JSON, nullable=False, default=list)
    score = Column(Integer, nullable=True)
    duration_used_seconds = Column(Integer, nullable=True)
    correct_count = Column(Integer, nullable=True)
    total_questions = Column(Integer, nullable=True)
    answered_questions = Column(Integer, nullable=True)
    passed = Column(Boolean, nullable=True)

    __table_args__ = (
        Index('idx_test_attempts_user_test', user_id, test_id),
        Index(
            'uq_test_attempts_completed',
            user_id,
            test_id,
            unique=True,
            sqlite_where=COMPLETED_ONLY,
            postgresql_where=COMPLETED_ONLY,
        ),
    )

    def __repr__(self) -> str:
        return f"<AttemptRecord(id='{self.id}', user_id='{self.user_id}', test_id='{self.test_id}', status='{self.status}')>"
