"""Persistence layer - keyed record store for links and exams."""
from backend.persistence.database import build_engine, get_engine, get_db_session, init_db
from backend.persistence.models import Link, Exam, as_utc, utcnow
