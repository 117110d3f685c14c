"""SQLAlchemy database models."""
from dotenv import load_dotenv
from app.models.article import Article
from app.models.base import Base
from app.models.keyword import Keyword
from app.models.scheduled_run import ScheduledRun
from app.models.site import Site


load_dotenv()

__all__ = [
    "Base",
    "Site",
    "Keyword",
    "Article",
    "ScheduledRun",
]
