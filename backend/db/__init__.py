# Database utilities package
from .engine import get_engine, get_session_factory, dispose_engines
