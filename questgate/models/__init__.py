"""Database models for QuestGate."""

from questgate.models.models import *  # noqa: F401,F403
from questgate.models.models import __all__  # noqa: F401
