"""Pydantic schemas for request/response validation."""

from .booking import *  # noqa: F403
from .common import *  # noqa: F403
from .departure import *  # noqa: F403
from .emergency import *  # noqa: F403
from .health import *  # noqa: F403
from .itinerary import *  # noqa: F403
from .notification import *  # noqa: F403
from .tour import *  # noqa: F403
