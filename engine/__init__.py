from .policy import EnginePolicy
from .core import BookingEngine, get_engine
