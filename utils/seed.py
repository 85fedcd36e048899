from models import db
from models.booking_slot_config import BookingSlotConfig
from engine.slots import CONFIG_ID, SlotEngine


def seed_slot_config():
    """Store the default desk settings once so admins edit a real row."""
    if db.session.get(BookingSlotConfig, CONFIG_ID) is not None:
        return False
    db.session.add(SlotEngine().load_config())
    db.session.commit()
    return True
