from .db import db
from .audit_log import AuditLog
from .cancel_request import CancelStatus
from .order import Order, OrderStatus
from .racket import Racket
from .rental import Rental, RentalStatus
from .application import Application, ApplicationStatus
from .service_pass import ServicePass, PassConsumption, PassEvent, PassStatus
from .points import PointsTransaction, PointsAccount, PointsTransactionType, PointsTransactionStatus
from .status_history import StatusHistory
from .idempotency_key import IdempotencyKey
from .batch_lock import BatchLock
from .booking_slot_config import BookingSlotConfig
