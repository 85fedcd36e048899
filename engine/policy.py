from dataclasses import dataclass


@dataclass(frozen=True)
class EnginePolicy:
    pass_validity_days: int = 365
    points_reward_rate: float = 0.01
    draft_stale_days: int = 14
    batch_lock_ttl_seconds: int = 300
    idempotency_ttl_hours: int = 24
    rental_allowed_days: tuple = (7, 15, 30)
    default_service_type: str = "stringing"
    desk_timezone: str = "UTC"

    @classmethod
    def from_config(cls, config):
        allowed = config.get("RENTAL_ALLOWED_DAYS", cls.rental_allowed_days)
        return cls(
            pass_validity_days=int(config.get("PASS_VALIDITY_DAYS", cls.pass_validity_days)),
            points_reward_rate=float(config.get("POINTS_REWARD_RATE", cls.points_reward_rate)),
            draft_stale_days=int(config.get("DRAFT_STALE_DAYS", cls.draft_stale_days)),
            batch_lock_ttl_seconds=int(config.get("BATCH_LOCK_TTL_SECONDS", cls.batch_lock_ttl_seconds)),
            idempotency_ttl_hours=int(config.get("IDEMPOTENCY_TTL_HOURS", cls.idempotency_ttl_hours)),
            rental_allowed_days=tuple(int(d) for d in allowed),
            default_service_type=config.get("SERVICE_TYPE_DEFAULT", cls.default_service_type),
            desk_timezone=config.get("DESK_TIMEZONE", cls.desk_timezone),
        )
