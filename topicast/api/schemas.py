"""HTTP response schemas."""
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class StatusOut(BaseModel):
    """Server status; serialised with camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    status: str = "running"
    total_sessions: int = 0
    active_session_count: int = 0
    is_broadcasting: bool = False
    process_uptime: float = 0.0
    broadcast_interval: int = 0
    ticks: int = 0
    frames_queued: int = 0  # accepted onto send queues, not confirmed writes


class HealthOut(BaseModel):
    status: str = "ok"
    timestamp: str
