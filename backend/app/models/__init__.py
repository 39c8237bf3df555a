from app.models.bell_schedule import BellSchedule  # noqa: F401
from app.models.provider import Provider, ProviderRole  # noqa: F401
from app.models.schedule_session import ScheduleSession, SessionStatus  # noqa: F401
from app.models.schedule_snapshot import ScheduleSnapshot  # noqa: F401
from app.models.special_activity import SpecialActivity  # noqa: F401
from app.models.student import Student  # noqa: F401
