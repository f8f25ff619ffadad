# Import models here so Alembic can discover them via metadata
from .base import Base  # noqa: F401
from .stall import Stall  # noqa: F401
from .applicant import Applicant, BusinessInformation, OtherInformation, Spouse  # noqa: F401
from .application import Application  # noqa: F401
from .allocation_session import AllocationSession, AuctionBid, RaffleParticipant  # noqa: F401
from .activity_log import ActivityLog  # noqa: F401
