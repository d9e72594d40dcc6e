from parkease_api.models.users import User
from parkease_api.models.location import Location
from parkease_api.models.slot import Slot
from parkease_api.models.booking import Booking
from parkease_api.models.system_logs import SystemLog
