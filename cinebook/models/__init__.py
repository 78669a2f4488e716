
from cinebook.models.showtime import Showtime, ScreenFormat
from cinebook.models.booking import Booking, BookingStatus, GUEST_USER_ID
from cinebook.models.payment import Payment
