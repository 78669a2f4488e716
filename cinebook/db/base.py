
from cinebook.db.session import Base
from cinebook.models.showtime import Showtime
from cinebook.models.booking import Booking
from cinebook.models.payment import Payment
