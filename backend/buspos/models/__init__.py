from .seats import Seat, SeatLock
from .tickets import Ticket, Payment
from .registers import POSTerminal, POSCashSession, CashCountBreakdown, POSTransaction

__all__ = [
    'Seat', 'SeatLock',
    'Ticket', 'Payment',
    'POSTerminal', 'POSCashSession', 'CashCountBreakdown', 'POSTransaction',
]
