from .auth import User, SessionToken
from .tenancy import GasStation, UserGasStation
from .accounting import COA, Transaction, JournalEntry
from .operations import Product, Tank, TankSale, Unload

__all__ = [
    'User', 'SessionToken',
    'GasStation', 'UserGasStation',
    'COA', 'Transaction', 'JournalEntry',
    'Product', 'Tank', 'TankSale', 'Unload',
]
