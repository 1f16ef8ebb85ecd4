"""Models package."""

from .user import User
from .credit_balance import CreditBalance
from .credit_ledger import CreditLedger
from .folder import Folder
from .content import Content
from .favorite import Favorite
from .shared_file import SharedFile
from .referral import Referral
