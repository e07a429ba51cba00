from .base import Base
from .budget import BudgetItem, BudgetSectionEnum, InventoryCategoryEnum, InventoryItem
from .company import Company
from .contribution import Contribution, PaymentStatusEnum
from .donation import Donation
from .event import Event, EventRegistration, RegistrationStatusEnum
from .invoice import Invoice, InvoiceStatusEnum
from .invoice_item import InvoiceItem
from .invoice_sequence import InvoiceSequence
from .ledger import Expense, ExpenseTypeEnum, Income, IncomeTypeEnum
from .member import SEGMENT_LABELS, Member, MemberSegment, SegmentEnum
from .tag import MemberTag, Tag
from .user_role import RoleEnum, UserRole

__all__ = [
    "Base",
    "BudgetItem",
    "BudgetSectionEnum",
    "InventoryCategoryEnum",
    "InventoryItem",
    "Company",
    "Contribution",
    "PaymentStatusEnum",
    "Donation",
    "Event",
    "EventRegistration",
    "RegistrationStatusEnum",
    "Invoice",
    "InvoiceStatusEnum",
    "InvoiceItem",
    "InvoiceSequence",
    "Expense",
    "ExpenseTypeEnum",
    "Income",
    "IncomeTypeEnum",
    "SEGMENT_LABELS",
    "Member",
    "MemberSegment",
    "SegmentEnum",
    "MemberTag",
    "Tag",
    "RoleEnum",
    "UserRole",
]
