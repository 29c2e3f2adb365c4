from ricemill.models.reference import (
    AccountHead,
    Category,
    Designation,
    Godown,
    Party,
    PartyDue,
    PartyType,
    Product,
    Silo,
)
from ricemill.models.hr import Attendance, Employee
from ricemill.models.documents import (
    Production,
    ProductionDetail,
    ProductionItem,
    Purchase,
    PurchaseItem,
    SalaryLine,
    SalaryRun,
    Sale,
    SaleItem,
)
from ricemill.models.ledger import (
    AccountTransaction,
    AuthSession,
    EmptyBagEntry,
    PartyPayment,
    ReportPrintLog,
    SequenceCounter,
    StockMovement,
)

__all__ = [
    "AccountHead",
    "Category",
    "Designation",
    "Godown",
    "Party",
    "PartyDue",
    "PartyType",
    "Product",
    "Silo",
    "Attendance",
    "Employee",
    "Production",
    "ProductionDetail",
    "ProductionItem",
    "Purchase",
    "PurchaseItem",
    "SalaryLine",
    "SalaryRun",
    "Sale",
    "SaleItem",
    "AccountTransaction",
    "AuthSession",
    "EmptyBagEntry",
    "PartyPayment",
    "ReportPrintLog",
    "SequenceCounter",
    "StockMovement",
]
