"""Typed ledger rows parsed from cached QuickBooks query responses.

The cached blobs are raw QuickBooks JSON (``{"QueryResponse": {"Budget": [...]}}``).
Everything downstream of this module works on the records below, never on the
nested dicts.
"""

import json
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

EXPENSE_LINE_DETAIL = "AccountBasedExpenseLineDetail"


class BudgetLine(BaseModel):
    """One BudgetDetail row of an active QuickBooks budget."""

    budget_id: str = Field(..., description="QuickBooks Budget.Id")
    start_date: date = Field(..., description="Budget period start")
    end_date: date = Field(..., description="Budget period end")
    class_id: Optional[str] = Field(None, description="ClassRef.value (the grant)")
    class_name: Optional[str] = Field(None, description="ClassRef.name")
    account_id: Optional[str] = Field(None, description="AccountRef.value")
    account_name: Optional[str] = Field(None, description="AccountRef.name")
    amount: float = Field(default=0.0, description="Budgeted amount for the period")


class LedgerBudget(BaseModel):
    """A QuickBooks budget with its detail rows."""

    budget_id: str
    start_date: date
    end_date: date
    lines: List[BudgetLine] = Field(default_factory=list)


class LedgerLine(BaseModel):
    """One line of a QuickBooks Purchase, flattened with its parent's fields."""

    purchase_id: str
    line_id: str
    sync_token: str = ""
    txn_date: date
    vendor_name: str = "Unknown"
    description: str = ""
    detail_type: str = ""
    class_id: Optional[str] = None
    class_name: Optional[str] = None
    account_id: str = ""
    account_name: str = ""
    amount: float = 0.0

    @property
    def is_expense_line(self) -> bool:
        return self.detail_type == EXPENSE_LINE_DETAIL


class LedgerClass(BaseModel):
    """A QuickBooks Class (grant/fund)."""

    class_id: str
    name: str
    active: bool = True


def _query_rows(raw: Optional[str], entity: str) -> List[Dict[str, Any]]:
    """Extract ``QueryResponse.<entity>`` rows from a cached JSON blob."""
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.warning(f"Cached {entity} report is not valid JSON: {e}")
        return []
    if not isinstance(data, dict):
        logger.warning(f"Cached {entity} report has unexpected shape: {type(data).__name__}")
        return []
    rows = (data.get("QueryResponse") or {}).get(entity) or []
    if not isinstance(rows, list):
        logger.warning(f"Cached {entity} rows are not a list, ignoring")
        return []
    return rows


def _parse_date(value: Any) -> Optional[date]:
    if not value:
        return None
    try:
        return datetime.strptime(str(value)[:10], "%Y-%m-%d").date()
    except ValueError:
        return None


def _ref(obj: Dict[str, Any], key: str) -> Dict[str, Any]:
    ref = obj.get(key)
    return ref if isinstance(ref, dict) else {}


def _str_or_none(value: Any) -> Optional[str]:
    return str(value) if value not in (None, "") else None


def parse_budgets(raw: Optional[str]) -> List[LedgerBudget]:
    """Parse a cached ``budgets`` report into typed budgets.

    Budgets without a usable Id or date range are skipped with a warning.
    """
    budgets = []
    for row in _query_rows(raw, "Budget"):
        if not isinstance(row, dict):
            logger.warning("Skipping non-object Budget row")
            continue
        budget_id = _str_or_none(row.get("Id"))
        start = _parse_date(row.get("StartDate"))
        end = _parse_date(row.get("EndDate"))
        if not budget_id or not start or not end:
            logger.warning(
                f"Skipping budget with missing id/dates: id={row.get('Id')} "
                f"start={row.get('StartDate')} end={row.get('EndDate')}"
            )
            continue

        lines = []
        for detail in row.get("BudgetDetail") or []:
            if not isinstance(detail, dict):
                logger.warning(f"Skipping malformed BudgetDetail in budget {budget_id}")
                continue
            class_ref = _ref(detail, "ClassRef")
            account_ref = _ref(detail, "AccountRef")
            try:
                amount = float(detail.get("Amount") or 0)
            except (TypeError, ValueError):
                logger.warning(
                    f"Skipping BudgetDetail with non-numeric amount in budget {budget_id}: "
                    f"{detail.get('Amount')!r}"
                )
                continue
            lines.append(
                BudgetLine(
                    budget_id=budget_id,
                    start_date=start,
                    end_date=end,
                    class_id=_str_or_none(class_ref.get("value")),
                    class_name=class_ref.get("name"),
                    account_id=_str_or_none(account_ref.get("value")),
                    account_name=account_ref.get("name"),
                    amount=amount,
                )
            )
        budgets.append(LedgerBudget(budget_id=budget_id, start_date=start, end_date=end, lines=lines))
    return budgets


def parse_purchase_lines(raw: Optional[str]) -> List[LedgerLine]:
    """Parse a cached ``expenses`` report into flattened purchase lines.

    Every line is kept (including non-expense detail types) so callers can
    apply their own filters. Purchases without Id/TxnDate and lines without
    an Id are skipped with a warning.
    """
    lines = []
    for purchase in _query_rows(raw, "Purchase"):
        if not isinstance(purchase, dict):
            logger.warning("Skipping non-object Purchase row")
            continue
        purchase_id = _str_or_none(purchase.get("Id"))
        txn_date = _parse_date(purchase.get("TxnDate"))
        if not purchase_id or not txn_date:
            logger.warning(
                f"Skipping purchase with missing id/date: id={purchase.get('Id')} "
                f"date={purchase.get('TxnDate')}"
            )
            continue

        vendor_name = _ref(purchase, "EntityRef").get("name") or "Unknown"
        sync_token = str(purchase.get("SyncToken") or "")
        private_note = purchase.get("PrivateNote") or ""

        for line in purchase.get("Line") or []:
            if not isinstance(line, dict):
                logger.warning(f"Skipping malformed line in purchase {purchase_id}")
                continue
            line_id = _str_or_none(line.get("Id"))
            if not line_id:
                logger.warning(f"Skipping line without Id in purchase {purchase_id}")
                continue
            detail_type = line.get("DetailType") or ""
            detail = _ref(line, detail_type) if detail_type else {}
            class_ref = _ref(detail, "ClassRef")
            account_ref = _ref(detail, "AccountRef")
            try:
                amount = float(line.get("Amount") or 0)
            except (TypeError, ValueError):
                logger.warning(
                    f"Skipping line {line_id} of purchase {purchase_id} with non-numeric amount"
                )
                continue
            lines.append(
                LedgerLine(
                    purchase_id=purchase_id,
                    line_id=line_id,
                    sync_token=sync_token,
                    txn_date=txn_date,
                    vendor_name=vendor_name,
                    description=line.get("Description") or private_note,
                    detail_type=detail_type,
                    class_id=_str_or_none(class_ref.get("value")),
                    class_name=class_ref.get("name"),
                    account_id=_str_or_none(account_ref.get("value")) or "",
                    account_name=account_ref.get("name") or "",
                    amount=amount,
                )
            )
    return lines


def parse_classes(raw: Optional[str]) -> List[LedgerClass]:
    """Parse a cached ``classes`` report."""
    classes = []
    for row in _query_rows(raw, "Class"):
        if not isinstance(row, dict) or not row.get("Id"):
            logger.warning("Skipping Class row without Id")
            continue
        classes.append(
            LedgerClass(
                class_id=str(row["Id"]),
                name=row.get("Name") or row.get("FullyQualifiedName") or str(row["Id"]),
                active=bool(row.get("Active", True)),
            )
        )
    return classes


class LedgerConnection(BaseModel):
    """Stored OAuth credentials for the connected QuickBooks company."""

    id: Optional[str] = None
    realm_id: str
    access_token: str
    refresh_token: str
    token_expiry: datetime = Field(..., description="Access token expiry (UTC)")
