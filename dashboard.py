"""
Dashboard client

The single client view: it loads the caller's transactions, submits new ones,
deletes them and summarizes income against expenses in a pie chart. All view
state lives in ``DashboardState``, a plain serializable model; ``DashboardView``
talks to the API and applies the results to that state.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

import plotly.graph_objects as go
import requests
import structlog
from pydantic import AliasChoices, BaseModel, Field

logger = structlog.get_logger(__name__)

CHART_LABELS = ["Income", "Expenses"]
CHART_COLORS = ["#4ade80", "#f87171"]
REQUEST_TIMEOUT = 10


class DashboardRequestError(Exception):
    def __init__(self, status_code: int):
        super().__init__(f"API responded with HTTP {status_code}")
        self.status_code = status_code


class TransactionItem(BaseModel):
    id: int
    user_id: int = Field(..., validation_alias=AliasChoices("userId", "user_id"))
    amount: float
    category: str
    type: Literal["income", "expense"]
    date: datetime


class DashboardState(BaseModel):
    transactions: List[TransactionItem] = []
    amount: str = ""
    category: str = ""
    type: Literal["income", "expense"] = "expense"
    error: str = ""

    def add(self, item: TransactionItem) -> None:
        self.transactions = [*self.transactions, item]

    def remove(self, transaction_id: int) -> None:
        self.transactions = [t for t in self.transactions if t.id != transaction_id]

    def set_error(self, message: str) -> None:
        self.error = message

    def reset_form(self) -> None:
        self.amount = ""
        self.category = ""
        self.type = "expense"

    def total(self, kind: str) -> float:
        return sum(t.amount for t in self.transactions if t.type == kind)

    @property
    def income_total(self) -> float:
        return self.total("income")

    @property
    def expense_total(self) -> float:
        return self.total("expense")

    def chart_data(self) -> Dict[str, Any]:
        return {
            "labels": list(CHART_LABELS),
            "datasets": [
                {
                    "data": [self.income_total, self.expense_total],
                    "backgroundColor": list(CHART_COLORS),
                    "hoverOffset": 6,
                }
            ],
        }


class DashboardView:
    """
    Drives a ``DashboardState`` through the HTTP API.

    Args:
        api_url: Base URL of the API, without a trailing slash.
        token: Bearer token obtained from register or login.
        session: Anything with requests-style ``get``/``post``/``delete``.
    """

    def __init__(self, api_url: str, token: str, session: Optional[Any] = None):
        self.api_url = api_url.rstrip("/")
        self.token = token
        self.session = session or requests.Session()
        self.state = DashboardState()

    def _request(self, method: str, path: str, **kwargs) -> Any:
        send = getattr(self.session, method)
        response = send(
            f"{self.api_url}{path}",
            headers={"Authorization": f"Bearer {self.token}"},
            timeout=REQUEST_TIMEOUT,
            **kwargs,
        )
        if response.status_code >= 400:
            raise DashboardRequestError(response.status_code)
        return response.json()

    def mount(self) -> None:
        try:
            data = self._request("get", "/api/transactions")
            self.state.transactions = [TransactionItem.model_validate(item) for item in data]
        except (requests.RequestException, DashboardRequestError, ValueError) as exc:
            logger.warning("fetch_failed", error=str(exc))
            self.state.set_error("Failed to fetch transactions")

    def submit(self) -> None:
        try:
            body = {
                "amount": float(self.state.amount),
                "category": self.state.category,
                "type": self.state.type,
            }
            data = self._request("post", "/api/transactions", json=body)
            self.state.add(TransactionItem.model_validate(data))
            self.state.reset_form()
        except (requests.RequestException, DashboardRequestError, ValueError) as exc:
            logger.warning("add_failed", error=str(exc))
            self.state.set_error("Failed to add transaction")

    def delete(self, transaction_id: int) -> None:
        try:
            self._request("delete", f"/api/transactions/{transaction_id}")
            self.state.remove(transaction_id)
        except (requests.RequestException, DashboardRequestError, ValueError) as exc:
            logger.warning("delete_failed", transaction_id=transaction_id, error=str(exc))
            self.state.set_error("Failed to delete transaction")

    def figure(self) -> go.Figure:
        data = self.state.chart_data()
        dataset = data["datasets"][0]
        fig = go.Figure(
            go.Pie(
                labels=data["labels"],
                values=dataset["data"],
                marker={"colors": dataset["backgroundColor"]},
                sort=False,
            )
        )
        fig.update_layout(template="plotly_white")
        return fig
