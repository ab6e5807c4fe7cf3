"""Tests for the dashboard view-model, driven against the real API."""

from datetime import datetime

import pytest

from conftest import auth
from dashboard import CHART_COLORS, DashboardState, DashboardView, TransactionItem

API_URL = "http://testserver"


def item(id, amount, type, category="misc"):
    return TransactionItem(
        id=id, userId=1, amount=amount, category=category, type=type, date=datetime(2024, 1, 1)
    )


@pytest.fixture
def view(client, alice):
    return DashboardView(API_URL, alice, session=client)


class TestDashboardState:

    def test_totals_and_chart(self):
        state = DashboardState(
            transactions=[item(1, 100, "income"), item(2, 30, "expense"), item(3, 20, "expense")]
        )
        assert state.income_total == 100
        assert state.expense_total == 50
        chart = state.chart_data()
        assert chart["labels"] == ["Income", "Expenses"]
        assert chart["datasets"][0]["data"] == [100, 50]
        assert chart["datasets"][0]["backgroundColor"] == CHART_COLORS

    def test_empty_state(self):
        state = DashboardState()
        assert state.income_total == 0
        assert state.expense_total == 0
        assert state.type == "expense"
        assert state.error == ""

    def test_add_and_remove(self):
        state = DashboardState()
        state.add(item(1, 10, "income"))
        state.add(item(2, 5, "expense"))
        state.remove(1)
        assert [t.id for t in state.transactions] == [2]

    def test_state_is_serializable(self):
        state = DashboardState(transactions=[item(1, 10, "income")], amount="12", error="oops")
        restored = DashboardState.model_validate_json(state.model_dump_json())
        assert restored.model_dump() == state.model_dump()


class TestDashboardView:

    def test_mount_loads_transactions(self, client, alice, view):
        client.post(
            "/api/transactions",
            json={"amount": 250, "category": "salary", "type": "income"},
            headers=auth(alice),
        )
        view.mount()
        assert view.state.error == ""
        assert [(t.amount, t.category) for t in view.state.transactions] == [(250, "salary")]

    def test_submit_appends_and_resets_form(self, view):
        view.state.amount = "42.5"
        view.state.category = "food"
        view.state.type = "expense"
        view.submit()

        assert view.state.error == ""
        assert [(t.amount, t.type) for t in view.state.transactions] == [(42.5, "expense")]
        assert (view.state.amount, view.state.category, view.state.type) == ("", "", "expense")
        assert view.state.expense_total == 42.5

    def test_delete_removes_locally_and_remotely(self, client, alice, view):
        view.state.amount = "10"
        view.state.category = "fun"
        view.submit()
        tx_id = view.state.transactions[0].id

        view.delete(tx_id)
        assert view.state.transactions == []
        assert client.get("/api/transactions", headers=auth(alice)).json() == []

    def test_figure_uses_totals(self, view):
        view.state.transactions = [item(1, 150, "income"), item(2, 40, "expense")]
        pie = view.figure().data[0]
        assert list(pie.labels) == ["Income", "Expenses"]
        assert list(pie.values) == [150, 40]

    def test_fetch_failure_sets_error(self, client):
        view = DashboardView(API_URL, "bad-token", session=client)
        view.mount()
        assert view.state.error == "Failed to fetch transactions"
        assert view.state.transactions == []

    def test_invalid_amount_sets_error(self, view):
        view.state.amount = "twelve"
        view.state.category = "food"
        view.submit()
        assert view.state.error == "Failed to add transaction"
        assert view.state.transactions == []

    def test_delete_failure_keeps_item(self, view):
        view.state.transactions = [item(999, 1, "income")]
        view.delete(999)
        assert view.state.error == "Failed to delete transaction"
        assert [t.id for t in view.state.transactions] == [999]
