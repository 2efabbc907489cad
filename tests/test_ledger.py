"""Tests for projecting expenses into obligations."""

from __future__ import annotations

import unittest

from whopaid.balance.ledger import (
    obligation_key,
    project_all_obligations,
    project_obligations,
)
from whopaid.expense.models import Expense


def make_expense(
    expense_id: str = "e1",
    amount_raw: float = 90.0,
    payer_uid: str = "U1",
    participants: tuple[str, ...] = ("U1", "U2", "U3"),
    currency_code: str = "RON",
    amount_in_group_currency: float | None = None,
    title: str = "Dinner",
) -> Expense:
    return Expense(
        id=expense_id,
        title=title,
        amount_raw=amount_raw,
        currency_code=currency_code,
        amount_in_group_currency=(
            amount_raw if amount_in_group_currency is None else amount_in_group_currency
        ),
        payer_uid=payer_uid,
        participants=participants,
    )


class ObligationKeyTestCase(unittest.TestCase):
    def test_key_format(self) -> None:
        self.assertEqual(obligation_key("abc", "U2", "U1"), "abc_U2_U1")

    def test_keys_are_deterministic(self) -> None:
        expenses = [
            make_expense("e1"),
            make_expense("e2", payer_uid="U2", participants=("U3", "U1", "U2")),
        ]
        first = [o.key for o in project_all_obligations(expenses)]
        second = [o.key for o in project_all_obligations(expenses)]
        self.assertEqual(first, second)
        self.assertEqual(first, ["e1_U2_U1", "e1_U3_U1", "e2_U3_U2", "e2_U1_U2"])


class ProjectObligationsTestCase(unittest.TestCase):
    def test_payer_owes_nothing_to_themselves(self) -> None:
        expenses = [
            make_expense("e1", payer_uid="U1", participants=("U1", "U2")),
            make_expense("e2", payer_uid="U2", participants=("U2", "U1", "U3")),
            make_expense("e3", payer_uid="U3", participants=("U3",)),
        ]
        for obligation in project_all_obligations(expenses):
            self.assertNotEqual(obligation.debtor_uid, obligation.payer_uid)
        self.assertEqual(
            [o.key for o in project_all_obligations(expenses) if o.expense_id == "e3"],
            [],
        )

    def test_shares_exclude_payer_but_divide_by_all(self) -> None:
        expense = make_expense("e1", amount_raw=100.0, participants=("U1", "U2", "U3", "U4"))
        obligations = list(project_all_obligations([expense]))
        total = sum(o.share_raw for o in obligations)
        self.assertAlmostEqual(total, 100.0 * 3 / 4)

    def test_scenario_a_viewed_by_payer(self) -> None:
        expense = make_expense("e1", amount_raw=90.0)
        obligations = list(project_obligations([expense], "U1"))
        self.assertEqual([o.key for o in obligations], ["e1_U2_U1", "e1_U3_U1"])
        self.assertTrue(all(o.direction == "credit" for o in obligations))
        self.assertTrue(all(o.share_raw == 30.0 for o in obligations))
        self.assertEqual([o.counterparty_uid for o in obligations], ["U2", "U3"])

    def test_scenario_a_viewed_by_debtor(self) -> None:
        expense = make_expense("e1", amount_raw=90.0)
        obligations = list(project_obligations([expense], "U2"))
        self.assertEqual(len(obligations), 1)
        self.assertEqual(obligations[0].direction, "debt")
        self.assertEqual(obligations[0].share_raw, 30.0)
        self.assertEqual(obligations[0].counterparty_uid, "U1")

    def test_unrelated_viewer_sees_nothing(self) -> None:
        expense = make_expense("e1", participants=("U1", "U2"))
        self.assertEqual(list(project_obligations([expense], "U3")), [])

    def test_scenario_c_empty_participants(self) -> None:
        expense = make_expense("e1", participants=())
        self.assertEqual(list(project_obligations([expense], "U1")), [])
        self.assertEqual(list(project_all_obligations([expense])), [])

    def test_scenario_d_converted_share(self) -> None:
        expense = make_expense(
            "e1",
            amount_raw=100.0,
            currency_code="EUR",
            amount_in_group_currency=498.5,
            participants=("U1", "U2"),
        )
        obligations = list(project_obligations([expense], "U2"))
        self.assertEqual(len(obligations), 1)
        self.assertEqual(obligations[0].direction, "debt")
        self.assertEqual(obligations[0].share_raw, 50.0)
        self.assertEqual(obligations[0].currency_code, "EUR")
        self.assertAlmostEqual(obligations[0].share_converted, 249.25)

    def test_order_follows_expenses_then_participants(self) -> None:
        expenses = [
            make_expense("e2", payer_uid="U1", participants=("U3", "U2")),
            make_expense("e1", payer_uid="U2", participants=("U1", "U2")),
        ]
        keys = [o.key for o in project_obligations(expenses, "U1")]
        self.assertEqual(keys, ["e2_U3_U1", "e2_U2_U1", "e1_U1_U2"])

    def test_projection_is_restartable(self) -> None:
        expenses = [make_expense("e1")]
        self.assertEqual(
            list(project_obligations(expenses, "U1")),
            list(project_obligations(expenses, "U1")),
        )

    def test_duplicate_participants_repeat_the_same_key(self) -> None:
        expense = make_expense("e1", amount_raw=90.0, participants=("U1", "U2", "U2"))
        obligations = list(project_obligations([expense], "U2"))
        self.assertEqual([o.key for o in obligations], ["e1_U2_U1", "e1_U2_U1"])
        self.assertTrue(all(o.share_raw == 30.0 for o in obligations))


if __name__ == "__main__":
    unittest.main()
