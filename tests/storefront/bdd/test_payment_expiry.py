"""BDD tests for payment window expiry."""

from datetime import timedelta

from pytest_bdd import parsers, scenarios, then, when

from storefront.order.expiry import expire_stale_payments

scenarios("features/payment_expiry.feature")


@when(parsers.cfparse("the stale payment sweep runs {minutes:d} minutes later"), target_fixture="expired")
def _(now, minutes):
    return expire_stale_payments(now + timedelta(minutes=minutes))


@when(parsers.cfparse("the provider reports full payment {minutes:d} minutes later"), target_fixture="ack")
def _(webhook, session, minutes):
    return webhook(
        "bitcoin",
        session["reference"],
        f"tx-late:{minutes}",
        minutes_later=minutes,
        confirmations=2,
        amount_received=0.01,
    )


@then("the order was expired by the sweep")
def _(expired, order_id):
    assert expired == [order_id]


@then("the sweep expired nothing")
def _(expired):
    assert expired == []


@then("the customer was told the payment window expired")
def _(email):
    assert any(s.endswith("cancelled: payment window expired") for s in email.subjects_for("ada@example.com"))
