"""Stripe payment intents for class enrollment."""
import logging
import math
import os

import stripe

from errors import BadRequest

logger = logging.getLogger(__name__)

STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "usd")

# largest amount Stripe accepts for a single charge, in minor units
MAX_AMOUNT = 99999999


def to_minor_units(price: float) -> int:
    if not math.isfinite(price) or price <= 0:
        raise BadRequest("Price must be a number greater than zero")
    amount = price * 100
    if amount > MAX_AMOUNT:
        raise BadRequest("Price exceeds the maximum charge")
    # truncated, not rounded
    return int(amount)


def create_payment_intent(price: float) -> str:
    """Ask Stripe for a card payment intent and return its client secret.

    The price comes from the client and is not checked against the class
    catalog.
    """
    amount = to_minor_units(price)
    stripe.api_key = STRIPE_SECRET_KEY
    intent = stripe.PaymentIntent.create(
        amount=amount,
        currency=PAYMENT_CURRENCY,
        payment_method_types=["card"],
    )
    logger.info("Created payment intent for %d %s", amount, PAYMENT_CURRENCY)
    return intent["client_secret"]
