"""
Payment Service – Stripe Checkout for the annual access code.

Creates one-time Checkout Sessions, confirms paid sessions and processes
Stripe webhooks.  Without a Stripe secret key the service runs in demo mode
and simulates checkout without calling Stripe.
"""

import logging

import stripe
from sqlalchemy.exc import IntegrityError

from api.errors import ConfigurationError, InvalidInputError, PaymentError
from api.models import get_session, StripeEvent
from api.services.access_codes import AccessCodeService, INSTRUCTIONS, mask_code
from api.services.issued_codes import IssuedCodeRepository

logger = logging.getLogger(__name__)

PRODUCT_NAME = "Medical Device Navigator - Annual Access Code"
PRODUCT_DESCRIPTION = "One-year access code for GMDN-EMDN mappings and all features"
PRODUCT_TAG = "medical-device-annual-code"


def _attr(obj, *path, default=None):
    """Walk attributes of a Stripe object, tolerating missing links."""
    for name in path:
        if obj is None:
            return default
        obj = getattr(obj, name, None)
    return default if obj is None else obj


class PaymentService:

    def __init__(
        self,
        access_codes: AccessCodeService,
        secret_key: str | None = None,
        webhook_secret: str | None = None,
        amount_cents: int = 200,
        currency: str = "eur",
        default_origin: str = "http://localhost:5175",
        issued_codes=IssuedCodeRepository,
    ):
        self.access_codes = access_codes
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.amount_cents = amount_cents
        self.currency = currency
        self.default_origin = default_origin.rstrip("/")
        self.issued_codes = issued_codes

    @property
    def demo_mode(self) -> bool:
        return not self.secret_key

    # ── Checkout ──────────────────────────────────────────────────────────

    def create_checkout(self, session_id: str, email: str | None = None, origin: str | None = None) -> dict:
        if not session_id:
            raise InvalidInputError("Session ID required")

        if self.demo_mode:
            logger.info("Stripe not configured - using demo mode")
            return {
                "success": True,
                "demo": True,
                "sessionId": session_id,
                "message": "Demo mode - payment simulated",
            }

        base = (origin or self.default_origin).rstrip("/")
        params = {
            "payment_method_types": ["card"],
            "line_items": [{
                "price_data": {
                    "currency": self.currency,
                    "product_data": {"name": PRODUCT_NAME, "description": PRODUCT_DESCRIPTION},
                    "unit_amount": self.amount_cents,
                },
                "quantity": 1,
            }],
            "mode": "payment",
            "success_url": f"{base}/success?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{base}/",
            "metadata": {"sessionId": session_id, "product": PRODUCT_TAG},
            "allow_promotion_codes": True,
        }
        if email:
            params["customer_email"] = email

        try:
            checkout = stripe.checkout.Session.create(api_key=self.secret_key, **params)
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout creation failed: {e}")
            raise PaymentError("Payment setup failed", status_code=502)

        logger.info(f"Checkout session created: {checkout.id}")
        return {"success": True, "checkoutUrl": checkout.url, "stripeSessionId": checkout.id}

    # ── Confirmation ──────────────────────────────────────────────────────

    def confirm_payment(self, checkout_session_id: str) -> dict:
        """Issue the access code for a paid checkout session."""
        if not checkout_session_id:
            raise InvalidInputError("No session ID provided")

        if self.demo_mode:
            return {"success": True, "demo": True, "message": "Demo payment completed"}

        try:
            checkout = stripe.checkout.Session.retrieve(checkout_session_id, api_key=self.secret_key)
        except stripe.StripeError as e:
            logger.error(f"Payment verification failed for {checkout_session_id}: {e}")
            raise PaymentError("Payment verification failed", status_code=502)

        if _attr(checkout, "payment_status") != "paid":
            raise PaymentError("Payment not completed", status_code=400)

        email = _attr(checkout, "customer_email") or _attr(checkout, "customer_details", "email") or ""
        generated = self.issue_code(checkout.id, email)
        currency = _attr(checkout, "currency", default="")
        return {
            "success": True,
            "customerEmail": email or None,
            "userSessionId": _attr(checkout, "metadata", "sessionId"),
            "amountPaid": _attr(checkout, "amount_total", default=0) / 100,
            "currency": currency.upper(),
            "accessCode": generated.code,
            "expiresAt": generated.expires_at.isoformat(),
            "instructions": INSTRUCTIONS,
        }

    def issue_code(self, checkout_session_id: str, email: str = ""):
        generated = self.access_codes.generate(checkout_session_id, email)
        self.issued_codes.record(generated, checkout_session_id, email)
        return generated

    # ── Webhooks ──────────────────────────────────────────────────────────

    def handle_webhook(self, payload: bytes, signature: str | None) -> dict:
        if not self.secret_key or not self.webhook_secret:
            logger.warning("Stripe webhook not configured")
            raise ConfigurationError("Webhook not configured", status_code=400)

        try:
            event = stripe.Webhook.construct_event(payload, signature or "", self.webhook_secret)
        except ValueError:
            raise PaymentError("Invalid payload", status_code=400)
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Webhook signature verification failed: {e}")
            raise PaymentError("Invalid signature", status_code=400)

        event_id = _attr(event, "id")
        event_type = _attr(event, "type", default="")
        if not self._claim_event(event_id, event_type):
            logger.info(f"Webhook event {event_id} already processed; skipping")
            return {"received": True, "duplicate": True}

        try:
            self._process_event(event_type, _attr(event, "data", "object"))
        except Exception:
            self._release_event(event_id)
            raise
        return {"received": True}

    def _process_event(self, event_type: str, obj) -> None:
        if event_type == "checkout.session.completed":
            checkout_id = _attr(obj, "id")
            email = _attr(obj, "customer_email") or _attr(obj, "customer_details", "email") or ""
            logger.info(f"Payment completed for session: {checkout_id}")
            generated = self.issue_code(checkout_id, email)
            logger.info(
                f"Access code generated: {mask_code(generated.raw)} "
                f"(expires {generated.expires_at.date().isoformat()})"
            )
        elif event_type == "payment_intent.payment_failed":
            logger.warning(f"Payment failed: {_attr(obj, 'id')}")
        else:
            logger.info(f"Unhandled event type: {event_type}")

    @staticmethod
    def _claim_event(event_id: str | None, event_type: str) -> bool:
        """Insert the event row; ``False`` when another delivery already holds it."""
        if not event_id:
            return True
        session = get_session()
        try:
            session.add(StripeEvent(stripe_event_id=event_id, event_type=event_type))
            session.commit()
            return True
        except IntegrityError:
            session.rollback()
            return False
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @staticmethod
    def _release_event(event_id: str | None) -> None:
        """Drop a claim so Stripe's retry of a failed event is processed."""
        if not event_id:
            return
        session = get_session()
        try:
            session.query(StripeEvent).filter(StripeEvent.stripe_event_id == event_id).delete()
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
