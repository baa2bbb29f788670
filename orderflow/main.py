import stripe
from fastapi import Depends, FastAPI, Request, Header, HTTPException

from orderflow.config import load_settings
from orderflow.database import Base, engine, SessionLocal
from orderflow.gateway import checkout_status
from orderflow.lifecycle import IntentStatus
from orderflow.log import configure_logging, get_logger
from orderflow.models import PaymentIntent
from orderflow.push import PushNotifier
from orderflow.routes import get_notifier, router, settle_and_notify

settings = load_settings()
configure_logging(settings.log_level)
logger = get_logger("webhook")

app = FastAPI(title="Order Store")
app.state.notifier = PushNotifier(settings.push_api_url, settings.push_server_key)

app.include_router(router)

Base.metadata.create_all(bind=engine)

# async_payment_* arrive for delayed methods after a "complete but unpaid" session
FIXED_OUTCOMES = {
    "checkout.session.async_payment_succeeded": IntentStatus.SUCCESS,
    "checkout.session.async_payment_failed": IntentStatus.FAILURE,
    "checkout.session.expired": IntentStatus.FAILURE,
}


@app.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None),
    notifier: PushNotifier = Depends(get_notifier),
):
    payload = await request.body()

    try:
        event = stripe.Webhook.construct_event(
            payload,
            stripe_signature,
            load_settings().stripe_webhook_secret
        )
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")
    except stripe.SignatureVerificationError:
        raise HTTPException(status_code=400, detail="Invalid signature")

    event_type = event["type"]
    if event_type == "checkout.session.completed":
        reported = checkout_status(event["data"]["object"])
    elif event_type in FIXED_OUTCOMES:
        reported = FIXED_OUTCOMES[event_type]
    else:
        return {"ok": True}

    txn_id = event["data"]["object"]["id"]
    with SessionLocal() as db:
        intent = db.get(PaymentIntent, txn_id)
        if intent is None:
            logger.warning("webhook_unknown_intent", txn_id=txn_id, event_type=event_type)
            return {"ok": True}
        await settle_and_notify(db, intent, reported, notifier)

    return {"ok": True}
